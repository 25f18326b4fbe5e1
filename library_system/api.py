import logging
import uuid
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from library_system.book import Book
from library_system.clock import utcnow
from library_system.config import Settings, configure_logging, settings as default_settings
from library_system.errors import ErrorKind, LibraryError, ValidationError
from library_system.loan import Loan, LoanRecord
from library_system.patron import Patron
from library_system.services import Services, build_services

logger = logging.getLogger(__name__)

STATUS_BY_KIND = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.STORAGE: 500,
    ErrorKind.INCONSISTENT_STATE: 500,
    ErrorKind.INTERNAL: 500,
}

GENERIC_MESSAGES = {
    ErrorKind.STORAGE: "Storage error",
    ErrorKind.INCONSISTENT_STATE: "Library state is inconsistent",
    ErrorKind.INTERNAL: "Internal server error",
}


# --- Models ---
class BookModel(BaseModel):
    id: str
    title: str
    author: str
    isbn: str
    status: str
    created_at: datetime
    updated_at: datetime


class BookCreateModel(BaseModel):
    title: str = ""
    author: str = ""
    isbn: str
    status: Optional[str] = None


class BookUpdateModel(BaseModel):
    id: Optional[str] = None
    title: Optional[str] = None
    author: Optional[str] = None
    isbn: Optional[str] = None
    status: Optional[str] = None


class UserRequestModel(BaseModel):
    name: str
    email: str


class UserModel(BaseModel):
    id: str
    name: str
    email: str


class BookActionModel(BaseModel):
    book_id: str
    email: str
    user_name: Optional[str] = None


class LoanRecordModel(BaseModel):
    id: str
    book_id: str
    patron_id: str
    patron_name: str
    patron_email: str
    kind: str
    status: str
    loan_date: datetime
    return_date: Optional[datetime] = None


class LoanModel(BaseModel):
    id: str
    book_id: str
    patron_id: str
    kind: str
    loan_date: datetime
    return_date: Optional[datetime] = None


def _book_model(book: Book) -> BookModel:
    return BookModel(id=book.id, title=book.title, author=book.author, isbn=book.isbn,
                     status=book.status.value, created_at=book.created_at, updated_at=book.updated_at)


def _user_model(patron: Patron) -> UserModel:
    return UserModel(id=patron.id, name=patron.name, email=patron.email)


def _loan_record_model(record: LoanRecord) -> LoanRecordModel:
    data = record.to_dict()
    return LoanRecordModel(**data)


def _loan_model(loan: Loan) -> LoanModel:
    return LoanModel(id=loan.id, book_id=loan.book_id, patron_id=loan.patron_id, kind=loan.kind.value,
                     loan_date=loan.loan_date, return_date=loan.return_date)


def _parse_book_id(raw: str) -> str:
    """Book ids are UUIDs; reject anything else before it reaches the services."""
    try:
        return str(uuid.UUID(str(raw).strip()))
    except ValueError:
        raise ValidationError("Invalid book ID format", details=f"not a UUID: {raw!r}") from None


def get_services(request: Request) -> Services:
    return request.app.state.services


# --- Books ---
books_router = APIRouter(prefix="/books", tags=["books"])


@books_router.get("", response_model=List[BookModel])
def get_all_books(services: Services = Depends(get_services)):
    """List every book in the catalog."""
    return [_book_model(b) for b in services.catalog.get_all_books()]


@books_router.post("/add", response_model=BookModel, status_code=201)
def add_book(payload: BookCreateModel, services: Services = Depends(get_services)):
    book = services.catalog.add_book(payload.title, payload.author, payload.isbn, payload.status)
    return _book_model(book)


@books_router.put("/update", response_model=BookModel)
def update_book(payload: BookUpdateModel, services: Services = Depends(get_services)):
    """Update a book by id, or by ISBN when no id is sent."""
    book_id = _parse_book_id(payload.id) if payload.id else None
    book = services.catalog.update_book(book_id=book_id, isbn=payload.isbn, title=payload.title,
                                        author=payload.author, status=payload.status)
    return _book_model(book)


@books_router.delete("/remove/{book_id}", response_model=BookModel)
def remove_book(book_id: str, services: Services = Depends(get_services)):
    return _book_model(services.catalog.remove_book(_parse_book_id(book_id)))


@books_router.get("/search", response_model=List[BookModel])
def search_books(query: str = Query("", description="Title, author or ISBN fragment"),
                 services: Services = Depends(get_services)):
    return [_book_model(b) for b in services.catalog.search_books(query)]


@books_router.get("/getBookById/{book_id}", response_model=BookModel)
def get_book_by_id(book_id: str, services: Services = Depends(get_services)):
    return _book_model(services.catalog.get_book_by_id(_parse_book_id(book_id)))


# --- Users ---
users_router = APIRouter(prefix="/users", tags=["users"])


@users_router.post("/register", response_model=UserModel)
def register_user(payload: UserRequestModel, services: Services = Depends(get_services)):
    return _user_model(services.patrons.register(payload.name, payload.email))


@users_router.post("/checkout", response_model=LoanRecordModel)
def checkout_book(payload: BookActionModel, services: Services = Depends(get_services)):
    record = services.lending.check_out(_parse_book_id(payload.book_id), payload.email, payload.user_name)
    return _loan_record_model(record)


@users_router.post("/return", response_model=LoanRecordModel)
def return_book(payload: BookActionModel, services: Services = Depends(get_services)):
    record = services.lending.return_book(_parse_book_id(payload.book_id), payload.email, payload.user_name)
    return _loan_record_model(record)


@users_router.post("/reserve", response_model=LoanRecordModel)
def reserve_book(payload: BookActionModel, services: Services = Depends(get_services)):
    record = services.lending.reserve_book(_parse_book_id(payload.book_id), payload.email, payload.user_name)
    return _loan_record_model(record)


@users_router.get("/loans", response_model=List[LoanModel])
def patron_loans(email: str = Query(..., description="Registered email of the patron"),
                 services: Services = Depends(get_services)):
    """Loan and reservation history of a patron, newest first."""
    return [_loan_model(loan) for loan in services.lending.loans_for_patron(email)]


@users_router.get("/loans/{loan_id}", response_model=LoanModel)
def get_loan(loan_id: str, services: Services = Depends(get_services)):
    return _loan_model(services.lending.get_loan(loan_id))


@users_router.get("/{user_id}", response_model=UserModel)
def get_user(user_id: str, services: Services = Depends(get_services)):
    return _user_model(services.patrons.get_patron(user_id))


# --- Health ---
health_router = APIRouter(tags=["health"])


@health_router.get("/health")
def health(services: Services = Depends(get_services)):
    """Lightweight health check; touches the catalog store once."""
    return {
        "status": "healthy",
        "timestamp": utcnow().isoformat(),
        "total_books": len(services.catalog.get_all_books()),
    }


# --- Error handling ---
async def library_error_handler(request: Request, exc: LibraryError) -> JSONResponse:
    status_code = STATUS_BY_KIND.get(exc.kind, 500)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.kind.value}: {exc.message} ({exc.details})")
        details = f"{exc.message}: {exc.details}" if exc.details else exc.message
        body = {"error": GENERIC_MESSAGES.get(exc.kind, "Internal server error"), "kind": exc.kind.value,
                "details": details}
    else:
        body = {"error": exc.message, "kind": exc.kind.value}
    return JSONResponse(status_code=status_code, content=body)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request format", "kind": ErrorKind.VALIDATION.value, "details": str(exc.errors())},
    )


# --- Application factory ---
def create_app(config: Optional[Settings] = None, services: Optional[Services] = None) -> FastAPI:
    """Build the API with its services injected; nothing is shared between app instances."""
    config = config or default_settings
    configure_logging(config.log_level)

    app = FastAPI(title=config.app_name, version=config.app_version, debug=config.debug)
    app.state.settings = config
    app.state.services = services or build_services(config)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-XSS-Protection"] = "1; mode=block"
        return response

    app.add_exception_handler(LibraryError, library_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    app.include_router(books_router)
    app.include_router(users_router)
    app.include_router(health_router)
    logger.info(f"{config.app_name} API ready (storage: {config.storage_backend})")
    return app
