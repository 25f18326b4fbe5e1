"""Library System - Core Application Package

This package contains the core application modules including:
- Domain records (book.py, patron.py, loan.py)
- Validation helpers (validators.py)
- Storage layer (database.py, stores/)
- Catalog, patron and lending services (services/)
- API endpoints (api.py)
- CLI interface (main.py)
"""

__version__ = "1.0.0"
