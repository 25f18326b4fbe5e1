import pytest

from library_system.errors import EmailAlreadyRegisteredError, PatronNotFoundError, ValidationError
from library_system.patron import Patron


def test_register_normalizes_name_and_email(patrons):
    patron = patrons.register("  Jane   Doe ", " Jane@X.com ")

    assert patron.name == "Jane Doe"
    assert patron.email == "jane@x.com"
    assert patrons.get_patron(patron.id).email == "jane@x.com"
    assert patrons.get_patron_by_email("JANE@x.com").id == patron.id


def test_register_duplicate_email(patrons, jane):
    with pytest.raises(EmailAlreadyRegisteredError, match="email already registered"):
        patrons.register("Another Jane", "JANE@x.com")


@pytest.mark.parametrize("name, email, message", [
    ("", "a@b.com", "Invalid Name"),
    ("R2D2", "a@b.com", "Invalid Name"),
    ("Jane Doe", "jane@", "Invalid Email Address"),
    ("Jane Doe", "", "Invalid Email Address"),
])
def test_register_rejects_invalid_input(patrons, name, email, message):
    with pytest.raises(ValidationError, match=message):
        patrons.register(name, email)


def test_lookup_unknown_patron(patrons):
    with pytest.raises(PatronNotFoundError):
        patrons.get_patron("missing")
    with pytest.raises(PatronNotFoundError):
        patrons.get_patron_by_email("nobody@x.com")


def test_find_patrons_by_name(stores, patrons, jane):
    patrons.register("John Doe", "john@x.com")

    matches = stores.patrons.find_patrons_by_name("JANE doe")
    assert [p.email for p in matches] == ["jane@x.com"]


def test_added_patron_is_a_copy(stores):
    patron = Patron("Jane Doe", "jane@x.com")
    added = stores.patrons.add_patron(patron)

    assert added is not patron
    assert added.id == patron.id
    patron.name = "Changed"
    assert stores.patrons.get_patron(patron.id).name == "Jane Doe"
