"""Unit tests for credential extraction."""

from webseal_auth.credentials import Credentials, extract_credentials


def test_extracts_username_and_password() -> None:
    """Test basic extraction from the first authentication key."""
    creds = extract_credentials({"username": "bob", "password": "pw"}, ["username"])
    assert creds == Credentials("bob", "pw")


def test_lowercases_case_insensitive_key() -> None:
    """Test the username is lowercased when its key is case insensitive."""
    creds = extract_credentials(
        {"username": "Alice", "password": "Secret"}, ["username"], {"username"}
    )
    assert creds.username == "alice"
    # The password is never altered
    assert creds.password == "Secret"


def test_keeps_case_when_key_is_case_sensitive() -> None:
    """Test the username keeps its case when the key is not listed."""
    creds = extract_credentials(
        {"username": "Alice", "password": "pw"}, ["username"], {"email"}
    )
    assert creds.username == "Alice"


def test_only_first_key_is_used() -> None:
    """Test later authentication keys are never used as a fallback."""
    attempt = {"login": "Carol", "password": "pw"}
    creds = extract_credentials(attempt, ["email", "login"], {"email", "login"})
    assert creds.username == ""


def test_missing_username_is_empty_string() -> None:
    """Test a missing username yields an empty string, not an error."""
    creds = extract_credentials({"password": "pw"}, ["username"], {"username"})
    assert creds.username == ""
    assert creds.password == "pw"


def test_missing_password_is_none() -> None:
    """Test a missing password is reported as None."""
    creds = extract_credentials({"username": "dave"}, ["username"])
    assert creds.password is None
