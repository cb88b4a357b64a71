"""Credential extraction from an authentication attempt."""

from collections.abc import Collection, Mapping, Sequence
from typing import Any, NamedTuple

PASSWORD_KEY = "password"


class Credentials(NamedTuple):
    username: str
    password: str | None


def extract_credentials(
    attempt: Mapping[str, Any],
    authentication_keys: Sequence[str],
    case_insensitive_keys: Collection[str] = (),
) -> Credentials:
    """Pull the username and password out of an authentication attempt.

    Only the first authentication key is consulted for the username. Its value
    is lowercased when that key is listed as case insensitive. A missing
    username comes back as an empty string; the password is returned as given.
    """
    key = authentication_keys[0]
    value = attempt.get(key)
    username = "" if value is None else str(value)
    if key in case_insensitive_keys:
        username = username.lower()

    return Credentials(username, attempt.get(PASSWORD_KEY))
