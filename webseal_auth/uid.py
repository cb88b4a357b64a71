"""UID generators mapping a gateway username to a local lookup key."""

import hashlib
from collections.abc import Callable

UidGenerator = Callable[[str, str], str]


def default_uid_generator(username: str, server: str) -> str:
    """Join the username and gateway host into ``username@server``."""
    return f"{username}@{server}"


def hashed_uid_generator(username: str, server: str) -> str:
    """Opaque UID for deployments that keep usernames out of the key column."""
    digest = hashlib.sha256(f"{username}\0{server}".encode()).hexdigest()
    return digest[:32]
