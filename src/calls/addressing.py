from __future__ import annotations

from calls.models import CallHandle, HandleType

CLIENT_PREFIX = "client:"
UNKNOWN_REMOTE = "Unknown"

_DIAL_FORMATTING = str.maketrans("", "", "() -")


def sanitize_dial_string(value: str) -> str:
    """Strip the formatting characters people type into a dial field."""

    return value.strip().translate(_DIAL_FORMATTING)


def format_remote_address(remote: str | None) -> str:
    """Display form of a transport address, e.g. `client:bob` -> `bob`."""

    return (remote or UNKNOWN_REMOTE).replace(CLIENT_PREFIX, "")


def handle_type_for(value: str) -> HandleType:
    if value and value.isdigit():
        return HandleType.PHONE_NUMBER
    return HandleType.GENERIC


def create_handle(remote: str | None, *, format: bool) -> CallHandle:
    value = format_remote_address(remote) if format else (remote or "")
    return CallHandle(type=handle_type_for(value), value=value)
