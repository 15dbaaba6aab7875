"""Status codes and errors that mirror the gRPC status model."""

from __future__ import annotations

from enum import IntEnum


class Code(IntEnum):
    """Canonical gRPC status codes."""

    OK = 0
    CANCELLED = 1
    UNKNOWN = 2
    INVALID_ARGUMENT = 3
    DEADLINE_EXCEEDED = 4
    NOT_FOUND = 5
    ALREADY_EXISTS = 6
    PERMISSION_DENIED = 7
    RESOURCE_EXHAUSTED = 8
    FAILED_PRECONDITION = 9
    ABORTED = 10
    OUT_OF_RANGE = 11
    UNIMPLEMENTED = 12
    INTERNAL = 13
    UNAVAILABLE = 14
    DATA_LOSS = 15
    UNAUTHENTICATED = 16


class StatusError(Exception):
    """An error carrying a status code and a human readable message."""

    def __init__(self, code, message):
        self.code = Code(code)
        self.message = str(message)
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"rpc error: code = {self.code.name} desc = {self.message}"

    def __repr__(self) -> str:
        return f"StatusError({self.code.name}, {self.message!r})"


def status_code(err) -> Code:
    """Return the status code of an error: OK for None, UNKNOWN for foreign errors."""
    if err is None:
        return Code.OK
    if isinstance(err, StatusError):
        return err.code
    return Code.UNKNOWN