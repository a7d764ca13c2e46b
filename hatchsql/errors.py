"""Error types shared by the Flight SQL server components."""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Error codes following gRPC / Flight SQL conventions."""

    INVALID_REQUEST = "INVALID_REQUEST"
    NOT_FOUND = "NOT_FOUND"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    TRANSACTION_FAILED = "TRANSACTION_FAILED"
    QUERY_FAILED = "QUERY_FAILED"
    STATEMENT_FAILED = "STATEMENT_FAILED"
    CONNECTION_FAILED = "CONNECTION_FAILED"
    METADATA_FAILED = "METADATA_FAILED"
    INTERNAL = "INTERNAL_ERROR"
    UNAVAILABLE = "UNAVAILABLE"
    DEADLINE_EXCEEDED = "DEADLINE_EXCEEDED"
    CANCELED = "CANCELED"
    FAILED_PRECONDITION = "FAILED_PRECONDITION"
    ABORTED = "ABORTED"
    RESOURCE_EXHAUSTED = "RESOURCE_EXHAUSTED"
    UNIMPLEMENTED = "UNIMPLEMENTED"
    UNAUTHORIZED = "UNAUTHORIZED"
    PERMISSION_DENIED = "PERMISSION_DENIED"

    def __str__(self) -> str:
        return self.value


class FlightError(Exception):
    """A Flight SQL error carrying a code, a message and optional details."""

    def __init__(
        self,
        code: ErrorCode | str,
        message: str = "",
        details: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.code = str(code)
        self.message = message
        self.details = details
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        if self.cause is not None:
            return f"{self.code}: {self.message} (caused by: {self.cause})"
        return f"{self.code}: {self.message}"

    def __repr__(self) -> str:
        return f"FlightError(code={self.code!r}, message={self.message!r})"

    def with_details(self, details: dict[str, Any]) -> FlightError:
        """Replace the details and return this error."""
        self.details = details
        return self

    def with_detail(self, key: str, value: Any) -> FlightError:
        """Add one detail and return this error."""
        if self.details is None:
            self.details = {}
        self.details[key] = value
        return self

    def matches(self, other: object) -> bool:
        """True when ``other`` is a FlightError with the same code."""
        return isinstance(other, FlightError) and other.code == self.code


ERR_INVALID_QUERY = FlightError(ErrorCode.INVALID_REQUEST, "invalid query")
ERR_TRANSACTION_NOT_FOUND = FlightError(ErrorCode.NOT_FOUND, "transaction not found")
ERR_STATEMENT_NOT_FOUND = FlightError(ErrorCode.NOT_FOUND, "prepared statement not found")
ERR_TABLE_NOT_FOUND = FlightError(ErrorCode.NOT_FOUND, "table not found")
ERR_SCHEMA_NOT_FOUND = FlightError(ErrorCode.NOT_FOUND, "schema not found")
ERR_CATALOG_NOT_FOUND = FlightError(ErrorCode.NOT_FOUND, "catalog not found")
ERR_INVALID_TRANSACTION = FlightError(ErrorCode.INVALID_REQUEST, "invalid transaction")
ERR_TRANSACTION_ACTIVE = FlightError(ErrorCode.ALREADY_EXISTS, "transaction already active")
ERR_CONNECTION_FAILED = FlightError(ErrorCode.UNAVAILABLE, "database connection failed")
ERR_QUERY_TIMEOUT = FlightError(ErrorCode.DEADLINE_EXCEEDED, "query execution timeout")
ERR_RESOURCE_EXHAUSTED = FlightError(ErrorCode.RESOURCE_EXHAUSTED, "resource limit exceeded")
ERR_NOT_IMPLEMENTED = FlightError(ErrorCode.UNIMPLEMENTED, "feature not implemented")


def new(code: ErrorCode | str, message: str) -> FlightError:
    """Create a FlightError with the given code and message."""
    return FlightError(code, message)


def wrap(err: BaseException | None, code: ErrorCode | str, message: str) -> FlightError | None:
    """Wrap ``err`` in a FlightError; returns None when ``err`` is None."""
    if err is None:
        return None
    return FlightError(code, message, cause=err)


def wrapf(
    err: BaseException | None, code: ErrorCode | str, fmt: str, *args: Any
) -> FlightError | None:
    """Wrap ``err`` with a %-formatted message; returns None when ``err`` is None."""
    if err is None:
        return None
    message = fmt % args if args else fmt
    return FlightError(code, message, cause=err)


def _find_flight_error(err: BaseException | None) -> FlightError | None:
    seen: set[int] = set()
    while err is not None and id(err) not in seen:
        if isinstance(err, FlightError):
            return err
        seen.add(id(err))
        err = err.__cause__
    return None


def _has_code(err: BaseException | None, code: ErrorCode) -> bool:
    found = _find_flight_error(err)
    return found is not None and found.code == code.value


def is_not_found(err: BaseException | None) -> bool:
    """True if ``err`` or an error it wraps is a not-found error."""
    return _has_code(err, ErrorCode.NOT_FOUND)


def is_invalid_request(err: BaseException | None) -> bool:
    """True if ``err`` or an error it wraps is an invalid-request error."""
    return _has_code(err, ErrorCode.INVALID_REQUEST)


def is_internal(err: BaseException | None) -> bool:
    """True if ``err`` or an error it wraps is an internal error."""
    return _has_code(err, ErrorCode.INTERNAL)


def get_code(err: BaseException) -> str:
    """The code of the first FlightError in the chain, else the internal code."""
    found = _find_flight_error(err)
    return found.code if found is not None else ErrorCode.INTERNAL.value


def get_message(err: BaseException) -> str:
    """The message of the first FlightError in the chain, else ``str(err)``."""
    found = _find_flight_error(err)
    return found.message if found is not None else str(err)