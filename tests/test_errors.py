import pytest

from hatchsql import errors
from hatchsql.errors import ErrorCode, FlightError


@pytest.mark.parametrize(
    "err, expected",
    [
        (
            FlightError(ErrorCode.INVALID_REQUEST, "invalid input"),
            "INVALID_REQUEST: invalid input",
        ),
        (
            FlightError(
                ErrorCode.INVALID_REQUEST,
                "invalid input",
                cause=RuntimeError("underlying error"),
            ),
            "INVALID_REQUEST: invalid input (caused by: underlying error)",
        ),
    ],
)
def test_error_string(err, expected):
    assert str(err) == expected


def test_unwrap():
    cause = RuntimeError("underlying error")
    err = FlightError(ErrorCode.INVALID_REQUEST, "invalid input", cause=cause)
    assert err.cause is cause
    assert err.__cause__ is cause
    assert err.matches(FlightError(ErrorCode.INVALID_REQUEST))


def test_matches():
    err1 = FlightError(ErrorCode.NOT_FOUND, "not found")
    err2 = FlightError(ErrorCode.NOT_FOUND, "different message")
    err3 = FlightError(ErrorCode.INVALID_REQUEST, "invalid")
    std_err = RuntimeError("standard error")
    assert err1.matches(err2)
    assert not err1.matches(err3)
    assert not err1.matches(std_err)


def test_with_details():
    err = FlightError(ErrorCode.INVALID_REQUEST, "invalid input")
    details = {"field": "username", "value": 123}
    result = err.with_details(details)
    assert result is err
    assert err.details == details


def test_with_detail():
    err = FlightError(ErrorCode.INVALID_REQUEST, "invalid input")
    err = err.with_detail("field", "username").with_detail("value", 123)
    assert err.details["field"] == "username"
    assert err.details["value"] == 123


def test_new():
    err = errors.new(ErrorCode.INVALID_REQUEST, "test message")
    assert err.code == ErrorCode.INVALID_REQUEST
    assert err.code == "INVALID_REQUEST"
    assert err.message == "test message"
    assert err.cause is None


def test_wrap():
    cause = RuntimeError("underlying error")
    err = errors.wrap(cause, ErrorCode.INVALID_REQUEST, "wrapped message")
    assert err.code == "INVALID_REQUEST"
    assert err.message == "wrapped message"
    assert err.cause is cause
    assert errors.wrap(None, ErrorCode.INVALID_REQUEST, "message") is None


def test_wrapf():
    cause = RuntimeError("underlying error")
    err = errors.wrapf(cause, ErrorCode.INVALID_REQUEST, "wrapped message %d", 42)
    assert err.code == "INVALID_REQUEST"
    assert err.message == "wrapped message 42"
    assert err.cause is cause
    assert errors.wrapf(None, ErrorCode.INVALID_REQUEST, "message %d", 42) is None


def test_flight_error_can_be_raised():
    err = errors.new(ErrorCode.ABORTED, "stop")
    with pytest.raises(FlightError) as info:
        raise err
    assert info.value is err
    assert str(info.value) == "ABORTED: stop"


@pytest.mark.parametrize(
    "err, expected",
    [
        (errors.ERR_TABLE_NOT_FOUND, True),
        (errors.ERR_INVALID_QUERY, False),
        (RuntimeError("standard error"), False),
    ],
)
def test_is_not_found(err, expected):
    assert errors.is_not_found(err) is expected


@pytest.mark.parametrize(
    "err, expected",
    [
        (errors.ERR_INVALID_QUERY, True),
        (errors.ERR_TABLE_NOT_FOUND, False),
        (RuntimeError("standard error"), False),
    ],
)
def test_is_invalid_request(err, expected):
    assert errors.is_invalid_request(err) is expected


@pytest.mark.parametrize(
    "err, expected",
    [
        (errors.new(ErrorCode.INTERNAL, "internal error"), True),
        (errors.ERR_TABLE_NOT_FOUND, False),
        (RuntimeError("standard error"), False),
    ],
)
def test_is_internal(err, expected):
    assert errors.is_internal(err) is expected


@pytest.mark.parametrize(
    "err, expected",
    [
        (errors.ERR_TABLE_NOT_FOUND, "NOT_FOUND"),
        (RuntimeError("standard error"), "INTERNAL_ERROR"),
    ],
)
def test_get_code(err, expected):
    assert errors.get_code(err) == expected


@pytest.mark.parametrize(
    "err, expected",
    [
        (errors.ERR_TABLE_NOT_FOUND, "table not found"),
        (RuntimeError("standard error"), "standard error"),
    ],
)
def test_get_message(err, expected):
    assert errors.get_message(err) == expected


def test_found_through_wrapping_chain():
    inner = errors.new(ErrorCode.NOT_FOUND, "missing")
    outer = RuntimeError("outer")
    outer.__cause__ = inner
    assert errors.is_not_found(outer)
    assert errors.get_message(outer) == "missing"


@pytest.mark.parametrize(
    "err, expected",
    [
        (errors.ERR_INVALID_QUERY, "INVALID_REQUEST"),
        (errors.ERR_TRANSACTION_NOT_FOUND, "NOT_FOUND"),
        (errors.ERR_STATEMENT_NOT_FOUND, "NOT_FOUND"),
        (errors.ERR_TABLE_NOT_FOUND, "NOT_FOUND"),
        (errors.ERR_SCHEMA_NOT_FOUND, "NOT_FOUND"),
        (errors.ERR_CATALOG_NOT_FOUND, "NOT_FOUND"),
        (errors.ERR_INVALID_TRANSACTION, "INVALID_REQUEST"),
        (errors.ERR_TRANSACTION_ACTIVE, "ALREADY_EXISTS"),
        (errors.ERR_CONNECTION_FAILED, "UNAVAILABLE"),
        (errors.ERR_QUERY_TIMEOUT, "DEADLINE_EXCEEDED"),
        (errors.ERR_RESOURCE_EXHAUSTED, "RESOURCE_EXHAUSTED"),
        (errors.ERR_NOT_IMPLEMENTED, "UNIMPLEMENTED"),
    ],
)
def test_common_error_codes(err, expected):
    assert errors.get_code(err) == expected