"""Request interceptors: structured logging, metrics collection and panic recovery."""

from __future__ import annotations

import logging
import sys
import time
import traceback
from collections.abc import Callable
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Protocol

from hatchsql.errors import FlightError


class StatusCode(IntEnum):
    """RPC status codes; ``str()`` gives the canonical name."""

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

    def __str__(self) -> str:
        return _LABELS[self]


_LABELS = {
    StatusCode.OK: "OK",
    StatusCode.CANCELLED: "Canceled",
    StatusCode.UNKNOWN: "Unknown",
    StatusCode.INVALID_ARGUMENT: "InvalidArgument",
    StatusCode.DEADLINE_EXCEEDED: "DeadlineExceeded",
    StatusCode.NOT_FOUND: "NotFound",
    StatusCode.ALREADY_EXISTS: "AlreadyExists",
    StatusCode.PERMISSION_DENIED: "PermissionDenied",
    StatusCode.RESOURCE_EXHAUSTED: "ResourceExhausted",
    StatusCode.FAILED_PRECONDITION: "FailedPrecondition",
    StatusCode.ABORTED: "Aborted",
    StatusCode.OUT_OF_RANGE: "OutOfRange",
    StatusCode.UNIMPLEMENTED: "Unimplemented",
    StatusCode.INTERNAL: "Internal",
    StatusCode.UNAVAILABLE: "Unavailable",
    StatusCode.DATA_LOSS: "DataLoss",
    StatusCode.UNAUTHENTICATED: "Unauthenticated",
}


class RpcError(Exception):
    """An error carrying an RPC status code."""

    def __init__(self, code: StatusCode, message: str = "") -> None:
        super().__init__(message)
        self.code = StatusCode(code)
        self.message = message

    def __str__(self) -> str:
        return f"rpc error: code = {self.code} desc = {self.message}"


@dataclass(frozen=True)
class CallInfo:
    """What an interceptor knows about the call: its method and calling user."""

    full_method: str
    user: str = ""


class ServerStream(Protocol):
    """A bidirectional message stream of one call."""

    def send_msg(self, message: Any) -> None: ...

    def recv_msg(self) -> Any: ...


class _Timer(Protocol):
    def stop(self) -> float: ...


class _Collector(Protocol):
    def increment_counter(self, name: str, *labels: str) -> None: ...

    def record_histogram(self, name: str, value: float, *labels: str) -> None: ...

    def record_gauge(self, name: str, value: float, *labels: str) -> None: ...

    def start_timer(self, name: str) -> _Timer: ...


UnaryHandler = Callable[[Any], Any]
UnaryInterceptor = Callable[[Any, CallInfo, UnaryHandler], Any]
StreamHandler = Callable[[Any, ServerStream], None]
StreamInterceptor = Callable[[Any, ServerStream, CallInfo, StreamHandler], None]


def status_code(err: BaseException | None) -> StatusCode:
    """The status code of an error: OK for none, UNKNOWN for non-RPC errors."""
    if err is None:
        return StatusCode.OK
    if isinstance(err, RpcError):
        return err.code
    return StatusCode.UNKNOWN


class _StreamProxy:
    def __init__(self, stream: ServerStream) -> None:
        self._stream = stream

    def __getattr__(self, name: str) -> Any:
        return getattr(self._stream, name)


class _LoggingStream(_StreamProxy):
    """Counts the messages successfully sent and received."""

    def __init__(self, stream: ServerStream) -> None:
        super().__init__(stream)
        self.messages_sent = 0
        self.messages_received = 0

    def send_msg(self, message: Any) -> None:
        self._stream.send_msg(message)
        self.messages_sent += 1

    def recv_msg(self) -> Any:
        message = self._stream.recv_msg()
        self.messages_received += 1
        return message


class LoggingMiddleware:
    """Logs every call with its method, user, duration and status code."""

    def __init__(self, logger: logging.Logger) -> None:
        self.logger = logger

    def _log(
        self,
        msg: str,
        info: CallInfo,
        started: float,
        err: BaseException | None,
        **extra: Any,
    ) -> None:
        duration_ms = (time.perf_counter() - started) * 1000.0
        code = status_code(err)
        level = logging.ERROR if err is not None and code != StatusCode.CANCELLED else logging.INFO
        fields: dict[str, Any] = {}
        if level == logging.ERROR:
            fields["error"] = str(err)
        fields.update(
            method=info.full_method,
            user=info.user,
            duration=duration_ms,
            code=str(code),
        )
        fields.update(extra)
        self.logger.log(level, msg, extra={"fields": fields})

    def unary_interceptor(self) -> UnaryInterceptor:
        """Return an interceptor that logs each unary call."""

        def intercept(request: Any, info: CallInfo, handler: UnaryHandler) -> Any:
            started = time.perf_counter()
            try:
                response = handler(request)
            except Exception as exc:
                self._log("Unary request", info, started, exc)
                raise
            self._log("Unary request", info, started, None)
            return response

        return intercept

    def stream_interceptor(self) -> StreamInterceptor:
        """Return an interceptor that logs each streaming call with message counts."""

        def intercept(
            server: Any, stream: ServerStream, info: CallInfo, handler: StreamHandler
        ) -> None:
            started = time.perf_counter()
            wrapped = _LoggingStream(stream)
            error: Exception | None = None
            try:
                handler(server, wrapped)
            except Exception as exc:
                error = exc
                raise
            finally:
                self._log(
                    "Stream request",
                    info,
                    started,
                    error,
                    messages_sent=wrapped.messages_sent,
                    messages_received=wrapped.messages_received,
                )

        return intercept


class _MetricsStream(_StreamProxy):
    """Times and counts every send and receive on a stream."""

    def __init__(self, stream: ServerStream, collector: _Collector, method: str) -> None:
        super().__init__(stream)
        self._collector = collector
        self._method = method

    def send_msg(self, message: Any) -> None:
        c = self._collector
        timer = c.start_timer("grpc_stream_send_duration")
        try:
            self._stream.send_msg(message)
        except Exception:
            self._record_send(timer.stop())
            c.increment_counter("grpc_stream_send_errors_total", "method", self._method)
            raise
        self._record_send(timer.stop())

    def _record_send(self, duration: float) -> None:
        c = self._collector
        c.record_histogram("grpc_stream_send_duration_seconds", duration, "method", self._method)
        c.increment_counter("grpc_stream_messages_sent_total", "method", self._method)

    def recv_msg(self) -> Any:
        c = self._collector
        timer = c.start_timer("grpc_stream_recv_duration")
        try:
            message = self._stream.recv_msg()
        except Exception:
            self._record_recv(timer.stop())
            c.increment_counter("grpc_stream_recv_errors_total", "method", self._method)
            raise
        self._record_recv(timer.stop())
        return message

    def _record_recv(self, duration: float) -> None:
        c = self._collector
        c.record_histogram("grpc_stream_recv_duration_seconds", duration, "method", self._method)
        c.increment_counter("grpc_stream_messages_received_total", "method", self._method)


class MetricsMiddleware:
    """Records call counts, status codes and durations to a metrics collector."""

    def __init__(self, collector: _Collector) -> None:
        self.collector = collector

    def unary_interceptor(self) -> UnaryInterceptor:
        """Return an interceptor that records metrics for each unary call."""

        def intercept(request: Any, info: CallInfo, handler: UnaryHandler) -> Any:
            c = self.collector
            method = info.full_method
            timer = c.start_timer("grpc_request_duration")
            try:
                c.increment_counter("grpc_requests_total", "method", method, "type", "unary")
                error: Exception | None = None
                try:
                    return handler(request)
                except Exception as exc:
                    error = exc
                    raise
                finally:
                    c.increment_counter(
                        "grpc_responses_total",
                        "method", method,
                        "type", "unary",
                        "code", str(status_code(error)),
                    )
            finally:
                c.record_histogram(
                    "grpc_request_duration_seconds", timer.stop(), "method", method, "type", "unary"
                )

        return intercept

    def stream_interceptor(self) -> StreamInterceptor:
        """Return an interceptor that records metrics for each streaming call."""

        def intercept(
            server: Any, stream: ServerStream, info: CallInfo, handler: StreamHandler
        ) -> None:
            c = self.collector
            method = info.full_method
            timer = c.start_timer("grpc_stream_duration")
            try:
                c.increment_counter("grpc_streams_total", "method", method)
                wrapped = _MetricsStream(stream, c, method)
                error: Exception | None = None
                try:
                    handler(server, wrapped)
                except Exception as exc:
                    error = exc
                    raise
                finally:
                    c.increment_counter(
                        "grpc_stream_status_total",
                        "method", method,
                        "code", str(status_code(error)),
                    )
            finally:
                c.record_histogram("grpc_stream_duration_seconds", timer.stop(), "method", method)

        return intercept


class RecoveryMiddleware:
    """Turns unexpected exceptions into an internal RPC error.

    RpcError and FlightError are ordinary call errors and pass through;
    any other exception is logged with its traceback, written to stderr
    and replaced by ``RpcError(INTERNAL, "internal server error")``.
    """

    def __init__(self, logger: logging.Logger) -> None:
        self.logger = logger

    def _handle_panic(self, exc: BaseException, method: str) -> None:
        stack = traceback.format_exc()
        self.logger.error(
            "Panic recovered",
            extra={"fields": {"method": method, "panic": str(exc), "stack": stack}},
        )
        sys.stderr.write(f"PANIC in {method}: {exc}\n{stack}\n")

    def unary_interceptor(self) -> UnaryInterceptor:
        """Return an interceptor that recovers from failures of unary calls."""

        def intercept(request: Any, info: CallInfo, handler: UnaryHandler) -> Any:
            try:
                return handler(request)
            except (RpcError, FlightError):
                raise
            except Exception as exc:
                self._handle_panic(exc, info.full_method)
                raise RpcError(StatusCode.INTERNAL, "internal server error") from exc

        return intercept

    def stream_interceptor(self) -> StreamInterceptor:
        """Return an interceptor that recovers from failures of streaming calls."""

        def intercept(
            server: Any, stream: ServerStream, info: CallInfo, handler: StreamHandler
        ) -> None:
            try:
                handler(server, stream)
            except (RpcError, FlightError):
                raise
            except Exception as exc:
                self._handle_panic(exc, info.full_method)
                raise RpcError(StatusCode.INTERNAL, "internal server error") from exc

        return intercept