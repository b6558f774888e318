from __future__ import annotations

from dataclasses import dataclass
from http import HTTPStatus
from typing import Any, Generic, Optional, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class CanonicalError:
    """Single error shape every call site consumes.

    ``status`` is 0 when the request never got an HTTP response
    (DNS failure, refused connection, timeout).
    """

    message: str
    status: int = 0
    payload: Any = None

    @property
    def is_transport(self) -> bool:
        return self.status == 0


class ApiError(Exception):
    def __init__(self, error: CanonicalError):
        super().__init__(error.message)
        self.error = error

    @property
    def message(self) -> str:
        return self.error.message

    @property
    def status(self) -> int:
        return self.error.status

    @property
    def payload(self) -> Any:
        return self.error.payload


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T
    ok = True


@dataclass(frozen=True)
class Err:
    error: CanonicalError
    ok = False


Result = Union[Ok[T], Err]


def _status_phrase(status: int, status_text: str) -> str:
    if status_text:
        return status_text
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return "Unknown Error"


def _extract(obj: Any) -> Optional[str]:
    # flat message -> {error: {message}} -> {error: "..."}
    if not isinstance(obj, dict):
        return None
    msg = obj.get("message")
    if isinstance(msg, str) and msg:
        return msg
    err = obj.get("error")
    if isinstance(err, dict):
        nested = err.get("message")
        if isinstance(nested, str) and nested:
            return nested
    if isinstance(err, str) and err:
        return err
    return None


def normalize_error(body: Any, status: int, status_text: str = "") -> CanonicalError:
    """Turn whatever error body the backend sent into a CanonicalError.

    The backend is inconsistent: errors come flat, nested under ``error``,
    and sometimes wrapped one more level under ``data``. A ``data`` message
    wins over an outer one. The result message is always a non-empty string.
    """
    message = _extract(body)

    if isinstance(body, dict) and isinstance(body.get("data"), dict):
        inner = _extract(body["data"])
        if inner is not None:
            message = inner

    if message is None:
        message = f"HTTP {status}: {_status_phrase(status, status_text)}"

    return CanonicalError(message=message, status=status, payload=body)


def transport_error(exc: BaseException) -> CanonicalError:
    text = str(exc) or exc.__class__.__name__
    return CanonicalError(message=f"Network error: {text}", status=0, payload=None)
