"""Application error types raised by domain services and converted by API handlers."""

import inspect
from enum import Enum, IntEnum
from uuid import uuid4


class AppErrorCode(str, Enum):
    """Error codes surfaced in the `errcode` field of ApiFailure."""

    E_INTERNAL_ERROR = "E_INTERNAL_ERROR"
    E_INVALID_REQUEST = "E_INVALID_REQUEST"
    E_BAD_TOKEN = "E_BAD_TOKEN"
    E_FORBIDDEN = "E_FORBIDDEN"
    E_PLATFORM_NOT_FOUND = "E_PLATFORM_NOT_FOUND"


class HttpStatusCode(IntEnum):
    OK = 200
    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    FORBIDDEN = 403
    NOT_FOUND = 404
    CONFLICT = 409
    INTERNAL_SERVER_ERROR = 500
    BAD_GATEWAY = 502


class AppError(Exception):
    """Domain error carrying an API error code and HTTP status.

    The caller location is captured at construction so the handler can log
    where the error was raised rather than where it was converted.
    """

    def __init__(
        self,
        errcode: AppErrorCode | str = AppErrorCode.E_INTERNAL_ERROR,
        errmesg: str = "We are sorry, an error occurred.",
        status_code: int = HttpStatusCode.INTERNAL_SERVER_ERROR,
    ):
        super().__init__(errmesg)
        self.errcode = errcode.value if isinstance(errcode, AppErrorCode) else errcode
        self.errmesg = errmesg
        self.status_code = int(status_code)
        self.erresid = uuid4().hex[:10]

        frame = inspect.stack()[1]
        module = inspect.getmodule(frame.frame)
        module_name = module.__name__ if module else frame.filename
        self.caller_info = f"{module_name}:{frame.function}:{frame.lineno}"

    def __repr__(self) -> str:
        return f"AppError(errcode={self.errcode!r}, errmesg={self.errmesg!r}, status_code={self.status_code})"


__all__ = ["AppError", "AppErrorCode", "HttpStatusCode"]
