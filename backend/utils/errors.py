from fastapi import Request
from fastapi.responses import JSONResponse


class CommissionError(Exception):
    """
    Base for every error raised by the commission / withdrawal core.
    Routes never catch these; the app-level handler maps them to JSON.
    """

    kind = "error"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(CommissionError):
    kind = "not_found"
    status_code = 404


class ValidationError(CommissionError):
    kind = "validation_error"
    status_code = 400


class InsufficientBalance(CommissionError):
    kind = "insufficient_balance"
    status_code = 400


class Conflict(CommissionError):
    kind = "conflict"
    status_code = 409


class WindowClosed(CommissionError):
    kind = "window_closed"
    status_code = 403


async def commission_error_handler(request: Request, exc: CommissionError):
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": exc.kind,
            "message": exc.message,
        },
    )
