from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException


class BookingError(Exception):
    status_code = 400

    def __init__(self, message: str, error: str | None = None):
        super().__init__(message)
        self.message = message
        self.error = error


class NotFoundError(BookingError):
    status_code = 404


class ForbiddenError(BookingError):
    status_code = 403


class InvalidTransitionError(BookingError):
    status_code = 400

    def __init__(self, current: str, target: str):
        super().__init__(f"Invalid status transition from {current} to {target}")
        self.current = current
        self.target = target


class ValidationError(BookingError):
    status_code = 400


class ScheduleConflictError(ValidationError):
    def __init__(self, scheduled_date=None):
        error = f"conflicting booking on {scheduled_date.isoformat()}" if scheduled_date else None
        super().__init__("Mechanic is not available on the scheduled date", error)


class ConcurrentModificationError(ValidationError):
    status_code = 409

    def __init__(self):
        super().__init__("Booking was modified concurrently, reload and retry")


def error_body(message: str, error=None) -> dict:
    body = {"status": "error", "message": message}
    if error is not None:
        body["error"] = error
    return body


async def booking_error_handler(request: Request, exc: BookingError):
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.message, exc.error))


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def request_validation_handler(request: Request, exc: RequestValidationError):
    details = [
        {"loc": [str(part) for part in err.get("loc", ())], "msg": err.get("msg")}
        for err in exc.errors()
    ]
    return JSONResponse(status_code=400, content=error_body("Invalid request data", details))


async def store_error_handler(request: Request, exc: SQLAlchemyError):
    request_id = getattr(request.state, "request_id", None)
    print(f"[booking-service] store failure request_id={request_id}: {exc!r}")
    return JSONResponse(status_code=500, content=error_body("Internal error", "store failure"))


def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(BookingError, booking_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(SQLAlchemyError, store_error_handler)
