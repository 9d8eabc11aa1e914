"""Error taxonomy shared by the order, payment and cart services.

HTTP-facing errors carry the status code and the message rendered to the
client as ``{"error": message}``. Consumer-facing errors never reach a client;
the consume loop turns them into an acknowledgment decision.
"""
from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


class SagaError(Exception):
    status_code = 500
    message = "Internal server error"

    def __init__(self, message: str | None = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


class InvalidRequest(SagaError):
    status_code = 400
    message = "Invalid request"


class EmptyCart(SagaError):
    status_code = 400
    message = "Cart is empty"


class UpstreamUnavailable(SagaError):
    message = "Could not retrieve cart"


class PersistenceError(SagaError):
    message = "Failed to persist changes"


class NotFound(SagaError):
    status_code = 404
    message = "Not found"


class MalformedEvent(SagaError):
    message = "Malformed event"


class BrokerUnavailable(SagaError):
    message = "Message broker unavailable"


class GatewayError(SagaError):
    message = "Payment gateway error"


async def saga_error_handler(request: Request, exc: SagaError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Тело запроса не прошло валидацию pydantic -> 400, а не 422
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(p) for p in first.get("loc", ())[1:]) or "body"
    return JSONResponse(status_code=400, content={"error": f"Invalid value for {field}"})


def register_error_handlers(app) -> None:
    app.add_exception_handler(SagaError, saga_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
