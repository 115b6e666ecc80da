"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from reminder_engine.api import reminders
from reminder_engine.config import get_settings
from reminder_engine.exceptions import DeliveryFailure, ReminderEngineError
from reminder_engine.log_config import configure_logging
from reminder_engine.schemas.reminder import ReminderResponse
from reminder_engine.services.delivery_gateway import get_delivery_gateway

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown events."""
    configure_logging()
    yield
    if get_delivery_gateway.cache_info().currsize:
        get_delivery_gateway().shutdown()


app = FastAPI(
    title="Testimonial Reminder Engine",
    description="Scheduling, delivery and recurrence of testimonial request reminders",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware for development
if settings.is_development:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5000", "http://localhost:5173"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.exception_handler(ReminderEngineError)
async def reminder_engine_error_handler(request: Request, exc: ReminderEngineError):
    """Translate engine errors into the API's ``{"detail": ...}`` responses."""
    content: dict = {"detail": exc.message}
    if isinstance(exc, DeliveryFailure) and exc.reminder is not None:
        content["reminder"] = ReminderResponse.model_validate(exc.reminder).model_dump(
            mode="json", by_alias=True
        )
    return JSONResponse(status_code=exc.status_code, content=content)


# Register routers
app.include_router(reminders.router)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "environment": settings.environment}
