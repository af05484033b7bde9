from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError

from pharmacy.app.api.v1.router import router as v1_router
from pharmacy.app.core.config import get_settings
from pharmacy.app.core.errors import (
    PharmacyError,
    pharmacy_error_handler,
    request_validation_error_handler,
)
from pharmacy.app.core.logging import setup_logging

settings = get_settings()
setup_logging(settings.log_level, settings.log_format)

app = FastAPI(title=settings.api_title, version=settings.api_version)
app.add_exception_handler(PharmacyError, pharmacy_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_error_handler)
app.include_router(v1_router, prefix="/v1")
