# plantstore/main.py
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from plantstore import analytics
from plantstore.auth.routes import router as auth_router
from plantstore.config import settings
from plantstore.database import Base, engine
from plantstore.exceptions import AppError
from plantstore.middleware import (
    InMemoryRateLimitStore,
    RateLimitMiddleware,
    RequestLoggingMiddleware,
    default_rules,
)
from plantstore.observability import get_logger, setup_logging
from plantstore.pricing.routes import coupon_router, shipping_router, tax_router
from plantstore.schemas import HealthResponse

logger = get_logger(__name__)


def _field_name(loc) -> str:
    # drop the "body"/"query"/"path" prefix FastAPI puts in front
    parts = [str(part) for part in loc if part not in ("body", "query", "path", "header", "cookie")]
    return ".".join(parts) or "request"


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error("app_error", path=request.url.path, code=exc.code, error=exc.message)
        content = {"message": exc.message, "code": exc.code}
        if getattr(exc, "field", None):
            content["field"] = exc.field
        return JSONResponse(status_code=exc.status_code, content=content)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = [{"field": _field_name(error.get("loc", ())), "message": error.get("msg")} for error in exc.errors()]
        logger.warning("validation_error", path=request.url.path, method=request.method, errors=errors)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"message": "Validation Error", "code": "VALIDATION_ERROR", "errors": errors},
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.error("unhandled_exception", path=request.url.path, method=request.method, exc_info=exc)
        message = str(exc) if settings.is_development else "Internal server error"
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"message": message, "code": "INTERNAL_ERROR"},
        )


def create_app(rate_limit_store: Optional[InMemoryRateLimitStore] = None) -> FastAPI:
    setup_logging()
    settings.validate_for_startup()

    app = FastAPI(title="Plant Store API", version=settings.API_VERSION)

    store = rate_limit_store or InMemoryRateLimitStore()
    app.state.rate_limit_store = store

    # added last runs first: request logging wraps rate limiting
    app.add_middleware(RateLimitMiddleware, store=store, rules=default_rules(settings))
    app.add_middleware(RequestLoggingMiddleware)

    register_exception_handlers(app)

    Base.metadata.create_all(bind=engine)

    app.include_router(auth_router, prefix="/api/auth", tags=["Auth"])
    app.include_router(coupon_router, prefix="/api/coupons", tags=["Coupons"])
    app.include_router(tax_router, prefix="/api/tax", tags=["Tax"])
    app.include_router(shipping_router, prefix="/api/shipping", tags=["Shipping"])
    app.include_router(analytics.router, prefix="/api/analytics", tags=["Analytics"])

    @app.get("/api/health", response_model=HealthResponse)
    def health():
        return HealthResponse(status="ok", service=settings.SERVICE_NAME, version=settings.API_VERSION)

    logger.info("app_created", environment=settings.ENVIRONMENT)
    return app


app = create_app()
