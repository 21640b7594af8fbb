# crmhub/main.py

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from crmhub.api.v1 import api_router
from crmhub.core.config import settings
from crmhub.core.database import mongo_manager
from crmhub.core.logging_config import add_trace_id_middleware, setup_logging, trace_id_var
from crmhub.modules.integrations.repository import IntegrationLogRepository, IntegrationRepository
from crmhub.modules.leads.repository import LeadRepository, ScheduledMessageRepository
from crmhub.modules.members.repository import MemberRepository, UserRepository
from crmhub.modules.plans.repository import OrgFeatureOverrideRepository
from crmhub.modules.quizzes.repository import QuizEventRepository, QuizRepository
from crmhub.modules.reconciliation.repository import ReceptiveAttendanceRepository
from crmhub.modules.sales.repository import PostSaleSurveyRepository, SaleRepository
from crmhub.modules.stock.repository import ProductRepository, StockMovementRepository

INDEXED_REPOSITORIES = (
    UserRepository,
    MemberRepository,
    ProductRepository,
    StockMovementRepository,
    LeadRepository,
    ScheduledMessageRepository,
    SaleRepository,
    PostSaleSurveyRepository,
    IntegrationRepository,
    IntegrationLogRepository,
    ReceptiveAttendanceRepository,
    QuizRepository,
    QuizEventRepository,
    OrgFeatureOverrideRepository,
)


async def create_indexes(db: AsyncIOMotorDatabase) -> None:
    for repository_cls in INDEXED_REPOSITORIES:
        await repository_cls(db).create_indexes()
    logger.info(f"Indexes ensured for {len(INDEXED_REPOSITORIES)} collections.")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {settings.PROJECT_NAME}...")
    await mongo_manager.connect()
    await create_indexes(mongo_manager.get_db())
    yield
    logger.info("Shutting down...")
    await mongo_manager.disconnect()


limiter = Limiter(key_func=get_remote_address, default_limits=[settings.API_RATE_LIMIT])


def _error_response(status_code: int, detail, error_type: str, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": detail, "type": error_type, "trace_id": trace_id_var.get()},
        headers=headers,
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    logger.warning(f"HTTP {exc.status_code} on {request.method} {request.url.path}: {exc.detail}")
    return _error_response(exc.status_code, exc.detail, "http_exception", headers=getattr(exc, "headers", None))


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Request validation error on {request.url.path}: {exc.errors()}")
    return _error_response(status.HTTP_422_UNPROCESSABLE_ENTITY, jsonable_encoder(exc.errors()), "validation_error")


async def data_validation_exception_handler(request: Request, exc: ValidationError):
    # modelo interno que não validou: erro do servidor, não do cliente
    logger.opt(exception=exc).error(f"Data validation error on {request.url.path}: {exc.error_count()} error(s)")
    return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal data validation error", "data_validation_error")


async def generic_exception_handler(request: Request, exc: Exception):
    logger.opt(exception=exc).error(f"Unhandled exception on {request.method} {request.url.path}: {exc}")
    return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error", "unhandled_exception")


def create_app() -> FastAPI:
    setup_logging()
    app = FastAPI(
        title=settings.PROJECT_NAME,
        openapi_url=f"{settings.API_V1_STR}/openapi.json",
        lifespan=lifespan,
        exception_handlers={
            StarletteHTTPException: http_exception_handler,
            RequestValidationError: validation_exception_handler,
            ValidationError: data_validation_exception_handler,
            RateLimitExceeded: _rate_limit_exceeded_handler,
            Exception: generic_exception_handler,
        },
    )
    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)

    origins = ["*"] if settings.CORS_ORIGINS == "*" else [o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=origins != ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(add_trace_id_middleware)

    app.include_router(api_router, prefix=settings.API_V1_STR)
    return app


app = create_app()
