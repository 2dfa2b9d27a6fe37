import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from mangum import Mangum
from starlette.middleware.cors import CORSMiddleware

from softpoints import containers
from softpoints.config import settings
from softpoints.core.exception_handlers import (
    handle_base_api_exception,
    handle_http_exception,
    handle_unexpected_error,
    handle_validation_error,
)
from softpoints.core.exceptions import BaseAPIException
from softpoints.core.logging_middleware import LoggingMiddleware
from softpoints.logging_config import setup_logging
from softpoints.routers import (
    fraud_router,
    health_router,
    point_router,
    reward_router,
    withdrawal_router,
)

load_dotenv("softpoints/.env")
setup_logging(settings.LOG_LEVEL, json_logs=settings.ENVIRONMENT != "development")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # 종료 시 남은 fire-and-forget 이벤트를 보내고 Redis 연결 정리
    await app.container.infra.event_publisher().drain()
    await app.container.infra.redis_service().close()


def create_app(container: containers.Container = None) -> FastAPI:
    app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)
    app.container = container or containers.Container()  # type: ignore

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(LoggingMiddleware)

    app.add_exception_handler(BaseAPIException, handle_base_api_exception)
    app.add_exception_handler(HTTPException, handle_http_exception)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)

    app.include_router(health_router.router)
    for module in (point_router, reward_router, withdrawal_router, fraud_router):
        app.include_router(module.router, prefix=settings.API_V1_STR)

    logger.info(f"{settings.APP_NAME} started ({settings.ENVIRONMENT})")
    return app


app = create_app()

handler = Mangum(app)
