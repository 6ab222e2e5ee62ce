import logging

from dotenv import load_dotenv
from fastapi import FastAPI
from mangum import Mangum
from starlette.middleware.cors import CORSMiddleware

from loyaltyapi.config import settings
from loyaltyapi.core.exception_handlers import register_exception_handlers
from loyaltyapi.core.logging_middleware import LoggingMiddleware
from loyaltyapi.logging_config import setup_logging
from loyaltyapi.routers import (
    admin_router,
    health_router,
    point_router,
    reward_router,
    subscription_router,
    user_router,
)

load_dotenv("loyaltyapi/.env")
setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    app = FastAPI(title=settings.APP_NAME, debug=settings.DEBUG)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ALLOW_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(LoggingMiddleware)
    register_exception_handlers(app)

    app.include_router(health_router.router)
    for module in (
        user_router,
        point_router,
        reward_router,
        subscription_router,
        admin_router,
    ):
        app.include_router(module.router, prefix=settings.API_V1_STR)

    return app


app = create_app()

handler = Mangum(app)
