import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from partsrunner import models  # noqa: F401  registers tables on Base
from partsrunner.config import get_settings
from partsrunner.database import Base, get_engine
from partsrunner.errors import register_error_handlers
from partsrunner.order_routes import router as order_router
from partsrunner.routes import router


def configure_logging(level: str = "INFO"):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=get_engine())
    yield


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(title="MyPartsRunner Payments", lifespan=lifespan)
    app.include_router(router)
    app.include_router(order_router)
    register_error_handlers(app)

    @app.middleware("http")
    async def allow_any_origin(request: Request, call_next):
        response = await call_next(request)
        response.headers["Access-Control-Allow-Origin"] = "*"
        return response

    return app


app = create_app()
