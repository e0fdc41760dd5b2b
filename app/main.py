# app/main.py
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import uvicorn

from app.api import api_router
from app.data.database import Base, engine
from app.utils.logging import get_logger

# IMPORT WSZYSTKICH MODELI PRZED CREATE_ALL
from app.data import models  # noqa: F401

logger = get_logger(__name__)


def init_db(bind=engine):
    logger.info(f"Initializing database, tables: {list(Base.metadata.tables.keys())}")
    try:
        Base.metadata.create_all(bind=bind)
    except Exception:
        logger.exception("Failed to create tables")
        raise
    logger.info("Database tables ready")


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


def create_app() -> FastAPI:
    app = FastAPI(
        title="Checkout Service",
        version="1.0.0",
        lifespan=lifespan,
    )

    #brakujace / bledne pola -> 400 zamiast 422
    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={
                "detail": {
                    "code": "VALIDATION_ERROR",
                    "message": "Invalid request",
                    "retryable": False,
                    "errors": jsonable_errors(exc),
                }
            },
        )

    app.include_router(api_router)

    return app


def jsonable_errors(exc: RequestValidationError):
    return [
        {"loc": list(e.get("loc", ())), "msg": e.get("msg", "")}
        for e in exc.errors()
    ]


app = create_app()

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
