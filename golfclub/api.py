from __future__ import annotations

import sqlite3

import psycopg2
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.middleware.sessions import SessionMiddleware

from .config import get_client_url, get_jwt_secret, get_session_max_age, secure_cookies
from .logs import setup_logging
from .services.exceptions import ServiceError, StoreFailure
from .routes.auth import router as auth_router
from .routes.clubs import router as clubs_router
from .routes.scores import router as scores_router

setup_logging()

app = FastAPI(title="golfclub")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[get_client_url()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(
    SessionMiddleware,
    secret_key=get_jwt_secret(),
    max_age=get_session_max_age(),
    https_only=secure_cookies(),
    same_site="lax",
)


@app.exception_handler(RequestValidationError)
def validation_exception_handler(request, exc):
    return JSONResponse(status_code=400, content={"detail": exc.errors()})


@app.exception_handler(ServiceError)
def service_error_handler(request, exc: ServiceError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def _store_error_response(request: Request, exc: Exception) -> JSONResponse:
    logger.opt(exception=exc).error("Store failure on {} {}", request.method, request.url.path)
    err = StoreFailure("Internal storage error")
    return JSONResponse(status_code=err.status_code, content={"detail": err.message})


app.add_exception_handler(sqlite3.Error, _store_error_response)
app.add_exception_handler(psycopg2.Error, _store_error_response)

app.include_router(auth_router)
app.include_router(clubs_router)
app.include_router(scores_router)


@app.get("/health", tags=["system"])
def health():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
