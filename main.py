import os
import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import database
from logging_config import configure_logging
from orders import router as orders_router
from products import router as products_router
from users import auth_router, users_router

configure_logging()
logger = structlog.get_logger(__name__)

CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*").split(",")


@asynccontextmanager
async def lifespan(app: FastAPI):
    if database.db is not None:
        database.ensure_indexes(database.db)
    else:
        logger.warning("database_not_configured")
    logger.info("api_started")
    yield
    logger.info("api_stopped")


# App and CORS
app = FastAPI(title="Afrizone Store API", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_context(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    structlog.contextvars.bind_contextvars(request_id=request_id, path=request.url.path, method=request.method)
    try:
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response
    finally:
        structlog.contextvars.clear_contextvars()


@app.exception_handler(Exception)
async def unhandled_exception(request: Request, exc: Exception):
    logger.error("unhandled_exception", exc_info=exc)
    is_production = os.getenv("ENVIRONMENT", "development") == "production"
    detail = "Erreur interne du serveur" if is_production else str(exc)
    return JSONResponse(status_code=500, content={"detail": detail})


app.include_router(auth_router)
app.include_router(products_router)
app.include_router(orders_router)
app.include_router(users_router)


# Utility endpoints
@app.get("/")
def root():
    return {"message": "API Afrizone fonctionnelle !"}


@app.get("/test")
def test_database():
    response = {
        "backend": "ok",
        "database": "missing",
        "database_url": "set" if os.getenv("DATABASE_URL") else "not set",
        "database_name": database.DATABASE_NAME,
        "collections": [],
    }
    if database.db is None:
        return response
    try:
        response["collections"] = database.db.list_collection_names()[:10]
        response["database"] = "ok"
    except Exception as e:
        response["database"] = f"error: {str(e)[:80]}"
    return response


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
