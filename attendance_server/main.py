import logging
import time
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pymongo.database import Database
from pymongo.errors import PyMongoError

from attendance_server import __version__, database
from attendance_server.config import Settings, get_local_ip, settings
from attendance_server.errors import register_error_handlers
from attendance_server.logging_config import setup_logging
from attendance_server.routes import api_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    db = database.connect()
    try:
        database.ensure_indexes(db)
    except PyMongoError as e:
        logger.error("Could not prepare database indexes: %s", e)
    local_ip = get_local_ip()
    logger.info("Server running on port %s", settings.PORT)
    logger.info("Local access: http://localhost:%s", settings.PORT)
    logger.info("Network access: http://%s:%s", local_ip, settings.PORT)
    yield
    database.close()


def add_cors(app: FastAPI, config: Settings) -> None:
    options = dict(
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )
    if config.is_development():
        # any origin in development, echoed back so credentials still work
        app.add_middleware(CORSMiddleware, allow_origin_regex=".*", **options)
    else:
        app.add_middleware(CORSMiddleware, allow_origins=config.CORS_ORIGINS, **options)


def create_app(config: Settings = settings) -> FastAPI:
    app = FastAPI(title=config.APP_NAME, version=__version__, debug=config.DEBUG, lifespan=lifespan)

    add_cors(app, config)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = round((time.perf_counter() - start) * 1000, 2)
        logger.info(
            "%s %s %s %sms", request.method, request.url.path, response.status_code, duration_ms,
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            },
        )
        return response

    register_error_handlers(app)
    app.include_router(api_router, prefix="/api")

    @app.get("/", response_class=PlainTextResponse)
    def read_root():
        return "University Attendance System is running!"

    @app.get("/health")
    def health(db: Database = Depends(database.get_db)):
        try:
            database.ping(db)
        except PyMongoError as e:
            logger.error("Database ping failed: %s", e)
            return JSONResponse(status_code=503, content={"status": "error", "database": "disconnected"})
        return {"status": "ok", "database": "connected"}

    return app


app = create_app()


def run() -> None:
    import uvicorn

    uvicorn.run(app, host=settings.HOST, port=settings.PORT, log_config=None)


if __name__ == "__main__":
    run()
