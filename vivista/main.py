import asyncio
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException
from vivista.config import Settings, get_settings
from vivista.database import Base, build_engine, build_session_factory
from vivista.routers import auth, videos
from vivista.services.errors import VivistaError
from vivista.services.session_sweeper import session_sweeper
from vivista.services.storage import AssetStorage
import vivista.models  # noqa: F401 - load models

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = app.state.settings
    engine = app.state.engine
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.critical("Cannot connect to the database at startup", exc_info=True)
        raise SystemExit(1)
    if settings.auto_create_schema:
        Base.metadata.create_all(bind=engine)
    settings.data_path.mkdir(parents=True, exist_ok=True)

    task = None
    if settings.session_sweep_interval_minutes > 0:
        task = asyncio.create_task(
            session_sweeper(
                app.state.session_factory,
                settings.session_sweep_interval_minutes,
                settings.session_window_minutes,
            )
        )
        logger.info("Session sweep enabled (every %d min)", settings.session_sweep_interval_minutes)
    try:
        yield
    finally:
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        engine.dispose()


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(title="Vivista API", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.engine = build_engine(settings)
    app.state.session_factory = build_session_factory(app.state.engine)
    app.state.storage = AssetStorage(settings.data_path)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_and_require_tls(request: Request, call_next):
        logger.debug("%s %s", request.method, request.url.path)
        if settings.require_tls:
            scheme = request.headers.get("x-forwarded-proto", request.url.scheme)
            if scheme != "https":
                return JSONResponse(
                    {"detail": "TLS required"},
                    status_code=status.HTTP_426_UPGRADE_REQUIRED,
                    headers={"Upgrade": "TLS/1.2, HTTP/1.1", "Connection": "Upgrade"},
                )
        return await call_next(request)

    @app.exception_handler(VivistaError)
    async def vivista_error_handler(request: Request, exc: VivistaError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc, exc_info=exc)
        return JSONResponse({"detail": exc.detail}, status_code=exc.status_code)

    @app.exception_handler(SQLAlchemyError)
    async def database_error_handler(request: Request, exc: SQLAlchemyError):
        logger.error("%s %s database error", request.method, request.url.path, exc_info=exc)
        return JSONResponse(
            {"detail": "Something went wrong while processing this request"},
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        # Unknown route and wrong method look the same to clients
        if exc.status_code == status.HTTP_405_METHOD_NOT_ALLOWED:
            return JSONResponse({}, status_code=status.HTTP_404_NOT_FOUND)
        return JSONResponse({"detail": exc.detail}, status_code=exc.status_code, headers=exc.headers)

    app.include_router(auth.router)
    app.include_router(videos.router)

    @app.get("/ping")
    def ping():
        return {"alive": True}

    return app


app = create_app()
