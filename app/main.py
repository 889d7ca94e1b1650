import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.routes import auth, ping, tickets
from app.core.config import Settings, get_settings
from app.core.logging import configure_logging, init_tracer, shutdown_tracer
from app.dependencies.auth import StaticAdminVerifier
from app.tickets.errors import TicketStoreError
from app.tickets.memory import InMemoryTicketRepository
from app.tickets.repository import SqlTicketRepository, TicketRepository, to_asyncpg_dsn
from app.tickets.service import TicketService
from app.tickets.uploader import CloudinaryUploader

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    logger = configure_logging(settings)
    tracer_provider = init_tracer(settings)

    app.state.logger = logger
    app.state.tracer_provider = tracer_provider
    app.state.credential_verifier = StaticAdminVerifier(
        admin_email=settings.admin_email,
        admin_password=settings.admin_password,
    )

    db_engine = None
    repository: TicketRepository
    if settings.database_url:
        db_engine = create_async_engine(to_asyncpg_dsn(settings.database_url), future=True)
        session_factory = async_sessionmaker(db_engine, expire_on_commit=False)
        repository = SqlTicketRepository(session_factory, engine=db_engine)
    else:
        logger.warning("DATABASE_URL is not set; tickets are kept in memory only")
        repository = InMemoryTicketRepository()

    uploader = None
    if settings.uploads_enabled:
        uploader = CloudinaryUploader(
            cloud_name=settings.cloudinary_cloud_name,
            api_key=settings.cloudinary_api_key,
            api_secret=settings.cloudinary_api_secret,
            folder=settings.upload_folder,
            timeout=settings.upload_timeout,
        )
    else:
        logger.warning("Cloudinary credentials are not set; attachments will be rejected")

    service = TicketService(repository, uploader=uploader)
    try:
        await service.ensure_schema()
        app.state.ticket_service = service
    except TicketStoreError:
        logger.exception("Ticket store initialisation failed")
        app.state.ticket_service = None
    try:
        yield
    finally:
        if db_engine is not None:
            await db_engine.dispose()
        shutdown_tracer(tracer_provider)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = sorted({str(error["loc"][-1]) for error in exc.errors() if error.get("loc")})
    detail = f"Invalid request: {', '.join(fields)}" if fields else "Invalid request"
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": detail})


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": tickets.SERVER_ERROR_DETAIL},
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.settings = settings
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
    app.include_router(ping.router)
    app.include_router(auth.router)
    app.include_router(tickets.router)
    return app


app = create_app()


def run() -> None:  # pragma: no cover - process entry point
    settings = get_settings()
    uvicorn.run("app.main:app", host=settings.host, port=settings.port)
