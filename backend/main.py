# backend/main.py
import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import Settings
from database import init_db, make_engine, make_session_factory
from errors import AppError
from utils.audit import SessionAuditRecorder

load_dotenv()

# Routers
from routes.products import router as products_router
from routes.orders import router as orders_router
from routes.invoice import router as invoice_router
from routes.inventory import router as inventory_router
from routes.issues import router as issues_router
from routes.logs import router as logs_router

logger = logging.getLogger(__name__)


def create_app(settings: Settings = None, session_factory=None) -> FastAPI:
    settings = settings or Settings()
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if session_factory is None:
        session_factory = make_session_factory(make_engine(settings.database_url))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        init_db(session_factory.kw["bind"])
        logger.info("Database ready")
        yield

    app = FastAPI(title="Breakroom Supply API", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.session_factory = session_factory
    app.state.audit_recorder = SessionAuditRecorder(session_factory)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message, exc_info=exc)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    # Malformed bodies are client errors like any other validation failure
    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        location = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = first.get("msg", "Invalid request")
        detail = f"{location}: {message}" if location else message
        return JSONResponse(status_code=400, content={"detail": detail, "error": "ValidationError"})

    # Router registration
    app.include_router(products_router, prefix="/api")
    app.include_router(orders_router, prefix="/api")
    app.include_router(invoice_router, prefix="/api")
    app.include_router(inventory_router, prefix="/api")
    app.include_router(issues_router, prefix="/api")
    app.include_router(logs_router, prefix="/api")

    @app.get("/")
    def read_root():
        return {"message": "Breakroom Supply API is running"}

    return app


app = create_app()
