import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv

from app.logging.utils import initialize_logging, get_app_logger
from app.middlewares.logging_middleware import AuditMiddleware

load_dotenv()

# Initialize Sentry (must be done early, before other imports)
from app.config.sentry import init_sentry
init_sentry()

initialize_logging()
logger = get_app_logger('app.main')

from app.config.settings import GatewayConfigs
configs = GatewayConfigs()

# DEBUG=false means production
DEBUG = configs.DEBUG

logger.info(f"Running in {'debug' if DEBUG else 'production'} mode")

from app.connections.database import close_db_pool, create_tables
from app.dependencies import build_container
from app.tasks.otp_sweeper import start_otp_sweeper


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting lead verification gateway")
    container = getattr(app.state, "container", None)
    if container is None:
        container = build_container(configs)
        app.state.container = container

    if configs.LEAD_PERSISTENCE_ENABLED:
        create_tables()

    sweeper = start_otp_sweeper(container.ledger, configs.OTP_SWEEP_INTERVAL_SECONDS)
    try:
        yield
    finally:
        logger.info("Shutting down lead verification gateway")
        if sweeper is not None:
            sweeper.cancel()
            await asyncio.gather(sweeper, return_exceptions=True)
        await container.close()
        close_db_pool()

# Disable docs in production (when DEBUG=false)
docs_url = "/docs" if DEBUG else None
redoc_url = "/redoc" if DEBUG else None

app = FastAPI(
    title="Lead Verification Gateway",
    version=configs.APP_VERSION,
    lifespan=lifespan,
    docs_url=docs_url,
    redoc_url=redoc_url
)

if configs.ALLOWED_ORIGINS:
   origins = [origin.strip() for origin in configs.ALLOWED_ORIGINS.split(",")]
else:
   origins = ["*"]

# Request/Audit logging middleware
app.add_middleware(AuditMiddleware)

logger.info(f"Configuring CORS with allowed origins: {origins}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=origins != ["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register custom exception handlers
from app.middlewares.handlers import register_exception_handlers
register_exception_handlers(app)


# Routes
from app.routes.otp import router as otp_router
from app.routes.health import router as health_router
from app.routes.webhooks.interakt_webhook import interakt_webhook_router

app.include_router(otp_router, prefix="/api")
app.include_router(health_router, tags=["health"])
app.include_router(interakt_webhook_router, prefix="/webhooks")
