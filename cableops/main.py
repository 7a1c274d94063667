# cableops/main.py
import logging

from dotenv import load_dotenv

# Load environment variables from .env BEFORE anything reads the settings
load_dotenv()

from fastapi import FastAPI  # noqa: E402

from . import __version__  # noqa: E402
from .api.customers import main as customers_main_api  # noqa: E402
from .api.imports import main as imports_main_api  # noqa: E402
from .api.requests import main as requests_main_api  # noqa: E402
from .core.audit import configure_audit_file  # noqa: E402
from .core.config import get_settings  # noqa: E402
from .db.engine import create_db_and_tables  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="CableOps", version=__version__)


# --- Database Initialization ---
@app.on_event("startup")
async def on_startup():
    """Initialize database tables and the audit trail on application startup"""
    settings = get_settings()
    if settings.audit_log_file:
        configure_audit_file(settings.audit_log_file)
    await create_db_and_tables()
    logger.info(f"✅ Database tables initialized ({settings.app_env})")


# --- API Routers ---
app.include_router(customers_main_api.router, prefix="/api", tags=["Customers"])
app.include_router(imports_main_api.router, prefix="/api", tags=["Imports"])
app.include_router(requests_main_api.router, prefix="/api", tags=["Requests"])


@app.get("/health", tags=["Health"])
async def health():
    return {"status": "ok", "version": __version__}
