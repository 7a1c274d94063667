# launcher.py
import asyncio
import logging
import os
import sys

from dotenv import load_dotenv

# --- Constant ---
ENV_FILE = ".env"

# --- Logging configuration ---
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - [Launcher] - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)


def init_database():
    """Create every table before the server accepts requests."""
    from cableops.db.engine import create_db_and_tables

    try:
        asyncio.run(create_db_and_tables())
        logging.info("Database ready.")
    except Exception as e:
        logging.critical(f"Error initializing database: {e}")
        sys.exit(1)


def start_api_server():
    from uvicorn import Config, Server

    from cableops.main import app as fastapi_app

    host = os.getenv("UVICORN_HOST", "127.0.0.1")
    port = int(os.getenv("UVICORN_PORT", 8000))

    config = Config(app=fastapi_app, host=host, port=port, log_level="info")
    try:
        Server(config).run()
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    load_dotenv(ENV_FILE)
    init_database()
    if "--init-only" in sys.argv:
        sys.exit(0)
    start_api_server()
