"""
medcircle.__main__ — Entry point for ``python -m medcircle``
=============================================================

Wiring:
1. Load .env (secrets, DATABASE_URL).
2. Load config.yaml (soft settings).
3. Create the SQLAlchemy engine and ensure tables exist.
4. Serve the API with uvicorn (blocking).
"""

from __future__ import annotations

import logging
import os

import uvicorn
from dotenv import load_dotenv

from medcircle.config import load_config
from medcircle.database.engine import create_db_engine, init_db

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("medcircle")


def main() -> None:
    """Bootstrap the database and run the MedCircle API."""
    load_dotenv()

    cfg = load_config()
    logger.info("Config loaded: %s", cfg.community_name)

    engine = create_db_engine()
    init_db(engine)
    engine.dispose()

    host = os.getenv("MEDCIRCLE_HOST", "127.0.0.1")
    port = int(os.getenv("MEDCIRCLE_PORT", "8000"))
    logger.info("Starting MedCircle API on %s:%d", host, port)
    uvicorn.run("medcircle.api.main:app", host=host, port=port, log_config=None)


if __name__ == "__main__":
    main()
