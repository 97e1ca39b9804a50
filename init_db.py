"""
Initialize the database: create tables and insert default settings.
With VECTOR_STORE=pgvector this also enables the extension and creates
the vector table. Run this script once to set up the database.
"""
import asyncio
import logging

from app import config
from app.database import SessionLocal, init_db
from app.services.settings_service import initialize_settings
from app.utils.logger import configure_logging

logger = logging.getLogger("init_db")

if __name__ == "__main__":
    configure_logging()
    logger.info("Initializing database...")
    init_db()
    db = SessionLocal()
    try:
        initialize_settings(db)
    finally:
        db.close()

    if config.VECTOR_STORE == "pgvector":
        from app.services.vector_stores.pgvector import PgVectorStore
        asyncio.run(PgVectorStore(session_factory=SessionLocal).connect())

    logger.info("Database initialized successfully!")
