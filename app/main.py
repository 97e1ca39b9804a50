import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import CORS_ORIGINS
from app.database import SessionLocal, init_db
from app.routers import messages, settings, vectors
from app.services.mcp_client import get_mcp_client
from app.services.settings_service import initialize_settings
from app.services.vector_store import connect_vector_store
from app.utils.logger import configure_logging

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Memory Chat API")

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(messages.router)
app.include_router(vectors.router)
app.include_router(settings.router)

@app.on_event("startup")
async def startup_event():
    init_db()

    db = SessionLocal()
    try:
        initialize_settings(db)
    finally:
        db.close()

    store = await connect_vector_store()
    logger.info("Vector store backend: %s (connected=%s)", store.name, store.connected)
    await get_mcp_client().connect()

@app.get("/")
async def root():
    return {"message": "Memory Chat API"}

@app.get("/health")
async def health():
    return {"status": "healthy"}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
