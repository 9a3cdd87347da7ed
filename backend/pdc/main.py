"""
PDC API - FastAPI backend for philanthropy data bulk uploads
"""

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from pdc import database
from pdc.routers import base_fields, bulk_uploads, health

# Load environment variables from .env file
load_dotenv()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


# Lifecycle management
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle - startup and shutdown"""
    logger.info("PDC API started")
    yield
    if database.engine is not None:
        await database.engine.dispose()
    logger.info("PDC API shutdown complete")


app = FastAPI(
    title="PDC API",
    description="Philanthropy Data Commons bulk upload service",
    version="1.0.0",
    lifespan=lifespan,
)

# =============================================================================
# CORS Configuration
# =============================================================================
default_origins = "http://localhost:3000,http://localhost:5173"
ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("ALLOWED_ORIGINS", default_origins).split(",")
    if origin.strip()
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)

app.include_router(health.router)
app.include_router(base_fields.router)
app.include_router(bulk_uploads.router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
