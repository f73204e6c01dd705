from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv
from typing import List
import logging
import os

# Configure logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Load environment variables from .env file
load_dotenv()
logger.info("Environment variables loaded")

from app.core.database import engine, Base
from app.api import xero as xero_router

Base.metadata.create_all(bind=engine)

app = FastAPI(
    title="Household Finance - Xero Sync",
    description="Xero bank account sync and account reconciliation API",
    version="1.0.0"
)


def _build_allowed_origins() -> List[str]:
    """
    Build the list of allowed origins for CORS.
    Localhost variants are always present in development.
    """
    raw = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000")
    configured = {origin.strip() for origin in raw.split(",") if origin.strip()}

    if os.getenv("ENVIRONMENT", "development") == "development":
        configured.update(
            {
                "http://localhost:3000",
                "http://127.0.0.1:3000",
                "http://localhost:5173",
                "http://127.0.0.1:5173",
            }
        )

    return sorted(configured)


app.add_middleware(
    CORSMiddleware,
    allow_origins=_build_allowed_origins(),
    allow_origin_regex=os.getenv("ALLOWED_ORIGIN_REGEX", r"http://(?:127\.0\.0\.1|localhost):\d+$"),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(xero_router.router)


@app.get("/api/health")
def health_check():
    return {"status": "ok"}
