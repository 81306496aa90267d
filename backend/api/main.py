"""
FastAPI application entry point.

Run with: uvicorn api.main:app --reload
"""
import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from backend/.env (optional) before other imports that read env
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(env_path)

from api.routes import places
from db import init_db
from services.place_service import close_default_place_service
from services.search_index import get_default_search_index

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())

# Create app
app = FastAPI(
    title="Places Search API",
    description="Hybrid place search over curated and coverage place data",
    version="0.1.0",
)

# CORS middleware for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure properly for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(places.router, prefix="/places", tags=["places"])


@app.on_event("startup")
def startup_event():
    """Initialize database tables on startup."""
    init_db()


@app.on_event("shutdown")
def shutdown_event():
    """Stop the shared coverage worker pool."""
    close_default_place_service()


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "service": "Places Search API"}


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/search/health")
def search_health():
    """Reachability of the search index."""
    return get_default_search_index().health()
