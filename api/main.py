"""
Card Sales Ledger API - Main Application.

FastAPI application with CORS enabled for the admin console frontend.
One LedgerView is opened at startup and closed at shutdown.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import __version__
from repositories.client import LedgerSettings, create_document_store
from services.ledger_view import LedgerView
from services.session import LedgerSession

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = LedgerSettings.from_env()
    logging.basicConfig(level=settings.log_level)

    store = await create_document_store(settings)
    view = LedgerView(LedgerSession.create(store, settings))
    await view.open()
    app.state.ledger_view = view
    try:
        yield
    finally:
        await view.close()


# Create FastAPI application
app = FastAPI(
    title="Card Sales Ledger API",
    description="Admin console API for browsing, pinning, deleting and exporting card sales",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# Configure CORS - Allow all origins for development
# TODO: Restrict origins to the admin console host in production
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health", tags=["Health"])
def health_check():
    """
    Health check endpoint.

    Returns the API status and version.
    """
    return {
        "status": "healthy",
        "version": __version__,
        "service": "card-sales-ledger-api"
    }


@app.get("/", tags=["Root"])
def root():
    return {
        "message": "Card Sales Ledger API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health"
    }


# Import and include routers
from api.routers import sales

app.include_router(sales.router, prefix="/api/v1", tags=["Sales"])
