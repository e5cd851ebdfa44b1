"""Main FastAPI application entry point."""

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from common.config import LOG_LEVEL
from common.db import engine, Base
from common.errors import PersistenceError
from services.claims import provider_routes, routes as claims_routes
import logging

logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger(__name__)

# Create database tables
try:
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created successfully")
except Exception as e:
    logger.warning(f"Database table creation note: {e}")

app = FastAPI(
    title="HMO Claims Engine",
    description="Claim lifecycle and HMO ownership authorization for the HMO back office",
    version="1.0.0",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, specify allowed origins
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(provider_routes.router)
app.include_router(claims_routes.router)
app.include_router(claims_routes.treatment_router)


@app.exception_handler(PersistenceError)
def persistence_error_handler(request: Request, exc: PersistenceError):
    """Data store failures surface as an opaque internal error."""
    logger.error(f"Persistence failure on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


@app.get("/")
def root():
    """Root endpoint."""
    return {
        "service": "HMO Claims Engine",
        "version": "1.0.0",
        "status": "operational",
    }


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
