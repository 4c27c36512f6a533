"""
Main application entry point for the KontaktHub API.

This module initializes the FastAPI application, configures logging,
error handling and CORS, creates the database tables on startup, and
includes the routers for contacts, groups, events, settings and imports
under the configured API prefix.

Modules:
- FastAPI: Web framework
- CORSMiddleware: Middleware for handling CORS
- kontakthub.middleware: Error envelope and request logging
- kontakthub.importer: In-memory registry of import sessions
- kontakthub.core: Application settings
"""

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session

from kontakthub import contacts, events, groups, imports, models, settings_routes
from kontakthub.core import configure_logging, get_settings
from kontakthub.database import engine, get_db
from kontakthub.importer import ImportRegistry
from kontakthub.middleware import register_error_handlers
from kontakthub.schemas import HealthOut

settings = get_settings()
configure_logging()
logger = logging.getLogger("kontakthub")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create missing tables before the first request is served."""
    models.Base.metadata.create_all(bind=engine)
    logger.info("KontaktHub API started (%s)", settings.ENVIRONMENT)
    yield


# Initialize FastAPI application
app = FastAPI(title="KontaktHub API", lifespan=lifespan)

app.state.imports = ImportRegistry(
    decision_timeout=settings.IMPORT_DECISION_TIMEOUT_SECONDS,
    session_ttl=settings.IMPORT_SESSION_TTL_SECONDS,
)

register_error_handlers(app)

# Configure CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers for application areas
app.include_router(contacts.router, prefix=settings.API_PREFIX)
app.include_router(groups.router, prefix=settings.API_PREFIX)
app.include_router(events.router, prefix=settings.API_PREFIX)
app.include_router(settings_routes.router, prefix=settings.API_PREFIX)
app.include_router(imports.router, prefix=settings.API_PREFIX)


@app.get(f"{settings.API_PREFIX}/health", response_model=HealthOut, tags=["health"])
def health(db: Session = Depends(get_db)):
    """
    Report whether the API and its database are reachable.

    Returns:
        HealthOut: ``ok`` with status 200, or ``error`` with status 503
            when the database does not answer.
    """
    timestamp = models.utcnow()
    try:
        db.execute(text("SELECT 1"))
    except Exception as exc:
        logger.error("Health check failed: %s", exc)
        body = HealthOut(
            status="error", timestamp=timestamp, database="disconnected", error=str(exc)
        )
        return JSONResponse(status_code=503, content=body.model_dump(mode="json"))
    return HealthOut(status="ok", timestamp=timestamp, database="connected")


@app.get("/")
def root():
    """
    Root endpoint for the API.

    Returns a simple JSON message directing users to the Swagger UI.

    Returns:
        dict: JSON message with information about the API
    """
    return {"msg": "KontaktHub API. Visit /docs for Swagger UI"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000)
