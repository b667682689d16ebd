from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api import healthcheck
from app.api.deps import origin_regex
from app.api.v1.api import api_router
from app.core.config import settings
from app.core.errors import register_exception_handlers
from app.core.logging import configure_logging, get_logger

configure_logging()
logger = get_logger("APP")

app = FastAPI(
    title="Stackd Marketplace API",
    description="Backend service for the Stackd experience-booking marketplace.",
    version="1.0.0"
)

register_exception_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_origin_regex=origin_regex(settings.ALLOWED_ORIGIN_SUFFIXES),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include the v1 router
app.include_router(api_router, prefix="/api/v1")
app.include_router(healthcheck.router, tags=["Health"])

@app.get("/", tags=["Health"])
def read_root():
    """
    Root endpoint to check if the API is running.
    """
    return {"status": "ok", "message": "Welcome to the Stackd Marketplace API!"}

logger.info("App started", allowed_origins=settings.ALLOWED_ORIGINS)

# To run the app, save this and in your terminal run:
# uvicorn app.main:app --reload
