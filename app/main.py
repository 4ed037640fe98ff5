from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import firebase_admin
from firebase_admin import credentials
from slowapi.errors import RateLimitExceeded
import os

from app.config import settings
from app.database import create_tables
from app.errors import ServiceError
from app.logging_config import configure_logging
from app.middleware.rate_limit import limiter, rate_limit_exceeded_handler
from app.middleware.request_id import RequestIDMiddleware
from app.routers import admin, challenges, connections, notifications, trades, users
from app.utils.logger import get_logger

# Configure logging first
configure_logging()
logger = get_logger(__name__)

def init_firebase():
    """Initialize the Firebase Admin SDK once per process."""
    if firebase_admin._apps:
        return firebase_admin.get_app()
    try:
        firebase_json_path = settings.FIREBASE_SERVICE_ACCOUNT_JSON
        if os.path.exists(firebase_json_path):
            cred = credentials.Certificate(firebase_json_path)
            firebase_app = firebase_admin.initialize_app(cred)
            logger.info("Initialized Firebase Admin with provided service account JSON")
        else:
            # Application Default Credentials
            options = {"projectId": settings.FIREBASE_PROJECT_ID} if settings.FIREBASE_PROJECT_ID else None
            firebase_app = firebase_admin.initialize_app(options=options)
            logger.warning(f"FIREBASE_SERVICE_ACCOUNT_JSON not found at {firebase_json_path}. Initialized Firebase with default credentials.")
        return firebase_app
    except Exception as e:
        logger.exception(f"Failed to initialize Firebase Admin SDK: {e}")
        raise

# Conditional docs configuration
if settings.DEBUG:
    docs_config = {"docs_url": "/docs", "redoc_url": "/redoc", "openapi_url": "/openapi.json"}
else:
    docs_config = {"docs_url": None, "redoc_url": None, "openapi_url": None}

app = FastAPI(
    title="TradeYa API",
    description="Backend API for TradeYa skill trading: connections, trades, challenges and gamification",
    version="1.0.0",
    **docs_config
)

# Set up rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    """Map domain errors raised by CRUD and services onto HTTP responses."""
    logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code.value}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "error": exc.to_dict()})

# Add Request ID middleware first for proper request tracing
app.add_middleware(RequestIDMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(users.router)
app.include_router(connections.router)
app.include_router(trades.router)
app.include_router(challenges.router)
app.include_router(notifications.router)
app.include_router(admin.router)

@app.on_event("startup")
async def startup_event():
    """Per-worker initialization (Gunicorn compatible)."""
    init_firebase()
    create_tables()
    logger.info(f"TradeYa API started ({'DEBUG' if settings.DEBUG else 'PRODUCTION'} mode)")

@app.get("/")
async def root():
    return {"message": "TradeYa API", "version": "1.0.0"}

@app.get("/health")
async def health_check():
    """Health check endpoint for load balancers and monitoring."""
    return {"status": "healthy", "service": "tradeya-api"}
