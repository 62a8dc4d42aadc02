from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
import time
import logging
import os

from . import __version__
from .api.v1.auth import router as auth_router
from .api.v1.admin import router as admin_router
from .api.v1.doctor import router as doctor_router
from .api.v1.patient import router as patient_router
from .core.config import settings
from .core.database import SessionLocal, init_db
from .core.security import UserRole
from .models.appointment import AppointmentStatus
from .models.invoice import InvoiceStatus

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.VERSION,
    description="Clinic management backend: appointments, consultations, prescriptions and billing",
    openapi_url="/api/v1/openapi.json",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

if not settings.TESTING:
    app.add_middleware(
        TrustedHostMiddleware,
        allowed_hosts=["localhost", "127.0.0.1", "*.localhost", "testserver"]
    )

# Uploaded test reports are served back from the URL the blob store hands out
os.makedirs(settings.UPLOAD_DIR, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=settings.UPLOAD_DIR), name="uploads")


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed = time.perf_counter() - started
    response.headers["X-Process-Time"] = f"{elapsed:.4f}"

    logger.info(
        f"{request.method} {request.url.path} -> {response.status_code} ({elapsed * 1000:.1f} ms)"
    )
    return response


@app.exception_handler(404)
async def not_found_handler(request: Request, exc):
    return JSONResponse(
        status_code=404,
        content={
            "error": "Not Found",
            "detail": getattr(exc, "detail", None) or "The requested resource was not found",
            "path": request.url.path
        }
    )


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    # Unique constraints are the last line against duplicate invoices and accounts
    logger.warning(f"Integrity conflict on {request.method} {request.url.path}: {exc.orig}")
    return JSONResponse(
        status_code=409,
        content={"detail": "The request conflicts with an existing record"}
    )


@app.exception_handler(500)
async def internal_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal Server Error",
            "message": "An unexpected error occurred"
        }
    )


app.include_router(auth_router, prefix="/api/v1")
app.include_router(admin_router, prefix="/api/v1")
app.include_router(doctor_router, prefix="/api/v1")
app.include_router(patient_router, prefix="/api/v1")


@app.on_event("startup")
async def startup_event():
    db_url = settings.get_database_url
    backend = db_url.split(":", 1)[0]
    logger.info(f"Starting {settings.APP_NAME} {__version__} on {backend}")

    try:
        init_db()
    except SQLAlchemyError as e:
        logger.error(f"Failed to initialize database: {e}")
        raise

    logger.info(
        f"Policies: self_registration={settings.ALLOW_SELF_REGISTRATION} "
        f"admin_override={settings.ALLOW_ADMIN_OVERRIDE} "
        f"consultation_fee={settings.DEFAULT_CONSULTATION_FEE}"
    )


@app.on_event("shutdown")
async def shutdown_event():
    logger.info(f"Shutting down {settings.APP_NAME}")


@app.get("/health")
def health_check():
    """Liveness plus a database round trip."""
    database = "ok"
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"Health check database failure: {e}")
        database = "unavailable"
    finally:
        db.close()

    healthy = database == "ok"
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={
            "status": "healthy" if healthy else "degraded",
            "database": database,
            "timestamp": time.time(),
            "version": settings.VERSION
        }
    )


@app.get("/")
async def root():
    return {
        "message": f"Welcome to the {settings.APP_NAME} API",
        "version": settings.VERSION,
        "docs": "/docs",
        "health": "/health"
    }


@app.get("/api/v1/info")
async def api_info():
    """Routers plus the vocabularies clients need to render the lifecycle."""
    return {
        "name": settings.APP_NAME,
        "version": settings.VERSION,
        "endpoints": {
            "authentication": "/api/v1/auth",
            "admin": "/api/v1/admin",
            "doctor": "/api/v1/doctor",
            "patient": "/api/v1/patient",
            "uploads": "/uploads",
            "openapi": "/api/v1/openapi.json"
        },
        "roles": [role.value for role in UserRole],
        "appointment_statuses": [s.value for s in AppointmentStatus],
        "invoice_statuses": [s.value for s in InvoiceStatus]
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "clinic.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="info"
    )
