from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from contextlib import asynccontextmanager
import logging

from ledger.config import settings
from ledger.database import close_db
from ledger.services.errors import LedgerError
from ledger.api.v1.companies import router as company_router
from ledger.api.v1.accounts import router as account_router
from ledger.api.v1.transactions import router as transaction_router
from ledger.api.v1.periods import router as period_router

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    logger.info("Starting Small Business Ledger Service...")
    logger.info(f"Database URL: {settings.DATABASE_URL.split('@')[1] if '@' in settings.DATABASE_URL else 'N/A'}")
    yield
    logger.info("Shutting down Small Business Ledger Service...")
    await close_db()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    docs_url="/docs",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Domain errors - status and client message come from the error class
@app.exception_handler(LedgerError)
async def ledger_exception_handler(request: Request, exc: LedgerError):
    if exc.expose:
        logger.info(f"{request.method} {request.url.path} refused: {exc.message}")
    else:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}", exc_info=exc)

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": exc.client_message,
            "code": exc.status_code,
        }
    )


# Validation error handler - Returns detailed, user-friendly error messages
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle validation errors with detailed messages"""
    errors = []
    for error in exc.errors():
        error_detail = {
            "field": " -> ".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"]
        }

        # Add input value if available
        if "input" in error and error["input"] is not None:
            error_detail["input"] = error["input"]

        errors.append(error_detail)

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=jsonable_encoder({
            "success": False,
            "error": "The request contains invalid data",
            "code": status.HTTP_400_BAD_REQUEST,
            "details": errors,
        })
    )


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle uncaught exceptions"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "success": False,
            "error": str(exc) if settings.DEBUG else "Internal Server Error",
            "code": status.HTTP_500_INTERNAL_SERVER_ERROR,
        }
    )


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION
    }


app.include_router(company_router, prefix="/api/v1")
app.include_router(account_router, prefix="/api/v1")
app.include_router(transaction_router, prefix="/api/v1")
app.include_router(period_router, prefix="/api/v1")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "ledger.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG
    )
