import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from core.config import settings
from core.database import init_db
from core.limiter import init_redis
from services.error_monitoring import log_error_with_context

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.ENVIRONMENT == "production" else logging.DEBUG,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

from routers import payments


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("🚀 Starting Payment Reconciliation API...")
    init_db()
    # init_redis also registers the limiter when Redis answers
    redis_conn = await init_redis()
    if not redis_conn:
        logger.warning("⚠️ Rate limiting will be disabled (Redis unavailable).")
    yield
    # Shutdown
    logger.info("🛑 Shutting down Server...")
    if redis_conn:
        await redis_conn.close()


app = FastAPI(
    title="Payment Reconciliation API",
    description="PayOS webhook verification and payment status reconciliation",
    version="1.0.0",
    lifespan=lifespan
)

# CORS Middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        settings.FRONTEND_URL,
        "http://localhost:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(payments.router)


# Validation exception handler
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    error_details = [{"field": ".".join(str(loc) for loc in e["loc"]), "message": e["msg"]} for e in errors]
    return JSONResponse(
        status_code=422,
        content={"detail": error_details, "message": "Validation error"}
    )


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    log_error_with_context(exc, request)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error.", "message": str(exc) if settings.ENVIRONMENT != "production" else "An unexpected error occurred."}
    )


@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": "payment-reconciliation", "version": "1.0.0"}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host=settings.SERVER_HOST, port=settings.SERVER_PORT, reload=(settings.ENVIRONMENT=="development"))
