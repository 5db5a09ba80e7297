import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request, status
from fastapi.responses import JSONResponse

from app.config import settings
from app.database import engine
from app.dependencies import get_gateway
from app.gateways.base import BaseGateway
from app import models

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Create tables
    models.Base.metadata.create_all(bind=engine)
    gateway = get_gateway()
    if gateway.simulated:
        logger.warning("Payment gateway running in SIMULATION mode; no real payments are verified")
    yield


app = FastAPI(
    title=settings.APP_NAME,
    description="Records donation attempts and verifies payments with Razorpay or Cashfree",
    version="1.0.0",
    lifespan=lifespan,
)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


@app.get("/health")
def health_check(gateway: BaseGateway = Depends(get_gateway)):
    return {
        "status": "ok",
        "service": "donation-payment-api",
        "gateway": gateway.provider_name,
        "simulated": gateway.simulated,
    }


from app.routers import donations  # noqa: E402
app.include_router(donations.router, prefix=f"{settings.API_PREFIX}/donation", tags=["donations"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, reload=settings.DEBUG, log_level="info")
