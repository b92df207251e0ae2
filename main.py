#main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from db import close_pool
from middleware import RequestContextMiddleware
from routes.admin_payouts import router as admin_payouts_router
from routes.health import router as health_router
from routes.payouts import router as payouts_router
from routes.webhooks import router as webhooks_router
from settings import settings

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("memories.api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    close_pool()


app = FastAPI(title="Memories Billing API", version="1.0.0", lifespan=lifespan)

app.add_middleware(RequestContextMiddleware)

# -----------------------------
# ROUTERS
# -----------------------------

app.include_router(health_router)
app.include_router(webhooks_router)
app.include_router(payouts_router)
app.include_router(admin_payouts_router)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("unhandled error path=%s", request.url.path)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )
