import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from riskbridge.config import settings
from riskbridge.database import check_db_connection
from riskbridge.routers.asset import router as asset_router
from riskbridge.routers.framework import router as framework_router
from riskbridge.routers.risk import router as risk_router
from riskbridge.routers.risk_control import router as risk_control_router
from riskbridge.routers.risk_scoring import router as risk_scoring_router

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(asset_router)
app.include_router(framework_router)
app.include_router(risk_router)
app.include_router(risk_scoring_router)
app.include_router(risk_control_router)


@app.get("/health")
async def health():
    """Health check — verifies API is running and database is reachable."""
    try:
        await check_db_connection()
        db_status = "connected"
    except Exception as exc:
        db_status = f"error: {exc}"

    return {
        "status": "ok" if db_status == "connected" else "degraded",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "database": db_status,
    }
