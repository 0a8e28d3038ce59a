from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# ✅ Import All API Routes
from screener.api.routes import (
    analysis,
    billing_webhook,
    candidates,
    credits,
    health,
    jobs,
    public,
    realtime,
    storage,
    system,
    uploads,
)
from screener.core import config
from screener.core.logging_config import setup_logging
from screener.core.plan_limits import report_plan_limit_mismatches

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(config.LOG_LEVEL)

    if config.RUN_MIGRATIONS:
        from screener.db.migrate import run_migrations
        run_migrations()
    else:
        from screener.db.init_db import init_db
        init_db()

    report_plan_limit_mismatches()
    logger.info(
        f"CV Screener API started: analysis_backend={config.ANALYSIS_BACKEND}, "
        f"charge_policy={config.CREDIT_CHARGE_POLICY}, plan_limit_table={config.PLAN_LIMIT_TABLE}"
    )
    yield


# ============================================
# ✅ FASTAPI APP INIT
# ============================================

app = FastAPI(title="CV Screener API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["Authorization", "Content-Type", "X-Ops-Token", "X-Callback-Secret"],
)


# ============================================
# ✅ REGISTER ALL ROUTERS
# ============================================

app.include_router(jobs.router)
app.include_router(candidates.router)
app.include_router(uploads.router)
app.include_router(public.router)
app.include_router(credits.router)
app.include_router(storage.router)
app.include_router(analysis.router)
app.include_router(billing_webhook.router)
app.include_router(realtime.router)
app.include_router(system.router)
app.include_router(health.router)


@app.get("/")
def root():
    return {"status": "CV Screener API running"}
