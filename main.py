from __future__ import annotations

import logging

from dotenv import load_dotenv

# Load .env file BEFORE any other imports that might need env vars
load_dotenv()

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.routes.spreadsheets import router as spreadsheets_router
from middleware.rate_limit import RateLimitConfig, RateLimitMiddleware
from services.engine_config import get_engine_settings


settings = get_engine_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="Sheet Engine")

# Rate limiting (can be disabled in dev with DISABLE_RATE_LIMIT=1)
if settings.rate_limit_enabled:
    app.add_middleware(RateLimitMiddleware, config=RateLimitConfig.from_settings(settings))

# Allow any origin in local dev mode.
# This should be tightened for production.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(spreadsheets_router)


@app.get("/")
async def root():
    return {"status": "ok"}
