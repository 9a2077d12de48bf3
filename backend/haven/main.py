"""
Haven API
=========
FastAPI application entry point. Mount routers here.
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from haven.config import get_settings
from haven.routers import chat, meditation, mood, subscription, therapy, tts

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="Haven API",
    description="Offline-first data access for mood, therapy and meditation",
    version="0.1.0",
    docs_url="/api/docs" if settings.environment != "production" else None,
    redoc_url="/api/redoc" if settings.environment != "production" else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(mood.router)
app.include_router(therapy.router)
app.include_router(meditation.router)
app.include_router(tts.router)
app.include_router(subscription.router)
app.include_router(chat.router)


@app.get("/api/v1/health")
async def health_check() -> dict:
    return {"status": "ok", "service": "haven-api"}
