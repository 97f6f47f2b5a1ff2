"""
Main FastAPI application for the Visiona backend.
Serves health, training lifecycle (submit, read, sync, webhook), user profile and metrics.
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from visiona.core.config import settings
from visiona.core.logging import configure_logging
from visiona.api.routes import health, profile, trainings, webhooks
from visiona.training.provider import ReplicateTrainingClient
from visiona.utils.metrics import router as metrics_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    # One provider client per process, handed to routes through app.state
    app.state.training_provider = ReplicateTrainingClient.from_settings(settings)
    yield


app = FastAPI(
    title="Visiona API",
    description="Custom image model training and quota API",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS
origins = settings.cors_origins_list or ["http://localhost:3000", "http://127.0.0.1:3000"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(health.router, tags=["health"])
app.include_router(trainings.router)
app.include_router(webhooks.router)
app.include_router(profile.router)
app.include_router(metrics_router)
