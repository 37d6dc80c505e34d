"""
Main FastAPI application for the site publishing pipeline.
Serves webhooks, admin operations, the re-edit flow, health and metrics.
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from sitepress.core.config import settings
from sitepress.core.logging import configure_logging
from sitepress.api.routes import health, operations, projects, webhooks
from sitepress.utils.metrics import router as metrics_router


configure_logging()

app = FastAPI(
    title="Sitepress API",
    description="Payment-triggered static site generation and publishing",
    version="1.0.0",
)

# CORS (the editor calls the re-edit endpoints from the browser)
origins = settings.cors_origins_list
if not origins:
    origins = [settings.editor_url, "http://localhost:3000", "http://127.0.0.1:3000"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(health.router, tags=["health"])
app.include_router(webhooks.router)
app.include_router(operations.router)
app.include_router(projects.router)
app.include_router(metrics_router)
