"""
FastAPI application entry-point.
"""
from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from askguard.api.routers import ask, catalog
from askguard.core.config import get_settings

app = FastAPI(
    title="Askguard",
    version="0.1.0",
    description="Tenant-safe natural-language analytics over the kitchen-compliance database",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(ask.router, prefix="/ask", tags=["Ask"])
app.include_router(catalog.router, tags=["Catalog"])


@app.get("/health")
def health():
    return {"status": "ok"}


def run() -> None:
    """Serve the app with uvicorn on ``API_PORT``."""
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=get_settings().api_port)
