"""FastAPI application setup for the telemetry assistant core."""

from fastapi import FastAPI

from .api import router as api_router

app = FastAPI(title="Telemetry Assistant Core")


@app.get("/healthz")
def healthz():
    """Liveness check."""
    return {"status": "ok"}


# API routes
app.include_router(api_router, prefix="/v1")
