"""
Main FastAPI application module for the condominium billing system.
Registers the billing and payment endpoints.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from condo_billing.core.database import init_db
from condo_billing.config import settings
from condo_billing.api.routes.billing import router as billing_router
from condo_billing.api.routes.payments import router as payments_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle - database initialization on startup."""
    init_db()
    yield


app = FastAPI(
    title=settings.api_title,
    description=settings.api_description,
    version=settings.api_version,
    lifespan=lifespan
)

# CORS for the frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

app.include_router(billing_router)  # /api/billing/*
app.include_router(payments_router)  # /api/payments/*


@app.get("/")
def root():
    """API info."""
    return {
        "name": settings.api_title,
        "version": settings.api_version,
        "docs": "/docs",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
