from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from compliance_api.core.database import get_prisma
from compliance_api.core.logging import configure_logging
from compliance_api.core.settings import settings
from compliance_api.domains.compliance.routes import router as compliance_router
from compliance_api.domains.integrations.xero.dependencies import build_token_refresher
from compliance_api.domains.integrations.xero.routes import router as xero_router


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup
    configure_logging()
    prisma = get_prisma()
    await prisma.connect()
    # One refresher per process so concurrent requests share in-flight refreshes
    app.state.token_refresher = build_token_refresher(prisma)
    yield
    # Shutdown
    await prisma.disconnect()


app = FastAPI(
    title="Compliance API",
    description="Xero connection management and BAS/FAS compliance reporting",
    version="0.1.0",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_URL] if settings.FRONTEND_URL else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(xero_router, prefix="/api/v1")
app.include_router(compliance_router, prefix="/api/v1")


@app.get("/")
async def root() -> dict[str, str]:
    return {"message": "Compliance API is running"}


@app.get("/health")
async def health_check() -> dict[str, str]:
    return {"status": "healthy"}
