from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from zvonok.api import channels, health, overrides, roles, servers
from zvonok.core.config import settings
from zvonok.core.logging import api_logger
from zvonok.core.middleware import RequestContextMiddleware
from zvonok.db.database import create_tables


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Schema is created in place; there are no migrations
    await create_tables()
    api_logger.info(f"{settings.APP_NAME} started", env=settings.APP_ENV)
    yield


app = FastAPI(
    title="zvonok API",
    description="Servers, roles and permission resolution for the zvonok chat platform",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(RequestContextMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(servers.router, prefix="/api/servers", tags=["Servers"])
app.include_router(roles.router, prefix="/api/servers", tags=["Roles"])
app.include_router(channels.router, prefix="/api", tags=["Channels"])
app.include_router(overrides.router, prefix="/api", tags=["Permission overrides"])
app.include_router(health.router, prefix="", tags=["Health"])


@app.get("/api/health")
async def api_health_check():
    return {"status": "ok", "service": settings.APP_NAME}
