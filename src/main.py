from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from src.core.config import settings
from src.core.dependencies import get_knowledge_base_service, get_resolution_poller
from src.core.logging import setup_logging
from src.routers.follow_up import router as router_follow_ups
from src.routers.help_request import router as router_help_requests
from src.routers.knowledge_base import router as router_knowledge_base
from src.routers.livekit import router as router_livekit
import logging

setup_logging(settings.log_level)

logger = logging.getLogger("fastapi_server")
logger.setLevel(logging.INFO)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await get_knowledge_base_service().seed_if_empty()

    # Live sessions belong to the voice worker; only poll here when both run in one process
    poller = get_resolution_poller() if settings.resolution_poller_enabled else None
    if poller:
        poller.start()
    try:
        yield
    finally:
        if poller:
            await poller.stop()


app = FastAPI(title=settings.app_name, debug=settings.debug, lifespan=lifespan)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],                      # Allow all HTTP methods
    allow_headers=["*"],                      # Allow all headers
)
# Include routers
app.include_router(router_help_requests)
app.include_router(router_knowledge_base)
app.include_router(router_follow_ups)
app.include_router(router_livekit)


@app.get("/")
async def root():
    return {"status": "running"}


@app.get("/health")
async def health():
    return {"status": "healthy"}
