"""
E-Waste Pickup Rewards - FastAPI Backend
"""
import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Add backend to path for API imports
sys.path.insert(0, str(Path(__file__).parent))

from dotenv import load_dotenv
load_dotenv(Path(__file__).parent.parent / '.env')

from api import leaderboard, pickups
from api.dependencies import pipeline_error_handler
from config import get_settings
from repositories import close_db_pool, get_db_pool
from services.errors import PipelineError
from services.image_storage import ImageStorage
from services.job_queue import JobQueue
from services.verification_classifier import VerificationClassifier

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [api] %(levelname)s: %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    settings = get_settings()
    app.state.db_pool = await get_db_pool()
    app.state.job_queue = JobQueue(settings.redis_url)
    await app.state.job_queue.connect()
    app.state.classifier = VerificationClassifier.from_settings(settings)
    app.state.image_storage = ImageStorage.from_settings(settings)
    logger.info(f"✅ API ready ({settings.environment}), classifier models: {settings.classifier_models}")
    yield
    # Shutdown
    await app.state.job_queue.close()
    await close_db_pool()


app = FastAPI(
    title="E-Waste Pickup Rewards",
    description="Pickup submission, AI photo verification and points ledger",
    version="1.0.0",
    lifespan=lifespan,
)

# Enable CORS for webapp
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(PipelineError, pipeline_error_handler)

# API endpoints - all under /api/*
app.include_router(pickups.router, prefix="/api", tags=["Pickups"])
app.include_router(leaderboard.router, prefix="/api", tags=["Leaderboard"])


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/api/health")
async def api_health():
    return {"status": "ok", "service": "ewaste_rewards"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
