"""
Medication Safety Review Engine - FastAPI REST API
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from datetime import datetime
import logging

from config.settings import (
    API_TITLE, API_VERSION, ENGINE_VERSION, API_HOST, API_PORT, LOG_LEVEL, LOG_FORMAT
)
from medsafety.core.knowledge_base import get_knowledge_base
from medsafety.core.review_service import get_review_service
from medsafety.dosing.calculator import get_dosage_calculator
from medsafety.api.task_routes import router as task_router

logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)
logger = logging.getLogger(__name__)


class HealthCheckResponse(BaseModel):
    status: str
    version: str
    dosing_guidelines_loaded: int
    timestamp: str


# Create FastAPI app
app = FastAPI(
    title=API_TITLE,
    description="Rule-based medication safety review: drug interactions, duplicate therapies, contraindications and patient-adjusted dosage validation. Output is advisory only.",
    version=API_VERSION,
    docs_url="/docs",
    redoc_url="/redoc"
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(task_router)


@app.on_event("startup")
async def startup_event():
    """Build the shared knowledge base and engines once"""
    logger.info(f"Starting {API_TITLE}...")
    get_knowledge_base()
    get_review_service()
    get_dosage_calculator()
    logger.info("Review service and dosage calculator initialized")


@app.get("/", tags=["Health"])
async def root():
    """Root endpoint"""
    return {
        "name": API_TITLE,
        "version": API_VERSION,
        "engine_version": ENGINE_VERSION,
        "status": "operational",
        "docs": "/docs"
    }


@app.get("/health", response_model=HealthCheckResponse, tags=["Health"])
async def health_check():
    """Health check endpoint"""
    knowledge_base = get_knowledge_base()
    return HealthCheckResponse(
        status="healthy",
        version=API_VERSION,
        dosing_guidelines_loaded=len(knowledge_base.dosing_guidelines),
        timestamp=datetime.now().isoformat()
    )


@app.get("/knowledge-base/statistics", tags=["Admin"])
async def knowledge_base_statistics():
    """Reference table sizes"""
    return get_knowledge_base().get_statistics()


# Main entry point for running directly
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=API_HOST, port=API_PORT)
