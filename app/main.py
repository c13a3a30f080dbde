"""FastAPI application entry point"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from typing import Any, Dict, Optional
import asyncio
import logging

from app.config.settings import settings
from app.errors import PipelineError
from app.models.request import ProfileRequest
from app.pipeline import run_analysis

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.APP_NAME,
    description="Turns a GitHub profile into a structured portfolio bundle",
    version=settings.APP_VERSION
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class AnalyzeRequest(BaseModel):
    """Form payload; blank fields fall back to environment defaults."""

    github_username: str
    api_url: Optional[str] = None
    api_key: Optional[str] = None
    model_name: Optional[str] = None
    github_token: Optional[str] = None
    language: Optional[str] = None


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running",
        "endpoints": {
            "health": "/api/health",
            "config": "/api/config",
            "analyze": "POST /api/analyze",
        }
    }


@app.get("/api/health")
async def health_check():
    """Health check endpoint for serverless platforms"""
    return {
        "status": "healthy",
        "service": "git2page-analyzer",
        "version": settings.APP_VERSION
    }


@app.get("/api/config")
async def get_config():
    """Expose non-secret defaults so the form can pre-fill its fields"""
    return {
        "api_url": settings.LLM_API_URL,
        "model": settings.LLM_MODEL,
        "language": settings.DEFAULT_OUTPUT_LANGUAGE,
        "has_github_token": bool(settings.GITHUB_TOKEN),
        "has_api_key": bool(settings.LLM_API_KEY),
    }


def _build_request(payload: AnalyzeRequest) -> ProfileRequest:
    return ProfileRequest.from_settings(
        payload.github_username,
        github_token=payload.github_token,
        llm_api_url=payload.api_url,
        llm_api_key=payload.api_key,
        model_name=payload.model_name,
        output_language=payload.language,
    )


@app.post("/api/analyze")
async def analyze(payload: AnalyzeRequest):
    """Analyze a GitHub profile and return the full bundle"""
    request = _build_request(payload)

    try:
        bundle = await run_analysis(request)
    except PipelineError as e:
        logger.warning(f"Analysis for {request.github_username} failed: {e.kind}: {e.message}")
        return JSONResponse(status_code=e.status_code, content=e.to_dict())

    return bundle.to_dict()


# AWS Lambda handler
def lambda_handler(event: Dict[str, Any], context: Any):
    """
    AWS Lambda handler

    Direct invocations carry the analyze form fields:
    {
        "github_username": "octocat",
        "language": "English"
    }
    Anything else is treated as an API Gateway HTTP event.
    """
    if "github_username" in event and "requestContext" not in event:
        logger.info(f"Direct analysis invocation for {event.get('github_username')}")
        payload = AnalyzeRequest(**{key: event.get(key) for key in AnalyzeRequest.model_fields if key in event})
        request = _build_request(payload)
        try:
            bundle = asyncio.run(run_analysis(request))
        except PipelineError as e:
            logger.warning(f"Analysis for {request.github_username} failed: {e.kind}: {e.message}")
            return {"statusCode": e.status_code, "body": e.to_dict()}
        return {"statusCode": 200, "body": bundle.to_dict()}

    # Otherwise, handle as HTTP request
    from mangum import Mangum
    handler = Mangum(app)
    return handler(event, context)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True
    )
