# =============================================================================
# SEO Analysis API - FastAPI Backend
# =============================================================================
# Live SERP data (DataForSEO) + Claude narrative for one keyword/domain pair.
#
# Endpoints:
#   POST /api/seo-analysis  - SERP pull, organic extraction, ranking strategy
#   GET  /status            - liveness message
#   GET  /health            - liveness + which secrets are configured
#   GET  /info              - service metadata
#
# Run:  python main.py
# Test: curl http://localhost:8000/health
# =============================================================================

import logging
from datetime import datetime
from typing import Any, Optional

from dotenv import load_dotenv
from fastapi import APIRouter, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, model_validator

from config import Settings
from errors import ConfigurationError, GenerationError, SEOAnalysisError, UpstreamError, ValidationError
from seo_engine import SEOAnalysisEngine

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

load_dotenv()                       # ← reads .env into os.environ before Settings.from_env()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(message)s",
)
logger = logging.getLogger("seo-saas")


def _warn_missing_secrets(settings: Settings) -> None:
    if not settings.anthropic_api_key:
        logger.warning("⚠️  ANTHROPIC_API_KEY is not set - Claude calls will fail")
    if not settings.has_dataforseo_credentials:
        logger.warning(
            "⚠️  DataForSEO credentials are not set - set DATAFORSEO_LOGIN & DATAFORSEO_PASSWORD "
            "or DATAFORSEO_API_AUTH"
        )


# =============================================================================
# Request model
# =============================================================================

class SEOAnalysisRequest(BaseModel):
    """
    Loose on purpose: types are checked by the engine so that bad values come
    back as {"error": ...} with a 400 instead of FastAPI's 422 detail list.
    """

    model_config = ConfigDict(extra="ignore")

    keyword: Any = None
    domain: Any = None
    target_domain: Any = None
    location_code: Any = None
    language_code: Any = "en"
    device: Any = "desktop"

    @model_validator(mode="after")
    def resolve_domain(self) -> "SEOAnalysisRequest":
        # WordPress plugin sends target_domain; API clients send domain
        if not self.domain and self.target_domain:
            self.domain = self.target_domain
        return self


# =============================================================================
# Error responses
# =============================================================================

async def _validation_error(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": str(exc)})


async def _request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": "Request body must be a JSON object."})


async def _upstream_error(request: Request, exc: UpstreamError) -> JSONResponse:
    logger.error(f"DataForSEO failed after {exc.attempts} attempt(s): {exc.details}")
    return JSONResponse(
        status_code=502,
        content={
            "success": False,
            "error": "Failed to fetch SERP data from DataForSEO.",
            "details": exc.details,
        },
    )


async def _generation_error(request: Request, exc: GenerationError) -> JSONResponse:
    logger.error(f"Claude failed after {exc.attempts} attempt(s): {exc.details}")
    return JSONResponse(
        status_code=502,
        content={
            "success": False,
            "error": "Failed to generate SEO analysis.",
            "details": exc.details,
        },
    )


async def _configuration_error(request: Request, exc: ConfigurationError) -> JSONResponse:
    logger.error(f"Configuration error: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Server is not configured for SEO analysis.",
            "details": str(exc),
        },
    )


# =============================================================================
# Routes
# =============================================================================

router = APIRouter()


@router.post("/api/seo-analysis")
async def seo_analysis(body: SEOAnalysisRequest, request: Request):
    """Core SEO analysis - DataForSEO SERP pull + Claude strategy paragraph."""
    engine: SEOAnalysisEngine = request.app.state.engine
    try:
        report = await engine.analyze(
            keyword=body.keyword,
            domain=body.domain,
            location_code=body.location_code,
            language_code=body.language_code,
            device=body.device,
        )
    except SEOAnalysisError:
        raise
    except Exception as e:
        logger.error(f"API Processing Error: {type(e).__name__}: {e}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": "Failed to process SEO analysis.",
                "details": str(e),
            },
        )

    return {"success": True, **report.model_dump()}


@router.get("/status")
async def status():
    return {"message": "SEO Platform API is running!"}


@router.get("/health")
async def health(request: Request):
    settings: Settings = request.app.state.settings
    return {
        "status": "ok",
        "timestamp": datetime.now().isoformat(),
        "dataforseo_credentials_set": settings.has_dataforseo_credentials,
        "anthropic_key_set": bool(settings.anthropic_api_key),
    }


@router.get("/info")
async def info(request: Request):
    settings: Settings = request.app.state.settings
    return {
        "name": "SEO Analysis API",
        "version": request.app.version,
        "model": settings.claude_model,
        "endpoints": {
            "seo_analysis": "POST /api/seo-analysis",
            "status": "GET /status",
            "health": "GET /health",
        },
    }


# =============================================================================
# App factory
# =============================================================================

def create_app(
    settings: Optional[Settings] = None,
    engine: Optional[SEOAnalysisEngine] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    _warn_missing_secrets(settings)

    app = FastAPI(
        title="SEO Analysis API",
        version="1.0.0",
        description="DataForSEO SERP analysis with Claude recommendations",
    )
    app.state.settings = settings
    app.state.engine = engine or SEOAnalysisEngine.from_settings(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.allowed_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ValidationError, _validation_error)
    app.add_exception_handler(RequestValidationError, _request_validation_error)
    app.add_exception_handler(UpstreamError, _upstream_error)
    app.add_exception_handler(GenerationError, _generation_error)
    app.add_exception_handler(ConfigurationError, _configuration_error)

    app.include_router(router)
    return app


app = create_app()


# =============================================================================
# Run
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=app.state.settings.port)
