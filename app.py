"""
HTTP endpoint for the AI structural model generator.

POST /api/generate-model with ``{prompt, mode, currentModel}`` returns the
generated model wrapped in a ``candidates[0].content.parts[0].text`` envelope,
the shape the browser client already parses for LLM responses.

Run with:
    uvicorn app:app --port 8000
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from src.ai.model_service import ModelGenerationService
from src.ai.providers import LLMProviderError
from src.core.data_models import ModelParseError, StructuralModel

logger = logging.getLogger(__name__)

EMPTY_PROMPT_MESSAGE = "指示内容が空です。"


app = FastAPI(
    title="Structural Model Generator API",
    description="Natural-language to 2D frame model generation with validation and repair",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["POST", "OPTIONS"],
    allow_headers=["*"],
)


# =============================================================================
# Request Models
# =============================================================================

class GenerateModelRequest(BaseModel):
    """Generation request"""
    prompt: Optional[str] = Field(None, description="Natural-language instruction")
    mode: str = Field("new", description="new: build from scratch, edit: modify currentModel")
    currentModel: Optional[Dict[str, Any]] = Field(None, description="Model being edited")


# =============================================================================
# Helpers
# =============================================================================

def create_service() -> ModelGenerationService:
    """Service built from GROQ_API_KEY1..3; raises ValueError when none is set."""
    return ModelGenerationService.from_env()


def _error_response(status_code: int, message: str, request: Request) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "requestId": request.headers.get("x-request-id", "unknown"),
        },
    )


def _envelope(model: StructuralModel) -> Dict[str, Any]:
    text = json.dumps(model.to_dict(), ensure_ascii=False)
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


# =============================================================================
# Routes
# =============================================================================

@app.post("/api/generate-model")
def generate_model(body: GenerateModelRequest, request: Request):
    """Generate or edit a structural model."""
    if not body.prompt or not body.prompt.strip():
        return JSONResponse(status_code=400, content={"error": EMPTY_PROMPT_MESSAGE})

    current_model = None
    if body.mode == "edit" and body.currentModel:
        try:
            current_model = StructuralModel.from_dict(body.currentModel)
        except ModelParseError as e:
            return JSONResponse(status_code=400, content={"error": f"currentModel is invalid: {e}"})

    try:
        service = create_service()
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        return _error_response(500, str(e), request)

    try:
        model = service.generate_model(body.prompt, mode=body.mode, current_model=current_model)
    except LLMProviderError as e:
        logger.error(f"LLM generation failed: {e}")
        return _error_response(500, str(e), request)
    except Exception as e:
        logger.exception("Unexpected error during model generation")
        return _error_response(500, str(e) or type(e).__name__, request)

    return _envelope(model)


@app.api_route("/api/generate-model", methods=["GET", "PUT", "PATCH", "DELETE"])
def method_not_allowed():
    return JSONResponse(
        status_code=405,
        content={"error": "Method Not Allowed"},
        headers={"Allow": "POST"},
    )


if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(level=logging.INFO)
    uvicorn.run(app, host="0.0.0.0", port=8000)
