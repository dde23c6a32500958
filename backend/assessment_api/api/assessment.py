import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from assessment_api.orchestrator.pipeline import AssessmentPipeline, get_pipeline
from assessment_api.schemas.assessment import AssessmentResponse
from assessment_api.shared.exceptions import AssessmentServiceError, RequestValidationFailed
from assessment_api.shared.rate_limit import assessment_rate_limit, client_address, limiter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["assessment"])


@router.post("/generate-assessment")
@limiter.limit(assessment_rate_limit)
async def generate_assessment(
    request: Request,
    pipeline: AssessmentPipeline = Depends(get_pipeline),
):
    """Validate the lead form, generate the IT assessment PDF and email its link.

    The body is read here rather than bound by FastAPI so the rate limit is
    enforced before any validation runs.
    """
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise RequestValidationFailed(
            [{"field": "body", "message": "Request body must be valid JSON", "type": "json_invalid"}]
        )

    try:
        result = await pipeline.run(body, remote_ip=client_address(request))
    except AssessmentServiceError:
        raise
    except Exception as e:
        logger.exception(f"Assessment pipeline failed unexpectedly: {e}")
        raise AssessmentServiceError("Unexpected pipeline failure", detail=str(e))

    response = AssessmentResponse(message=result.message, download_url=result.download_url)
    return JSONResponse(status_code=200, content=response.model_dump(by_alias=True, exclude_none=True))
