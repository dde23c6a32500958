import json
import logging
import re
from typing import Any

from assessment_api.shared.exceptions import AssessmentGenerationError

logger = logging.getLogger(__name__)

# Greedy: spans from the first "{" to the last "}"
_BRACED_SPAN = re.compile(r"\{[\s\S]*\}")


def strip_code_fence(text: str) -> str:
    """Remove a surrounding ```json / ``` fence, if the text is fully wrapped in one."""
    cleaned = text.strip()
    if cleaned.startswith("```json") and cleaned.endswith("```"):
        return cleaned[7:-3].strip()
    if cleaned.startswith("```") and cleaned.endswith("```"):
        return cleaned[3:-3].strip()
    return cleaned


def extract_json_object(raw: str) -> Any:
    """Parse completion output as JSON, falling back to the largest braced span."""
    candidate = strip_code_fence(raw)
    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        logger.warning(f"Completion output is not strict JSON, trying braced span: {raw[:500]}")

    match = _BRACED_SPAN.search(raw)
    if match:
        try:
            return json.loads(match.group(0))
        except json.JSONDecodeError as e:
            raise AssessmentGenerationError("Unable to extract valid JSON from completion", detail=str(e))
    raise AssessmentGenerationError("Unable to extract valid JSON from completion", detail=raw[:500])
