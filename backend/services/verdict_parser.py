"""
Verdict parsing - isolate and strictly validate the classifier's JSON payload

Models wrap their answer in prose or code fences. We extract the JSON
object, then validate every field's type. Anything that does not match the
expected shape raises ClassifierResponseError; a verdict is never guessed.

Expected shape:
    {
        "isVerified": bool,
        "detectedItems": [str, ...],
        "confidence": number (0-100),
        "reasoning": str
    }
"""
import json
import logging
import re
from numbers import Real
from typing import Optional

from models.domain.pickup import VerificationVerdict
from services.errors import ClassifierResponseError

logger = logging.getLogger(__name__)

_FENCE_PATTERN = re.compile(r"```(?:json|JSON)?\s*(.*?)```", re.DOTALL)


def extract_json_object(text: str) -> str:
    """
    Isolate the JSON object embedded in free-form model output.

    Prefers the contents of a ```json fence when present, then takes the
    span from the first '{' to the last '}'.

    Raises:
        ClassifierResponseError: if no object-shaped span exists
    """
    if not text or not text.strip():
        raise ClassifierResponseError("Empty response from classifier")

    content = text.strip()
    fenced = _FENCE_PATTERN.search(content)
    if fenced:
        content = fenced.group(1).strip()

    start = content.find('{')
    end = content.rfind('}')
    if start == -1 or end <= start:
        raise ClassifierResponseError("No JSON object found in classifier response")

    return content[start:end + 1]


def parse_verdict(text: str, model: Optional[str] = None) -> VerificationVerdict:
    """
    Parse classifier output into a VerificationVerdict.

    Args:
        text: raw model output
        model: model id that produced it (recorded on the verdict)

    Raises:
        ClassifierResponseError: on missing payload, invalid JSON, or any
            field of the wrong type/range
    """
    payload = extract_json_object(text)

    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        raise ClassifierResponseError(f"Classifier returned invalid JSON: {e.msg}") from e

    if not isinstance(data, dict):
        raise ClassifierResponseError("Classifier payload is not a JSON object")

    is_verified = data.get('isVerified')
    if not isinstance(is_verified, bool):
        raise ClassifierResponseError("Field 'isVerified' must be a boolean")

    detected_items = data.get('detectedItems')
    if not isinstance(detected_items, list) or not all(isinstance(i, str) for i in detected_items):
        raise ClassifierResponseError("Field 'detectedItems' must be a list of strings")

    confidence = data.get('confidence')
    # bool is a Real subclass; reject it explicitly
    if isinstance(confidence, bool) or not isinstance(confidence, Real):
        raise ClassifierResponseError("Field 'confidence' must be a number")
    if not 0 <= confidence <= 100:
        raise ClassifierResponseError(f"Field 'confidence' out of range 0-100: {confidence}")

    reasoning = data.get('reasoning')
    if not isinstance(reasoning, str):
        raise ClassifierResponseError("Field 'reasoning' must be a string")

    return VerificationVerdict(
        is_verified=is_verified,
        detected_items=detected_items,
        confidence=confidence,
        reasoning=reasoning.strip(),
        model=model,
    )
