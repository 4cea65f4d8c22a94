"""
Verification Classifier - AI photo check for pickup submissions

Sends the submitted photo plus the claimed e-waste category to a multimodal
model and returns a structured VerificationVerdict.

Resilience:
- Models are tried in the configured order (settings.classifier_models)
- A transport failure or malformed answer moves on to the next model
- When every model fails, ClassifierExhaustedError carries each attempt

The classifier is non-deterministic: the same photo can get a different
verdict on a second call. SettlementService persists the first verdict it
receives and never re-asks for a request that is already terminal.
"""
import logging
from typing import List, Optional

import openai
from openai import AsyncOpenAI

from config.settings import Settings, get_settings
from models.domain.pickup import VerificationVerdict, WasteCategory
from services.errors import (
    ClassifierConfigError,
    ClassifierError,
    ClassifierExhaustedError,
    ClassifierResponseError,
    ClassifierTransportError,
    ValidationError,
)
from services.verdict_parser import parse_verdict
from utils.image_utils import to_data_url

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = "You are an e-waste verification assistant. Respond with a single JSON object only."

CATEGORY_GUIDE = {
    WasteCategory.SMARTPHONES_TABLETS: "phones, tablets, mobile devices",
    WasteCategory.LAPTOPS_COMPUTERS: "laptops, desktops, keyboards, mice",
    WasteCategory.TVS_MONITORS: "televisions, computer monitors, displays",
    WasteCategory.BATTERIES_POWER_BANKS: "batteries, power banks, UPS",
    WasteCategory.CABLES_CHARGERS: "charging cables, adapters, power cables",
    WasteCategory.OTHER_SMALL_APPLIANCES: "small electronic devices, gadgets",
}


def build_prompt(expected_category: WasteCategory) -> str:
    """Instruction sent alongside the photo."""
    categories = "\n".join(
        f"- {category.value}: {examples}" for category, examples in CATEGORY_GUIDE.items()
    )
    return f"""Analyze this image and determine if it contains "{expected_category.value}".

Respond with ONLY a valid JSON object in this exact format:
{{
  "isVerified": boolean,
  "detectedItems": ["item1", "item2"],
  "confidence": number (0-100),
  "reasoning": "brief explanation"
}}

Rules:
- isVerified: true only if you can clearly see items that match "{expected_category.value}"
- detectedItems: list what e-waste items you can identify
- confidence: how confident you are (0-100)
- reasoning: brief explanation of your decision

E-waste categories:
{categories}"""


class VerificationClassifier:
    """
    Adapter over the OpenAI chat completions API with image input.

    Either pass a ready client (tests, shared clients) or let the adapter
    build one from the API key on first use.
    """

    def __init__(
        self,
        models: List[str],
        api_key: Optional[str] = None,
        client: Optional[AsyncOpenAI] = None,
        temperature: float = 0.1,
        max_tokens: int = 1024,
        timeout: float = 60.0,
    ):
        self.models = list(models or [])
        self.api_key = api_key
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self._client = client

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> 'VerificationClassifier':
        settings = settings or get_settings()
        return cls(
            models=settings.classifier_models,
            api_key=settings.openai_api_key,
            temperature=settings.classifier_temperature,
            max_tokens=settings.classifier_max_tokens,
            timeout=settings.classifier_timeout_seconds,
        )

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self.api_key:
                raise ClassifierConfigError("Classifier API key not configured (OPENAI_API_KEY)")
            self._client = AsyncOpenAI(api_key=self.api_key, timeout=self.timeout)
        return self._client

    async def verify(self, image: bytes, expected_category) -> VerificationVerdict:
        """
        Ask the model whether `image` shows items of `expected_category`.

        Args:
            image: raw photo bytes
            expected_category: WasteCategory or its display value

        Returns:
            VerificationVerdict from the first model that answers well-formed

        Raises:
            ValidationError: empty image or unknown category
            ClassifierConfigError: no API key / no models configured
            ClassifierExhaustedError: every model failed
        """
        try:
            category = WasteCategory.parse(expected_category)
        except ValueError as e:
            raise ValidationError(str(e)) from e

        if not image:
            raise ValidationError("Image is empty")

        if not self.models:
            raise ClassifierConfigError("No classifier models configured (CLASSIFIER_MODELS)")

        client = self._get_client()
        prompt = build_prompt(category)
        data_url = to_data_url(image)

        attempts = []
        for model in self.models:
            try:
                text = await self._complete(client, model, prompt, data_url)
                verdict = parse_verdict(text, model=model)
            except ClassifierConfigError:
                raise
            except ClassifierError as e:
                attempts.append((model, e))
                logger.warning(f"Classifier model {model} failed ({e.__class__.__name__}): {e.message}")
                continue

            logger.info(
                f"Classifier {model}: verified={verdict.is_verified} "
                f"confidence={verdict.confidence} category='{category.value}'"
            )
            return verdict

        tried = ", ".join(model for model, _ in attempts)
        raise ClassifierExhaustedError(
            f"All classifier models failed ({tried})",
            attempts=attempts,
        ) from attempts[-1][1]

    async def _complete(self, client: AsyncOpenAI, model: str, prompt: str, data_url: str) -> str:
        """Single model call. Returns the raw text of the first choice."""
        try:
            response = await client.chat.completions.create(
                model=model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": prompt},
                            {"type": "image_url", "image_url": {"url": data_url}},
                        ],
                    },
                ],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except openai.AuthenticationError as e:
            raise ClassifierConfigError(f"Classifier rejected credentials: {e}") from e
        except openai.APIError as e:
            raise ClassifierTransportError(f"Classifier request to {model} failed: {e}") from e

        if not response.choices or not response.choices[0].message.content:
            raise ClassifierResponseError(f"Empty response from {model}")

        return response.choices[0].message.content
