"""
Onboarding chat relay to Gemini.

Not part of the matching core: it only forwards a prompt and returns the
model's text. Failures use the same upstream error classes as embeddings.
"""
import asyncio
import logging

from google import genai
from google.genai import errors as genai_errors

from roommatch.core.config import settings
from roommatch.core.errors import (
    UpstreamMalformedResponse,
    UpstreamRejected,
    UpstreamUnavailable,
    ValidationError,
)

logger = logging.getLogger(__name__)

_client: genai.Client | None = None


def _get_client() -> genai.Client:
    global _client
    if _client is None:
        _client = genai.Client(api_key=settings.GEMINI_API_KEY)
    return _client


async def relay_prompt(prompt: str) -> str:
    if not isinstance(prompt, str) or not prompt.strip():
        raise ValidationError("Missing prompt in request body", stage="chat")
    if not settings.GEMINI_API_KEY:
        raise UpstreamUnavailable("GEMINI_API_KEY is not set", stage="chat")

    try:
        response = await asyncio.wait_for(
            asyncio.to_thread(
                _get_client().models.generate_content,
                model=settings.CHAT_MODEL,
                contents=prompt,
            ),
            timeout=settings.CHAT_TIMEOUT_S,
        )
    except asyncio.TimeoutError as exc:
        raise UpstreamUnavailable("Chat request timed out", stage="chat") from exc
    except genai_errors.ClientError as exc:
        logger.error("Gemini rejected chat prompt: %s", exc)
        raise UpstreamRejected(
            "Failed to get response from Gemini API", details=str(exc), stage="chat",
        ) from exc
    except genai_errors.APIError as exc:
        logger.error("Gemini chat call failed: %s", exc)
        raise UpstreamUnavailable(
            "Failed to get response from Gemini API", details=str(exc), stage="chat",
        ) from exc

    text = (getattr(response, "text", None) or "").strip()
    if not text:
        logger.warning("Gemini response did not contain text content")
        raise UpstreamMalformedResponse("Gemini response missing text content", stage="chat")
    logger.debug("Gemini chat reply: %s", text[:200])
    return text
