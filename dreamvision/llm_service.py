import hashlib
import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

import httpx
from openai import APIConnectionError, APIStatusError, APITimeoutError, AsyncOpenAI
from pydantic import BaseModel, ValidationError

from dreamvision import config
from dreamvision.models import DreamEntry, Interpretation, UserProfile

logger = logging.getLogger("llm_service")
llm_audit_logger = logging.getLogger("llm_audit")

SYSTEM_MESSAGE = (
    "You are an expert dream analyst with knowledge of psychology, symbolism, and astrology. "
    "Provide insightful, personalized dream interpretations."
)
_JSON_FENCE_RE = re.compile(r"^\s*```(?:json)?\s*(.*?)\s*```\s*$", re.DOTALL)


class FailureReason(str, Enum):
    disabled = "disabled"
    timeout = "timeout"
    transport = "transport"
    bad_response = "bad_response"
    malformed = "malformed"


@dataclass(frozen=True)
class RemoteResult:
    """Either a well-formed interpretation or the reason the remote path failed."""

    interpretation: Optional[Interpretation] = None
    failure: Optional[FailureReason] = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.interpretation is not None

    @classmethod
    def success(cls, interpretation: Interpretation) -> "RemoteResult":
        return cls(interpretation=interpretation)

    @classmethod
    def failed(cls, reason: FailureReason, detail: str = "") -> "RemoteResult":
        return cls(failure=reason, detail=detail)


class RemoteInterpretationRequest(BaseModel):
    title: str
    content: str
    mood: int
    lucidity: int
    age: int
    sex: str
    sign: str

    @classmethod
    def from_entry(cls, entry: DreamEntry, profile: UserProfile) -> "RemoteInterpretationRequest":
        return cls(
            title=entry.title,
            content=entry.content,
            mood=entry.mood,
            lucidity=entry.lucidity,
            age=profile.age,
            sex=profile.sex,
            sign=profile.zodiac_sign,
        )


def _utc_iso_now() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def _canonical_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, sort_keys=True, separators=(",", ":"))


def _sha256_hex(value: Any) -> str:
    return hashlib.sha256(_canonical_json(value).encode("utf-8")).hexdigest()


def _emit_llm_audit_event(*, request_id: str, content_hash: str, model_used: str) -> dict[str, str]:
    event = {
        "request_id": request_id,
        "content_hash": content_hash,
        "timestamp_utc": _utc_iso_now(),
        "model_used": model_used,
    }
    llm_audit_logger.info(_canonical_json(event))
    return event


def build_openai_client(api_key: str = "") -> tuple[Optional[AsyncOpenAI], Optional[httpx.AsyncClient]]:
    key = api_key or config.OPENAI_API_KEY
    if not key:
        return None, None

    base_url = config.resolve_openai_base_url()
    proxy_url = config.resolve_proxy_url()
    timeout = httpx.Timeout(connect=5.0, read=config.REMOTE_TIMEOUT_SEC, write=10.0, pool=10.0)

    try:
        if proxy_url:
            http_client = httpx.AsyncClient(timeout=timeout, trust_env=True, proxy=proxy_url)
        else:
            http_client = httpx.AsyncClient(timeout=timeout, trust_env=True)
        client_kwargs: dict[str, Any] = {"api_key": key, "http_client": http_client, "max_retries": 0}
        if base_url:
            client_kwargs["base_url"] = base_url
        client = AsyncOpenAI(**client_kwargs)
        logger.info(
            "OpenAI client initialized base_url=%s proxy_configured=%s",
            str(getattr(client, "base_url", "default")),
            "True" if bool(proxy_url) else "False",
        )
        return client, http_client
    except Exception as e:
        logger.warning("OpenAI client initialization failed: %s", e)
        return None, None


def build_dream_prompt(request: RemoteInterpretationRequest) -> str:
    return f"""
Analyze this dream for a {request.age}-year-old {request.sex} {request.sign}:

Title: {request.title}
Content: {request.content}
Mood: {request.mood}/5
Lucidity: {request.lucidity}/5

Please provide a comprehensive analysis including:
1. Overview (2-3 sentences)
2. Key symbols and their meanings
3. Main themes
4. Emotions present
5. Personalized insights based on their profile
6. Connection to their {request.sign} horoscope
7. Psychological meaning

Format the response as JSON with the following structure:
{{
  "overview": "string",
  "symbols": [{{"symbol": "string", "meaning": "string", "personalRelevance": "string"}}],
  "themes": ["string"],
  "emotions": ["string"],
  "personalizedInsights": ["string"],
  "horoscopeConnection": "string",
  "psychologicalMeaning": "string"
}}
"""


def _build_openai_payload(*, model: str, user_message: str, max_completion_tokens: int, temperature: float) -> dict[str, Any]:
    return {
        "model": model,
        "messages": [
            {"role": "system", "content": SYSTEM_MESSAGE},
            {"role": "user", "content": user_message},
        ],
        "max_completion_tokens": int(max_completion_tokens),
        "temperature": float(temperature),
        "response_format": {"type": "json_object"},
    }


def parse_interpretation_payload(text: str) -> Interpretation:
    """Parse model output into an Interpretation; raises ValueError on anything else."""
    match = _JSON_FENCE_RE.match(text or "")
    raw = match.group(1) if match else (text or "")
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("interpretation payload must be a JSON object")
    return Interpretation.model_validate(data)


async def generate_remote_interpretation(
    *,
    async_client: Any,
    request: RemoteInterpretationRequest,
    request_id: str,
    model: str = config.OPENAI_MODEL,
    max_tokens: int = config.REMOTE_MAX_TOKENS,
    temperature: float = config.REMOTE_TEMPERATURE,
) -> RemoteResult:
    """Make a single remote generation attempt; every failure comes back as a RemoteResult."""
    if async_client is None:
        return RemoteResult.failed(FailureReason.disabled, "OpenAI client not initialized")

    content_hash = _sha256_hex(request.model_dump())
    payload = _build_openai_payload(
        model=model,
        user_message=build_dream_prompt(request),
        max_completion_tokens=max_tokens,
        temperature=temperature,
    )
    logger.info("LLM API call started request_id=%s selected_model=%s content_hash=%s", request_id, model, content_hash)
    try:
        response = await async_client.chat.completions.create(**payload)
    except APITimeoutError as e:
        return RemoteResult.failed(FailureReason.timeout, str(e))
    except APIConnectionError as e:
        return RemoteResult.failed(FailureReason.transport, str(e))
    except APIStatusError as e:
        return RemoteResult.failed(FailureReason.bad_response, f"status={e.status_code}")
    except httpx.HTTPError as e:
        return RemoteResult.failed(FailureReason.transport, str(e))

    text = response.choices[0].message.content if response and response.choices else ""
    response_text = text if isinstance(text, str) else ""
    if not response_text.strip():
        finish_reason = response.choices[0].finish_reason if response and response.choices else "N/A"
        return RemoteResult.failed(FailureReason.bad_response, f"empty response finish_reason={finish_reason}")

    try:
        interpretation = parse_interpretation_payload(response_text)
    except (ValueError, ValidationError) as e:
        return RemoteResult.failed(FailureReason.malformed, type(e).__name__)

    _emit_llm_audit_event(request_id=request_id, content_hash=content_hash, model_used=f"openai/{model}")
    logger.info("LLM interpretation parsed request_id=%s model_used=openai/%s", request_id, model)
    return RemoteResult.success(interpretation)
