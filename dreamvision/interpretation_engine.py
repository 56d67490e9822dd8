"""Interpretation engine: remote generation first, deterministic composition on any failure."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional
from uuid import uuid4

from dreamvision import config
from dreamvision.composer import compose_interpretation
from dreamvision.llm_service import (
    FailureReason,
    RemoteInterpretationRequest,
    RemoteResult,
    generate_remote_interpretation,
)
from dreamvision.models import DreamEntry, Interpretation, UserProfile

logger = logging.getLogger("interpretation_engine")


class InterpretationEngine:
    """Stateless per call; holds only the remote client and its settings.

    ``interpret`` always returns an Interpretation. Remote failures of any
    kind (disabled, timeout, transport, bad or malformed response) are logged
    and resolved by the local composer; cancellation is not absorbed.
    """

    def __init__(
        self,
        async_client: Any = None,
        *,
        enabled: bool = config.REMOTE_INTERPRETATION_ENABLED,
        model: str = config.OPENAI_MODEL,
        timeout_sec: float = config.REMOTE_TIMEOUT_SEC,
        max_tokens: int = config.REMOTE_MAX_TOKENS,
        temperature: float = config.REMOTE_TEMPERATURE,
    ):
        self.async_client = async_client
        self.enabled = enabled
        self.model = model
        self.timeout_sec = timeout_sec
        self.max_tokens = max_tokens
        self.temperature = temperature

    @property
    def remote_configured(self) -> bool:
        return bool(self.enabled and self.async_client is not None)

    async def attempt_remote(self, entry: DreamEntry, profile: UserProfile, request_id: str) -> RemoteResult:
        if not self.remote_configured:
            return RemoteResult.failed(FailureReason.disabled)
        request = RemoteInterpretationRequest.from_entry(entry, profile)
        try:
            return await asyncio.wait_for(
                generate_remote_interpretation(
                    async_client=self.async_client,
                    request=request,
                    request_id=request_id,
                    model=self.model,
                    max_tokens=self.max_tokens,
                    temperature=self.temperature,
                ),
                timeout=self.timeout_sec,
            )
        except asyncio.TimeoutError:
            return RemoteResult.failed(FailureReason.timeout, f"exceeded {self.timeout_sec}s")
        except Exception as e:
            return RemoteResult.failed(FailureReason.transport, f"{type(e).__name__}: {e}")

    def interpret_locally(self, entry: DreamEntry, profile: UserProfile) -> Interpretation:
        return compose_interpretation(entry, profile)

    async def interpret(
        self,
        entry: DreamEntry,
        profile: UserProfile,
        request_id: Optional[str] = None,
    ) -> Interpretation:
        request_id_value = request_id or uuid4().hex
        result = await self.attempt_remote(entry, profile, request_id_value)
        if result.ok:
            logger.info(
                "Interpretation produced request_id=%s dream_id=%s source=remote",
                request_id_value,
                entry.dream_id,
            )
            return result.interpretation

        if result.failure != FailureReason.disabled:
            logger.warning(
                "Remote interpretation failed request_id=%s dream_id=%s reason=%s detail=%s",
                request_id_value,
                entry.dream_id,
                result.failure.value if result.failure else "unknown",
                result.detail,
            )
        logger.info(
            "Interpretation produced request_id=%s dream_id=%s source=local",
            request_id_value,
            entry.dream_id,
        )
        return self.interpret_locally(entry, profile)
