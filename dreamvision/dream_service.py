"""Caller-side orchestration of profiles, entries, interpretations and stats.

Interpretation requests follow one transaction per request:

1. under the user's lock: entitlement check, then reserve a slot;
2. without any lock: run the engine (may wait on the remote generator);
3. under the user's lock: attach the interpretation and record usage.

A reservation counts against the allowance while the engine runs, so two
concurrent requests cannot both spend the last free interpretation. If the
request is cancelled during step 2 the reservation is released and nothing
is written.
"""

from __future__ import annotations

import datetime as _dt
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional
from uuid import uuid4

from dreamvision import config
from dreamvision.entitlement import EntitlementGate, remaining_interpretations
from dreamvision.errors import ConflictError, InterpretationExistsError, NotFoundError
from dreamvision.interpretation_engine import InterpretationEngine
from dreamvision.models import (
    AggregateStats,
    CreateDreamRequest,
    DreamEntry,
    DreamPayload,
    Interpretation,
    PlanTier,
    RegisterUserRequest,
    UpdateProfileRequest,
    UserProfile,
)
from dreamvision.stats_aggregator import aggregate_stats, today_in_zone
from dreamvision.store import DreamStore
from dreamvision.visualization import visualization_url

logger = logging.getLogger("dreamvision")

MAX_PAGE_SIZE = 100
PROFILE_EDITABLE_FIELDS = ("name", "surname", "email", "age", "sex", "zodiac_sign")


@dataclass(frozen=True)
class InterpretationOutcome:
    allowed: bool
    entry: Optional[DreamEntry] = None
    interpretation: Optional[Interpretation] = None
    remaining: Optional[int] = None


class DreamService:
    def __init__(
        self,
        store: DreamStore,
        engine: InterpretationEngine,
        gate: Optional[EntitlementGate] = None,
        *,
        trial_allowance: int = config.TRIAL_INTERPRETATIONS_ALLOWED,
        today_fn: Callable[[], _dt.date] = today_in_zone,
    ):
        self.store = store
        self.engine = engine
        self.gate = gate or EntitlementGate()
        self.trial_allowance = trial_allowance
        self.today_fn = today_fn
        self._reserved: dict[str, int] = {}
        self._in_flight: set[str] = set()

    # ------------------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------------------
    def _ensure_email_free(self, email: Optional[str], user_id: Optional[str] = None) -> None:
        if not email:
            return
        existing = self.store.find_profile_by_email(email)
        if existing is not None and existing.user_id != user_id:
            raise ConflictError("Email already taken")

    def register_user(self, request: RegisterUserRequest) -> UserProfile:
        self._ensure_email_free(request.email)
        profile = UserProfile(
            name=request.name,
            surname=request.surname,
            email=request.email,
            age=request.age,
            sex=request.sex,
            zodiac_sign=request.zodiac_sign,
            plan_tier=PlanTier.trial,
            interpretations_used=0,
            interpretations_allowed=self.trial_allowance,
        )
        logger.info("User registered user_id=%s", profile.user_id)
        return self.store.save_profile(profile)

    def get_profile(self, user_id: str) -> UserProfile:
        return self.store.get_profile(user_id)

    async def update_profile(self, user_id: str, request: UpdateProfileRequest) -> UserProfile:
        """Overwrite the editable identity fields; plan tier and counters stay with the gate."""
        async with self.store.user_lock(user_id):
            profile = self.store.get_profile(user_id)
            self._ensure_email_free(request.email, user_id)
            updated = profile.model_copy(update={field: getattr(request, field) for field in PROFILE_EDITABLE_FIELDS})
            return self.store.save_profile(UserProfile.model_validate(updated.model_dump()))

    async def upgrade(self, user_id: str) -> UserProfile:
        async with self.store.user_lock(user_id):
            profile = self.store.get_profile(user_id)
            logger.info("User upgraded to premium user_id=%s", user_id)
            return self.store.save_profile(self.gate.upgrade(profile))

    # ------------------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------------------
    async def create_dream(
        self,
        user_id: str,
        request: CreateDreamRequest,
        request_id: Optional[str] = None,
    ) -> tuple[DreamEntry, Optional[InterpretationOutcome]]:
        self.store.get_profile(user_id)
        entry = DreamEntry(
            user_id=user_id,
            title=request.title,
            content=request.content,
            date=request.date or self.today_fn(),
            mood=request.mood,
            lucidity=request.lucidity,
            tags=request.tags,
        )
        self.store.save_entry(entry)
        logger.info("Dream created user_id=%s dream_id=%s", user_id, entry.dream_id)
        if not request.request_interpretation:
            return entry, None
        outcome = await self._interpret_entry(user_id, entry.dream_id, request_id=request_id)
        return (outcome.entry or entry), outcome

    def get_dream(self, user_id: str, dream_id: str) -> DreamEntry:
        return self.store.get_entry(user_id, dream_id)

    def list_dreams(
        self,
        user_id: str,
        *,
        page: int = 1,
        limit: int = 10,
        search: Optional[str] = None,
        tag: Optional[str] = None,
    ) -> list[DreamEntry]:
        entries = self.store.list_entries(user_id)
        needle = (search or "").strip().lower()
        if needle:
            entries = [e for e in entries if needle in e.title.lower() or needle in e.content.lower()]
        tag_needle = (tag or "").strip().lower()
        if tag_needle:
            entries = [e for e in entries if any(tag_needle in t.lower() for t in e.tags)]
        entries.sort(key=lambda e: (e.date, e.created_at), reverse=True)
        size = max(1, min(MAX_PAGE_SIZE, int(limit)))
        offset = (max(1, int(page)) - 1) * size
        return entries[offset : offset + size]

    async def update_dream(
        self,
        user_id: str,
        dream_id: str,
        request: DreamPayload,
        request_id: Optional[str] = None,
    ) -> DreamEntry:
        """Apply edits; an entry that already had an interpretation gets a fresh one.

        The regeneration replaces the previous interpretation without an
        entitlement check or usage charge, since the entry was already entitled.
        Edits are refused while a first interpretation of the entry is running.
        """
        async with self.store.user_lock(user_id):
            current = self.store.get_entry(user_id, dream_id)
            if dream_id in self._in_flight:
                raise ConflictError("Interpretation already in progress for this dream")
            edited = current.model_copy(
                update={
                    "title": request.title,
                    "content": request.content,
                    "date": request.date or current.date,
                    "mood": request.mood,
                    "lucidity": request.lucidity,
                    "tags": request.tags,
                    "updated_at": datetime.now(timezone.utc).replace(microsecond=0),
                }
            )
            edited = self.store.save_entry(DreamEntry.model_validate(edited.model_dump()))
            profile = self.store.get_profile(user_id)

        if current.interpretation is None:
            return edited

        interpretation = await self.engine.interpret(edited, profile, request_id=request_id)
        async with self.store.user_lock(user_id):
            latest = self.store.get_entry(user_id, dream_id)
            if latest.updated_at != edited.updated_at:
                logger.info("Skipping stale reinterpretation dream_id=%s", dream_id)
                return latest
            logger.info("Dream reinterpreted after edit user_id=%s dream_id=%s", user_id, dream_id)
            return self.store.save_entry(latest.with_interpretation(interpretation))

    def delete_dream(self, user_id: str, dream_id: str) -> None:
        self.store.delete_entry(user_id, dream_id)
        logger.info("Dream deleted user_id=%s dream_id=%s", user_id, dream_id)

    # ------------------------------------------------------------------------------
    # Interpretations
    # ------------------------------------------------------------------------------
    def get_interpretation(self, user_id: str, dream_id: str) -> Interpretation:
        entry = self.store.get_entry(user_id, dream_id)
        if entry.interpretation is None:
            raise NotFoundError("Interpretation not found")
        return entry.interpretation

    async def request_interpretation(
        self,
        user_id: str,
        dream_id: str,
        request_id: Optional[str] = None,
    ) -> InterpretationOutcome:
        """Produce the first interpretation for an entry; an existing one is a conflict."""
        return await self._interpret_entry(user_id, dream_id, request_id=request_id, reject_existing=True)

    def _effective_profile(self, profile: UserProfile) -> UserProfile:
        reserved = self._reserved.get(profile.user_id, 0)
        if not reserved:
            return profile
        return profile.model_copy(update={"interpretations_used": profile.interpretations_used + reserved})

    def _release(self, user_id: str, dream_id: str) -> None:
        self._in_flight.discard(dream_id)
        left = self._reserved.get(user_id, 0) - 1
        if left > 0:
            self._reserved[user_id] = left
        else:
            self._reserved.pop(user_id, None)

    async def _interpret_entry(
        self,
        user_id: str,
        dream_id: str,
        *,
        request_id: Optional[str] = None,
        reject_existing: bool = False,
    ) -> InterpretationOutcome:
        request_id = request_id or uuid4().hex
        usage_key = f"{dream_id}:{request_id}"
        lock = self.store.user_lock(user_id)

        async with lock:
            profile = self.store.get_profile(user_id)
            entry = self.store.get_entry(user_id, dream_id)
            # Limit first, then uniqueness.
            decision = self.gate.decide(self._effective_profile(profile))
            if not decision.allowed:
                logger.info("Interpretation denied user_id=%s dream_id=%s reason=%s", user_id, dream_id, decision.reason)
                return InterpretationOutcome(allowed=False, entry=entry, remaining=decision.remaining)
            if reject_existing and entry.interpretation is not None:
                raise InterpretationExistsError("Interpretation already exists for this dream")
            if dream_id in self._in_flight:
                raise ConflictError("Interpretation already in progress for this dream")
            self._in_flight.add(dream_id)
            self._reserved[user_id] = self._reserved.get(user_id, 0) + 1

        try:
            interpretation = await self.engine.interpret(entry, profile, request_id=request_id)
            async with lock:
                current = self.store.get_entry(user_id, dream_id)
                saved = self.store.save_entry(current.with_interpretation(interpretation))
                updated_profile = self.store.save_profile(
                    self.gate.record_usage(self.store.get_profile(user_id), usage_key)
                )
        finally:
            self._release(user_id, dream_id)

        return InterpretationOutcome(
            allowed=True,
            entry=saved,
            interpretation=interpretation,
            remaining=remaining_interpretations(updated_profile),
        )

    # ------------------------------------------------------------------------------
    # Stats, export, visualization
    # ------------------------------------------------------------------------------
    def stats(self, user_id: str, today: Optional[_dt.date] = None) -> AggregateStats:
        self.store.get_profile(user_id)
        return aggregate_stats(self.store.list_entries(user_id), today=today or self.today_fn())

    def export(self, user_id: str) -> dict[str, Any]:
        profile = self.store.get_profile(user_id)
        entries = self.store.list_entries(user_id)
        return {
            "user": profile.model_dump(mode="json"),
            "dreams": [entry.model_dump(mode="json") for entry in entries],
            "stats": self.stats(user_id).model_dump(mode="json"),
            "export_date": datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z"),
        }

    async def generate_visualization(self, user_id: str, dream_id: str, style: str) -> str:
        async with self.store.user_lock(user_id):
            entry = self.store.get_entry(user_id, dream_id)
            url = visualization_url(entry.content, style)
            self.store.save_entry(entry.model_copy(update={"visualization_url": url}))
        return url

    def get_visualization(self, user_id: str, dream_id: str) -> str:
        entry = self.store.get_entry(user_id, dream_id)
        if not entry.visualization_url:
            raise NotFoundError("No visualization found for this dream")
        return entry.visualization_url
