from __future__ import annotations

import asyncio
import threading
from collections import OrderedDict
from typing import Optional

from dreamvision.errors import NotFoundError
from dreamvision.models import DreamEntry, UserProfile


class DreamStore:
    """In-memory profile and entry storage.

    Design goals:
    - Reads return the stored pydantic objects; writes replace them whole.
    - Keep operations thread-safe for mixed async/threaded usage.
    - Hand out one asyncio lock per user so callers can run
      "check gate -> interpret -> commit" as a single transaction.
    """

    def __init__(self):
        self._profiles: OrderedDict[str, UserProfile] = OrderedDict()
        self._entries: OrderedDict[str, DreamEntry] = OrderedDict()
        self._user_locks: dict[str, asyncio.Lock] = {}
        self._lock = threading.RLock()

    # -- profiles ---------------------------------------------------------------
    def save_profile(self, profile: UserProfile) -> UserProfile:
        with self._lock:
            self._profiles[profile.user_id] = profile
            return profile

    def get_profile(self, user_id: str) -> UserProfile:
        with self._lock:
            profile = self._profiles.get(user_id)
        if profile is None:
            raise NotFoundError("User not found")
        return profile

    def find_profile_by_email(self, email: str) -> Optional[UserProfile]:
        needle = (email or "").strip().lower()
        if not needle:
            return None
        with self._lock:
            for profile in self._profiles.values():
                if (profile.email or "").strip().lower() == needle:
                    return profile
        return None

    # -- entries ----------------------------------------------------------------
    def save_entry(self, entry: DreamEntry) -> DreamEntry:
        with self._lock:
            self._entries[entry.dream_id] = entry
            return entry

    def get_entry(self, user_id: str, dream_id: str) -> DreamEntry:
        with self._lock:
            entry = self._entries.get(dream_id)
        if entry is None or entry.user_id != user_id:
            raise NotFoundError("Dream not found")
        return entry

    def list_entries(self, user_id: str) -> list[DreamEntry]:
        with self._lock:
            return [entry for entry in self._entries.values() if entry.user_id == user_id]

    def delete_entry(self, user_id: str, dream_id: str) -> None:
        with self._lock:
            entry = self._entries.get(dream_id)
            if entry is None or entry.user_id != user_id:
                raise NotFoundError("Dream not found")
            self._entries.pop(dream_id, None)

    # -- transactions -----------------------------------------------------------
    def user_lock(self, user_id: str) -> asyncio.Lock:
        with self._lock:
            lock = self._user_locks.get(user_id)
            if lock is None:
                lock = asyncio.Lock()
                self._user_locks[user_id] = lock
            return lock

    def counts(self) -> dict[str, int]:
        with self._lock:
            return {"users": len(self._profiles), "entries": len(self._entries)}

    def clear(self) -> None:
        with self._lock:
            self._profiles.clear()
            self._entries.clear()
            self._user_locks.clear()
