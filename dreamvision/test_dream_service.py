from __future__ import annotations

import asyncio
import unittest
from datetime import date

from dreamvision.dream_service import DreamService
from dreamvision.errors import ConflictError, InterpretationExistsError, NotFoundError
from dreamvision.interpretation_engine import InterpretationEngine
from dreamvision.models import (
    CreateDreamRequest,
    DreamPayload,
    PlanTier,
    RegisterUserRequest,
    UpdateProfileRequest,
)
from dreamvision.store import DreamStore

TODAY = date(2024, 5, 10)


class _GatedEngine(InterpretationEngine):
    """Local-only engine that waits on ``release`` before answering."""

    def __init__(self) -> None:
        super().__init__(None, enabled=False)
        self.release: asyncio.Event | None = None
        self.calls = 0

    async def interpret(self, entry, profile, request_id=None):
        self.calls += 1
        await self.release.wait()
        return self.interpret_locally(entry, profile)


def _register(service: DreamService, email: str | None = None):
    return service.register_user(
        RegisterUserRequest(name="Mia", surname="Park", email=email, age=27, sex="female", zodiac_sign="Pisces")
    )


def _dream(content: str = "Swimming in deep water", **overrides) -> CreateDreamRequest:
    data = {"title": "Night", "content": content, "mood": 3, "lucidity": 2}
    data.update(overrides)
    return CreateDreamRequest(**data)


class TestDreamService(unittest.TestCase):
    def setUp(self) -> None:
        self.store = DreamStore()
        self.service = DreamService(
            self.store,
            InterpretationEngine(None, enabled=False),
            trial_allowance=2,
            today_fn=lambda: TODAY,
        )
        self.user = _register(self.service, email="mia@example.com")

    def test_create_with_interpretation_charges_one_use(self) -> None:
        entry, outcome = asyncio.run(
            self.service.create_dream(self.user.user_id, _dream(request_interpretation=True))
        )
        self.assertTrue(outcome.allowed)
        self.assertEqual(outcome.remaining, 1)
        self.assertIsNotNone(entry.interpretation)
        self.assertEqual(entry.symbols, ["water"])
        self.assertEqual(entry.date, TODAY)
        self.assertEqual(self.service.get_profile(self.user.user_id).interpretations_used, 1)

    def test_create_without_interpretation_does_not_charge(self) -> None:
        entry, outcome = asyncio.run(self.service.create_dream(self.user.user_id, _dream()))
        self.assertIsNone(outcome)
        self.assertIsNone(entry.interpretation)
        self.assertEqual(self.service.get_profile(self.user.user_id).interpretations_used, 0)

    def test_second_request_for_same_entry_is_rejected(self) -> None:
        entry, _ = asyncio.run(self.service.create_dream(self.user.user_id, _dream()))
        asyncio.run(self.service.request_interpretation(self.user.user_id, entry.dream_id))
        with self.assertRaises(InterpretationExistsError):
            asyncio.run(self.service.request_interpretation(self.user.user_id, entry.dream_id))
        self.assertEqual(self.service.get_profile(self.user.user_id).interpretations_used, 1)

    def test_denied_when_allowance_spent_then_allowed_after_upgrade(self) -> None:
        uid = self.user.user_id
        ids = [asyncio.run(self.service.create_dream(uid, _dream()))[0].dream_id for _ in range(3)]
        asyncio.run(self.service.request_interpretation(uid, ids[0]))
        asyncio.run(self.service.request_interpretation(uid, ids[1]))

        denied = asyncio.run(self.service.request_interpretation(uid, ids[2]))
        self.assertFalse(denied.allowed)
        self.assertEqual(denied.remaining, 0)
        self.assertIsNone(self.service.get_dream(uid, ids[2]).interpretation)
        self.assertEqual(self.service.get_profile(uid).interpretations_used, 2)

        profile = asyncio.run(self.service.upgrade(uid))
        self.assertEqual(profile.plan_tier, PlanTier.premium)
        allowed = asyncio.run(self.service.request_interpretation(uid, ids[2]))
        self.assertTrue(allowed.allowed)
        self.assertIsNone(allowed.remaining)
        self.assertEqual(self.service.get_profile(uid).interpretations_used, 2)

    def test_edit_regenerates_existing_interpretation_without_charge(self) -> None:
        uid = self.user.user_id
        entry, _ = asyncio.run(self.service.create_dream(uid, _dream(request_interpretation=True)))
        edited = asyncio.run(
            self.service.update_dream(
                uid,
                entry.dream_id,
                DreamPayload(title="Night", content="A fire in the hall", mood=2, lucidity=2),
            )
        )
        self.assertEqual(edited.symbols, ["fire"])
        self.assertEqual(edited.interpretation.symbols[0].symbol, "fire")
        self.assertEqual(edited.date, TODAY)
        self.assertEqual(self.service.get_profile(uid).interpretations_used, 1)

    def test_limit_takes_precedence_over_existing_interpretation(self) -> None:
        uid = self.user.user_id
        ids = [asyncio.run(self.service.create_dream(uid, _dream()))[0].dream_id for _ in range(2)]
        asyncio.run(self.service.request_interpretation(uid, ids[0]))
        asyncio.run(self.service.request_interpretation(uid, ids[1]))

        outcome = asyncio.run(self.service.request_interpretation(uid, ids[0]))

        self.assertFalse(outcome.allowed)
        self.assertEqual(outcome.remaining, 0)

    def test_profile_edit_keeps_plan_tier_and_counters(self) -> None:
        uid = self.user.user_id
        asyncio.run(self.service.create_dream(uid, _dream(request_interpretation=True)))
        asyncio.run(self.service.upgrade(uid))
        updated = asyncio.run(
            self.service.update_profile(
                uid,
                UpdateProfileRequest(name="Mia", surname="Cho", email="mia@example.com", age=27, sex="female", zodiac_sign="Leo"),
            )
        )
        self.assertEqual(updated.surname, "Cho")
        self.assertEqual(updated.zodiac_sign, "Leo")
        self.assertEqual(updated.plan_tier, PlanTier.premium)
        self.assertEqual(updated.interpretations_used, 1)
        self.assertEqual(updated.interpretations_allowed, 2)

    def test_edit_without_interpretation_stays_uninterpreted(self) -> None:
        uid = self.user.user_id
        entry, _ = asyncio.run(self.service.create_dream(uid, _dream()))
        edited = asyncio.run(
            self.service.update_dream(
                uid,
                entry.dream_id,
                DreamPayload(title="<b>New</b>", content="A fire", mood=2, lucidity=2, tags=["x", "x"]),
            )
        )
        self.assertIsNone(edited.interpretation)
        self.assertEqual(edited.title, "bNew/b")
        self.assertEqual(edited.tags, ["x"])

    def test_get_interpretation_missing(self) -> None:
        entry, _ = asyncio.run(self.service.create_dream(self.user.user_id, _dream()))
        with self.assertRaises(NotFoundError):
            self.service.get_interpretation(self.user.user_id, entry.dream_id)

    def test_entries_are_private_to_their_owner(self) -> None:
        other = _register(self.service, email="other@example.com")
        entry, _ = asyncio.run(self.service.create_dream(self.user.user_id, _dream()))
        with self.assertRaises(NotFoundError):
            self.service.get_dream(other.user_id, entry.dream_id)
        with self.assertRaises(NotFoundError):
            self.service.delete_dream(other.user_id, entry.dream_id)

    def test_duplicate_email_is_rejected(self) -> None:
        with self.assertRaises(ConflictError):
            _register(self.service, email="MIA@example.com")

    def test_list_dreams_filters_sorts_and_pages(self) -> None:
        uid = self.user.user_id
        asyncio.run(self.service.create_dream(uid, _dream("ocean waves", date=date(2024, 1, 1), tags=["Lucid"])))
        asyncio.run(self.service.create_dream(uid, _dream("a dark forest", date=date(2024, 3, 1))))
        asyncio.run(self.service.create_dream(uid, _dream("ocean breeze", date=date(2024, 2, 1))))

        ordered = self.service.list_dreams(uid)
        self.assertEqual([e.date.month for e in ordered], [3, 2, 1])
        self.assertEqual(len(self.service.list_dreams(uid, search="OCEAN")), 2)
        self.assertEqual([e.content for e in self.service.list_dreams(uid, tag="lucid")], ["ocean waves"])
        self.assertEqual([e.date.month for e in self.service.list_dreams(uid, page=2, limit=2)], [1])

    def test_stats_and_export(self) -> None:
        uid = self.user.user_id
        asyncio.run(self.service.create_dream(uid, _dream(request_interpretation=True, mood=5)))
        stats = self.service.stats(uid)
        self.assertEqual(stats.total_entries, 1)
        self.assertEqual(stats.streak, 1)
        self.assertEqual(stats.top_symbols, ["water"])

        exported = self.service.export(uid)
        self.assertEqual(set(exported), {"user", "dreams", "stats", "export_date"})
        self.assertEqual(exported["user"]["email"], "mia@example.com")
        self.assertEqual(len(exported["dreams"]), 1)

    def test_visualization_roundtrip(self) -> None:
        uid = self.user.user_id
        entry, _ = asyncio.run(self.service.create_dream(uid, _dream("night in the city")))
        with self.assertRaises(NotFoundError):
            self.service.get_visualization(uid, entry.dream_id)
        url = asyncio.run(self.service.generate_visualization(uid, entry.dream_id, "watercolor"))
        self.assertIn("1624438", url)
        self.assertTrue(url.endswith("&style=watercolor"))
        self.assertEqual(self.service.get_visualization(uid, entry.dream_id), url)


class TestInterpretationTransaction(unittest.TestCase):
    def setUp(self) -> None:
        self.store = DreamStore()
        self.engine = _GatedEngine()
        self.service = DreamService(self.store, self.engine, trial_allowance=1, today_fn=lambda: TODAY)
        self.user = _register(self.service)

    def test_concurrent_requests_cannot_both_spend_last_use(self) -> None:
        uid = self.user.user_id

        async def scenario():
            self.engine.release = asyncio.Event()
            first_entry, _ = await self.service.create_dream(uid, _dream())
            second_entry, _ = await self.service.create_dream(uid, _dream())
            first = asyncio.create_task(self.service.request_interpretation(uid, first_entry.dream_id))
            second = asyncio.create_task(self.service.request_interpretation(uid, second_entry.dream_id))
            await asyncio.sleep(0.01)
            self.engine.release.set()
            return await asyncio.gather(first, second)

        first, second = asyncio.run(scenario())
        self.assertTrue(first.allowed)
        self.assertFalse(second.allowed)
        self.assertEqual(self.engine.calls, 1)
        self.assertEqual(self.service.get_profile(uid).interpretations_used, 1)

    def test_cancelled_request_writes_nothing(self) -> None:
        uid = self.user.user_id

        async def scenario():
            self.engine.release = asyncio.Event()
            entry, _ = await self.service.create_dream(uid, _dream())
            task = asyncio.create_task(self.service.request_interpretation(uid, entry.dream_id))
            await asyncio.sleep(0.01)
            task.cancel()
            with self.assertRaises(asyncio.CancelledError):
                await task
            untouched = self.service.get_dream(uid, entry.dream_id)
            self.engine.release.set()
            retry = await self.service.request_interpretation(uid, entry.dream_id)
            return untouched, retry

        untouched, retry = asyncio.run(scenario())
        self.assertIsNone(untouched.interpretation)
        self.assertTrue(retry.allowed)
        self.assertEqual(self.service.get_profile(uid).interpretations_used, 1)

    def test_in_flight_entry_rejects_second_request(self) -> None:
        uid = self.user.user_id

        async def scenario():
            self.engine.release = asyncio.Event()
            await self.service.upgrade(uid)
            entry, _ = await self.service.create_dream(uid, _dream())
            first = asyncio.create_task(self.service.request_interpretation(uid, entry.dream_id))
            await asyncio.sleep(0.01)
            try:
                with self.assertRaises(ConflictError):
                    await self.service.request_interpretation(uid, entry.dream_id)
            finally:
                self.engine.release.set()
            return await first

        outcome = asyncio.run(scenario())
        self.assertTrue(outcome.allowed)

    def test_edit_during_first_interpretation_is_refused(self) -> None:
        uid = self.user.user_id
        fire = DreamPayload(title="Night", content="A fire in the hall", mood=2, lucidity=2)

        async def scenario():
            self.engine.release = asyncio.Event()
            entry, _ = await self.service.create_dream(uid, _dream("Swimming in deep water"))
            task = asyncio.create_task(self.service.request_interpretation(uid, entry.dream_id))
            await asyncio.sleep(0.01)
            try:
                with self.assertRaises(ConflictError):
                    await self.service.update_dream(uid, entry.dream_id, fire)
            finally:
                self.engine.release.set()
            await task
            interpreted = self.service.get_dream(uid, entry.dream_id)
            edited = await self.service.update_dream(uid, entry.dream_id, fire)
            return interpreted, edited

        interpreted, edited = asyncio.run(scenario())
        self.assertEqual(interpreted.content, "Swimming in deep water")
        self.assertEqual(interpreted.symbols, ["water"])
        self.assertEqual(edited.content, "A fire in the hall")
        self.assertEqual(edited.symbols, ["fire"])
        self.assertEqual(edited.interpretation.symbols[0].symbol, "fire")
        self.assertEqual(self.service.get_profile(uid).interpretations_used, 1)

    def test_profile_edit_does_not_overwrite_committed_usage(self) -> None:
        uid = self.user.user_id
        request = UpdateProfileRequest(name="Mina", surname="Park", age=28, sex="female", zodiac_sign="Pisces")

        async def scenario():
            lock = self.store.user_lock(uid)
            await lock.acquire()
            edit = asyncio.create_task(self.service.update_profile(uid, request))
            await asyncio.sleep(0.01)
            self.assertFalse(edit.done())
            # Commit a usage while the edit is waiting for the lock.
            profile = self.store.get_profile(uid)
            self.store.save_profile(self.service.gate.record_usage(profile, "dream:req"))
            lock.release()
            return await edit

        updated = asyncio.run(scenario())
        self.assertEqual(updated.name, "Mina")
        self.assertEqual(updated.age, 28)
        self.assertEqual(updated.interpretations_used, 1)
        self.assertEqual(self.service.get_profile(uid).interpretations_used, 1)

    def test_visualization_does_not_drop_committed_interpretation(self) -> None:
        uid = self.user.user_id

        async def scenario():
            entry, _ = await self.service.create_dream(uid, _dream("night at the ocean"))
            lock = self.store.user_lock(uid)
            await lock.acquire()
            task = asyncio.create_task(self.service.generate_visualization(uid, entry.dream_id, "dreamy"))
            await asyncio.sleep(0.01)
            current = self.store.get_entry(uid, entry.dream_id)
            profile = self.store.get_profile(uid)
            self.store.save_entry(current.with_interpretation(self.engine.interpret_locally(current, profile)))
            lock.release()
            await task
            return self.store.get_entry(uid, entry.dream_id)

        stored = asyncio.run(scenario())
        self.assertIsNotNone(stored.interpretation)
        self.assertIn("1001682", stored.visualization_url)


if __name__ == "__main__":
    unittest.main()
