import asyncio
import unittest
from datetime import timedelta

from familysafe.core.timeutil import utcnow
from familysafe.database.realtime import ChangeEvent
from familysafe.modules.presence.service import OFFLINE, ONLINE, PresenceService, effective_status
from familysafe.session.presence import PresenceBoard, PresenceTracker
from fakes import FakeSupabase


class EffectiveStatusTest(unittest.TestCase):
    def test_staleness_window(self):
        now = utcnow()
        for age, expected in ((0, ONLINE), (29.9, ONLINE), (30, OFFLINE), (40, OFFLINE)):
            with self.subTest(age=age):
                self.assertEqual(effective_status(now - timedelta(seconds=age), now), expected)

    def test_missing_last_seen_is_offline(self):
        self.assertEqual(effective_status(None), OFFLINE)

    def test_custom_window(self):
        now = utcnow()
        self.assertEqual(effective_status(now - timedelta(seconds=10), now, stale_after_sec=5), OFFLINE)


class PresenceServiceTest(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.supabase = FakeSupabase()
        self.service = PresenceService(self.supabase)

    async def test_set_status_keeps_one_row_per_user(self):
        await self.service.set_status("u1", ONLINE)
        await self.service.set_status("u1", OFFLINE)
        rows = self.supabase.find("user_presence", user_id="u1")
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]["status"], OFFLINE)

    async def test_stored_status_is_ignored(self):
        now = utcnow()
        self.supabase.seed(
            "user_presence",
            {"user_id": "stale", "status": "online", "last_seen": (now - timedelta(seconds=45)).isoformat()},
            {"user_id": "fresh", "status": "offline", "last_seen": (now - timedelta(seconds=3)).isoformat()},
        )
        statuses = await self.service.get_statuses(["stale", "fresh", "unknown"], now=now)
        self.assertEqual(statuses["stale"].status, OFFLINE)
        self.assertEqual(statuses["fresh"].status, ONLINE)
        self.assertNotIn("unknown", statuses)


class PresenceTrackerTest(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.supabase = FakeSupabase()
        self.tracker = PresenceTracker(PresenceService(self.supabase), "u1", interval_sec=0.01)

    def status(self):
        return self.supabase.find("user_presence", user_id="u1")[0]["status"]

    def upserts(self):
        return self.supabase.calls.count(("user_presence", "upsert"))

    async def asyncTearDown(self):
        await self.tracker.stop()

    async def test_start_pushes_online_and_heartbeats(self):
        await self.tracker.start()
        self.assertEqual(self.status(), ONLINE)
        self.assertTrue(self.tracker.running)
        await asyncio.sleep(0.05)
        self.assertGreater(self.upserts(), 1)

    async def test_hidden_pauses_heartbeat(self):
        await self.tracker.start()
        await self.tracker.set_visible(False)
        self.assertEqual(self.status(), OFFLINE)
        count = self.upserts()
        await asyncio.sleep(0.05)
        self.assertEqual(self.upserts(), count)
        self.assertEqual(self.status(), OFFLINE)

        await self.tracker.set_visible(True)
        self.assertEqual(self.status(), ONLINE)

    async def test_failures_do_not_end_the_loop(self):
        await self.tracker.start()
        self.supabase.fail("user_presence", "upsert", times=2)
        await asyncio.sleep(0.08)
        self.assertTrue(self.tracker.running)
        self.assertGreater(self.upserts(), 3)
        self.assertEqual(self.status(), ONLINE)

    async def test_stop_pushes_offline(self):
        await self.tracker.start()
        await self.tracker.stop()
        self.assertFalse(self.tracker.running)
        self.assertEqual(self.status(), OFFLINE)

    async def test_push_failure_returns_false(self):
        self.supabase.fail("user_presence", "upsert")
        self.assertFalse(await self.tracker.push(ONLINE))

    async def test_beacon(self):
        await self.tracker.start()
        await self.tracker.beacon()
        self.assertEqual(self.status(), OFFLINE)


class PresenceBoardTest(unittest.IsolatedAsyncioTestCase):
    async def test_load_apply_and_status(self):
        supabase = FakeSupabase()
        now = utcnow()
        supabase.seed("user_presence", {"user_id": "a", "status": "online", "last_seen": now.isoformat()})
        board = PresenceBoard(PresenceService(supabase))
        await board.load(["a", "b"])

        self.assertEqual(board.statuses(now), {"a": ONLINE, "b": OFFLINE})
        self.assertEqual(board.status_of("a", now + timedelta(seconds=31)), OFFLINE)

        board.handle_change(ChangeEvent("UPDATE", "user_presence", new={
            "user_id": "b", "status": "offline", "last_seen": now.isoformat(),
        }))
        self.assertEqual(board.status_of("b", now), ONLINE)
        self.assertFalse(board.apply({"user_id": "stranger", "status": "online", "last_seen": now.isoformat()}))

        [binding] = board.bindings()
        self.assertEqual(binding.filter, "user_id=in.(a,b)")

    async def test_load_failure_leaves_everyone_offline(self):
        supabase = FakeSupabase()
        supabase.fail("user_presence", "select")
        board = PresenceBoard(PresenceService(supabase))
        await board.load(["a"])
        self.assertEqual(board.statuses(), {"a": OFFLINE})
