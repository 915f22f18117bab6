import unittest

from familysafe.core.errors import TransientNetworkError
from familysafe.core.timeutil import today_iso
from familysafe.modules.profiles.schemas import ProfileResponse
from familysafe.modules.roster.service import RosterLoader
from fakes import FakeSupabase, add_child, add_member, add_profile


class RosterLoaderTest(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.supabase = FakeSupabase()
        self.loader = RosterLoader(self.supabase)
        self.mom = ProfileResponse(**add_profile(self.supabase, "Mom"))

    def seed_details(self, member):
        self.supabase.seed(
            "schedules",
            {"member_id": member["id"], "title": "School", "time": "08:00", "date": today_iso(), "completed": False},
        )
        self.supabase.seed(
            "destinations",
            {"member_id": member["id"], "name": "School", "latitude": 35.0, "longitude": 139.0, "is_active": True},
        )
        self.supabase.seed(
            "location_history",
            {"member_id": member["id"], "latitude": 35.0, "longitude": 139.0, "address": "Lat: 35.0000, Lng: 139.0000"},
        )

    async def test_parent_roster_with_details(self):
        _, taro = add_child(self.supabase, self.mom.id, "Taro", battery=55)
        _, hana = add_child(self.supabase, self.mom.id, "Hana")
        self.seed_details(taro)

        views = {v.name: v for v in await self.loader.load(self.mom)}

        self.assertEqual(set(views), {"Taro", "Hana"})
        self.assertEqual(views["Taro"].battery, 55)
        self.assertEqual([s.title for s in views["Taro"].schedule], ["School"])
        self.assertEqual(views["Taro"].destination.name, "School")
        self.assertEqual(len(views["Taro"].location_history), 1)
        self.assertEqual(views["Hana"].schedule, [])
        self.assertIsNone(views["Hana"].destination)

    async def test_parent_without_children(self):
        self.assertEqual(await self.loader.load(self.mom), [])

    async def test_roster_failure_degrades_to_empty(self):
        add_child(self.supabase, self.mom.id, "Taro")
        self.supabase.fail("members", "select")
        self.assertEqual(await self.loader.load(self.mom), [])

    async def test_detail_failure_leaves_that_detail_empty(self):
        _, taro = add_child(self.supabase, self.mom.id, "Taro")
        self.seed_details(taro)
        self.supabase.fail("schedules", "select")

        [view] = await self.loader.load(self.mom)

        self.assertEqual(view.schedule, [])
        self.assertEqual(view.destination.name, "School")
        self.assertEqual(len(view.location_history), 1)

    async def test_child_sees_own_row(self):
        child = ProfileResponse(**add_profile(self.supabase, "Taro", role="child", phone="090"))
        add_member(self.supabase, child.id, "Taro")

        [view] = await self.loader.load(child)
        self.assertEqual(view.user_id, child.id)
        self.assertEqual(view.phone, "090")

    async def test_child_row_created_on_first_login(self):
        child = ProfileResponse(**add_profile(self.supabase, "Taro", role="child"))

        [view] = await self.loader.load(child)

        [row] = self.supabase.find("members", user_id=child.id)
        self.assertEqual(view.id, row["id"])
        self.assertEqual(view.battery, 100)

    async def test_child_row_creation_failure_propagates(self):
        child = ProfileResponse(**add_profile(self.supabase, "Taro", role="child"))
        self.supabase.fail("members", "insert")
        with self.assertRaises(TransientNetworkError):
            await self.loader.load(child)
