import unittest
import uuid

from familysafe.core.errors import ConflictError, NotFoundError, ValidationError
from familysafe.modules.family.service import FamilyGraph, FamilyService, is_valid_user_id
from fakes import FakeSupabase, add_child, add_profile, link


class UserIdTest(unittest.TestCase):
    def test_is_valid_user_id(self):
        self.assertTrue(is_valid_user_id(str(uuid.uuid4())))
        self.assertTrue(is_valid_user_id(f"  {str(uuid.uuid4()).upper()} "))
        self.assertFalse(is_valid_user_id("not-a-uuid"))
        self.assertFalse(is_valid_user_id(""))
        self.assertFalse(is_valid_user_id(None))


class FamilyServiceTest(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.supabase = FakeSupabase()
        self.service = FamilyService(self.supabase)
        self.mom = add_profile(self.supabase, "Mom")

    async def test_add_child_links_by_id(self):
        child = add_profile(self.supabase, "Taro", role="child")
        result = await self.service.add_child(self.mom["id"], f" {child['id']} ")

        self.assertEqual(result.child_id, child["id"])
        self.assertEqual(await self.service.child_ids(self.mom["id"]), [child["id"]])
        self.assertTrue(await self.service.is_parent_of(self.mom["id"], child["id"]))

    async def test_add_child_validation(self):
        dad = add_profile(self.supabase, "Dad")
        cases = [
            ("", ValidationError),
            ("12345", ValidationError),
            (self.mom["id"], ValidationError),
            (str(uuid.uuid4()), NotFoundError),
            (dad["id"], ValidationError),
        ]
        for child_id, error in cases:
            with self.subTest(child_id=child_id):
                with self.assertRaises(error):
                    await self.service.add_child(self.mom["id"], child_id)
        self.assertEqual(self.supabase.find("parent_children"), [])

    async def test_invalid_id_needs_no_network(self):
        with self.assertRaises(ValidationError):
            await self.service.add_child(self.mom["id"], "abc")
        self.assertEqual(self.supabase.calls, [])

    async def test_duplicate_link_conflicts(self):
        child, _ = add_child(self.supabase, self.mom["id"], "Taro")
        with self.assertRaises(ConflictError):
            await self.service.add_child(self.mom["id"], child["id"])
        self.assertEqual(len(self.supabase.find("parent_children")), 1)

    async def test_children_and_parents(self):
        taro, taro_member = add_child(self.supabase, self.mom["id"], "Taro")
        hana, hana_member = add_child(self.supabase, self.mom["id"], "Hana")
        dad = add_profile(self.supabase, "Dad")
        link(self.supabase, dad["id"], taro["id"])

        self.assertEqual([p.name for p in await self.service.list_children(self.mom["id"])], ["Taro", "Hana"])
        self.assertEqual({p.name for p in await self.service.list_parents(taro["id"])}, {"Mom", "Dad"})
        self.assertEqual(
            await self.service.member_ids_for_parent(self.mom["id"]),
            {taro_member["id"], hana_member["id"]},
        )
        self.assertEqual(await self.service.member_ids_for_parent(str(uuid.uuid4())), set())

        self.assertEqual([p.name for p in await self.service.available_group_members(taro["id"], "child")], ["Mom", "Dad"])
        self.assertEqual(len(await self.service.available_group_members(self.mom["id"], "parent")), 2)

    async def test_remove_child(self):
        child, _ = add_child(self.supabase, self.mom["id"], "Taro")
        self.assertTrue(await self.service.remove_child(self.mom["id"], child["id"]))
        self.assertFalse(await self.service.remove_child(self.mom["id"], child["id"]))


class FamilyGraphTest(unittest.IsolatedAsyncioTestCase):
    async def test_cache_and_invalidation(self):
        supabase = FakeSupabase()
        mom = add_profile(supabase, "Mom")
        _, member = add_child(supabase, mom["id"], "Taro")
        graph = FamilyGraph(FamilyService(supabase), mom["id"])

        self.assertTrue(await graph.is_authorized(member["id"]))
        self.assertFalse(await graph.is_authorized(None))
        self.assertFalse(await graph.is_authorized("someone-else"))
        selects = supabase.calls.count(("parent_children", "select"))
        await graph.authorized_member_ids()
        self.assertEqual(supabase.calls.count(("parent_children", "select")), selects)

        self.assertFalse(graph.on_link_change({"parent_id": "other"}, {}))
        self.assertTrue(graph.is_cached)
        self.assertTrue(graph.on_link_change({}, {"parent_id": mom["id"]}))
        self.assertFalse(graph.is_cached)

    async def test_invalidation_during_fetch_is_not_overwritten(self):
        supabase = FakeSupabase()
        mom = add_profile(supabase, "Mom")
        taro, member = add_child(supabase, mom["id"], "Taro")
        service = FamilyService(supabase)
        graph = FamilyGraph(service, mom["id"])

        async def unlink_during_fetch(rows):
            removed = await supabase.table("parent_children").delete()\
                .eq("parent_id", mom["id"]).eq("child_id", taro["id"]).execute()
            for link_row in removed.data:
                graph.on_link_change({}, link_row)

        supabase.after("members", "select", unlink_during_fetch)
        await graph.authorized_member_ids()

        self.assertFalse(graph.is_cached)
        self.assertFalse(await graph.is_authorized(member["id"]))
