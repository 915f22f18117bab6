import unittest
from datetime import timedelta

from familysafe.core.errors import NotFoundError, PermissionDeniedError, ValidationError
from familysafe.core.timeutil import utcnow
from familysafe.modules.groups.schemas import GroupCreate, GroupMessageResponse
from familysafe.modules.groups.service import GroupService
from fakes import FakeSupabase, add_profile


class GroupMessageResponseTest(unittest.TestCase):
    def test_read_count_counts_distinct_non_authors(self):
        message = GroupMessageResponse(
            id="m1", group_id="g1", from_user_id="a", text="hi", read_by=["a", "b", "b", "c"],
        )
        self.assertEqual(message.read_count, 2)
        self.assertEqual(message.model_dump()["read_count"], 2)


class GroupServiceTest(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.supabase = FakeSupabase()
        self.service = GroupService(self.supabase)
        self.mom = add_profile(self.supabase, "Mom")
        self.taro = add_profile(self.supabase, "Taro", role="child")
        self.dad = add_profile(self.supabase, "Dad")
        self.group = await self.service.create_group(
            GroupCreate(name=" Family ", member_ids=[self.taro["id"], self.dad["id"], self.mom["id"]]),
            self.mom["id"],
        )

    async def test_create_group(self):
        self.assertEqual(self.group.name, "Family")
        self.assertEqual(self.group.created_by, self.mom["id"])
        self.assertEqual(
            sorted(await self.service.member_ids(self.group.id)),
            sorted([self.mom["id"], self.taro["id"], self.dad["id"]]),
        )

    async def test_create_group_validation(self):
        with self.assertRaises(ValidationError):
            await self.service.create_group(GroupCreate(name=" ", member_ids=[self.taro["id"]]), self.mom["id"])
        with self.assertRaises(ValidationError):
            await self.service.create_group(GroupCreate(name="Solo", member_ids=[self.mom["id"]]), self.mom["id"])

    async def test_list_groups_with_counts(self):
        second = await self.service.create_group(GroupCreate(name="Parents", member_ids=[self.dad["id"]]), self.mom["id"])
        groups = await self.service.list_groups(self.mom["id"])

        self.assertEqual([(g.id, g.member_count) for g in groups], [(second.id, 2), (self.group.id, 3)])
        self.assertEqual([g.name for g in await self.service.list_groups(self.taro["id"])], ["Family"])
        self.assertEqual(await self.service.list_groups("stranger"), [])

    async def test_list_members_with_presence(self):
        now = utcnow()
        self.supabase.seed(
            "user_presence",
            {"user_id": self.taro["id"], "status": "offline", "last_seen": now.isoformat()},
            {"user_id": self.dad["id"], "status": "online", "last_seen": (now - timedelta(minutes=5)).isoformat()},
        )
        members = {m.name: m for m in await self.service.list_members(self.group.id)}

        self.assertTrue(members["Mom"].is_admin)
        self.assertFalse(members["Taro"].is_admin)
        self.assertEqual(members["Taro"].status, "online")
        self.assertEqual(members["Dad"].status, "offline")
        self.assertEqual(members["Mom"].status, "offline")

    async def test_admin_only_operations(self):
        with self.assertRaises(PermissionDeniedError):
            await self.service.transfer_admin(self.group.id, self.dad["id"], self.dad["id"])
        with self.assertRaises(PermissionDeniedError):
            await self.service.delete_group(self.group.id, self.taro["id"])

    async def test_transfer_admin(self):
        with self.assertRaises(ValidationError):
            await self.service.transfer_admin(self.group.id, self.mom["id"], "stranger")
        updated = await self.service.transfer_admin(self.group.id, self.mom["id"], self.dad["id"])
        self.assertEqual(updated.created_by, self.dad["id"])
        with self.assertRaises(PermissionDeniedError):
            await self.service.require_admin(self.group.id, self.mom["id"])

    async def test_delete_group_removes_everything(self):
        message = await self.service.send_message(self.group.id, self.taro["id"], "hi")
        await self.service.mark_read(self.mom["id"], [message.id])

        self.assertTrue(await self.service.delete_group(self.group.id, self.mom["id"]))
        self.assertEqual(self.supabase.find("group_messages", group_id=self.group.id), [])
        self.assertEqual(self.supabase.find("group_members", group_id=self.group.id), [])
        with self.assertRaises(NotFoundError):
            await self.service.get_group(self.group.id)

    async def test_leave(self):
        self.assertTrue(await self.service.leave(self.group.id, self.taro["id"]))
        self.assertFalse(await self.service.is_member(self.group.id, self.taro["id"]))
        with self.assertRaises(PermissionDeniedError):
            await self.service.require_member(self.group.id, self.taro["id"])

    async def test_messages_and_reads(self):
        first = await self.service.send_message(self.group.id, self.taro["id"], "hi")
        second = await self.service.send_message(self.group.id, self.mom["id"], "hello")

        self.assertEqual(await self.service.mark_read(self.mom["id"], [first.id, first.id]), 1)
        await self.service.mark_read(self.mom["id"], [first.id])
        await self.service.mark_read(self.dad["id"], [first.id, second.id])
        await self.service.mark_read(self.taro["id"], [first.id])

        self.assertEqual(len(self.supabase.find("group_message_reads", message_id=first.id)), 3)
        messages = await self.service.list_messages(self.group.id)
        self.assertEqual([m.text for m in messages], ["hi", "hello"])
        self.assertEqual(messages[0].user_name, "Taro")
        self.assertEqual(messages[0].read_count, 2)
        self.assertEqual(messages[1].read_count, 1)

    async def test_blank_message_rejected(self):
        with self.assertRaises(ValidationError):
            await self.service.send_message(self.group.id, self.mom["id"], " \n ")

    async def test_only_sender_edits_or_deletes(self):
        message = await self.service.send_message(self.group.id, self.taro["id"], "helo")
        with self.assertRaises(PermissionDeniedError):
            await self.service.edit_message(self.mom["id"], message.id, "changed")
        with self.assertRaises(PermissionDeniedError):
            await self.service.delete_message(self.mom["id"], message.id)

        edited = await self.service.edit_message(self.taro["id"], message.id, "hello")
        self.assertTrue(edited.edited)
        self.assertIsNotNone(edited.edited_at)
        self.assertTrue(await self.service.delete_message(self.taro["id"], message.id))

    async def test_upload_image_requires_membership(self):
        with self.assertRaises(PermissionDeniedError):
            await self.service.upload_image(self.group.id, "stranger", "a.png", b"png", "image/png")
        group = await self.service.upload_image(self.group.id, self.taro["id"], "a.png", b"png", "image/png")
        self.assertTrue(group.avatar_url.startswith("https://fake.supabase.co/storage/v1/object/public/"))
