# Supabase tables: groups, group_members, group_messages, group_message_reads
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

groups:
- id: uuid (primary key)
- name: text (not null)
- avatar_url: text (nullable) - public URL under avatars/group-images/
- created_by: uuid (foreign key to profiles.id, not null) - the admin
- created_at: timestamp (default: now())

group_members:
- id: uuid (primary key)
- group_id: uuid (foreign key to groups.id, not null)
- user_id: uuid (foreign key to profiles.id, not null)
- created_at: timestamp (default: now())
- unique constraint on (group_id, user_id)

group_messages:
- id: uuid (primary key)
- group_id: uuid (foreign key to groups.id, not null)
- from_user_id: uuid (foreign key to profiles.id, not null)
- text: text (not null)
- edited: boolean (default: false)
- edited_at: timestamp (nullable)
- created_at: timestamp (default: now())

group_message_reads:
- message_id: uuid (foreign key to group_messages.id, not null)
- user_id: uuid (foreign key to profiles.id, not null)
- read_at: timestamp (default: now())
- primary key (message_id, user_id) - accumulated by upsert

Realtime: group_messages (INSERT, UPDATE, DELETE) and group_message_reads (INSERT)
"""
