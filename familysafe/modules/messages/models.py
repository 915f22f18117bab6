# Supabase tables: messages
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

messages:
- id: uuid (primary key)
- from_user_id: uuid (foreign key to profiles.id, not null)
- to_user_id: uuid (foreign key to profiles.id, not null)
- text: text (not null)
- read: boolean (default: false)
- edited: boolean (default: false)
- edited_at: timestamp (nullable)
- created_at: timestamp (default: now())

Only the sender may edit or delete a row.
Realtime: INSERT, UPDATE and DELETE enabled. Clients subscribe twice for
inserts (to_user_id = me, from_user_id = me) and dedupe by id.
"""
