# Supabase table: user_presence
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

user_presence:
- user_id: uuid (primary key, references profiles.id)
- status: text (not null) - values: online, offline
- last_seen: timestamp (not null)

Realtime: enabled (group chat screens watch their members' rows)

The stored status is only a hint. Readers decide liveness from last_seen:
a row older than the staleness window (30s by default) is offline no
matter what status says.
"""
