# Supabase tables: parent_children
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

parent_children:
- id: uuid (primary key)
- parent_id: uuid (foreign key to profiles.id, not null)
- child_id: uuid (foreign key to profiles.id, not null)
- created_at: timestamp (default: now())
- unique constraint on (parent_id, child_id)

Realtime: enabled. A parent session invalidates its authorized member ids on
any change with its parent_id; a child session reloads its parents on any
change with its child_id.
"""
