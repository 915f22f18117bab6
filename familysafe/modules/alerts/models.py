# Supabase tables: alerts
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

alerts:
- id: uuid (primary key)
- member_id: uuid (foreign key to members.id, not null)
- type: text (not null) - values: sos, lost, arrival, battery, other
- message: text (not null)
- read: boolean (default: false)
- created_at: timestamp (default: now())

Append-only apart from the read flag; linked parents may delete rows.
Realtime: INSERT enabled. Row-level security is not relied on for scoping,
every subscriber filters by its own authorized member ids.
"""
