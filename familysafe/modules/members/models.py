# Supabase tables: members, location_history, destinations
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

members:
- id: uuid (primary key)
- user_id: uuid (foreign key to profiles.id, not null) - the child
- name: text (nullable) - fallback when the profile has no name
- status: text (default: 'safe') - values: safe, warning, danger
- latitude: double precision (nullable)
- longitude: double precision (nullable)
- address: text (nullable) - human readable label of the last fix
- battery: integer (nullable) - 0..100
- gps_enabled: boolean (default: false) - parents flip it, the child's client follows it
- last_update: timestamp (nullable)

Realtime: enabled (child watches gps_enabled, parents watch location/battery)

location_history:
- id: uuid (primary key)
- member_id: uuid (foreign key to members.id, not null)
- latitude: double precision (not null)
- longitude: double precision (not null)
- address: text (nullable)
- created_at: timestamp (default: now())

Append-only; readers take the 50 newest rows.

destinations:
- id: uuid (primary key)
- member_id: uuid (foreign key to members.id, not null)
- name: text (not null)
- latitude: double precision (not null)
- longitude: double precision (not null)
- category: text (nullable)
- is_active: boolean (default: true) - at most one active row per member
- created_at: timestamp (default: now())
"""
