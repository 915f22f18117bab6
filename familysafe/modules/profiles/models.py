# Supabase table: profiles
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

profiles:
- id: uuid (primary key, references auth.users.id)
- name: text (not null)
- role: text (not null) - values: parent, child
- phone: text (nullable)
- email: text (nullable) - copied from auth.users at registration
- avatar_url: text (nullable) - public URL in the avatars bucket
- created_at: timestamp (default: now())

Storage bucket: avatars (public)
- <user_id>-<random>.<ext>                user avatars
- group-images/<group_id>-<random>.<ext>  group images
"""
