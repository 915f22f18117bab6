# Supabase table: schedules
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

schedules:
- id: uuid (primary key)
- member_id: uuid (foreign key to members.id, not null)
- date: date (not null) - readers only ask for today
- time: text (not null) - "HH:MM"
- title: text (not null)
- type: text (default: 'other') - values: school, lesson, play, arrival, other
- location: text (nullable)
- completed: boolean (default: false)
- created_at: timestamp (default: now())
"""
