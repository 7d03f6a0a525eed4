# Supabase tables: task_groups, tasks
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py
# DDL lives in migrations/0001_daily_tracker.sql

"""
Expected Supabase table structure:

task_groups:
- id: uuid (primary key, default: gen_random_uuid())
- name: text (not null)
- color: text (not null)
- duration: integer (not null) - number of days the group runs for
- start_date: timestamptz (not null) - UTC midnight of the local calendar start day
- created_at: timestamptz (default: now())
- updated_at: timestamptz (default: now())

tasks:
- id: uuid (primary key, default: gen_random_uuid())
- group_id: uuid (foreign key to task_groups.id, on delete cascade, not null)
- text: text (not null)
- type: text (not null, default: 'task')
- completed: boolean (not null, default: false)
- created_at: timestamptz (default: now())
- updated_at: timestamptz (default: now())
"""
