# Supabase table: task_completions
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

task_completions:
- id: uuid (primary key, default: gen_random_uuid())
- task_id: uuid (foreign key to tasks.id, on delete cascade, not null)
- completed_date: timestamptz (not null) - UTC midnight of the local calendar day
- completed: boolean (not null, default: true)
- created_at: timestamptz (default: now()) - reset whenever the record is rewritten

There is no unique constraint on (task_id, completed_date); the service
reads before it writes so each pair normally has a single row.
"""
