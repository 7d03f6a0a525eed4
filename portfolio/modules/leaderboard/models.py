# Leaderboard scores live in a JSON file (or process memory), not in Postgres.
# This file documents the stored record shape.
# Actual reads and writes are handled by storage.py and service.py

"""
Stored score record (JSON array, sorted by score descending, at most
leaderboard_buffer entries):

- id: text (uuid4 hex)
- name: text (trimmed, at most max_name_length characters)
- score: integer (>= 1)
- date: text (ISO-8601 UTC timestamp of submission)

The rank is not stored; it is the 1-based position in the sorted array and
is added on the way out.
"""
