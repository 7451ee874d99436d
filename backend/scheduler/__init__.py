"""Trigger scheduling and dispatch.

Triggers are stored with a precomputed `next_fire_at`. An external tick
(`manage.py dispatch_triggers` or `POST /api/triggers/dispatch/`) calls
`scheduler.dispatcher.dispatch_due_triggers`, which fires every due trigger
into the job queue and advances its schedule.
"""
