"""Celery worker, tasks and beat schedules."""
