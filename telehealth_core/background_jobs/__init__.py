"""Background jobs: Celery tasks that drive the scheduled lifecycle sweeps."""
