# backend/posted/worker.py

"""
Celery worker entry point.
This module is specifically designed to be used by the Celery worker command:

    celery -A posted.worker worker --loglevel=info

It ensures that the app is configured and all task modules are imported
so that the @task decorators are registered.
"""

from posted.core.celery_app import celery_app

import posted.background.tasks
