# backend/posted/core/celery_app.py
from celery import Celery

from posted.core.config import settings

celery_app = Celery(
    "posted_tasks",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

celery_app.conf.update(
    # Basic settings
    imports=(
        'posted.background.tasks',
    ),
    task_track_started=True,
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,

    # Email tasks are I/O bound and short
    worker_pool='threads',
    worker_concurrency=4,

    # Reliability settings
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    result_expires=3600,
    task_soft_time_limit=60,
    task_time_limit=120,

    # Connection settings
    broker_connection_retry_on_startup=True,
    broker_connection_retry=True,
)
