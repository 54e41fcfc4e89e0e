"""Celery application for background invoice validation.

Run: celery -A procurement.workers.celery_app worker -Q validation,celery
"""
from celery import Celery

from procurement.core.config import settings
from procurement.core.logging import setup_logging

setup_logging()

celery_app = Celery(
    "procurement_worker",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=[
        "procurement.workers.validation_tasks",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    broker_connection_retry_on_startup=True,
    task_routes={"tasks.validate_invoice": {"queue": "validation"}},
    task_time_limit=120,
    task_soft_time_limit=90,
    result_expires=24 * 3600,
)
