from celery import Celery
from celery.signals import after_setup_logger
import logging

from app.config import get_settings

settings = get_settings()

celery_app = Celery(
    "event_assistant",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["app.workers.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=900,  # 15 minutes max per crawl
    task_soft_time_limit=840,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_routes={
        "app.workers.tasks.crawl_event": {"queue": "crawl"},
    },
)


@after_setup_logger.connect
def _configure_log_level(logger, *args, **kwargs):
    logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
