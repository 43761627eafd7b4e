from celery import Celery

from app.config import settings

celery_app = Celery(
    "assessment_docs",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["app.tasks.events", "app.tasks.integrity"],
)
celery_app.conf.update(
    task_always_eager=settings.celery_task_always_eager,
    task_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    beat_schedule={
        "check-chain-integrity": {
            "task": "app.tasks.integrity.check_chain_integrity",
            "schedule": float(settings.integrity_sweep_interval_seconds),
        },
    },
)
