from __future__ import annotations

from celery import Celery

from freelance_ledger.core.config import settings

RECEIPTS_QUEUE = "receipts"


def make_celery() -> Celery:
    app = Celery("freelance_ledger", broker=settings.redis_url, backend=settings.redis_url)
    app.conf.update(
        # dev runs without a broker: tasks execute inline in the API process
        task_always_eager=settings.environment == "dev",
        task_eager_propagates=True,
        task_track_started=True,
        task_routes={"process_receipt": {"queue": RECEIPTS_QUEUE}},
        worker_prefetch_multiplier=1,
        result_expires=3600,
        broker_connection_retry_on_startup=True,
    )
    app.autodiscover_tasks(["freelance_ledger.worker.tasks"])
    return app


celery_app = make_celery()
