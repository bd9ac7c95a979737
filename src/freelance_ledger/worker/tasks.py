from __future__ import annotations

# Ensure all models are registered before any task runs
# isort: off
import freelance_ledger.models  # noqa: F401
# isort: on

from freelance_ledger.core.logging import get_logger, task_logging
from freelance_ledger.worker.celery_app import celery_app

logger = get_logger(__name__)


@celery_app.task(name="process_receipt", bind=True, acks_late=True, max_retries=0)
def process_receipt_task(self, receipt_id: str) -> None:
    """
    Parse one uploaded receipt.

    Retries are tracked on the receipt row itself, so the task never asks
    Celery to retry. A crash mid-parse leaves the row in `processing`, which
    the next delivery reclaims once it is stale.
    """
    from freelance_ledger.modules.extraction.service import process_receipt

    with task_logging(
        logger,
        task_name="process_receipt",
        task_id=getattr(self.request, "id", None),
        receipt_id=receipt_id,
    ):
        process_receipt(receipt_id=receipt_id)
