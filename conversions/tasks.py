from __future__ import annotations

import structlog
from botocore.exceptions import ClientError
from celery import shared_task

from .router import StorageEvent
from .s3 import BlobStore
from .stages import Services, process_event

logger = structlog.get_logger(__name__)

MISSING_OBJECT_CODES = {"404", "NoSuchKey", "NotFound"}


@shared_task(bind=True)
def handle_object_finalized(self, bucket: str, key: str, content_type: str | None = None,
                            metadata: dict | None = None):
    """
    One storage finalize notification -> at most one pipeline stage.

    Content type and user metadata are re-read from the object itself when
    the notification did not carry them.
    """
    services = Services.from_settings()
    if bucket and bucket != services.storage.bucket:
        services.storage = BlobStore(client=services.storage.client, bucket=bucket)

    if content_type is None or metadata is None:
        try:
            head_type, head_meta = services.storage.head(key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") not in MISSING_OBJECT_CODES:
                raise
            logger.info("object_gone_before_head", task_id=self.request.id, bucket=bucket, key=key)
            return {"stage": None, "job_id": None, "status": "skipped", "output_key": None}
        content_type = content_type if content_type is not None else head_type
        metadata = metadata if metadata is not None else head_meta

    event = StorageEvent(key=key, content_type=content_type or "", metadata=metadata or {}, bucket=bucket)
    outcome = process_event(event, services)
    logger.info("object_finalized_handled", task_id=self.request.id, key=key, status=outcome.status)
    return {
        "stage": outcome.stage,
        "job_id": outcome.job_id,
        "status": outcome.status,
        "output_key": outcome.output_key,
    }
