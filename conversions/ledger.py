"""
Status ledger: the persisted, pollable record of every conversion job.

All writes go through :meth:`StatusLedger.transition`, an idempotent
"advance-if-behind" update. The stored row is re-read under a row lock and
the new state is applied only when it is a legal successor of the stored
one, so a retried or duplicated trigger can never regress a job or
overwrite the payload of a completed record.
"""

from __future__ import annotations

import structlog
from django.db import IntegrityError, transaction

from .errors import ConflictError, NotFoundError
from .models import TRANSITIONS, JobState, StatusRecord

logger = structlog.get_logger(__name__)

ERROR_MAX_CHARS = 4000
ERROR_HEAD_CHARS = 200


def can_transition(current: str, new: str) -> bool:
    return JobState(new) in TRANSITIONS[JobState(current)]


def clip_error(message: str) -> str:
    """Fit a diagnostic into the error column, keeping its start and its end."""
    if len(message) <= ERROR_MAX_CHARS:
        return message
    marker = " ... "
    tail = ERROR_MAX_CHARS - ERROR_HEAD_CHARS - len(marker)
    return message[:ERROR_HEAD_CHARS] + marker + message[-tail:]


class StatusLedger:
    def __init__(self, model: type[StatusRecord]):
        self.model = model

    @property
    def kind(self) -> str:
        return self.model.__name__

    def find(self, job_id: str) -> StatusRecord | None:
        return self.model.objects.filter(uuid=job_id).first()

    def get(self, job_id: str) -> StatusRecord:
        record = self.find(job_id)
        if record is None:
            raise NotFoundError(f"{self.kind} {job_id} not found")
        return record

    def register(self, job_id: str, **fields) -> StatusRecord:
        """Pre-create a job record in RECEIVED; an existing ``job_id`` is a conflict."""
        try:
            with transaction.atomic():
                if self.model.objects.select_for_update().filter(uuid=job_id).exists():
                    raise ConflictError(f"{self.kind} {job_id} already exists")
                record = self.model.objects.create(uuid=job_id, status=JobState.RECEIVED, **fields)
        except IntegrityError as exc:
            # lost a race with a concurrent register() of the same uuid
            raise ConflictError(f"{self.kind} {job_id} already exists") from exc

        logger.info("job_registered", kind=self.kind, job_id=job_id)
        return record

    def transition(self, record: StatusRecord, new_state: str, **fields) -> bool:
        """
        Advance ``record`` to ``new_state``.

        Returns True when the write was applied, False when the stored state
        was already at or past ``new_state`` (no fields are touched then).
        ``fields`` may only name payload fields, and they are persisted only on
        the COMPLETED transition. ``error`` is persisted only on ERROR.
        """
        new_state = JobState(new_state)
        error = fields.pop("error", "")
        unknown = set(fields) - set(self.model.PAYLOAD_FIELDS)
        if unknown:
            raise ValueError(f"{self.kind} has no payload fields {sorted(unknown)}")

        with transaction.atomic():
            locked = self.model.objects.select_for_update().get(pk=record.pk)
            if not can_transition(locked.status, new_state):
                logger.info(
                    "job_transition_skipped",
                    kind=self.kind,
                    job_id=locked.uuid,
                    current=locked.status,
                    requested=new_state.value,
                )
                record.refresh_from_db()
                return False

            update_fields = ["status", "updated_at"]
            locked.status = new_state
            if new_state == JobState.COMPLETED:
                for name, value in fields.items():
                    setattr(locked, name, value)
                    update_fields.append(name)
            elif new_state == JobState.ERROR:
                locked.error = clip_error(error or "unknown error")
                update_fields.append("error")
            locked.save(update_fields=update_fields)

        logger.info("job_transition", kind=self.kind, job_id=locked.uuid, status=new_state.value)
        record.refresh_from_db()
        return True

    def fail(self, record: StatusRecord | None, message: str) -> bool:
        """Best-effort ERROR transition; never raises so the primary error survives."""
        if record is None:
            return False
        try:
            return self.transition(record, JobState.ERROR, error=message)
        except Exception:
            logger.exception("job_error_transition_failed", kind=self.kind, job_id=record.uuid)
            return False
