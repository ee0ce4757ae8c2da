"""
Pipeline stages.

Every stage runs the same shape: validate -> resolve the status record ->
open a temp scope -> fetch input -> produce output -> persist it -> mark the
record COMPLETED. Any failure inside the body is recorded on the record as
ERROR before it propagates; the temp scope is released either way.

Stages only talk to the outside world through the injected :class:`Services`
bundle, so they can be driven by synthetic events in tests.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import PurePosixPath

import structlog

from .encoder import EncoderProfile, get_profile, run_encoder
from .errors import ConflictError
from .ledger import StatusLedger
from .models import GifStatus, JobState, PgnStatus, StatusRecord, Video
from .recognition import RecognitionClient
from .render import GIF_CONTENT_TYPE, parse_game, render_gif
from .router import (
    EXTRACT_NOTATION,
    GIF_TO_VIDEO,
    META_USER_ID,
    RENDER_NOTATION,
    TRANSCODE_VIDEO,
    StageDescriptor,
    StorageEvent,
    job_id_for,
    route,
)
from .s3 import BlobStore
from .tempfiles import TempScope
from .utils import default_gif_name, swap_prefix

logger = structlog.get_logger(__name__)


@dataclass
class Services:
    storage: BlobStore
    recognizer: RecognitionClient
    profile: EncoderProfile
    gif_ledger: StatusLedger = field(default_factory=lambda: StatusLedger(GifStatus))
    pgn_ledger: StatusLedger = field(default_factory=lambda: StatusLedger(PgnStatus))
    video_ledger: StatusLedger = field(default_factory=lambda: StatusLedger(Video))

    @classmethod
    def from_settings(cls) -> "Services":
        return cls(storage=BlobStore(), recognizer=RecognitionClient(), profile=get_profile())


@dataclass
class StageOutcome:
    stage: str | None
    job_id: str | None
    status: str                     # completed | skipped | duplicate | not_found
    output_key: str | None = None


@dataclass
class NotationRequest:
    user_id: str
    pgn_content: str
    uuid: str | None = None
    file_name: str | None = None
    flipped: bool = False


@dataclass
class ConversionJob:
    """Live context of one stage invocation. Never persisted."""

    descriptor: StageDescriptor
    input_key: str
    output_key: str
    job_id: str | None = None
    record: StatusRecord | None = None
    ledger: StatusLedger | None = None
    scope: TempScope | None = None
    user_id: str | None = None

    def fail(self, message: str) -> None:
        if self.ledger is not None:
            self.ledger.fail(self.record, message)


# -----------------------------------------------------
# notation -> GIF (direct request)
# -----------------------------------------------------
def render_notation(request: NotationRequest, services: Services) -> str:
    """Render the full game to gifs/<name>.gif. Returns the object key."""
    game = parse_game(request.pgn_content)

    ledger = services.gif_ledger
    record = None
    if request.uuid:
        record = ledger.get(request.uuid)
        if record.is_terminal:
            raise ConflictError(f"GIF job {request.uuid} is already {record.status}")

    key = RENDER_NOTATION.output_key(request.file_name or default_gif_name())
    metadata = {"userId": request.user_id}
    if request.uuid:
        metadata["uuid"] = request.uuid

    try:
        gif = render_gif(game, 0, None, flipped=request.flipped)
        services.storage.put_bytes(gif, key, GIF_CONTENT_TYPE, metadata)
    except Exception as exc:
        ledger.fail(record, f"Error converting PGN to GIF: {exc}")
        raise

    logger.info("gif_uploaded", key=key, job_id=request.uuid, bytes=len(gif))
    return key


# -----------------------------------------------------
# shared encode step
# -----------------------------------------------------
def _encode_and_upload(job: ConversionJob, services: Services, metadata: dict) -> None:
    descriptor = job.descriptor
    src = job.scope.acquire("input", PurePosixPath(job.input_key).suffix)
    dst = job.scope.acquire("output", descriptor.output_extension)

    services.storage.download(job.input_key, src)
    logger.info("input_downloaded", key=job.input_key, path=str(src))

    run_encoder(src, dst, services.profile)

    services.storage.upload_file(dst, job.output_key, descriptor.output_content_type, metadata)
    logger.info("output_uploaded", key=job.output_key)


def _resolve(ledger: StatusLedger, descriptor: StageDescriptor, job_id: str) -> tuple[StatusRecord | None, StageOutcome | None]:
    """Look the job up; returns an early outcome when there is nothing to do."""
    record = ledger.find(job_id)
    if record is None:
        logger.info("job_not_found", stage=descriptor.name, job_id=job_id)
        return None, StageOutcome(descriptor.name, job_id, "not_found")
    if record.is_terminal:
        logger.info("job_already_finished", stage=descriptor.name, job_id=job_id, status=record.status)
        return record, StageOutcome(descriptor.name, job_id, "duplicate")
    return record, None


# -----------------------------------------------------
# GIF -> MP4 (gifs/ finalize)
# -----------------------------------------------------
def gif_to_video(event: StorageEvent, descriptor: StageDescriptor, services: Services) -> StageOutcome:
    job = ConversionJob(
        descriptor=descriptor,
        input_key=event.key,
        output_key=swap_prefix(event.key, descriptor.output_prefix, descriptor.output_extension),
        job_id=job_id_for(descriptor, event),
        user_id=event.meta(META_USER_ID),
    )

    # GIFs rendered without a uuid are converted untracked.
    if job.job_id:
        job.ledger = services.gif_ledger
        job.record, early = _resolve(job.ledger, descriptor, job.job_id)
        if early:
            return early
        job.ledger.transition(job.record, JobState.CONVERTING)

    with TempScope() as job.scope:
        try:
            _encode_and_upload(job, services, {"userId": job.user_id})
            if job.record is not None:
                job.ledger.transition(job.record, JobState.COMPLETED)
        except Exception as exc:
            logger.exception("gif_to_video_failed", key=event.key, job_id=job.job_id)
            job.fail(f"Error converting GIF to video: {exc}")
            raise

    return StageOutcome(descriptor.name, job.job_id, "completed", job.output_key)


# -----------------------------------------------------
# tmp/<uuid>.mp4 -> videos/<uuid>.mp4
# -----------------------------------------------------
def transcode_video(event: StorageEvent, descriptor: StageDescriptor, services: Services) -> StageOutcome:
    job_id = job_id_for(descriptor, event)
    ledger = services.video_ledger
    record, early = _resolve(ledger, descriptor, job_id)
    if early:
        return early

    job = ConversionJob(
        descriptor=descriptor,
        input_key=event.key,
        output_key=descriptor.output_key(job_id),
        job_id=job_id,
        record=record,
        ledger=ledger,
        user_id=record.uploader_id,
    )
    ledger.transition(record, JobState.CONVERTING)

    with TempScope() as job.scope:
        try:
            _encode_and_upload(job, services, {"userId": job.user_id})
            ledger.transition(
                record,
                JobState.COMPLETED,
                video_url=job.output_key,
                thumbnail_url=job.output_key,
            )
        except Exception as exc:
            logger.exception("transcode_failed", key=event.key, job_id=job_id)
            job.fail(f"Error transcoding video: {exc}")
            raise

    return StageOutcome(descriptor.name, job_id, "completed", job.output_key)


# -----------------------------------------------------
# tmp/<uuid>.mp4 (generatePgn) -> videos/<uuid>.mp4 -> recognition
# -----------------------------------------------------
def extract_notation(event: StorageEvent, descriptor: StageDescriptor, services: Services) -> StageOutcome:
    job_id = job_id_for(descriptor, event)
    ledger = services.pgn_ledger
    record, early = _resolve(ledger, descriptor, job_id)
    if early:
        return early

    job = ConversionJob(
        descriptor=descriptor,
        input_key=event.key,
        output_key=descriptor.output_key(job_id),
        job_id=job_id,
        record=record,
        ledger=ledger,
        user_id=event.meta(META_USER_ID),
    )
    ledger.transition(record, JobState.PROCESSING)

    with TempScope() as job.scope:
        try:
            _encode_and_upload(job, services, {"userId": job.user_id})
            if descriptor.handoff == "remote":
                recognize_notation(job, services)
        except Exception as exc:
            logger.exception("notation_extraction_failed", key=event.key, job_id=job_id)
            job.fail(f"Error generating PGN: {exc}")
            raise

    return StageOutcome(descriptor.name, job_id, "completed", job.output_key)


def recognize_notation(job: ConversionJob, services: Services) -> None:
    """Terminal remote stage: send the transcoded video out, store the notation."""
    result = services.recognizer.recognize(services.storage.public_url(job.output_key))
    job.ledger.transition(
        job.record,
        JobState.COMPLETED,
        pgn_content=result.pgn,
        timestamps=result.timestamps,
    )


HANDLERS = {
    GIF_TO_VIDEO.name: gif_to_video,
    TRANSCODE_VIDEO.name: transcode_video,
    EXTRACT_NOTATION.name: extract_notation,
}


def process_event(event: StorageEvent, services: Services | None = None) -> StageOutcome:
    """Route a storage finalize event and run the matching stage, if any."""
    stage = route(event)
    if stage is None:
        return StageOutcome(None, None, "skipped")

    services = services or Services.from_settings()
    with structlog.contextvars.bound_contextvars(stage=stage.name, key=event.key):
        logger.info("stage_started", handoff=stage.handoff, profile=services.profile.name if stage.uses_encoder else None)
        outcome = HANDLERS[stage.name](event, stage, services)
        logger.info("stage_finished", status=outcome.status, output_key=outcome.output_key)
    return outcome
