"""
Storage event routing.

A bucket receives plenty of writes that are not ours (including the outputs of
our own stages), so "no stage" is the common answer and never an error.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import PurePosixPath

import structlog

from .utils import is_truthy

logger = structlog.get_logger(__name__)

# S3 hands user metadata back with lower-cased keys.
META_USER_ID = "userid"
META_UUID = "uuid"
META_GENERATE_PGN = "generatepgn"


@dataclass(frozen=True)
class StorageEvent:
    key: str
    content_type: str = ""
    metadata: dict = field(default_factory=dict)
    bucket: str = ""

    def __post_init__(self):
        normalized = {str(k).lower(): v for k, v in (self.metadata or {}).items()}
        object.__setattr__(self, "metadata", normalized)

    @property
    def filename(self) -> str:
        return PurePosixPath(self.key).name

    def meta(self, name: str, default=None):
        value = self.metadata.get(name.lower())
        return default if value in (None, "") else value


@dataclass(frozen=True)
class StageDescriptor:
    name: str
    trigger: str                          # "request" | "storage"
    prefix: str = ""
    content_type: str = ""
    required_metadata: tuple[str, ...] = ()
    generate_pgn: bool | None = None      # None -> flag not consulted
    output_prefix: str = ""
    output_extension: str = ""
    output_content_type: str = ""
    uses_encoder: bool = False
    handoff: str = "storage"              # "storage" | "remote"
    job_id_from: str = "metadata"         # "metadata" (optional) | "filename" (required)

    def matches(self, event: StorageEvent) -> bool:
        if self.trigger != "storage":
            return False
        if not event.key.startswith(self.prefix):
            return False
        if not (event.content_type or "").startswith(self.content_type):
            return False
        if self.generate_pgn is not None:
            return is_truthy(event.meta(META_GENERATE_PGN, False)) == self.generate_pgn
        return True

    def output_key(self, name: str) -> str:
        return f"{self.output_prefix}{name}{self.output_extension}"


RENDER_NOTATION = StageDescriptor(
    name="render_notation",
    trigger="request",
    output_prefix="gifs/",
    output_extension=".gif",
    output_content_type="image/gif",
)

GIF_TO_VIDEO = StageDescriptor(
    name="gif_to_video",
    trigger="storage",
    prefix="gifs/",
    content_type="image/gif",
    required_metadata=(META_USER_ID,),
    output_prefix="videos/",
    output_extension=".mp4",
    output_content_type="video/mp4",
    uses_encoder=True,
)

TRANSCODE_VIDEO = StageDescriptor(
    name="transcode_video",
    trigger="storage",
    prefix="tmp/",
    content_type="video/mp4",
    generate_pgn=False,
    output_prefix="videos/",
    output_extension=".mp4",
    output_content_type="video/mp4",
    uses_encoder=True,
    job_id_from="filename",
)

EXTRACT_NOTATION = StageDescriptor(
    name="extract_notation",
    trigger="storage",
    prefix="tmp/",
    content_type="video/mp4",
    required_metadata=(META_USER_ID,),
    generate_pgn=True,
    output_prefix="videos/",
    output_extension=".mp4",
    output_content_type="video/mp4",
    uses_encoder=True,
    handoff="remote",
    job_id_from="filename",
)

STAGES = (RENDER_NOTATION, GIF_TO_VIDEO, TRANSCODE_VIDEO, EXTRACT_NOTATION)


def job_id_for(descriptor: StageDescriptor, event: StorageEvent) -> str | None:
    """
    Correlation value of the event's job.

    Video stages name the staged upload after the job (``tmp/<uuid>.mp4``);
    the GIF stage takes it from metadata when the render request carried one.
    """
    if descriptor.job_id_from == "filename":
        name = event.filename
        if not name.endswith(descriptor.output_extension):
            return None
        return name[: -len(descriptor.output_extension)] or None
    return event.meta(META_UUID)


def route(event: StorageEvent) -> StageDescriptor | None:
    matched = [stage for stage in STAGES if stage.matches(event)]
    if not matched:
        logger.debug("event_unrouted", key=event.key, content_type=event.content_type)
        return None
    if len(matched) > 1:
        logger.error("event_ambiguous", key=event.key, stages=[s.name for s in matched])
        return None

    stage = matched[0]
    missing = [name for name in stage.required_metadata if event.meta(name) is None]
    if missing:
        logger.info("event_dropped_missing_metadata", key=event.key, stage=stage.name, missing=missing)
        return None
    if stage.job_id_from == "filename" and job_id_for(stage, event) is None:
        logger.info("event_dropped_no_job_id", key=event.key, stage=stage.name)
        return None
    return stage
