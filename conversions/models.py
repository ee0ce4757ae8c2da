from django.db import models


class JobState(models.TextChoices):
    RECEIVED = "received"
    CONVERTING = "converting"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


# Legal successors per state. Terminal states have none, so any write
# against a completed/errored record is a no-op.
TRANSITIONS = {
    JobState.RECEIVED: frozenset(
        {JobState.CONVERTING, JobState.PROCESSING, JobState.COMPLETED, JobState.ERROR}
    ),
    JobState.CONVERTING: frozenset({JobState.COMPLETED, JobState.ERROR}),
    JobState.PROCESSING: frozenset({JobState.COMPLETED, JobState.ERROR}),
    JobState.COMPLETED: frozenset(),
    JobState.ERROR: frozenset(),
}

TERMINAL_STATES = frozenset({JobState.COMPLETED, JobState.ERROR})


class StatusRecord(models.Model):
    """One persisted status document per conversion job."""

    # Fields only written on the transition to COMPLETED.
    PAYLOAD_FIELDS: tuple = ()

    uuid = models.CharField(max_length=64, unique=True)   # job correlation value
    status = models.CharField(max_length=16, choices=JobState.choices, default=JobState.RECEIVED)
    error = models.TextField(blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True

    @property
    def is_terminal(self) -> bool:
        return JobState(self.status) in TERMINAL_STATES

    def __str__(self):
        return f"{self.__class__.__name__}({self.uuid}, {self.status})"


class GifStatus(StatusRecord):
    """notation -> GIF -> MP4 job. The produced blob is the only output."""

    user_id = models.CharField(max_length=128, blank=True, default="")


class PgnStatus(StatusRecord):
    """Uploaded video -> extracted notation job."""

    PAYLOAD_FIELDS = ("pgn_content", "timestamps")

    user_id = models.CharField(max_length=128, blank=True, default="")
    pgn_content = models.TextField(blank=True, default="")
    timestamps = models.JSONField(default=list, blank=True)


class Video(StatusRecord):
    """Uploaded video -> transcoded, app-playable video."""

    PAYLOAD_FIELDS = ("video_url", "thumbnail_url")

    uploader_id = models.CharField(max_length=128)
    video_url = models.CharField(max_length=512, blank=True, default="")
    thumbnail_url = models.CharField(max_length=512, blank=True, default="")
