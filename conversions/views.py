from urllib.parse import unquote_plus

import structlog
from rest_framework import status, views
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

from .errors import NotFoundError, PipelineError, ValidationError
from .ledger import StatusLedger
from .models import GifStatus, JobState, PgnStatus, Video
from .router import META_GENERATE_PGN, META_USER_ID
from .serializers import (
    GifStatusSerializer,
    PgnStatusSerializer,
    PgnToGifRequestSerializer,
    RegisterJobSerializer,
    StorageEventSerializer,
    VideoSerializer,
)
from .stages import NotationRequest, Services, render_notation
from .tasks import handle_object_finalized

logger = structlog.get_logger(__name__)

JOB_KINDS = {
    "gif": (GifStatus, GifStatusSerializer),
    "pgn": (PgnStatus, PgnStatusSerializer),
    "video": (Video, VideoSerializer),
}

# DRF's own exceptions (serializer validation, unsupported media type, ...)
# are folded into the same envelope as PipelineError.
STATUS_CODES = {
    400: "invalid-argument",
    404: "not-found",
    405: "invalid-argument",
    409: "already-exists",
    415: "invalid-argument",
}


def _error(code: str, message: str, http_status: int, details=None) -> Response:
    body = {"code": code, "message": message}
    if details is not None:
        body["details"] = details
    return Response({"error": body}, status=http_status)


def pipeline_exception_handler(exc, context):
    if isinstance(exc, PipelineError):
        if exc.http_status >= 500:
            logger.error("request_failed", code=exc.code, error=str(exc))
        return _error(exc.code, exc.message, exc.http_status)

    response = drf_exception_handler(exc, context)
    if response is not None:
        code = STATUS_CODES.get(response.status_code, "internal")
        return _error(code, "Request could not be processed.", response.status_code, response.data)

    logger.exception("request_unhandled_error", view=context.get("view").__class__.__name__)
    return _error("internal", "An internal error occurred.", status.HTTP_500_INTERNAL_SERVER_ERROR)


def get_services() -> Services:
    return Services.from_settings()


def _job_kind(kind: str):
    try:
        return JOB_KINDS[kind]
    except KeyError:
        raise NotFoundError(f"Unknown job kind {kind!r}") from None


class PgnToGifView(views.APIView):
    """
    Create-job for the notation -> GIF stage. Renders synchronously and
    uploads gifs/<name>.gif; the upload itself triggers the GIF -> MP4 stage.
    """

    def post(self, request):
        ser = PgnToGifRequestSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data

        render_notation(
            NotationRequest(
                user_id=data["userId"],
                pgn_content=data["pgnContent"],
                uuid=data.get("uuid") or None,
                file_name=data.get("fileName") or None,
                flipped=data.get("flipped", False),
            ),
            get_services(),
        )
        return Response({"success": True})


class RegisterJobView(views.APIView):
    """
    Pre-creates a status record so the client can poll it.
    Video-backed kinds also get a presigned PUT for tmp/<uuid>.mp4 whose
    signed metadata routes the upload to the right stage.
    """

    def post(self, request, kind):
        model, serializer_class = _job_kind(kind)
        ser = RegisterJobSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        job_id = ser.validated_data["uuid"]
        user_id = ser.validated_data.get("userId") or ""

        if kind in ("pgn", "video") and not user_id:
            raise ValidationError(f"{kind} jobs need a userId.")

        if kind == "video":
            record = StatusLedger(model).register(job_id, uploader_id=user_id)
        else:
            record = StatusLedger(model).register(job_id, user_id=user_id)

        data = {"job": serializer_class(record).data}
        if kind in ("pgn", "video"):
            metadata = {META_USER_ID: user_id}
            if kind == "pgn":
                metadata[META_GENERATE_PGN] = "true"
            data["upload"] = get_services().storage.presigned_put(
                f"tmp/{job_id}.mp4", content_type="video/mp4", metadata=metadata
            )
        return Response(data, status=status.HTTP_201_CREATED)


class JobStatusView(views.APIView):
    def get(self, request, kind, job_id):
        model, serializer_class = _job_kind(kind)
        record = StatusLedger(model).get(job_id)
        data = serializer_class(record).data

        if kind == "video" and record.status == JobState.COMPLETED and record.video_url:
            data["downloadUrl"] = get_services().storage.presigned_get(record.video_url)
        return Response(data)


def _object_fields(record: dict):
    """Pull (bucket, key, content_type, metadata) out of one notification record."""
    s3 = record.get("s3") or {}
    obj = s3.get("object") or {}
    key = obj.get("key")
    if not key:
        return None
    bucket = (s3.get("bucket") or {}).get("name", "")
    content_type = obj.get("contentType")

    metadata = None
    user_meta = obj.get("userMetadata")
    if isinstance(user_meta, dict):
        metadata = {
            k[len("x-amz-meta-"):]: v
            for k, v in user_meta.items()
            if k.lower().startswith("x-amz-meta-")
        }
    # keys are URL-encoded in S3 notifications
    return bucket, unquote_plus(key), content_type, metadata


class StorageEventView(views.APIView):
    """
    Webhook target for bucket notifications. Each ObjectCreated record is
    handed to a worker; everything else is acknowledged and ignored.
    """

    def post(self, request):
        ser = StorageEventSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        queued = 0
        for record in ser.validated_data["Records"]:
            event_name = str(record.get("eventName", ""))
            if "ObjectCreated" not in event_name:
                continue
            fields = _object_fields(record)
            if fields is None:
                continue
            bucket, key, content_type, metadata = fields
            handle_object_finalized.delay(bucket, key, content_type, metadata)
            queued += 1

        logger.info("storage_events_received", records=len(ser.validated_data["Records"]), queued=queued)
        return Response({"queued": queued}, status=status.HTTP_202_ACCEPTED)
