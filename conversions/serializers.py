from rest_framework import serializers

from .models import GifStatus, PgnStatus, Video

# Output names become object keys under gifs/, so keep them to one path segment.
FILE_NAME_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9_.\-]{0,127}$"
JOB_ID_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9_\-]{0,63}$"


class PgnToGifRequestSerializer(serializers.Serializer):
    userId = serializers.CharField()
    pgnContent = serializers.CharField(trim_whitespace=False)
    uuid = serializers.RegexField(JOB_ID_PATTERN, required=False, allow_blank=True)
    fileName = serializers.RegexField(FILE_NAME_PATTERN, required=False, allow_blank=True)
    flipped = serializers.BooleanField(required=False, default=False)

    def validate_fileName(self, value):
        if value.lower().endswith(".gif"):
            value = value[:-4]
        return value


class RegisterJobSerializer(serializers.Serializer):
    uuid = serializers.RegexField(JOB_ID_PATTERN)
    userId = serializers.CharField(required=False, allow_blank=True)


class StorageEventSerializer(serializers.Serializer):
    """
    S3/MinIO bucket notification (the ``Records`` envelope).
    Only the fields the router needs are read; the rest is ignored.
    """

    Records = serializers.ListField(child=serializers.DictField(), allow_empty=True)


class StatusRecordSerializer(serializers.ModelSerializer):
    class Meta:
        fields = ["uuid", "status", "error", "created_at", "updated_at"]


class GifStatusSerializer(StatusRecordSerializer):
    class Meta(StatusRecordSerializer.Meta):
        model = GifStatus


class PgnStatusSerializer(StatusRecordSerializer):
    pgnContent = serializers.CharField(source="pgn_content", read_only=True)

    class Meta(StatusRecordSerializer.Meta):
        model = PgnStatus
        fields = StatusRecordSerializer.Meta.fields + ["pgnContent", "timestamps"]


class VideoSerializer(StatusRecordSerializer):
    uploaderId = serializers.CharField(source="uploader_id", read_only=True)
    videoUrl = serializers.CharField(source="video_url", read_only=True)
    thumbnailUrl = serializers.CharField(source="thumbnail_url", read_only=True)

    class Meta(StatusRecordSerializer.Meta):
        model = Video
        fields = StatusRecordSerializer.Meta.fields + ["uploaderId", "videoUrl", "thumbnailUrl"]
