"""Shared pytest fixtures: in-memory stand-ins for the bucket, ffmpeg and the recognition service."""

from __future__ import annotations

from pathlib import Path

import pytest

from conversions.encoder import get_profile
from conversions.errors import UpstreamServiceError
from conversions.recognition import Recognition


class FakeBlobStore:
    """Dict-backed bucket with the BlobStore surface the stages use."""

    bucket = "test-bucket"

    def __init__(self):
        self.objects: dict[str, dict] = {}

    def add(self, key: str, data: bytes, content_type: str, metadata: dict | None = None):
        self.objects[key] = {
            "data": data,
            "content_type": content_type,
            "metadata": {k.lower(): str(v) for k, v in (metadata or {}).items()},
        }

    def head(self, key):
        obj = self.objects[key]
        return obj["content_type"], dict(obj["metadata"])

    def download(self, key, local_path):
        Path(local_path).write_bytes(self.objects[key]["data"])

    def upload_file(self, local_path, key, content_type, metadata=None):
        self.add(key, Path(local_path).read_bytes(), content_type, metadata)

    def put_bytes(self, data, key, content_type, metadata=None):
        self.add(key, data, content_type, metadata)

    def public_url(self, key):
        return f"http://public.test:9000/{self.bucket}/{key}"

    def presigned_put(self, key, content_type=None, metadata=None, expires=None):
        headers = {"Content-Type": content_type} if content_type else {}
        headers.update({f"x-amz-meta-{k}": v for k, v in (metadata or {}).items()})
        return {"url": f"http://public.test:9000/{self.bucket}/{key}?signed", "headers": headers}

    def presigned_get(self, key, expires=None):
        return f"http://public.test:9000/{self.bucket}/{key}?signed"


class FakeRecognizer:
    def __init__(self, result: Recognition | None = None, error: Exception | None = None):
        self.result = result or Recognition(pgn="1. e4 e5 2. Nf3 Nc6", timestamps=[1.5, 3.0, 4.25, 6.0])
        self.error = error
        self.calls: list[str] = []

    def recognize(self, video_url):
        self.calls.append(video_url)
        if self.error:
            raise self.error
        return self.result


@pytest.fixture
def storage():
    return FakeBlobStore()


@pytest.fixture
def recognizer():
    return FakeRecognizer()


@pytest.fixture
def failing_recognizer():
    return FakeRecognizer(error=UpstreamServiceError("Request failed with status 503: Service Unavailable", status_code=503))


@pytest.fixture
def services(storage, recognizer):
    from conversions.stages import Services

    return Services(storage=storage, recognizer=recognizer, profile=get_profile("hevc"))


@pytest.fixture
def fake_encoder(monkeypatch):
    """Replace ffmpeg with a copy that tags the bytes, recording each call."""
    calls = []

    def _run(input_path, output_path, profile):
        calls.append((Path(input_path), Path(output_path), profile.name))
        Path(output_path).write_bytes(b"MP4:" + Path(input_path).read_bytes())

    monkeypatch.setattr("conversions.stages.run_encoder", _run)
    return calls


@pytest.fixture
def tmp_staging(tmp_path, settings):
    staging = tmp_path / "staging"
    staging.mkdir()
    settings.PIPELINE_TMP_DIR = str(staging)
    return staging
