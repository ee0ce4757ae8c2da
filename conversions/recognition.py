"""Client for the remote video -> PGN recognition service."""

from __future__ import annotations

from dataclasses import dataclass

import httpx
import structlog
from django.conf import settings

from .errors import UpstreamServiceError

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Recognition:
    pgn: str
    timestamps: list


class RecognitionClient:
    def __init__(self, url: str | None = None, *, timeout: float | None = None,
                 transport: httpx.BaseTransport | None = None):
        self.url = url or settings.RECOGNITION_SERVICE_URL
        self.timeout = timeout if timeout is not None else settings.RECOGNITION_TIMEOUT_SECONDS
        self._transport = transport

    def recognize(self, video_url: str) -> Recognition:
        """POST the public video URL; any non-2xx or malformed body is a hard failure."""
        logger.info("recognition_request", url=self.url, video_url=video_url)
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.post(self.url, json={"url": video_url})
        except httpx.HTTPError as exc:
            raise UpstreamServiceError(f"recognition request failed: {exc}") from exc

        if not response.is_success:
            raise UpstreamServiceError(
                f"Request failed with status {response.status_code}: {response.reason_phrase}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise UpstreamServiceError("recognition response is not JSON", status_code=response.status_code) from exc

        pgn = data.get("pgn") if isinstance(data, dict) else None
        timestamps = data.get("timestamps") if isinstance(data, dict) else None
        if not isinstance(pgn, str) or not pgn.strip():
            raise UpstreamServiceError("recognition response has no 'pgn' text", status_code=response.status_code)
        if not isinstance(timestamps, list):
            raise UpstreamServiceError("recognition response has no 'timestamps' list", status_code=response.status_code)

        logger.info("recognition_response", moves=len(timestamps))
        return Recognition(pgn=pgn, timestamps=timestamps)
