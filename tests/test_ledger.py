"""Tests for conversions/ledger.py."""

from unittest.mock import patch

import pytest

from conversions.errors import ConflictError, NotFoundError
from conversions.ledger import ERROR_MAX_CHARS, StatusLedger, can_transition
from conversions.models import GifStatus, JobState, PgnStatus, Video

pytestmark = pytest.mark.django_db


@pytest.fixture
def pgn_ledger():
    return StatusLedger(PgnStatus)


class TestTransitionTable:
    @pytest.mark.parametrize(
        "current,new,allowed",
        [
            ("received", "converting", True),
            ("received", "processing", True),
            ("received", "error", True),
            ("converting", "completed", True),
            ("processing", "error", True),
            ("converting", "received", False),
            ("converting", "converting", False),
            ("processing", "converting", False),
            ("completed", "error", False),
            ("completed", "completed", False),
            ("error", "completed", False),
        ],
    )
    def test_can_transition(self, current, new, allowed):
        assert can_transition(current, new) is allowed


class TestRegister:
    def test_register_creates_received_record(self, pgn_ledger):
        record = pgn_ledger.register("job-1", user_id="u1")
        assert record.status == JobState.RECEIVED
        assert pgn_ledger.find("job-1").user_id == "u1"

    def test_duplicate_register_conflicts(self, pgn_ledger):
        pgn_ledger.register("job-1")
        with pytest.raises(ConflictError):
            pgn_ledger.register("job-1")
        assert PgnStatus.objects.filter(uuid="job-1").count() == 1

    def test_same_uuid_in_different_kinds_is_fine(self):
        StatusLedger(GifStatus).register("shared")
        StatusLedger(Video).register("shared", uploader_id="u1")


class TestLookup:
    def test_find_missing_returns_none(self, pgn_ledger):
        assert pgn_ledger.find("nope") is None

    def test_get_missing_raises_not_found(self, pgn_ledger):
        with pytest.raises(NotFoundError, match="nope"):
            pgn_ledger.get("nope")


class TestTransition:
    def test_advance_applies_and_refreshes_record(self, pgn_ledger):
        record = pgn_ledger.register("job-1")
        assert pgn_ledger.transition(record, JobState.PROCESSING) is True
        assert record.status == JobState.PROCESSING

    def test_completed_writes_payload(self, pgn_ledger):
        record = pgn_ledger.register("job-1")
        pgn_ledger.transition(record, JobState.PROCESSING)
        pgn_ledger.transition(record, JobState.COMPLETED, pgn_content="1. e4", timestamps=[1.0])

        stored = PgnStatus.objects.get(uuid="job-1")
        assert stored.status == JobState.COMPLETED
        assert stored.pgn_content == "1. e4"
        assert stored.timestamps == [1.0]
        assert stored.error == ""

    def test_duplicate_completion_keeps_first_payload(self, pgn_ledger):
        record = pgn_ledger.register("job-1")
        pgn_ledger.transition(record, JobState.COMPLETED, pgn_content="1. e4", timestamps=[1.0])

        applied = pgn_ledger.transition(record, JobState.COMPLETED, pgn_content="stale", timestamps=[])

        assert applied is False
        stored = PgnStatus.objects.get(uuid="job-1")
        assert stored.pgn_content == "1. e4"
        assert stored.timestamps == [1.0]

    def test_no_regression_from_terminal(self, pgn_ledger):
        record = pgn_ledger.register("job-1")
        pgn_ledger.transition(record, JobState.COMPLETED, pgn_content="1. e4", timestamps=[])
        assert pgn_ledger.transition(record, JobState.PROCESSING) is False
        assert pgn_ledger.transition(record, JobState.ERROR, error="late failure") is False
        stored = PgnStatus.objects.get(uuid="job-1")
        assert stored.status == JobState.COMPLETED
        assert stored.error == ""

    def test_stale_handle_does_not_overwrite(self, pgn_ledger):
        record = pgn_ledger.register("job-1")
        stale = PgnStatus.objects.get(uuid="job-1")
        pgn_ledger.transition(record, JobState.COMPLETED, pgn_content="fresh", timestamps=[])

        # the stale copy still thinks it is RECEIVED; the locked re-read wins
        assert pgn_ledger.transition(stale, JobState.ERROR, error="dup") is False
        assert stale.status == JobState.COMPLETED

    def test_error_writes_only_error_field(self, pgn_ledger):
        record = pgn_ledger.register("job-1")
        pgn_ledger.transition(record, JobState.ERROR, error="ffmpeg exited with status 1")
        stored = PgnStatus.objects.get(uuid="job-1")
        assert stored.status == JobState.ERROR
        assert stored.error == "ffmpeg exited with status 1"
        assert stored.pgn_content == ""
        assert stored.timestamps == []

    def test_error_without_message_is_still_non_empty(self, pgn_ledger):
        record = pgn_ledger.register("job-1")
        pgn_ledger.transition(record, JobState.ERROR)
        assert PgnStatus.objects.get(uuid="job-1").error

    def test_payload_fields_ignored_on_non_completed_states(self):
        ledger = StatusLedger(Video)
        record = ledger.register("vid-1", uploader_id="u1")
        ledger.transition(record, JobState.CONVERTING, video_url="videos/vid-1.mp4")
        assert Video.objects.get(uuid="vid-1").video_url == ""

    def test_unknown_field_rejected(self, pgn_ledger):
        record = pgn_ledger.register("job-1")
        with pytest.raises(ValueError, match="video_url"):
            pgn_ledger.transition(record, JobState.COMPLETED, video_url="x")


class TestFail:
    def test_fail_with_no_record_is_noop(self, pgn_ledger):
        assert pgn_ledger.fail(None, "whatever") is False

    def test_fail_swallows_ledger_errors(self, pgn_ledger):
        record = pgn_ledger.register("job-1")
        with patch.object(StatusLedger, "transition", side_effect=RuntimeError("db down")):
            assert pgn_ledger.fail(record, "boom") is False

    def test_long_error_keeps_prefix_and_final_line(self, pgn_ledger):
        record = pgn_ledger.register("job-1")
        message = "Error generating PGN: " + "x" * 5000 + "\nFATAL: out of memory"
        assert pgn_ledger.fail(record, message) is True

        stored = PgnStatus.objects.get(uuid="job-1").error
        assert len(stored) == ERROR_MAX_CHARS
        assert stored.startswith("Error generating PGN: ")
        assert stored.endswith("\nFATAL: out of memory")
