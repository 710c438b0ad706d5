"""Tests for outcome loggers."""

import json
from unittest.mock import MagicMock

from loguru import logger

from otp_relay.models import AttemptOutcome, OutcomeStatus
from otp_relay.services.otp_retrieval import (
    InMemoryOutcomeLogger,
    LoguruOutcomeLogger,
    SafeOutcomeLogger,
)


def _outcome(status=OutcomeStatus.SUCCESS, account_id="acc-b", detail="ok"):
    return AttemptOutcome(
        user_id="u1", product_id="p-acme", status=status, account_id=account_id, detail=detail
    )


class TestAttemptOutcome:
    def test_to_dict(self):
        data = _outcome(OutcomeStatus.NO_ACCESS, None, "denied").to_dict()

        assert data["status"] == "no_access"
        assert data["account_id"] is None
        assert data["user_id"] == "u1"
        assert data["detail"] == "denied"
        assert "created_at" in data


class TestLoguruOutcomeLogger:
    """Tests for LoguruOutcomeLogger."""

    def test_writes_jsonl(self, tmp_path):
        log_file = tmp_path / "outcomes" / "otp.jsonl"
        outcome_logger = LoguruOutcomeLogger(str(log_file))

        outcome_logger.record(_outcome())
        outcome_logger.record(_outcome(OutcomeStatus.ERROR, "acc-a", "No messages found"))

        lines = [json.loads(line) for line in log_file.read_text().splitlines()]
        assert [line["status"] for line in lines] == ["success", "error"]
        assert lines[1]["detail"] == "No messages found"

    def test_emits_log_record(self):
        messages = []
        sink_id = logger.add(lambda m: messages.append(m.record), level="INFO")
        try:
            LoguruOutcomeLogger().record(_outcome(OutcomeStatus.RATE_LIMITED, None, "limited"))
        finally:
            logger.remove(sink_id)

        record = next(r for r in messages if r["message"].startswith("OTP_OUTCOME"))
        assert record["level"].name == "WARNING"
        assert record["extra"]["outcome"]["status"] == "rate_limited"


class TestInMemoryOutcomeLogger:
    def test_collects_and_clears(self):
        outcome_logger = InMemoryOutcomeLogger()
        outcome_logger.record(_outcome())
        outcome_logger.record(_outcome(OutcomeStatus.ERROR))

        assert outcome_logger.statuses == [OutcomeStatus.SUCCESS, OutcomeStatus.ERROR]
        outcome_logger.clear()
        assert outcome_logger.outcomes == []


class TestSafeOutcomeLogger:
    def test_forwards(self):
        inner = InMemoryOutcomeLogger()
        SafeOutcomeLogger(inner).record(_outcome())
        assert inner.statuses == [OutcomeStatus.SUCCESS]

    def test_swallows_failures(self):
        inner = MagicMock()
        inner.record.side_effect = RuntimeError("sink down")

        SafeOutcomeLogger(inner).record(_outcome())

        inner.record.assert_called_once()
