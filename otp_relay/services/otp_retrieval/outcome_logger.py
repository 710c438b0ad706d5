"""Outcome logging for OTP and TOTP attempts.

Every terminal request outcome, and each per-account failure, is handed to an
OutcomeLogger. Logging must never fail the request it describes, so the
service always talks to loggers through SafeOutcomeLogger.
"""

import json
import threading
from pathlib import Path
from typing import List, Optional, Protocol

from loguru import logger

from otp_relay.models import AttemptOutcome, OutcomeStatus


class OutcomeLogger(Protocol):
    """Sink for attempt outcomes."""

    def record(self, outcome: AttemptOutcome) -> None:
        ...


class LoguruOutcomeLogger:
    """
    Writes outcomes to the application log and, optionally, a JSONL file.

    The JSONL file is an append-only record that can be shipped to an
    external store.
    """

    def __init__(self, log_file: Optional[str] = None):
        """
        Initialize outcome logger.

        Args:
            log_file: Optional JSONL file path for outcome records
        """
        self.log_file = Path(log_file) if log_file else None
        self._lock = threading.Lock()
        if self.log_file:
            self.log_file.parent.mkdir(parents=True, exist_ok=True)

    def record(self, outcome: AttemptOutcome) -> None:
        level = "INFO" if outcome.status == OutcomeStatus.SUCCESS else "WARNING"
        logger.bind(outcome=outcome.to_dict()).log(
            level,
            f"OTP_OUTCOME: {outcome.status.value} | user={outcome.user_id} | "
            f"product={outcome.product_id} | account={outcome.account_id} | {outcome.detail}",
        )
        if self.log_file:
            with self._lock:
                with open(self.log_file, "a", encoding="utf-8") as f:
                    f.write(json.dumps(outcome.to_dict()) + "\n")


class InMemoryOutcomeLogger:
    """Keeps outcomes in a list; used by tests and local runs."""

    def __init__(self):
        self.outcomes: List[AttemptOutcome] = []
        self._lock = threading.Lock()

    def record(self, outcome: AttemptOutcome) -> None:
        with self._lock:
            self.outcomes.append(outcome)

    @property
    def statuses(self) -> List[OutcomeStatus]:
        with self._lock:
            return [o.status for o in self.outcomes]

    def clear(self) -> None:
        with self._lock:
            self.outcomes.clear()


class SafeOutcomeLogger:
    """Forwards outcomes to another logger and swallows its failures."""

    def __init__(self, inner: OutcomeLogger):
        self._inner = inner

    def record(self, outcome: AttemptOutcome) -> None:
        try:
            self._inner.record(outcome)
        except Exception as e:
            logger.error(f"Failed to record OTP outcome ({outcome.status.value}): {e}")
