"""Sender and time filters for mailbox scans."""

from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional

from loguru import logger

from otp_relay.constants import OTP
from otp_relay.models import AccountTarget, FilterConfig, MailMessage


def split_sender_filter(value: Optional[str]) -> List[str]:
    """Split a comma-separated sender filter into trimmed, non-empty entries."""
    if not value:
        return []
    return [s.strip() for s in value.split(",") if s.strip()]


def _matches_any(address: str, fragments: Iterable[str]) -> bool:
    address = address.lower()
    return any(fragment.lower() in address for fragment in fragments)


def build_filter_config(
    target: AccountTarget,
    denylist: Optional[List[str]] = None,
    time_window_hours: int = OTP.TIME_WINDOW_HOURS,
) -> FilterConfig:
    """
    Resolve the filters that apply to one account.

    Args:
        target: Account joined with its product mapping
        denylist: Sender fragments that are never trusted
        time_window_hours: Scan window in hours

    Returns:
        FilterConfig for the account
    """
    return FilterConfig(
        sender_allowlist=split_sender_filter(target.sender_filter),
        sender_denylist=list(denylist or []),
        time_window_hours=time_window_hours or OTP.TIME_WINDOW_HOURS,
    )


class MessageFilter:
    """Applies sender allow/deny lists and the time window."""

    def __init__(self, config: FilterConfig, now: Optional[datetime] = None):
        self.config = config
        self._now = now or datetime.now(timezone.utc)

    @property
    def cutoff(self) -> datetime:
        """Oldest acceptable receive time."""
        return self._now - timedelta(hours=self.config.time_window_hours)

    @property
    def search_senders(self) -> List[str]:
        """Sender values used to narrow the remote search."""
        return list(self.config.sender_allowlist)

    def sender_allowlisted(self, from_address: str) -> bool:
        """True only when an allow-list exists and the sender matches it."""
        allowlist = self.config.sender_allowlist
        return bool(allowlist) and _matches_any(from_address, allowlist)

    def accepts(self, message: MailMessage) -> bool:
        """
        Re-check a fetched message.

        Rejects denied senders, senders outside a configured allow-list and
        messages older than the cutoff.
        """
        if self.config.sender_denylist and _matches_any(
            message.from_address, self.config.sender_denylist
        ):
            logger.debug(f"Skipping message {message.uid}: sender is deny-listed")
            return False

        if self.config.sender_allowlist and not _matches_any(
            message.from_address, self.config.sender_allowlist
        ):
            logger.debug(f"Skipping message {message.uid}: sender not in allow-list")
            return False

        if message.received_at is not None:
            received_at = message.received_at
            if received_at.tzinfo is None:
                received_at = received_at.replace(tzinfo=timezone.utc)
            if received_at < self.cutoff:
                logger.debug(f"Skipping message {message.uid}: older than time window")
                return False

        return True
