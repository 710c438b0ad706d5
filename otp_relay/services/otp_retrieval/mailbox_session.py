"""IMAP mailbox session used for one account attempt.

A session connects, authenticates and selects the inbox read-only, then
answers search and fetch calls. It is a context manager and always closes
its connection, whatever happens inside the ``with`` block.
"""

import imaplib
from datetime import datetime
from typing import Callable, List, Optional, Sequence

from loguru import logger

from otp_relay.constants import OTP
from otp_relay.core.exceptions import MailboxConnectionError, MailboxFetchError
from otp_relay.models import MailMessage
from otp_relay.utils.masking import mask_email

from .email_processor import EmailProcessor

# IMAP errors plus socket/TLS/timeout failures
_IMAP_ERRORS = (imaplib.IMAP4.error, OSError)


def imap_date(value: datetime) -> str:
    """Format a datetime as an IMAP SEARCH date (e.g. 01-Jan-2024)."""
    months = ("Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")
    return f"{value.day:02d}-{months[value.month - 1]}-{value.year}"


class MailboxSession:
    """One authenticated IMAP connection."""

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        timeout: float = OTP.IMAP_TIMEOUT_SECONDS,
        folder: str = OTP.MAILBOX_FOLDER,
        email_processor: Optional[EmailProcessor] = None,
    ):
        """
        Initialize session parameters. No connection is made yet.

        Args:
            host: IMAP server hostname
            port: IMAP server port
            username: IMAP login
            password: Decrypted IMAP password
            timeout: Socket timeout in seconds
            folder: Mailbox to select
            email_processor: Parser for fetched messages
        """
        self.host = host
        self.port = port
        self._username = username
        self._password = password
        self._timeout = timeout
        self._folder = folder
        self._processor = email_processor or EmailProcessor()
        self._mail: Optional[imaplib.IMAP4_SSL] = None
        self._selected = False

    def open(self) -> "MailboxSession":
        """
        Connect, authenticate and select the folder read-only.

        Raises:
            MailboxConnectionError: If any step fails
        """
        try:
            self._mail = imaplib.IMAP4_SSL(self.host, self.port, timeout=self._timeout)
            self._mail.login(self._username, self._password)
            typ, _ = self._mail.select(self._folder, readonly=True)
            if typ != "OK":
                raise imaplib.IMAP4.error(f"cannot select {self._folder}")
            self._selected = True
            logger.debug(
                f"IMAP connection established to {self.host} as {mask_email(self._username)}"
            )
            return self
        except _IMAP_ERRORS as e:
            logger.error(
                f"IMAP connection failed for {mask_email(self._username)} on {self.host}: {e}"
            )
            self.close()
            raise MailboxConnectionError(f"IMAP connection failed: {e}", host=self.host) from e
        except UnicodeError as e:
            # imaplib sends LOGIN arguments as ASCII; the error text quotes the password
            logger.error(f"IMAP login for {mask_email(self._username)} has non-ASCII credentials")
            self.close()
            raise MailboxConnectionError(
                "IMAP connection failed: credentials must be ASCII", host=self.host
            ) from e
        except Exception:
            self.close()
            raise

    def close(self) -> None:
        """Close the folder and log out. Safe to call more than once."""
        mail, self._mail = self._mail, None
        if mail is None:
            return
        try:
            if self._selected:
                mail.close()
        except _IMAP_ERRORS as e:
            logger.debug(f"Error closing IMAP folder: {e}")
        finally:
            self._selected = False
            try:
                mail.logout()
            except _IMAP_ERRORS as e:
                logger.debug(f"Error logging out of IMAP: {e}")

    def __enter__(self) -> "MailboxSession":
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _require_connection(self) -> imaplib.IMAP4_SSL:
        if self._mail is None:
            raise MailboxFetchError("Mailbox session is not open")
        return self._mail

    def _search_uids(self, criteria: List[str]) -> List[int]:
        mail = self._require_connection()
        typ, data = mail.uid("SEARCH", None, *criteria)
        if typ != "OK":
            raise imaplib.IMAP4.error(f"SEARCH returned {typ}")
        if not data or not data[0]:
            return []
        return [int(uid) for uid in data[0].split()]

    def search(self, since: datetime, sender_filters: Sequence[str] = ()) -> List[int]:
        """
        Find message UIDs received on or after ``since``.

        With sender filters, one search runs per sender and the results are
        merged. A single sender search failing is logged and skipped.

        Args:
            since: Oldest receive date of interest
            sender_filters: Sender values to narrow the search

        Returns:
            Unique UIDs, most recent first

        Raises:
            MailboxFetchError: If the unfiltered search fails
        """
        since_criteria = ["SINCE", imap_date(since)]

        if not sender_filters:
            try:
                uids = self._search_uids(since_criteria)
            except _IMAP_ERRORS as e:
                raise MailboxFetchError(f"IMAP search failed: {e}") from e
        else:
            merged = set()
            for sender in sender_filters:
                quoted = '"' + sender.replace("\\", "\\\\").replace('"', '\\"') + '"'
                try:
                    merged.update(self._search_uids(since_criteria + ["FROM", quoted]))
                except _IMAP_ERRORS as e:
                    logger.warning(f"IMAP search for sender filter failed, skipping: {e}")
            uids = list(merged)

        return sorted(set(uids), reverse=True)

    def fetch(self, uid: int) -> Optional[MailMessage]:
        """
        Fetch and parse one message.

        Returns:
            MailMessage, or None if the server returned no body

        Raises:
            MailboxFetchError: If the FETCH command fails
        """
        mail = self._require_connection()
        try:
            typ, data = mail.uid("FETCH", str(uid), "(RFC822)")
        except _IMAP_ERRORS as e:
            raise MailboxFetchError(f"IMAP fetch failed: {e}") from e
        if typ != "OK":
            raise MailboxFetchError(f"IMAP fetch returned {typ}")

        for item in data or []:
            if isinstance(item, tuple) and len(item) >= 2 and isinstance(item[1], bytes):
                return self._processor.parse(str(uid), item[1])
        return None


# (host, port, username, password) -> unopened session
SessionFactory = Callable[[str, int, str, str], MailboxSession]


def default_session_factory(timeout: float = OTP.IMAP_TIMEOUT_SECONDS) -> SessionFactory:
    """Build a factory that creates real IMAP sessions."""
    processor = EmailProcessor()

    def factory(host: str, port: int, username: str, password: str) -> MailboxSession:
        return MailboxSession(
            host, port, username, password, timeout=timeout, email_processor=processor
        )

    return factory
