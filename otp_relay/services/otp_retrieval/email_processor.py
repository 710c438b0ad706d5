"""Email processing for OTP extraction.

This module turns raw RFC 822 messages into MailMessage records holding the
subject, both bodies, the sender and the receive time.
"""

import email
import email.utils
from datetime import datetime
from email.header import decode_header
from email.message import Message
from typing import Optional, Tuple

from loguru import logger

from otp_relay.models import MailMessage

from .pattern_matcher import html_to_text


class EmailProcessor:
    """Parse fetched emails into MailMessage records."""

    def _decode_header_value(self, header_value: Optional[str]) -> str:
        """Decode MIME-encoded email header."""
        if not header_value:
            return ""

        decoded_parts = []
        for part, encoding in decode_header(str(header_value)):
            if isinstance(part, bytes):
                try:
                    decoded_parts.append(part.decode(encoding or "utf-8", errors="ignore"))
                except LookupError:
                    decoded_parts.append(part.decode("utf-8", errors="ignore"))
            else:
                decoded_parts.append(part)

        return "".join(decoded_parts).strip()

    @staticmethod
    def _decode_part(part: Message) -> str:
        payload = part.get_payload(decode=True)
        if payload is None:
            return ""
        charset = part.get_content_charset() or "utf-8"
        try:
            return payload.decode(charset, errors="ignore")
        except LookupError:
            return payload.decode("utf-8", errors="ignore")

    def _get_bodies(self, msg: Message) -> Tuple[str, str]:
        """Return (plain text body, HTML body)."""
        text_body = ""
        html_body = ""

        parts = msg.walk() if msg.is_multipart() else [msg]
        for part in parts:
            if part.is_multipart():
                continue
            if "attachment" in str(part.get("Content-Disposition", "")):
                continue

            content_type = part.get_content_type()
            if content_type == "text/plain" and not text_body:
                text_body = self._decode_part(part)
            elif content_type == "text/html" and not html_body:
                html_body = self._decode_part(part)

        # Plain-text fallback for HTML-only mail
        if not text_body and html_body:
            text_body = html_to_text(html_body)

        return text_body, html_body

    @staticmethod
    def _parse_date(date_str: Optional[str]) -> Optional[datetime]:
        if not date_str:
            return None
        try:
            return email.utils.parsedate_to_datetime(date_str)
        except (ValueError, TypeError):
            logger.debug(f"Unparseable Date header: {date_str!r}")
            return None

    def parse(self, uid: str, raw: bytes) -> MailMessage:
        """
        Parse a raw message.

        Args:
            uid: IMAP UID of the message
            raw: RFC 822 bytes

        Returns:
            MailMessage with decoded fields
        """
        msg = email.message_from_bytes(raw)
        text_body, html_body = self._get_bodies(msg)
        return MailMessage(
            uid=uid,
            subject=self._decode_header_value(msg.get("Subject")),
            text_body=text_body,
            html_body=html_body,
            from_address=self._decode_header_value(msg.get("From")),
            received_at=self._parse_date(msg.get("Date")),
        )
