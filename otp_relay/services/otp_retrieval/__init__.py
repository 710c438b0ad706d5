"""Email OTP retrieval engine.

This package finds one-time codes in IMAP mailboxes: it walks a product's
accounts by weight, searches and fetches recent mail, extracts candidates
with time-bounded patterns and scores them before returning the first
trustworthy code.
"""

from .confidence import ConfidenceScorer, ScoredCandidate, is_trivial_code
from .email_processor import EmailProcessor
from .factory import build_retrieval_service
from .failover import AccountFailoverController, AccountScanner, Deadline, ScanOutcome
from .mailbox_session import MailboxSession, default_session_factory
from .message_filter import MessageFilter, build_filter_config
from .outcome_logger import (
    InMemoryOutcomeLogger,
    LoguruOutcomeLogger,
    OutcomeLogger,
    SafeOutcomeLogger,
)
from .pattern_matcher import HTMLTextExtractor, OTPPatternMatcher, build_pattern_set
from .service import OTPRetrievalService

__all__ = [
    "ConfidenceScorer",
    "ScoredCandidate",
    "is_trivial_code",
    "EmailProcessor",
    "build_retrieval_service",
    "AccountFailoverController",
    "AccountScanner",
    "Deadline",
    "ScanOutcome",
    "MailboxSession",
    "default_session_factory",
    "MessageFilter",
    "build_filter_config",
    "InMemoryOutcomeLogger",
    "LoguruOutcomeLogger",
    "OutcomeLogger",
    "SafeOutcomeLogger",
    "HTMLTextExtractor",
    "OTPPatternMatcher",
    "build_pattern_set",
    "OTPRetrievalService",
]
