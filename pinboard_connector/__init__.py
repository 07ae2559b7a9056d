"""Pinboard crawler framework.

Public API re-exported here for convenience::

    from pinboard_connector import Crawler, CrawlerRunner, RecordChannel, RecordStore
"""

from .channel import RecordChannel
from .config import CrawlerConfig, StorageConfig
from .dead_letter import DeadLetterHandler
from .errors import (
    ChannelClosedError,
    DecodeError,
    IngestError,
    NameExhaustedError,
    ParseError,
    ProtocolError,
)
from .health import create_health_app
from .interface import Crawler
from .logging import setup_logging
from .models import CrawlerState, CrawlerStatus, HealthStatus
from .record_store import RecordStore, decode_record, encode_record
from .retry import fixed_backoff
from .runner import CrawlerRunner, log_record
from .shutdown import install_signal_handlers, wait_for_cancel

__all__ = [
    "ChannelClosedError",
    "Crawler",
    "CrawlerConfig",
    "CrawlerRunner",
    "CrawlerState",
    "CrawlerStatus",
    "DeadLetterHandler",
    "DecodeError",
    "HealthStatus",
    "IngestError",
    "NameExhaustedError",
    "ParseError",
    "ProtocolError",
    "RecordChannel",
    "RecordStore",
    "StorageConfig",
    "create_health_app",
    "decode_record",
    "encode_record",
    "fixed_backoff",
    "install_signal_handlers",
    "log_record",
    "setup_logging",
    "wait_for_cancel",
]
