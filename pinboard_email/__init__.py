"""Pinboard mail crawler — POP3 polling into locally stored Records."""

from .attachments import AttachmentStore, RgbaImage, read_rgba
from .config import MailCrawlerConfig, Pop3Config
from .crawler import MailCrawler
from .parser import MessageParser
from .pop3_client import ListEntry, Pop3Client
from .session import MailSession

__all__ = [
    "AttachmentStore",
    "ListEntry",
    "MailCrawler",
    "MailCrawlerConfig",
    "MailSession",
    "MessageParser",
    "Pop3Client",
    "Pop3Config",
    "RgbaImage",
    "read_rgba",
]
