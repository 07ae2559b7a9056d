"""Shared test fixtures for the pinboard test suite."""

from __future__ import annotations

import io
from datetime import datetime, timezone
from email import encoders
from email.mime.base import MIMEBase
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from pathlib import Path

import pytest
from PIL import Image

from pinboard_connector.config import CrawlerConfig, StorageConfig
from pinboard_email.attachments import AttachmentStore
from pinboard_email.config import MailCrawlerConfig, Pop3Config
from pinboard_schema import Record, RecordKind


@pytest.fixture
def storage_config(tmp_path: Path) -> StorageConfig:
    return StorageConfig(data_dir=tmp_path / "data")


@pytest.fixture
def pop3_config() -> Pop3Config:
    return Pop3Config(
        host="pop.test.com",
        port=995,
        use_ssl=True,
        username="testuser",
        password="testpass",
    )


@pytest.fixture
def crawler_config(storage_config: StorageConfig) -> CrawlerConfig:
    return CrawlerConfig(
        name="test-crawler",
        poll_interval_seconds=0.05,
        login_backoff_seconds=0.01,
        cycle_backoff_seconds=0.01,
        relogin_pause_seconds=0.0,
        health_port=18080,
        storage=storage_config,
    )


@pytest.fixture
def mail_config(pop3_config: Pop3Config, storage_config: StorageConfig) -> MailCrawlerConfig:
    return MailCrawlerConfig(
        name="mail-test",
        poll_interval_seconds=0.05,
        login_backoff_seconds=0.01,
        cycle_backoff_seconds=0.01,
        relogin_pause_seconds=0.0,
        health_port=18080,
        pop3=pop3_config,
        storage=storage_config,
    )


@pytest.fixture
def attachment_store(storage_config: StorageConfig) -> AttachmentStore:
    return AttachmentStore(storage_config.data_dir)


@pytest.fixture
def record() -> Record:
    return Record(
        kind=RecordKind.EMAIL,
        timestamp=datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc),
        sender_name="Jane Doe <jane@example.com>",
        short_text="Holiday pictures",
        long_text="See attached.\nCheers, Jane",
        image_names=["data/beach.rgba", "data/beach-0000.rgba"],
    )


# ------------------------------------------------------------------
# POP3 stream double
# ------------------------------------------------------------------


class FakeStream:
    """Socket stand-in: replays scripted server lines, records what is sent."""

    def __init__(self, *server_lines: str | bytes) -> None:
        data = b"".join(
            (line if isinstance(line, bytes) else line.encode("utf-8")) + b"\r\n"
            for line in server_lines
        )
        self._reader = io.BytesIO(data)
        self.sent: list[bytes] = []
        self.closed = False

    def makefile(self, mode: str) -> io.BytesIO:
        assert mode == "rb"
        return self._reader

    def sendall(self, data: bytes) -> None:
        self.sent.append(data)

    def close(self) -> None:
        self.closed = True

    @property
    def commands(self) -> list[str]:
        return [d.decode("utf-8").removesuffix("\r\n") for d in self.sent]


# ------------------------------------------------------------------
# Sample images and EML builders
# ------------------------------------------------------------------


def _image_bytes(
    width: int = 40,
    height: int = 20,
    *,
    fmt: str = "PNG",
    mode: str = "RGB",
    color: tuple = (200, 30, 30),
) -> bytes:
    buf = io.BytesIO()
    Image.new(mode, (width, height), color).save(buf, format=fmt)
    return buf.getvalue()


def _build_plain_email(
    *,
    subject: str = "Test Subject",
    from_addr: str = "Jane Doe <jane@example.com>",
    body: str = "Hello, World!",
    date: str | None = "Sun, 01 Jun 2025 12:00:00 +0000",
) -> str:
    msg = MIMEText(body, "plain")
    msg["Subject"] = subject
    msg["From"] = from_addr
    msg["To"] = "pinboard@example.com"
    if date is not None:
        msg["Date"] = date
    return msg.as_string()


def _build_multipart_email(
    *,
    body_text: str | None = "Plain body",
    body_html: str | None = None,
    attachments: list[tuple[str, str, bytes]] | None = None,
    inlines: list[tuple[str, str, bytes]] | None = None,
    date: str | None = "Sun, 01 Jun 2025 12:00:00 +0000",
) -> str:
    """Build a multipart/mixed email with optional attachment and inline parts."""
    msg = MIMEMultipart("mixed")
    msg["Subject"] = "Multipart Email"
    msg["From"] = "Jane Doe <jane@example.com>"
    msg["To"] = "pinboard@example.com"
    if date is not None:
        msg["Date"] = date

    if body_text is not None and body_html is not None:
        alt = MIMEMultipart("alternative")
        alt.attach(MIMEText(body_text, "plain"))
        alt.attach(MIMEText(body_html, "html"))
        msg.attach(alt)
    elif body_text is not None:
        msg.attach(MIMEText(body_text, "plain"))
    elif body_html is not None:
        msg.attach(MIMEText(body_html, "html"))

    # inline parts go first so ordering by disposition is observable
    for disposition, parts in (("inline", inlines), ("attachment", attachments)):
        for filename, content_type, payload in parts or []:
            maintype, subtype = content_type.split("/", 1)
            part = MIMEBase(maintype, subtype)
            part.set_payload(payload)
            encoders.encode_base64(part)
            part.add_header("Content-Disposition", disposition, filename=filename)
            msg.attach(part)

    return msg.as_string()


@pytest.fixture
def plain_eml() -> str:
    return _build_plain_email()


@pytest.fixture
def png_bytes() -> bytes:
    return _image_bytes()
