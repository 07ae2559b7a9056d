"""MessageParser — raw RFC 822 text → Record, with image extraction."""

from __future__ import annotations

import email
import email.policy
import email.utils
from datetime import datetime
from email.message import EmailMessage
from pathlib import Path

import html2text
import structlog
from PIL import Image
from pydantic import ValidationError

from pinboard_connector.errors import NameExhaustedError, ParseError
from pinboard_schema import Record, RecordKind

from .attachments import AttachmentStore, clean_base_name
from .pop3_client import WIRE_ENCODING, WIRE_ERRORS

logger = structlog.get_logger()

SUPPORTED_IMAGE_TYPES = frozenset({"image/jpeg", "image/png"})


class MessageParser:
    """Turns one fetched message into a :class:`Record`.

    Image attachments are written through *attachments*; if any of them
    fails, the files already written for that message are removed and
    the whole parse fails with :class:`ParseError`.
    """

    def __init__(self, attachments: AttachmentStore) -> None:
        self._attachments = attachments

    def parse(self, raw_text: str) -> Record:
        # Headers are parsed lazily; a malformed one raises whatever the
        # email package hits first (IndexError, HeaderParseError, ...).
        try:
            msg = email.message_from_bytes(
                raw_text.encode(WIRE_ENCODING, WIRE_ERRORS),
                policy=email.policy.default,
            )
            assert isinstance(msg, EmailMessage)

            # The date is checked first so a dateless message writes no files.
            timestamp = self._parse_date(msg)
            subject = str(msg.get("Subject", ""))
            sender = str(msg.get("From", ""))
            long_text = self._extract_text(msg)
        except ParseError:
            raise
        except Exception as exc:
            raise ParseError(f"malformed message: {type(exc).__name__}: {exc}") from exc

        image_names = self._store_images(msg)

        logger.debug(
            "message_parsed",
            sender=sender,
            subject=subject,
            images=len(image_names),
        )
        try:
            return Record(
                kind=RecordKind.EMAIL,
                timestamp=timestamp,
                sender_name=sender,
                short_text=subject,
                long_text=long_text,
                image_names=[str(p) for p in image_names],
            )
        except ValidationError as exc:
            self._attachments.discard(image_names)
            raise ParseError(f"invalid record fields: {exc}") from exc

    # ------------------------------------------------------------------
    # Headers and body
    # ------------------------------------------------------------------

    def _parse_date(self, msg: EmailMessage) -> datetime:
        # Older interpreters raise while building the header object itself.
        try:
            value = msg.get("Date")
            if value is None:
                raise ParseError("message has no Date header")
            return email.utils.parsedate_to_datetime(str(value))
        except (TypeError, ValueError) as exc:
            raise ParseError(f"invalid Date header: {exc}") from exc

    def _extract_text(self, msg: EmailMessage) -> str:
        """Plain text body; an HTML-only body is converted to text."""
        part = msg.get_body(preferencelist=("plain",))
        if part is not None:
            return _decode_text(part).strip()

        part = msg.get_body(preferencelist=("html",))
        if part is not None:
            converter = html2text.HTML2Text()
            converter.ignore_images = True
            converter.body_width = 0  # No line wrapping
            return converter.handle(_decode_text(part)).strip()

        return ""

    # ------------------------------------------------------------------
    # Attachments
    # ------------------------------------------------------------------

    def _media_parts(self, msg: EmailMessage) -> list[EmailMessage]:
        """Attachment parts first, then inline parts."""
        attachments: list[EmailMessage] = []
        inlines: list[EmailMessage] = []
        for part in msg.walk():
            if part.is_multipart():
                continue
            disposition = part.get_content_disposition()
            if disposition == "attachment":
                attachments.append(part)
            elif disposition == "inline" or (
                disposition is None and part.get_content_maintype() != "text"
            ):
                inlines.append(part)
        return attachments + inlines

    def _store_images(self, msg: EmailMessage) -> list[Path]:
        written: list[Path] = []
        try:
            for part in self._media_parts(msg):
                content_type = part.get_content_type()
                if content_type not in SUPPORTED_IMAGE_TYPES:
                    logger.debug("attachment_skipped", content_type=content_type)
                    continue

                filename = part.get_filename() or "attachment"
                data = part.get_payload(decode=True) or b""
                try:
                    path = self._attachments.save(data, clean_base_name(filename))
                except (OSError, NameExhaustedError, Image.DecompressionBombError) as exc:
                    raise ParseError(
                        f"failed to store {content_type} attachment {filename!r}: {exc}"
                    ) from exc
                written.append(path)
        except ParseError:
            self._attachments.discard(written)
            raise
        except Exception as exc:
            self._attachments.discard(written)
            raise ParseError(f"malformed attachment part: {type(exc).__name__}: {exc}") from exc
        return written


def _decode_text(part: EmailMessage) -> str:
    try:
        content = part.get_content()
    except (LookupError, UnicodeError):
        # unknown or lying charset
        payload = part.get_payload(decode=True) or b""
        return payload.decode("utf-8", errors="replace")
    return content if isinstance(content, str) else ""

