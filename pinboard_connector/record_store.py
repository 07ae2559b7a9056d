"""RecordStore — persists Records as compact binary ``.cmsg`` files.

File layout (all integers little-endian)::

    b"CMSG"  u8 version
    u8  kind
    u8  has_tz  i64 microseconds since the epoch (UTC when has_tz)  i32 utc offset seconds
    str sender_name, str short_text, str long_text
    list image_names, list video_names, list audio_names

``str`` is a u32 byte length followed by UTF-8; ``list`` is a u32 count
followed by that many ``str``.
"""

from __future__ import annotations

import os
import struct
import tempfile
from datetime import UTC, datetime, timedelta, timezone
from pathlib import Path

import structlog
from pydantic import ValidationError

from pinboard_schema import Record, RecordKind
from pinboard_schema.record import RECORD_SUFFIX

from .errors import DecodeError

logger = structlog.get_logger()

MAGIC = b"CMSG"
FORMAT_VERSION = 1

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)
_NAIVE_EPOCH = datetime(1970, 1, 1)
_ONE_MICROSECOND = timedelta(microseconds=1)

_HEADER = struct.Struct("<4sB")
_TIMESTAMP = struct.Struct("<BBqi")
_LENGTH = struct.Struct("<I")


# ----------------------------------------------------------------------
# Codec
# ----------------------------------------------------------------------


def encode_record(record: Record) -> bytes:
    """Serialize every field of *record*."""
    ts = record.timestamp
    offset = ts.utcoffset()
    if offset is None:
        micros = (ts - _NAIVE_EPOCH) // _ONE_MICROSECOND
        has_tz, offset_seconds = 0, 0
    else:
        micros = (ts - _EPOCH) // _ONE_MICROSECOND
        has_tz, offset_seconds = 1, int(offset.total_seconds())

    parts = [
        _HEADER.pack(MAGIC, FORMAT_VERSION),
        _TIMESTAMP.pack(int(record.kind), has_tz, micros, offset_seconds),
    ]
    for text in (record.sender_name, record.short_text, record.long_text):
        parts.append(_pack_str(text))
    for names in (record.image_names, record.video_names, record.audio_names):
        parts.append(_LENGTH.pack(len(names)))
        parts.extend(_pack_str(name) for name in names)
    return b"".join(parts)


def decode_record(data: bytes) -> Record:
    """Inverse of :func:`encode_record`.

    Raises :class:`DecodeError` unless *data* is exactly one complete
    encoding.
    """
    reader = _Reader(data)
    magic, version = reader.unpack(_HEADER)
    if magic != MAGIC:
        raise DecodeError(f"not a record file (magic {magic!r})")
    if version != FORMAT_VERSION:
        raise DecodeError(f"unsupported record format version {version}")

    kind_tag, has_tz, micros, offset_seconds = reader.unpack(_TIMESTAMP)
    try:
        kind = RecordKind(kind_tag)
    except ValueError as exc:
        raise DecodeError(f"unknown record kind {kind_tag}") from exc

    try:
        if has_tz:
            tz = timezone(timedelta(seconds=offset_seconds))
            timestamp = (_EPOCH + micros * _ONE_MICROSECOND).astimezone(tz)
        else:
            timestamp = _NAIVE_EPOCH + micros * _ONE_MICROSECOND
    except (OverflowError, ValueError) as exc:
        raise DecodeError(f"invalid timestamp: {exc}") from exc

    sender_name = reader.string()
    short_text = reader.string()
    long_text = reader.string()
    image_names = reader.string_list()
    video_names = reader.string_list()
    audio_names = reader.string_list()

    if reader.remaining:
        raise DecodeError(f"{reader.remaining} trailing bytes after record")

    try:
        return Record(
            kind=kind,
            timestamp=timestamp,
            sender_name=sender_name,
            short_text=short_text,
            long_text=long_text,
            image_names=image_names,
            video_names=video_names,
            audio_names=audio_names,
        )
    except ValidationError as exc:
        raise DecodeError(f"invalid record fields: {exc}") from exc


def _pack_str(text: str) -> bytes:
    raw = text.encode("utf-8")
    return _LENGTH.pack(len(raw)) + raw


class _Reader:
    def __init__(self, data: bytes) -> None:
        self._data = data
        self._pos = 0

    @property
    def remaining(self) -> int:
        return len(self._data) - self._pos

    def unpack(self, fmt: struct.Struct) -> tuple:
        if self.remaining < fmt.size:
            raise DecodeError(f"truncated record at byte {self._pos}")
        values = fmt.unpack_from(self._data, self._pos)
        self._pos += fmt.size
        return values

    def string(self) -> str:
        (length,) = self.unpack(_LENGTH)
        if self.remaining < length:
            raise DecodeError(f"truncated string at byte {self._pos}")
        raw = self._data[self._pos:self._pos + length]
        self._pos += length
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeError(f"invalid UTF-8 at byte {self._pos - length}") from exc

    def string_list(self) -> list[str]:
        (count,) = self.unpack(_LENGTH)
        # every entry needs at least its length prefix
        if count * _LENGTH.size > self.remaining:
            raise DecodeError(f"truncated list at byte {self._pos}")
        return [self.string() for _ in range(count)]


# ----------------------------------------------------------------------
# Store
# ----------------------------------------------------------------------


class RecordStore:
    """Saves and loads Records in a single directory, keyed by
    :meth:`Record.filename`.
    """

    def __init__(self, directory: Path | str) -> None:
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def filename(self, record: Record) -> str:
        return record.filename()

    def path_for(self, record: Record) -> Path:
        return self._directory / record.filename()

    def save(self, record: Record) -> Path:
        """Write *record* and return its path.

        The whole buffer goes to a temporary file which is then renamed
        over the target, so readers never see a partial record.
        """
        data = encode_record(record)
        path = self.path_for(record)
        self._directory.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(dir=self._directory, prefix=".", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
            os.replace(tmp_name, path)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            logger.error("record_save_failed", path=str(path), short_text=record.short_text)
            raise

        logger.info(
            "record_saved",
            path=str(path),
            sender=record.sender_name,
            short_text=record.short_text,
            images=len(record.image_names),
        )
        return path

    def load(self, filename: Path | str) -> Record:
        """Read one record.  Relative names resolve against the store directory."""
        path = Path(filename)
        if not path.is_absolute():
            path = self._directory / path
        data = path.read_bytes()
        record = decode_record(data)
        logger.debug("record_loaded", path=str(path), short_text=record.short_text)
        return record

    def load_all(self) -> list[Record]:
        """Load every ``.cmsg`` file in the directory, ordered by file name."""
        if not self._directory.is_dir():
            return []
        paths = sorted(
            p for p in self._directory.iterdir()
            if p.is_file() and p.name.endswith(RECORD_SUFFIX)
        )
        return [self.load(p) for p in paths]
