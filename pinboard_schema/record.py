"""Record schema — the unit of ingest handed to the presentation layer."""

from __future__ import annotations

import re
from datetime import datetime
from enum import IntEnum

from pydantic import BaseModel, ConfigDict, Field

RECORD_SUFFIX = ".cmsg"

_FILENAME_TRANSLATION = str.maketrans({
    " ": "-",
    "@": "-",
    ".": "-",
    "/": "-",
    "\\": "-",
    "<": None,
    ">": None,
})
_DASH_RUN = re.compile(r"-{2,}")


class RecordKind(IntEnum):
    """Source of a record.  Persisted as its integer value."""

    UNDEFINED = 0
    SOCIAL_POST = 1
    EMAIL = 2


class Record(BaseModel):
    """A normalized message with the paths of its extracted media files.

    Every field is validated on construction, so a Record is either fully
    populated or not created at all.
    """

    model_config = ConfigDict(frozen=True)

    kind: RecordKind = Field(description="Source of the record")
    timestamp: datetime = Field(description="Date the message was sent")
    sender_name: str = Field(description="Sender as given by the source (e.g. From header)")
    short_text: str = Field(description="Headline (e.g. mail subject)")
    long_text: str = Field(description="Body text")
    image_names: list[str] = Field(
        default_factory=list,
        description="Paths of the normalized RGBA image files, in message order",
    )
    video_names: list[str] = Field(default_factory=list, description="Paths of video files")
    audio_names: list[str] = Field(default_factory=list, description="Paths of audio files")

    def filename(self) -> str:
        """Deterministic file name for this record, e.g.
        ``Pin-20250601-120000-Jane-Doe-jane-example-com.cmsg``.
        """
        stamp = self.timestamp.strftime("%Y%m%d-%H%M%S")
        name = f"Pin-{stamp}-{self.sender_name}".translate(_FILENAME_TRANSLATION)
        return _DASH_RUN.sub("-", name) + RECORD_SUFFIX
