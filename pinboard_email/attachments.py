"""AttachmentStore — normalizes image attachments to raw RGBA files.

Output layout (little-endian)::

    u64 width | u64 height | width * height * 4 bytes RGBA

Rows are stored bottom-up (the image is flipped vertically) because the
display surface puts its origin in the bottom-left corner.
"""

from __future__ import annotations

import io
import os
import struct
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

import structlog
from PIL import Image, ImageOps

from pinboard_connector.errors import DecodeError, NameExhaustedError

logger = structlog.get_logger()

MAX_COLLISIONS = 10000

_DIMENSIONS = struct.Struct("<QQ")


@dataclass(frozen=True)
class RgbaImage:
    """A normalized image as read back from disk."""

    width: int
    height: int
    pixels: bytes


def clean_base_name(filename: str) -> str:
    """Drop directories, a trailing extension and whitespace from an
    attachment file name.
    """
    base = os.path.basename(filename.replace("\\", "/"))
    stem, _ext = os.path.splitext(base)
    stem = "".join(stem.split())
    return stem or "attachment"


def fit_within(width: int, height: int, max_width: int, max_height: int) -> tuple[int, int]:
    """Largest size with the same aspect ratio that fits the bounds.

    Images already within bounds keep their size; nothing is scaled up.
    """
    if width <= max_width and height <= max_height:
        return width, height
    factor = min(max_width / width, max_height / height)
    return max(1, int(width * factor)), max(1, int(height * factor))


class AttachmentStore:
    """Writes normalized images under collision-free names in *directory*."""

    def __init__(
        self,
        directory: Path | str,
        *,
        max_width: int = 1920,
        max_height: int = 1080,
        extension: str = "rgba",
        background_color: str | None = None,
        max_collisions: int = MAX_COLLISIONS,
    ) -> None:
        self._directory = Path(directory)
        self._max_width = max_width
        self._max_height = max_height
        self._extension = extension
        self._background_color = background_color
        self._max_collisions = max_collisions

    @property
    def directory(self) -> Path:
        return self._directory

    def unique_path(self, base: str) -> Path:
        """Return ``<base>.<ext>`` or the first free ``<base>-NNNN.<ext>``.

        Raises :class:`NameExhaustedError` when every suffix up to the
        collision bound is taken.
        """
        base = clean_base_name(base)
        candidate = self._directory / f"{base}.{self._extension}"
        if not candidate.exists():
            return candidate
        for n in range(self._max_collisions):
            candidate = self._directory / f"{base}-{n:04d}.{self._extension}"
            if not candidate.exists():
                return candidate
        raise NameExhaustedError(
            f"no free file name for {base!r} after {self._max_collisions} attempts"
        )

    def save(self, data: bytes, base: str) -> Path:
        """Decode *data*, normalize it and write it; return the new path.

        Undecodable data raises :class:`PIL.UnidentifiedImageError`, an
        :class:`OSError` like every other I/O failure here.
        """
        image = self._normalize(data)
        width, height = image.size
        pixels = image.tobytes("raw", "RGBA")

        self._directory.mkdir(parents=True, exist_ok=True)
        path = self.unique_path(base)
        # "xb" fails instead of overwriting if another writer took the name
        with open(path, "xb") as fh:
            fh.write(_DIMENSIONS.pack(width, height) + pixels)

        logger.info("attachment_saved", path=str(path), width=width, height=height)
        return path

    def discard(self, paths: Iterable[Path | str]) -> None:
        """Remove files written for a message that was not kept.

        Failures are logged, not raised.
        """
        for path in paths:
            try:
                Path(path).unlink(missing_ok=True)
            except OSError as exc:
                logger.warning("attachment_cleanup_failed", path=str(path), error=str(exc))

    def _normalize(self, data: bytes) -> Image.Image:
        with Image.open(io.BytesIO(data)) as source:
            source_size = source.size
            image = ImageOps.exif_transpose(source).convert("RGBA")
        image = image.transpose(Image.Transpose.FLIP_TOP_BOTTOM)

        target = fit_within(*image.size, self._max_width, self._max_height)
        if target != image.size:
            # bicubic is Catmull-Rom in Pillow
            image = image.resize(target, Image.Resampling.BICUBIC)
            logger.debug("attachment_resized", source=source_size, target=target)

        if self._background_color is not None:
            background = Image.new("RGBA", image.size, self._background_color)
            image = Image.alpha_composite(background, image)
        return image


def read_rgba(path: Path | str) -> RgbaImage:
    """Load a file written by :meth:`AttachmentStore.save`."""
    data = Path(path).read_bytes()
    if len(data) < _DIMENSIONS.size:
        raise DecodeError(f"{path}: missing image dimensions")
    width, height = _DIMENSIONS.unpack_from(data)
    pixels = data[_DIMENSIONS.size:]
    if len(pixels) != width * height * 4:
        raise DecodeError(
            f"{path}: expected {width * height * 4} pixel bytes for {width}x{height}, "
            f"found {len(pixels)}"
        )
    return RgbaImage(width=width, height=height, pixels=pixels)
