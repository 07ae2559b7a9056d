"""Tests for pinboard_email.attachments."""

from __future__ import annotations

import io
from pathlib import Path

import pytest
from PIL import Image, UnidentifiedImageError

from pinboard_connector.errors import DecodeError, NameExhaustedError
from pinboard_email.attachments import (
    AttachmentStore,
    clean_base_name,
    fit_within,
    read_rgba,
)

from tests.conftest import _image_bytes

RED = (255, 0, 0, 255)
BLUE = (0, 0, 255, 255)


def _two_tone_png() -> bytes:
    """2x2 image: red top row, blue bottom row."""
    image = Image.new("RGBA", (2, 2), RED)
    image.putpixel((0, 1), BLUE)
    image.putpixel((1, 1), BLUE)
    buf = io.BytesIO()
    image.save(buf, format="PNG")
    return buf.getvalue()


class TestCleanBaseName:
    @pytest.mark.parametrize(
        ("filename", "expected"),
        [
            ("beach.png", "beach"),
            ("my holiday photo.JPG", "myholidayphoto"),
            ("../../etc/passwd.png", "passwd"),
            ("C:\\Users\\jane\\scan.jpeg", "scan"),
            ("archive.tar.png", "archive.tar"),
            ("   ", "attachment"),
            ("", "attachment"),
        ],
    )
    def test_clean(self, filename: str, expected: str):
        assert clean_base_name(filename) == expected


class TestFitWithin:
    def test_downscales_keeping_aspect(self):
        assert fit_within(3840, 2160, 1920, 1080) == (1920, 1080)

    def test_limited_by_height(self):
        assert fit_within(1000, 4000, 1920, 1080) == (270, 1080)

    def test_limited_by_width(self):
        assert fit_within(4000, 1000, 1920, 1080) == (1920, 480)

    def test_never_upscales(self):
        assert fit_within(640, 480, 1920, 1080) == (640, 480)

    def test_exact_bounds_untouched(self):
        assert fit_within(1920, 1080, 1920, 1080) == (1920, 1080)


class TestUniquePath:
    def test_free_name(self, attachment_store: AttachmentStore):
        assert attachment_store.unique_path("beach") == attachment_store.directory / "beach.rgba"

    def test_collisions_get_numbered_suffix(self, attachment_store: AttachmentStore):
        directory = attachment_store.directory
        directory.mkdir(parents=True)
        (directory / "beach.rgba").write_bytes(b"")
        assert attachment_store.unique_path("beach") == directory / "beach-0000.rgba"
        (directory / "beach-0000.rgba").write_bytes(b"")
        assert attachment_store.unique_path("beach") == directory / "beach-0001.rgba"

    def test_exhausted(self, tmp_path: Path):
        store = AttachmentStore(tmp_path, max_collisions=3)
        for name in ("x.rgba", "x-0000.rgba", "x-0001.rgba", "x-0002.rgba"):
            (tmp_path / name).write_bytes(b"")
        with pytest.raises(NameExhaustedError):
            store.unique_path("x")

    def test_custom_extension(self, tmp_path: Path):
        store = AttachmentStore(tmp_path, extension="raw")
        assert store.unique_path("pic").name == "pic.raw"


class TestSave:
    def test_writes_dimensions_and_rgba(self, attachment_store: AttachmentStore, png_bytes: bytes):
        path = attachment_store.save(png_bytes, "beach")
        assert path == attachment_store.directory / "beach.rgba"
        image = read_rgba(path)
        assert (image.width, image.height) == (40, 20)
        assert len(image.pixels) == 40 * 20 * 4
        assert image.pixels[:4] == bytes((200, 30, 30, 255))

    def test_rows_are_flipped(self, attachment_store: AttachmentStore):
        image = read_rgba(attachment_store.save(_two_tone_png(), "flip"))
        # first stored row is the bottom row of the source
        assert image.pixels[:8] == bytes(BLUE * 2)
        assert image.pixels[8:] == bytes(RED * 2)

    def test_large_image_is_downscaled(self, attachment_store: AttachmentStore):
        data = _image_bytes(3840, 2160, fmt="JPEG")
        image = read_rgba(attachment_store.save(data, "big"))
        assert (image.width, image.height) == (1920, 1080)

    def test_small_image_not_upscaled(self, attachment_store: AttachmentStore):
        data = _image_bytes(10, 5, fmt="JPEG")
        image = read_rgba(attachment_store.save(data, "small"))
        assert (image.width, image.height) == (10, 5)

    def test_custom_bounds(self, tmp_path: Path):
        store = AttachmentStore(tmp_path, max_width=100, max_height=100)
        image = read_rgba(store.save(_image_bytes(400, 200), "wide"))
        assert (image.width, image.height) == (100, 50)

    def test_same_name_twice(self, attachment_store: AttachmentStore, png_bytes: bytes):
        first = attachment_store.save(png_bytes, "beach")
        second = attachment_store.save(png_bytes, "beach")
        assert first.name == "beach.rgba"
        assert second.name == "beach-0000.rgba"
        assert first.read_bytes() == second.read_bytes()

    def test_transparency_kept_by_default(self, attachment_store: AttachmentStore):
        data = _image_bytes(4, 4, mode="RGBA", color=(10, 20, 30, 0))
        image = read_rgba(attachment_store.save(data, "clear"))
        assert image.pixels[3] == 0

    def test_background_color_flattens_alpha(self, tmp_path: Path):
        store = AttachmentStore(tmp_path, background_color="orange")
        data = _image_bytes(4, 4, mode="RGBA", color=(10, 20, 30, 0))
        image = read_rgba(store.save(data, "clear"))
        assert image.pixels[:4] == bytes((255, 165, 0, 255))

    def test_paletted_image(self, attachment_store: AttachmentStore):
        data = _image_bytes(8, 8, mode="P", color=3)
        image = read_rgba(attachment_store.save(data, "palette"))
        assert len(image.pixels) == 8 * 8 * 4

    def test_undecodable_data(self, attachment_store: AttachmentStore):
        with pytest.raises(UnidentifiedImageError):
            attachment_store.save(b"definitely not an image", "junk")
        assert not list(attachment_store.directory.glob("*"))


class TestReadRgba:
    def test_missing_dimensions(self, tmp_path: Path):
        path = tmp_path / "short.rgba"
        path.write_bytes(b"\x01\x02")
        with pytest.raises(DecodeError, match="dimensions"):
            read_rgba(path)

    def test_pixel_length_mismatch(self, attachment_store: AttachmentStore, png_bytes: bytes):
        path = attachment_store.save(png_bytes, "beach")
        path.write_bytes(path.read_bytes()[:-1])
        with pytest.raises(DecodeError, match="pixel bytes"):
            read_rgba(path)


class TestDiscard:
    def test_removes_files(self, attachment_store: AttachmentStore, png_bytes: bytes):
        first = attachment_store.save(png_bytes, "one")
        second = attachment_store.save(png_bytes, "two")
        attachment_store.discard([first, str(second)])
        assert not first.exists()
        assert not second.exists()

    def test_missing_files_ignored(self, attachment_store: AttachmentStore, tmp_path: Path):
        attachment_store.discard([tmp_path / "gone.rgba"])

    def test_failure_is_not_raised(self, attachment_store: AttachmentStore, tmp_path: Path):
        # a directory cannot be unlinked
        directory = tmp_path / "busy.rgba"
        directory.mkdir()
        attachment_store.discard([directory])
        assert directory.exists()
