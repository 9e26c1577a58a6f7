"""Tests for shared utility functions."""

import base64
from datetime import datetime

import pytest

from conftest import make_png
from utils import (
    batch_dir_name,
    decode_data_url,
    encode_data_url,
    guess_mime_type,
    read_png_metadata,
    save_slot_image,
    slot_filename,
    slugify,
)


class TestMimeAndDataUrls:
    """Tests for MIME sniffing and data URLs."""

    def test_guess_mime_type(self):
        """Test magic byte detection."""
        assert guess_mime_type(b"\xff\xd8\xff\xe0rest") == "image/jpeg"
        assert guess_mime_type(b"RIFF\x00\x00\x00\x00WEBPVP8 ") == "image/webp"
        assert guess_mime_type(make_png()) == "image/png"
        assert guess_mime_type(b"unknown") == "image/png"

    def test_decode_data_url(self):
        """Test decoding a full data URL."""
        png = make_png()
        url = "data:image/png;base64," + base64.b64encode(png).decode()
        assert decode_data_url(url) == png

    def test_decode_bare_base64(self):
        """Test decoding base64 without the data: prefix."""
        assert decode_data_url(base64.b64encode(b"hello").decode()) == b"hello"

    def test_encode_roundtrip(self):
        """Test that an encoded URL decodes to the same bytes."""
        png = make_png()
        url = encode_data_url(png)
        assert url.startswith("data:image/png;base64,")
        assert decode_data_url(url) == png

    def test_decode_invalid(self):
        """Test that bad input raises ValueError."""
        with pytest.raises(ValueError):
            decode_data_url("")
        with pytest.raises(ValueError):
            decode_data_url("data:image/png;base64,@@@not-base64@@@")


class TestNames:
    """Tests for file and directory naming."""

    def test_slugify(self):
        """Test label slugs."""
        assert slugify("Front Neutral Stand") == "front_neutral_stand"
        assert slugify("Edit: top, shoes") == "edit_top_shoes"
        assert slugify("  Left 35  ") == "left_35"
        assert slugify("!!!") == "image"

    def test_slot_filename(self):
        """Test zero-padded slot file names."""
        assert slot_filename(1, "Front") == "01_front.png"
        assert slot_filename(12, "Variation 12") == "12_variation_12.png"

    def test_batch_dir_name(self):
        """Test timestamped batch directory names."""
        name = batch_dir_name("angle_variant", datetime(2025, 3, 4, 5, 6, 7))
        assert name == "20250304_050607_angle_variant"


class TestPngMetadata:
    """Tests for saving and reading PNG text metadata."""

    def test_save_and_read(self, temp_dir):
        """Test that metadata survives a save."""
        dest = save_slot_image(make_png(), temp_dir / "sub" / "01_front.png", {
            "slot_id": "abc",
            "qc_score": 85,
            "qc_status": None,
        })
        assert dest.exists()
        metadata = read_png_metadata(dest)
        assert metadata["slot_id"] == "abc"
        assert metadata["qc_score"] == "85"
        assert "qc_status" not in metadata

    def test_save_undecodable(self, temp_dir):
        """Test that non-image bytes raise ValueError."""
        with pytest.raises(ValueError):
            save_slot_image(b"not an image", temp_dir / "bad.png", {})

    def test_read_missing(self, temp_dir):
        """Test that a missing file reads as empty metadata."""
        assert read_png_metadata(temp_dir / "missing.png") == {}
