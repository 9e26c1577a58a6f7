"""Tests for the pose preset catalog."""

import pytest

from presets import (
    GLOBAL_SAFE_RANGES,
    POSE_PRESETS,
    PresetFamily,
    build_preset,
    clamp,
    get_preset,
    presets_by_family,
)


class TestBuildPreset:
    """Tests for preset construction."""

    def test_rotation_clamped_high(self):
        """Test that a 45 degree rotation is clamped to 20."""
        preset = build_preset("X", PresetFamily.COMMERCE_SAFE, "테스트", "Test", "", rotation=45,
                              arm="resting", desc="test")
        assert preset.signature.body_rotation_deg == 20
        assert preset.safe_ranges.body_rotation == (15, 25)

    def test_rotation_clamped_low(self):
        """Test that a -90 degree rotation is clamped to -20."""
        preset = build_preset("X", PresetFamily.COMMERCE_SAFE, "테스트", "Test", "", rotation=-90,
                              arm="resting", desc="test")
        assert preset.signature.body_rotation_deg == -20

    def test_id_format(self):
        """Test the POSE_{prefix}_{suffix} id format."""
        preset = build_preset("007", PresetFamily.CROP_FOCUS, "크롭", "Crop", "", rotation=0,
                              arm="resting", desc="crop")
        assert preset.id == "POSE_CROP_007"

    def test_arm_raise_range(self):
        """Test that every preset carries the global arm raise range."""
        preset = build_preset("X", PresetFamily.RECOVERY, "복구", "Recover", "", rotation=0,
                              arm="resting", desc="r")
        assert preset.safe_ranges.arm_raise == (0, 35)

    def test_clamp(self):
        """Test the clamp helper."""
        assert clamp(5, 0, 10) == 5
        assert clamp(-5, 0, 10) == 0
        assert clamp(50, 0, 10) == 10


class TestCatalog:
    """Tests for the built catalog."""

    def test_catalog_size(self):
        """Test the generated family sizes."""
        assert len(presets_by_family(PresetFamily.COMMERCE_SAFE)) == 5
        assert len(presets_by_family(PresetFamily.CROP_FOCUS)) == 5
        assert len(presets_by_family(PresetFamily.RECOVERY)) == 2
        assert len(POSE_PRESETS) == 12

    def test_all_within_safe_range(self):
        """Test that no catalog preset exceeds the global rotation range."""
        low, high = GLOBAL_SAFE_RANGES["body_rotation_deg"]
        for preset in POSE_PRESETS:
            assert low <= preset.signature.body_rotation_deg <= high

    def test_unique_ids(self):
        """Test that preset ids are unique."""
        ids = [p.id for p in POSE_PRESETS]
        assert len(ids) == len(set(ids))

    def test_family_by_string(self):
        """Test that families can be queried by value."""
        assert presets_by_family("RECOVERY") == presets_by_family(PresetFamily.RECOVERY)

    def test_empty_family(self):
        """Test that families without generators return no presets."""
        assert presets_by_family(PresetFamily.ANGLE_SET) == []

    def test_get_preset(self):
        """Test lookup by id."""
        preset = get_preset("POSE_COM_SAFE_001")
        assert preset.name_en == "Front Neutral Stand"
        assert preset.family == PresetFamily.COMMERCE_SAFE

    def test_get_preset_unknown(self):
        """Test that unknown ids raise KeyError."""
        with pytest.raises(KeyError):
            get_preset("POSE_NOPE_999")

    def test_presets_frozen(self):
        """Test that catalog entries cannot be mutated."""
        with pytest.raises(Exception):
            POSE_PRESETS[0].name_en = "Changed"
