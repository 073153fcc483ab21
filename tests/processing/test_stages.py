"""
Unit Tests for Pipeline Stages

This module tests stages.py: construction-time validation, declarative
parsing, output shape propagation and the defaults table constants.

Author: Matthew Hong
"""

from pathlib import Path

import numpy as np
import pytest

from imgprep.errors import InvalidArgument
from imgprep.processing.image import ColorOrder, ImageShape, PixelBuffer
from imgprep.processing.stages import (
    DEFAULT_MEAN,
    DEFAULT_SCALING_FACTOR,
    IMAGE_STAGES,
    TENSOR_STAGES,
    Crop,
    Load,
    Normalize,
    Rescale,
    Resize,
    Rotate,
    Save,
    parse_stage,
)
from imgprep.processing.transforms import Interpolation


class TestDefaults:
    """Tests for constants read from defaults.yaml."""

    def test_default_scaling_factor(self) -> None:
        """Rescale defaults to 255."""
        assert DEFAULT_SCALING_FACTOR == 255.0
        assert Rescale().scaling_factor == 255.0

    def test_default_color_mode(self) -> None:
        """Load defaults to RGB."""
        assert Load().color_mode == ColorOrder.RGB

    def test_default_normalize_is_imagenet(self) -> None:
        """Normalize defaults to ImageNet statistics."""
        assert Normalize().mean == DEFAULT_MEAN
        assert len(Normalize().std) == 3


class TestStageValidation:
    """Stages validate their parameters on construction."""

    @pytest.mark.parametrize("width,height", [(0, 1), (1, 0), (-4, 4)])
    def test_resize_non_positive(self, width: int, height: int) -> None:
        with pytest.raises(InvalidArgument, match="positive"):
            Resize(width, height)

    def test_resize_non_integer(self) -> None:
        with pytest.raises(InvalidArgument, match="integer"):
            Resize(4.5, 4)

    def test_crop_negative(self) -> None:
        with pytest.raises(InvalidArgument, match=">= 0"):
            Crop(bottom=-2)

    def test_rotate_non_number(self) -> None:
        with pytest.raises(InvalidArgument, match="number"):
            Rotate("ninety")

    def test_rescale_zero(self) -> None:
        with pytest.raises(InvalidArgument, match="non-zero"):
            Rescale(scaling_factor=0)

    def test_normalize_length_mismatch(self) -> None:
        with pytest.raises(InvalidArgument, match="one value per channel"):
            Normalize(mean=(0.5, 0.5, 0.5), std=(0.5, 0.5))

    def test_normalize_needs_three_channels(self) -> None:
        """Two-channel statistics are rejected before any image is seen."""
        with pytest.raises(InvalidArgument, match="one value per channel"):
            Normalize(mean=(0.5, 0.5), std=(0.5, 0.5))

    @pytest.mark.parametrize("mean", ["abc", 0.5, None, [0.5, "x", 0.5], [0.5, True, 0.5]])
    def test_normalize_non_numeric(self, mean) -> None:
        with pytest.raises(InvalidArgument, match="normalize.mean"):
            Normalize(mean=mean, std=(0.5, 0.5, 0.5))

    @pytest.mark.parametrize("extension", [5, None, "", "."])
    def test_save_bad_extension(self, extension) -> None:
        with pytest.raises(InvalidArgument, match="save.extension"):
            Save("out", extension=extension)

    def test_save_bad_directory_type(self) -> None:
        with pytest.raises(InvalidArgument, match="dir_location"):
            Save(5)

    def test_save_requires_directory(self) -> None:
        with pytest.raises(InvalidArgument, match="dir_location"):
            Save("")

    def test_stages_are_immutable(self) -> None:
        stage = Resize(4, 4)

        with pytest.raises(AttributeError):
            stage.output_width = 8

    def test_names_are_parsed(self) -> None:
        """Enum-valued parameters accept names."""
        assert Resize(4, 4, interpolation="nearest").interpolation == Interpolation.NEAREST
        assert Load(color_mode="bgr").color_mode == ColorOrder.BGR


class TestParseStage:
    """Tests for declarative stage parsing."""

    def test_parse_with_params(self) -> None:
        stage = parse_stage({"crop": {"left": 1, "bottom": 1}}, IMAGE_STAGES)

        assert stage == Crop(left=1, bottom=1)

    def test_parse_bare_name(self) -> None:
        stage = parse_stage("rescale", TENSOR_STAGES)

        assert stage == Rescale()

    def test_parse_null_params(self) -> None:
        stage = parse_stage({"rescale": None}, TENSOR_STAGES)

        assert stage == Rescale()

    def test_unknown_kind(self) -> None:
        with pytest.raises(InvalidArgument, match="Unknown stage 'blur'"):
            parse_stage({"blur": {}}, IMAGE_STAGES)

    def test_tensor_stage_not_allowed_in_image_section(self) -> None:
        with pytest.raises(InvalidArgument, match="Unknown stage 'rescale'"):
            parse_stage({"rescale": {}}, IMAGE_STAGES)

    def test_unknown_parameter(self) -> None:
        with pytest.raises(InvalidArgument, match="Unknown resize parameters"):
            parse_stage(
                {"resize": {"output_width": 4, "output_height": 4, "mode": "x"}},
                IMAGE_STAGES,
            )

    def test_missing_parameter(self) -> None:
        with pytest.raises(InvalidArgument, match="Invalid resize parameters"):
            parse_stage({"resize": {"output_width": 4}}, IMAGE_STAGES)

    @pytest.mark.parametrize(
        "entry",
        [
            {"normalize": {"mean": "abc", "std": "abc"}},
            {"normalize": {"mean": [1, 2], "std": [1, 2]}},
            {"rescale": {"scaling_factor": "255"}},
        ],
    )
    def test_malformed_tensor_values(self, entry) -> None:
        """Malformed values surface as InvalidArgument, never raw errors."""
        with pytest.raises(InvalidArgument):
            parse_stage(entry, TENSOR_STAGES)

    @pytest.mark.parametrize(
        "entry",
        [
            {"save": {"dir_location": "out", "extension": 5}},
            {"save": {"dir_location": ["out"]}},
            {"rotate": {"degrees": "90"}},
            {"resize": {"output_width": 4, "output_height": 4, "interpolation": 3}},
        ],
    )
    def test_malformed_image_values(self, entry) -> None:
        with pytest.raises(InvalidArgument):
            parse_stage(entry, IMAGE_STAGES)

    def test_multi_key_entry(self) -> None:
        with pytest.raises(InvalidArgument, match="single-key"):
            parse_stage({"crop": {}, "rotate": {}}, IMAGE_STAGES)

    def test_to_dict_round_trip(self) -> None:
        stage = Resize(4, 2, interpolation=Interpolation.NEAREST)

        assert stage.to_dict() == {
            "resize": {"output_width": 4, "output_height": 2, "interpolation": "NEAREST"}
        }
        assert parse_stage(stage.to_dict(), IMAGE_STAGES) == stage


class TestOutputShape:
    """Stages predict their output shape."""

    def test_resize_resolves_shape(self) -> None:
        assert Resize(4, 2).output_shape(ImageShape()) == ImageShape(4, 2, 3)

    def test_crop_subtracts_margins(self) -> None:
        shape = Crop(1, 2, 3, 4).output_shape(ImageShape(10, 20, 3))

        assert shape == ImageShape(7, 13, 3)

    def test_crop_keeps_unresolved(self) -> None:
        assert Crop(1, 1, 1, 1).output_shape(ImageShape()) == ImageShape()

    def test_crop_empty_raises(self) -> None:
        with pytest.raises(InvalidArgument, match="leaves"):
            Crop(left=5, right=5).output_shape(ImageShape(10, 20, 3))

    @pytest.mark.parametrize(
        "degrees,swapped",
        [(90, True), (270, True), (-90, True), (180, False), (0, False), (45, False)],
    )
    def test_rotate_swaps_for_odd_quarter_turns(self, degrees: float, swapped: bool) -> None:
        shape = Rotate(degrees).output_shape(ImageShape(4, 2, 3))

        assert shape == (ImageShape(2, 4, 3) if swapped else ImageShape(4, 2, 3))

    def test_rotate_shape_matches_apply(self, sample_image: np.ndarray) -> None:
        """Predicted and actual shapes agree."""
        buffer = PixelBuffer(sample_image)
        stage = Rotate(90)

        assert stage.apply(buffer, "test").shape == stage.output_shape(buffer.shape)


class TestSave:
    """Tests for the save stage."""

    def test_writes_file_named_by_id(
        self,
        tmp_path: Path,
        sample_image: np.ndarray,
    ) -> None:
        buffer = PixelBuffer(sample_image)
        stage = Save(str(tmp_path / "out"))

        result = stage.apply(buffer, "sample-1")

        assert (tmp_path / "out" / "sample-1.png").exists()
        assert result is buffer

    def test_extension_gets_dot(self) -> None:
        assert Save("out", extension="jpg").extension == ".jpg"

    def test_target_path_inside_directory(self, tmp_path: Path) -> None:
        stage = Save(str(tmp_path / "out"))

        assert stage.target_path("img-1") == (tmp_path / "out" / "img-1.png").resolve()

    @pytest.mark.parametrize(
        "image_id",
        ["../escaped", "..", ".", "", "nested/name", "nested\\name", "/abs/name"],
    )
    def test_rejects_ids_outside_directory(
        self,
        tmp_path: Path,
        sample_image: np.ndarray,
        image_id: str,
    ) -> None:
        """Ids must be plain file names; nothing is written otherwise."""
        stage = Save(str(tmp_path / "out"))

        with pytest.raises(InvalidArgument, match="Cannot save image"):
            stage.apply(PixelBuffer(sample_image), image_id)

        assert list(tmp_path.rglob("*.png")) == []
