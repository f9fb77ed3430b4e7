"""Tests for coordinate space conversions."""

import pytest

from samlayer.exceptions import InvalidArgumentError
from samlayer.services.coordinates import (
    denormalize,
    display_to_image,
    fraction_of,
    image_to_display,
    normalize,
    to_model_space,
)


class TestToModelSpace:
    """Tests for to_model_space function."""

    def test_scales_to_model_resolution(self) -> None:
        """Point in a 2000x1000 image maps proportionally to 1024x1024."""
        assert to_model_space((1000, 250), (2000, 1000), (1024, 1024)) == (512.0, 256.0)

    def test_origin_stays_at_origin(self) -> None:
        """The top-left corner maps to the model origin."""
        assert to_model_space((0, 0), (640, 480), (1024, 1024)) == (0.0, 0.0)

    def test_out_of_range_points_pass_through(self) -> None:
        """Points outside the image are not clamped."""
        x, y = to_model_space((-10, 960), (640, 480), (1024, 1024))
        assert x == pytest.approx(-16.0)
        assert y == pytest.approx(2048.0)

    def test_zero_size_raises(self) -> None:
        """A zero-sized image is rejected instead of dividing by zero."""
        with pytest.raises(InvalidArgumentError, match="non-zero"):
            to_model_space((1, 1), (0, 480), (1024, 1024))


class TestNormalize:
    """Tests for normalize and denormalize functions."""

    def test_center_maps_to_zero(self) -> None:
        """The image midpoint normalizes to (0, 0)."""
        assert normalize((50, 25), (100, 50)) == (0.0, 0.0)

    def test_corners_map_to_unit_range(self) -> None:
        """Corners normalize to -1 and 1 at scale 1."""
        assert normalize((0, 0), (100, 50)) == (-1.0, -1.0)
        assert normalize((100, 50), (100, 50)) == (1.0, 1.0)

    def test_scale_divides_offset(self) -> None:
        """A zoom of 2 halves the normalized offset."""
        assert normalize((100, 50), (100, 50), scale=2.0) == (0.5, 0.5)

    @pytest.mark.parametrize(
        ("point", "size", "scale"),
        [
            ((0.0, 0.0), (100, 50), 1.0),
            ((12.5, 7.25), (640, 480), 1.5),
            ((-30.0, 900.0), (1920, 1080), 0.25),
            ((333.3, 0.1), (3, 7), 3.0),
        ],
    )
    def test_round_trip(self, point: tuple[float, float], size: tuple[int, int], scale: float) -> None:
        """Denormalize inverts normalize within float tolerance."""
        restored = denormalize(normalize(point, size, scale), size, scale)
        assert restored == pytest.approx(point)

    def test_zero_scale_raises(self) -> None:
        """A zero scale is rejected."""
        with pytest.raises(InvalidArgumentError):
            normalize((1, 1), (10, 10), scale=0)


class TestDisplayMapping:
    """Tests for display and original image conversions."""

    def test_display_to_image_rescales(self) -> None:
        """A click in a half-size view maps to double coordinates."""
        assert display_to_image((100, 50), (400, 300), (800, 600)) == (200.0, 100.0)

    def test_image_to_display_inverts(self) -> None:
        """image_to_display is the inverse of display_to_image."""
        point = display_to_image((123, 45), (400, 300), (800, 600))
        assert image_to_display(point, (800, 600), (400, 300)) == pytest.approx((123, 45))

    def test_fraction_of(self) -> None:
        """fraction_of expresses a point relative to a size."""
        assert fraction_of((25, 10), (100, 40)) == (0.25, 0.25)
