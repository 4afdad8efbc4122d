from __future__ import annotations

import numpy as np
import pytest

from matephis.plot_contour import CASE_TABLE, marching_squares
from matephis.plot_expression import compile_expression
from matephis.plot_transform import Transform


def _transform(bounds=(-10.0, 10.0, -10.0, 10.0)) -> Transform:
    return Transform.build(bounds, 600, 600, 20)


def test_circle_segments_lie_on_the_circle() -> None:
    F = compile_expression("x^2 + y^2 = 25", variables=("x", "y"))
    segments = marching_squares(F, _transform())

    assert len(segments) > 50
    radii = np.hypot(segments.data[..., 0], segments.data[..., 1])
    assert np.all(np.abs(radii - 5.0) < 0.05)


def test_pixels_are_the_forward_map_of_data() -> None:
    t = _transform()
    F = compile_expression("x^2 + y^2 = 25", variables=("x", "y"))
    segments = marching_squares(F, t)

    first = segments.data[0, 0]
    assert tuple(segments.pixels[0, 0]) == pytest.approx(t.forward(first[0], first[1]))


def test_no_crossing_yields_empty_result() -> None:
    F = compile_expression("x^2 + y^2 + 1", variables=("x", "y"))
    segments = marching_squares(F, _transform())
    assert segments.is_empty
    assert segments.label_anchor is None


def test_resolution_controls_segment_count() -> None:
    F = compile_expression("y = x", variables=("x", "y"))
    coarse = marching_squares(F, _transform(), resolution=10)
    fine = marching_squares(F, _transform(), resolution=40)
    assert 0 < len(coarse) < len(fine)


def test_saddle_codes_emit_two_segments() -> None:
    assert len(CASE_TABLE[5]) == 2
    assert len(CASE_TABLE[10]) == 2
    assert all(len(CASE_TABLE[code]) == 1 for code in range(1, 15) if code not in (5, 10))

    def saddle(X, Y):
        return np.array([[1.0, -1.0], [-1.0, 1.0]])

    segments = marching_squares(saddle, _transform((0.0, 1.0, 0.0, 1.0)), resolution=1)
    assert len(segments) == 2


def test_edge_interpolation_uses_corner_magnitudes() -> None:
    # F = x - 0.25 crosses the bottom and top edges a quarter of the way in.
    segments = marching_squares(lambda X, Y: X - 0.25, _transform((0.0, 1.0, 0.0, 1.0)), resolution=1)
    assert len(segments) == 1
    xs = sorted(segments.data[0, :, 0])
    assert xs == pytest.approx([0.25, 0.25])


def test_cells_with_non_finite_corners_are_skipped() -> None:
    F = compile_expression("sqrt(x) - 1 + 0*y", variables=("x", "y"))
    segments = marching_squares(F, _transform((-1.0, 3.0, -1.0, 1.0)), resolution=8)
    assert not segments.is_empty
    assert np.all(segments.data[..., 0] > 0.0)


def test_invalid_resolution() -> None:
    with pytest.raises(ValueError):
        marching_squares(lambda X, Y: X, _transform(), resolution=0)


@pytest.mark.parametrize(
    ("text", "bounds"),
    [
        ("x = 1", (-1.0, 3.0, -1.0, 3.0)),
        ("x*y = 0", (-3.0, 3.0, -3.0, 3.0)),
        ("y = 0", (-10.0, 10.0, -10.0, 10.0)),
    ],
)
def test_curves_through_grid_vertices(text: str, bounds) -> None:
    F = compile_expression(text, variables=("x", "y"))
    segments = marching_squares(F, _transform(bounds), resolution=8)
    assert not segments.is_empty
    assert np.all(np.isfinite(segments.data))


def test_edge_with_two_zero_corners_is_not_interpolated() -> None:
    # Left edge has both corners on the curve; the case uses the bottom and top edges.
    segments = marching_squares(lambda X, Y: X, _transform((0.0, 1.0, 0.0, 1.0)), resolution=1)
    assert len(segments) == 1
    assert sorted(segments.data[0, :, 0]) == pytest.approx([0.0, 0.0])
