from __future__ import annotations

import pytest

from matephis.plot_transform import PIXEL_CLAMP, Transform
from matephis.plot_view import DEFAULT_LIMITS, ViewState


def _transform(**kwargs) -> Transform:
    params = dict(bounds=(-10.0, 10.0, -10.0, 10.0), width=600.0, height=600.0, padding=20.0)
    params.update(kwargs)
    return Transform.build(params.pop("bounds"), params.pop("width"), params.pop("height"), params.pop("padding"), **params)


def test_forward_maps_corners_to_padded_rectangle() -> None:
    t = _transform()
    assert t.forward(-10.0, 10.0) == pytest.approx((20.0, 20.0))
    assert t.forward(10.0, -10.0) == pytest.approx((580.0, 580.0))
    assert t.forward(0.0, 0.0) == pytest.approx((300.0, 300.0))


def test_screen_y_grows_downward() -> None:
    t = _transform()
    assert t.forward(0.0, 5.0)[1] < t.forward(0.0, -5.0)[1]


@pytest.mark.parametrize("point", [(20.0, 20.0), (580.0, 580.0), (123.4, 456.7), (300.0, 21.5)])
def test_forward_inverse_round_trip(point) -> None:
    t = _transform(bounds=(-3.7, 12.1, 0.5, 2.25), width=640.0, height=480.0, padding=15.0)
    assert t.forward(*t.inverse(*point)) == pytest.approx(point, abs=1e-9)


def test_equal_aspect_recentres_y_range() -> None:
    t = _transform(width=600.0, height=400.0, equal_aspect=True)
    assert t.units_per_pixel_x == pytest.approx(t.units_per_pixel_y)
    assert (t.y_min + t.y_max) / 2 == pytest.approx(0.0)
    assert (t.x_min, t.x_max) == (-10.0, 10.0)


def test_invalid_geometry_raises() -> None:
    with pytest.raises(ValueError, match="Empty view bounds"):
        Transform.build((1.0, 1.0, 0.0, 1.0), 600, 600, 20)
    with pytest.raises(ValueError, match="no plot area"):
        Transform.build((0.0, 1.0, 0.0, 1.0), 30, 30, 20)


def test_safe_map_y_clamps_but_keeps_nan() -> None:
    import numpy as np

    t = _transform()
    out = t.safe_map_y(np.array([1e12, -1e12, np.nan]))
    assert out[0] == -PIXEL_CLAMP
    assert out[1] == PIXEL_CLAMP
    assert np.isnan(out[2])


def test_view_is_unset_until_first_pan() -> None:
    view = ViewState((-5.0, 5.0, -5.0, 5.0))
    assert not view.is_set
    assert view.active_bounds() == (-5.0, 5.0, -5.0, 5.0)

    view.pan(1.0, -2.0)
    assert view.is_set
    assert view.active_bounds() == (-4.0, 6.0, -7.0, 3.0)


def test_view_pan_is_seeded_from_displayed_bounds() -> None:
    view = ViewState((-5.0, 5.0, -5.0, 5.0))
    view.pan(1.0, 0.0, seed=(-5.0, 5.0, -2.0, 2.0))
    assert view.active_bounds() == (-4.0, 6.0, -2.0, 2.0)


def test_reconfigure_keeps_override_for_same_limits_and_drops_it_otherwise() -> None:
    view = ViewState((-5.0, 5.0, -5.0, 5.0))
    view.pan(1.0, 0.0)
    assert view.reconfigure((-5, 5, -5, 5)) is False
    assert view.is_set

    assert view.reconfigure((-1, 1, -1, 1)) is True
    assert not view.is_set
    assert view.active_bounds() == (-1.0, 1.0, -1.0, 1.0)


def test_reset_sets_override_to_configured_limits() -> None:
    view = ViewState((-5.0, 5.0, -5.0, 5.0))
    view.zoom_center(0.5)
    assert view.active_bounds() == pytest.approx((-2.5, 2.5, -2.5, 2.5))
    view.reset()
    assert view.is_set
    assert view.active_bounds() == (-5.0, 5.0, -5.0, 5.0)


def test_zoom_keeps_focal_point_under_cursor() -> None:
    view = ViewState((-10.0, 10.0, -10.0, 10.0))
    before = Transform.build(view.active_bounds(), 600, 600, 20)
    px, py = before.forward(3.0, -4.0)

    view.zoom_at(3.0, -4.0, 0.5)
    after = Transform.build(view.active_bounds(), 600, 600, 20)
    assert after.inverse(px, py) == pytest.approx((3.0, -4.0))
    assert after.x_max - after.x_min == pytest.approx(10.0)


def test_zoom_factor_must_be_positive() -> None:
    view = ViewState((-1.0, 1.0, -1.0, 1.0))
    with pytest.raises(ValueError):
        view.zoom_at(0.0, 0.0, 0.0)


def test_clamped_view_stays_inside_configured_limits() -> None:
    view = ViewState((-10.0, 10.0, -10.0, 10.0), clamped=True)
    view.pan(-3.0, 0.0)
    assert view.active_bounds() == (-10.0, 10.0, -10.0, 10.0)

    view.zoom_center(0.5)
    view.pan(100.0, 100.0)
    assert view.active_bounds() == pytest.approx((0.0, 10.0, 0.0, 10.0))

    view.zoom_center(4.0)
    assert view.active_bounds() == (-10.0, 10.0, -10.0, 10.0)


def test_default_limits() -> None:
    assert DEFAULT_LIMITS == (-9.9, 9.9)
