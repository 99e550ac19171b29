import pytest

from certstamp.geometry import (
    IDENTITY,
    Orientation,
    PageMetrics,
    Rect,
    apply_matrix,
    display_to_page_matrix,
    invert_matrix,
    js_round,
    map_display_rect_to_page,
    map_page_rect_to_display,
    multiply_matrices,
    normalize_rotation,
    viewer_viewport,
)


@pytest.mark.parametrize(
    'angle,expected',
    [
        (0, 0),
        (90, 90),
        (-90, 270),
        (450, 90),
        (360, 0),
        (89.6, 90),
        ('180', 180),
        (None, 0),
        ('garbage', 0),
        (float('nan'), 0),
    ],
)
def test_normalize_rotation(angle, expected):
    assert normalize_rotation(angle) == expected


def test_normalize_rotation_non_cardinal():
    assert normalize_rotation(45) == pytest.approx(45)
    assert normalize_rotation(-45) == pytest.approx(315)


def test_js_round():
    assert js_round(2.5) == 3
    assert js_round(-2.5) == -2
    assert js_round(1.49) == 1


def test_metrics_unrotated():
    metrics = PageMetrics.from_box(612, 792)
    assert metrics.visual_width == 612
    assert metrics.visual_height == 792
    assert metrics.orientation == Orientation.PORTRAIT
    assert not metrics.quarter_turn


@pytest.mark.parametrize('rotation', [90, 270, -90])
def test_metrics_quarter_turn(rotation):
    metrics = PageMetrics.from_box(612, 792, rotation)
    assert metrics.visual_width == 792
    assert metrics.visual_height == 612
    assert metrics.orientation == Orientation.LANDSCAPE
    assert metrics.quarter_turn


def test_square_page_is_landscape():
    assert PageMetrics.from_box(500, 500).orientation == Orientation.LANDSCAPE


def test_display_matrix_unrotated_is_identity():
    metrics = PageMetrics.from_box(612, 792, 0)
    assert display_to_page_matrix(metrics) == IDENTITY
    metrics = PageMetrics.from_box(612, 792, 45)
    assert display_to_page_matrix(metrics) == IDENTITY


@pytest.mark.parametrize(
    'rotation,origin',
    [(90, (612, 0)), (180, (612, 792)), (270, (0, 792))],
)
def test_display_origin_in_page_space(rotation, origin):
    metrics = PageMetrics.from_box(612, 792, rotation)
    matrix = display_to_page_matrix(metrics)
    assert apply_matrix(matrix, 0, 0) == origin


def test_display_rect_to_page_rotated():
    metrics = PageMetrics.from_box(612, 792, 90)
    rect = map_display_rect_to_page(metrics, Rect(10, 20, 100, 50))
    assert rect == Rect(542, 10, 50, 100)


def test_display_rect_to_page_clamped():
    metrics = PageMetrics.from_box(612, 792, 0)
    rect = map_display_rect_to_page(metrics, Rect(-10, 780, 30, 40))
    assert rect.x == 0
    assert rect.y == 780
    assert rect.width == 30
    assert rect.height == 12


def test_display_rect_never_degenerate():
    metrics = PageMetrics.from_box(612, 792, 0)
    rect = map_display_rect_to_page(metrics, Rect(700, 900, 10, 10))
    assert rect.width >= 1 and rect.height >= 1


@pytest.mark.parametrize('rotation', [0, 90, 180, 270])
def test_page_rect_round_trip(rotation):
    metrics = PageMetrics.from_box(612, 792, rotation)
    display_rect = Rect(100, 120, 80, 40)
    page_rect = map_display_rect_to_page(metrics, display_rect)
    back = map_page_rect_to_display(metrics, page_rect)
    assert back.x == pytest.approx(display_rect.x)
    assert back.y == pytest.approx(display_rect.y)
    assert back.width == pytest.approx(display_rect.width)
    assert back.height == pytest.approx(display_rect.height)


def test_matrix_helpers():
    m = (2, 0, 0, 3, 10, 20)
    assert multiply_matrices(m, invert_matrix(m)) == pytest.approx(IDENTITY)
    # translate first, then scale
    composed = multiply_matrices((2, 0, 0, 2, 0, 0), (1, 0, 0, 1, 5, 5))
    assert apply_matrix(composed, 0, 0) == (10, 10)
    with pytest.raises(ValueError):
        invert_matrix((0, 0, 0, 0, 1, 1))


def test_viewer_viewport_unrotated():
    viewport = viewer_viewport((0, 0, 612, 792), 0)
    assert viewport.width == 612 and viewport.height == 792
    assert viewport.to_viewer(72, 92) == (72, 700)
    assert viewport.to_viewer(0, 792) == (0, 0)


def test_viewer_viewport_rotated():
    viewport = viewer_viewport((0, 0, 612, 792), 90)
    assert viewport.width == 792 and viewport.height == 612
    # the left edge of the page ends up at the top
    assert viewport.to_viewer(0, 0) == (0, 0)
    assert viewport.to_viewer(100, 300)[1] == 100


def test_viewer_viewport_offset_box():
    viewport = viewer_viewport((50, 50, 662, 842), 0)
    assert viewport.to_viewer(50, 842) == (0, 0)
    assert viewport.to_viewer(662, 50) == (612, 792)
