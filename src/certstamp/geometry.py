"""
Rotation-aware page geometry.

Two coordinate systems are in play when stamping a page.

*Page space* is the native coordinate system of the page's content stream,
unaffected by the page's ``/Rotate`` entry.

*Display space* is the coordinate system of the page as a human sees it
after the viewer applies the page rotation. Its origin is the bottom left
corner of the displayed page, and its dimensions are the page's visual width
and height.

All placement computations in this package happen in display space.
The matrix returned by :func:`display_to_page_matrix` converts display
coordinates into page coordinates, both for drawing (by way of a ``cm``
operator) and for handing rectangles to collaborators that work in page
space.
"""

import enum
import math
from dataclasses import dataclass
from typing import Sequence, Tuple

__all__ = [
    'Matrix',
    'IDENTITY',
    'Orientation',
    'PageMetrics',
    'Rect',
    'normalize_rotation',
    'js_round',
    'multiply_matrices',
    'invert_matrix',
    'apply_matrix',
    'display_to_page_matrix',
    'map_display_rect_to_page',
    'map_page_rect_to_display',
    'ViewerViewport',
    'viewer_viewport',
]

Matrix = Tuple[float, float, float, float, float, float]

IDENTITY: Matrix = (1, 0, 0, 1, 0, 0)

_CARDINAL_ANGLES = (0, 90, 180, 270)


def js_round(value: float) -> int:
    """
    Round half-up, i.e. ``js_round(-2.5) == -2`` and ``js_round(2.5) == 3``.

    This differs from Python's :func:`round`, which rounds half to even.
    """
    return math.floor(value + 0.5)


def _as_finite(value):
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    return result if math.isfinite(result) else None


def normalize_rotation(angle):
    """
    Normalise a rotation angle.

    The angle is brought into the range ``[0, 360)``. If it rounds to one of
    the cardinal angles 0, 90, 180 or 270, that angle is returned as an
    integer. Other angles are returned unchanged (but normalised), as a best
    effort fallback.

    :param angle:
        The raw angle. Anything that doesn't convert to a finite number is
        treated as ``0``.
    :return:
        The normalised angle.
    """
    raw = _as_finite(angle)
    if raw is None:
        return 0
    normalized = math.fmod(math.fmod(raw, 360) + 360, 360)
    rounded = js_round(normalized)
    if rounded in _CARDINAL_ANGLES:
        return rounded
    return normalized


class Orientation(enum.Enum):
    PORTRAIT = 'portrait'
    LANDSCAPE = 'landscape'


@dataclass(frozen=True)
class PageMetrics:
    """
    Size and rotation of a page, together with the derived display size.
    """

    width: float
    """Width of the page box, in page space."""

    height: float
    """Height of the page box, in page space."""

    rotation: float
    """Normalised page rotation, see :func:`normalize_rotation`."""

    visual_width: float
    """Width of the page as displayed."""

    visual_height: float
    """Height of the page as displayed."""

    @property
    def orientation(self) -> Orientation:
        if self.visual_width >= self.visual_height:
            return Orientation.LANDSCAPE
        return Orientation.PORTRAIT

    @property
    def quarter_turn(self) -> bool:
        return self.rotation in (90, 270)

    @classmethod
    def from_box(cls, width, height, rotation=0) -> 'PageMetrics':
        """
        Derive page metrics from the dimensions of a page box and the
        (raw) page rotation.
        """
        width = float(width)
        height = float(height)
        rotation = normalize_rotation(rotation)
        if rotation in (90, 270):
            visual_width, visual_height = height, width
        else:
            visual_width, visual_height = width, height
        return cls(
            width=width,
            height=height,
            rotation=rotation,
            visual_width=visual_width,
            visual_height=visual_height,
        )


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle given by its lower left corner and size."""

    x: float
    y: float
    width: float
    height: float

    @property
    def corners(self):
        x, y, w, h = self.x, self.y, self.width, self.height
        return ((x, y), (x + w, y), (x, y + h), (x + w, y + h))

    @classmethod
    def bounding(cls, points: Sequence[Tuple[float, float]]) -> 'Rect':
        xs = [pt[0] for pt in points]
        ys = [pt[1] for pt in points]
        return cls(
            x=min(xs), y=min(ys), width=max(xs) - min(xs),
            height=max(ys) - min(ys),
        )


def multiply_matrices(m1: Sequence[float], m2: Sequence[float]) -> Matrix:
    """
    Compose two affine matrices in PDF notation. The resulting matrix
    applies ``m2`` first, and then ``m1``.

    In particular, the effect of a ``cm`` operator with operand ``m`` on the
    current transformation matrix ``ctm`` is ``multiply_matrices(ctm, m)``.
    """
    a1, b1, c1, d1, e1, f1 = m1
    a2, b2, c2, d2, e2, f2 = m2
    return (
        a1 * a2 + c1 * b2,
        b1 * a2 + d1 * b2,
        a1 * c2 + c1 * d2,
        b1 * c2 + d1 * d2,
        a1 * e2 + c1 * f2 + e1,
        b1 * e2 + d1 * f2 + f1,
    )


def invert_matrix(m: Sequence[float]) -> Matrix:
    a, b, c, d, e, f = m
    det = a * d - b * c
    if not det:
        raise ValueError("Matrix is not invertible")
    return (
        d / det,
        -b / det,
        -c / det,
        a / det,
        (c * f - d * e) / det,
        (b * e - a * f) / det,
    )


def apply_matrix(m: Sequence[float], x, y) -> Tuple[float, float]:
    a, b, c, d, e, f = m
    return a * x + c * y + e, b * x + d * y + f


def display_to_page_matrix(metrics: PageMetrics) -> Matrix:
    """
    Compute the matrix that maps display space into page space.

    :param metrics:
        Metrics of the page.
    :return:
        An affine matrix in PDF notation. For unrotated pages and pages
        with a non-cardinal rotation, this is the identity matrix.
    """
    w, h = metrics.width, metrics.height
    rotation = metrics.rotation
    if rotation == 90:
        return 0, 1, -1, 0, w, 0
    elif rotation == 180:
        return -1, 0, 0, -1, w, h
    elif rotation == 270:
        return 0, -1, 1, 0, 0, h
    return IDENTITY


def _clamp_to_page(metrics: PageMetrics, bbox: Rect) -> Rect:
    page_w, page_h = metrics.width, metrics.height
    x = max(0.0, min(bbox.x, page_w - 1))
    y = max(0.0, min(bbox.y, page_h - 1))
    return Rect(
        x=x,
        y=y,
        width=max(1.0, min(bbox.width, page_w - x)),
        height=max(1.0, min(bbox.height, page_h - y)),
    )


def map_display_rect_to_page(metrics: PageMetrics, rect: Rect) -> Rect:
    """
    Map a rectangle in display space to the corresponding rectangle in page
    space.

    The four corners are transformed, and their bounding box is clamped
    to the page box. The resulting rectangle always has positive
    dimensions.

    :param metrics:
        Metrics of the page.
    :param rect:
        A rectangle in display space.
    :return:
        A rectangle in page space.
    """
    matrix = display_to_page_matrix(metrics)
    points = [apply_matrix(matrix, x, y) for x, y in rect.corners]
    return _clamp_to_page(metrics, Rect.bounding(points))


def map_page_rect_to_display(metrics: PageMetrics, rect: Rect) -> Rect:
    """
    Inverse of :func:`map_display_rect_to_page`, without any clamping.
    """
    matrix = invert_matrix(display_to_page_matrix(metrics))
    points = [apply_matrix(matrix, x, y) for x, y in rect.corners]
    return Rect.bounding(points)


@dataclass(frozen=True)
class ViewerViewport:
    """
    The viewport of a PDF viewer showing a page at scale 1.

    Viewer coordinates have their origin in the top left corner of the
    displayed page, with the y axis pointing down. Consequently,
    a *larger* y coordinate means *lower* on the page.
    """

    transform: Matrix
    """Matrix mapping page space into viewer coordinates."""

    width: float
    height: float

    def to_viewer(self, x, y) -> Tuple[float, float]:
        return apply_matrix(self.transform, x, y)


def viewer_viewport(view_box: Sequence[float], rotation) -> ViewerViewport:
    """
    Compute the scale-1 viewport for a page.

    :param view_box:
        The visible page box (usually the crop box) as
        ``[x1, y1, x2, y2]``.
    :param rotation:
        The page rotation. Non-cardinal rotations are treated as 0.
    :return:
        A :class:`.ViewerViewport`.
    """
    x1, y1, x2, y2 = (float(v) for v in view_box)
    center_x = (x1 + x2) / 2
    center_y = (y1 + y2) / 2
    rotation = normalize_rotation(rotation)
    if rotation == 90:
        a, b, c, d = 0, 1, 1, 0
    elif rotation == 180:
        a, b, c, d = -1, 0, 0, 1
    elif rotation == 270:
        a, b, c, d = 0, -1, -1, 0
    else:
        a, b, c, d = 1, 0, 0, -1

    if a == 0:
        offset_x = abs(center_y - y1)
        offset_y = abs(center_x - x1)
        width = abs(y2 - y1)
        height = abs(x2 - x1)
    else:
        offset_x = abs(center_x - x1)
        offset_y = abs(center_y - y1)
        width = abs(x2 - x1)
        height = abs(y2 - y1)

    transform = (
        a,
        b,
        c,
        d,
        offset_x - a * center_x - c * center_y,
        offset_y - b * center_x - d * center_y,
    )
    return ViewerViewport(transform=transform, width=width, height=height)
