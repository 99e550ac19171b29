"""
Placement of the stamp elements on a page.

Everything in this module works in display space (see
:mod:`certstamp.geometry`) and is free of side effects: the functions take
resolved layouts and measurements, and return rectangles. Drawing happens
in :mod:`certstamp.render`.

The stamp consists of

 * the certification panel: four lines of text, anchored to the bottom left
   of the last page by default;
 * up to three raster images (seal, certification stamp, signature),
   anchored to the bottom right by default;
 * an optional framed "copy" marker, anchored to the top right of a
   selectable page.

Placement of the panel and images depends on where the page's existing
content ends, which is determined by a scan that itself needs the stamp's
own text. Hence :func:`build_stamp_plan` resolves the layout twice: once
without a bottom margin to measure the stamp and drive the scan, and once
more with the bottom margin derived from the scan result.
"""

import enum
import logging
import math
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Optional, Tuple

from pyhanko.pdf_utils.layout import AxisAlignment

from .anchor import AnchorResult
from .geometry import PageMetrics, Rect, js_round
from .layout import (
    AnchorCorner,
    CopyStampLayout,
    ImageLayout,
    SignatureFieldsLayout,
    TextLayout,
    or_default,
    resolve_layout,
)
from .text import StampLines

__all__ = [
    'TextMeasure',
    'BlendMode',
    'resolve_blend_mode',
    'default_margin_bottom',
    'anchor_position',
    'PanelGeometry',
    'panel_height',
    'panel_geometry',
    'image_block_height',
    'stamp_block_height',
    'resolve_auto_margin_bottom',
    'resolve_copy_stamp_page_index',
    'ImagePlacement',
    'CopyStampBox',
    'copy_stamp_box',
    'StampPlan',
    'CopyStampPlan',
    'build_stamp_plan',
    'build_copy_stamp_plan',
    'IMAGE_KEYS',
    'IMAGE_DEFAULTS',
    'COPY_STAMP_DEFAULTS',
]

logger = logging.getLogger(__name__)

IMAGE_KEYS = ('seal', 'certified_stamp', 'signature')

IMAGE_DEFAULTS: Dict[str, Dict[str, object]] = {
    'seal': {'width': 120, 'margin_right': 36},
    'certified_stamp': {
        'width': 110,
        'margin_right': 36,
        'offset_x': 130,
        'blend_mode': 'Multiply',
    },
    'signature': {'width': 140, 'margin_right': 36, 'offset_y': 72},
}

COPY_STAMP_DEFAULTS = {
    'width': 120,
    'margin_right': 36,
    'margin_top': 36,
    'anchor': 'top-right',
}

DEFAULT_IMAGE_WIDTH = 120
DEFAULT_MARGIN_RIGHT = 36
DEFAULT_PANEL_MARGIN_LEFT = 28


class TextMeasure:
    """
    Interface for anything that can measure text in a particular font.
    See :class:`certstamp.assets.BoundFont` for the real implementation.
    """

    def text_width(self, text: str, size: float) -> float:
        raise NotImplementedError

    def text_height(self, size: float, descender: bool = True) -> float:
        raise NotImplementedError


class BlendMode(enum.Enum):
    """Blend modes that can be applied to raster elements."""

    NORMAL = 'Normal'
    MULTIPLY = 'Multiply'
    SCREEN = 'Screen'
    OVERLAY = 'Overlay'
    DARKEN = 'Darken'
    LIGHTEN = 'Lighten'
    COLOR_DODGE = 'ColorDodge'
    COLOR_BURN = 'ColorBurn'
    HARD_LIGHT = 'HardLight'
    SOFT_LIGHT = 'SoftLight'
    DIFFERENCE = 'Difference'
    EXCLUSION = 'Exclusion'

    @property
    def pdf_name(self) -> str:
        return '/' + self.value


def resolve_blend_mode(value) -> Optional[BlendMode]:
    """
    Look up a blend mode by name, case-insensitively.

    :return:
        The matching :class:`.BlendMode`, or ``None`` for unknown and empty
        names (i.e. normal compositing).
    """
    if isinstance(value, BlendMode):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    normalized = value.strip().lower()
    for mode in BlendMode:
        if mode.value.lower() == normalized:
            return mode
    logger.debug(f"Unknown blend mode '{value}', using normal compositing")
    return None


def default_margin_bottom(metrics: PageMetrics) -> float:
    return max(72.0, metrics.visual_height * 0.12)


def anchor_position(
    metrics: PageMetrics,
    layout,
    box_width: float,
    box_height: float,
    default_anchor: AnchorCorner = AnchorCorner.BOTTOM_RIGHT,
    default_margin_left: Optional[float] = None,
) -> Tuple[float, float]:
    """
    Compute the lower left corner of a box anchored to a corner of the page.

    :param metrics:
        Metrics of the page.
    :param layout:
        A layout record with margins, offsets and an anchor corner.
        A missing right margin defaults to 36, a missing left margin
        to the right margin (or ``default_margin_left``). A missing bottom
        margin defaults to 12% of the page height (at least 72), and a
        missing top margin to the bottom margin.
    :param box_width:
        Width of the box.
    :param box_height:
        Height of the box.
    :param default_anchor:
        Anchor corner to use if the layout doesn't specify one.
    :param default_margin_left:
        Left margin to use if the layout doesn't specify one.
    :return:
        An ``(x, y)`` tuple in display space.
    """
    page_w, page_h = metrics.visual_width, metrics.visual_height
    margin_right = or_default(layout.margin_right, DEFAULT_MARGIN_RIGHT)
    margin_left = or_default(
        layout.margin_left, or_default(default_margin_left, margin_right)
    )
    margin_bottom = or_default(
        layout.margin_bottom, default_margin_bottom(metrics)
    )
    margin_top = or_default(layout.margin_top, margin_bottom)
    offset_x = or_default(layout.offset_x, 0)
    offset_y = or_default(layout.offset_y, 0)
    anchor = or_default(layout.anchor, default_anchor)

    if anchor.x_align == AxisAlignment.ALIGN_MAX:
        x = page_w - margin_right - box_width - offset_x
    else:
        x = margin_left + offset_x
    if anchor.y_align == AxisAlignment.ALIGN_MAX:
        y = page_h - margin_top - box_height - offset_y
    else:
        y = margin_bottom + offset_y
    return x, y


@dataclass(frozen=True)
class PanelGeometry:
    """Resolved geometry of the certification panel."""

    x: float
    """Left edge of the panel."""

    y: float
    """Bottom edge of the panel."""

    width: float
    height: float
    padding_x: float
    heading_size: float
    body_size: float
    opacity: float

    line_ys: Tuple[float, float, float, float]
    """Baselines of the four lines, top to bottom."""

    @property
    def rect(self) -> Rect:
        return Rect(self.x, self.y, self.width, self.height)

    @property
    def text_x(self) -> float:
        return self.x + self.padding_x

    @property
    def notary_line_y(self) -> float:
        return self.line_ys[3]


@dataclass(frozen=True)
class _PanelMetrics:
    padding_x: float
    padding_y: float
    heading_size: float
    body_size: float
    line_gap: float
    notary_gap: float

    @classmethod
    def from_layout(cls, layout: TextLayout):
        return cls(
            padding_x=or_default(layout.panel_padding_x, 10),
            padding_y=or_default(layout.panel_padding_y, 8),
            heading_size=or_default(layout.heading_size, 15),
            body_size=or_default(layout.body_size, 12.5),
            line_gap=or_default(layout.line_gap, 4),
            notary_gap=or_default(layout.notary_gap, 4),
        )

    @property
    def heading_line_height(self):
        return self.heading_size + self.line_gap

    @property
    def body_line_height(self):
        return self.body_size + self.line_gap

    @property
    def height(self):
        content = (
            2 * self.heading_line_height
            + 2 * self.body_line_height
            + self.notary_gap
        )
        return content + 2 * self.padding_y


def panel_height(layout: TextLayout) -> float:
    """Height of the certification panel, including vertical padding."""
    return _PanelMetrics.from_layout(layout).height


def panel_geometry(
    metrics: PageMetrics,
    lines: StampLines,
    heading_font: TextMeasure,
    body_font: TextMeasure,
    layout: TextLayout,
) -> PanelGeometry:
    """
    Lay out the certification panel.

    The heading and authority lines use the heading font at the heading
    size, the two middle lines the body font at the body size. The panel
    is as wide as the widest line plus padding, but no wider than
    ``max_panel_width`` (74% of the page width by default) and never so wide
    that it comes within 20pt of the right edge.
    """
    m = _PanelMetrics.from_layout(layout)
    page_w = metrics.visual_width
    margin_left = or_default(layout.margin_left, DEFAULT_PANEL_MARGIN_LEFT)
    max_width = or_default(layout.max_panel_width, page_w * 0.74)
    content_width = max(
        heading_font.text_width(lines.heading, m.heading_size),
        body_font.text_width(lines.number_line, m.body_size),
        body_font.text_width(lines.date_line, m.body_size),
        heading_font.text_width(lines.notary_line, m.heading_size),
    )
    width = max(
        1.0,
        min(
            max_width,
            content_width + 2 * m.padding_x,
            page_w - margin_left - 20,
        ),
    )
    height = m.height
    x, y = anchor_position(
        metrics, layout, width, height,
        default_anchor=AnchorCorner.BOTTOM_LEFT,
        default_margin_left=DEFAULT_PANEL_MARGIN_LEFT,
    )
    start = y + height - m.padding_y - m.heading_size
    line2 = start - m.heading_line_height
    line3 = line2 - m.body_line_height
    notary = line3 - m.body_line_height - m.notary_gap
    return PanelGeometry(
        x=x,
        y=y,
        width=width,
        height=height,
        padding_x=m.padding_x,
        heading_size=m.heading_size,
        body_size=m.body_size,
        opacity=or_default(layout.panel_opacity, 0),
        line_ys=(start, line2, line3, notary),
    )


def _image_size(aspect_ratio: float, layout: ImageLayout):
    width = or_default(layout.width, DEFAULT_IMAGE_WIDTH)
    height = or_default(layout.height, aspect_ratio * width)
    return width, height


def image_block_height(
    aspect_ratio: Optional[float], layout: ImageLayout
) -> float:
    """
    Vertical extent of an image above the bottom margin, i.e. its height
    plus its vertical offset. Absent images take up no room.
    """
    if aspect_ratio is None:
        return 0.0
    _, height = _image_size(aspect_ratio, layout)
    return height + or_default(layout.offset_y, 0)


def stamp_block_height(
    text_layout: TextLayout,
    images: Mapping[str, Tuple[Optional[float], ImageLayout]],
) -> float:
    """
    Height of the block consisting of the panel and the images.

    :param text_layout:
        Layout of the panel.
    :param images:
        Aspect ratio (``None`` if absent) and layout for every image.
    """
    return max(
        [panel_height(text_layout)]
        + [
            image_block_height(aspect, layout)
            for aspect, layout in images.values()
        ]
    )


def resolve_auto_margin_bottom(
    metrics: PageMetrics,
    text_layout: TextLayout,
    block_height: float,
    scan: Callable[[], Optional[AnchorResult]],
) -> Optional[float]:
    """
    Derive a bottom margin that puts the stamp just below the page's
    existing content.

    :param metrics:
        Metrics of the page.
    :param text_layout:
        Layout of the panel, including the auto placement settings.
    :param block_height:
        Height of the stamp block, see :func:`stamp_block_height`.
    :param scan:
        Callable performing the content scan. It is only invoked if
        automatic placement is enabled.
    :return:
        The bottom margin, or ``None`` if the static margin should be used.
        That happens when automatic placement is disabled, when the page
        is blank, and when the stamp is taller than the page.
    """
    if text_layout.anchor_to_last_text is False:
        return None
    if not math.isfinite(block_height) or block_height <= 0:
        return None
    result = scan()
    if result is None or not math.isfinite(result.baseline_y):
        return None

    min_margin = or_default(text_layout.min_margin_bottom, 12)
    safe_margin = or_default(text_layout.bottom_safe_margin, 36)
    effective_min = max(min_margin, safe_margin)
    gap = or_default(text_layout.last_text_gap, 12)
    page_height = result.page_height
    if not math.isfinite(page_height):
        page_height = metrics.visual_height
    max_bottom = page_height - block_height
    if max_bottom <= 0:
        logger.debug(
            f"Stamp block ({block_height:.1f}pt) is taller than the page; "
            f"not placing it automatically."
        )
        return None
    target = page_height - result.baseline_y - gap - block_height
    return min(max(target, effective_min), max_bottom)


def resolve_copy_stamp_page_index(value, page_count: int) -> int:
    """
    Resolve the (0-based) index of the page that receives the copy marker.

    :param value:
        An index (rounded and clamped into range), ``'first'``, ``'last'``
        or ``None``. Anything else selects the first page.
    :param page_count:
        Number of pages in the document.
    """
    if page_count <= 1:
        return 0
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if not math.isfinite(value):
            return 0
        return min(max(js_round(value), 0), page_count - 1)
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized == 'last':
            return page_count - 1
    return 0


@dataclass(frozen=True)
class ImagePlacement:
    key: str
    rect: Rect
    opacity: float = 1.0
    blend_mode: Optional[BlendMode] = None


def place_image(
    key: str,
    metrics: PageMetrics,
    aspect_ratio: float,
    layout: ImageLayout,
) -> ImagePlacement:
    width, height = _image_size(aspect_ratio, layout)
    x, y = anchor_position(metrics, layout, width, height)
    return ImagePlacement(
        key=key,
        rect=Rect(x, y, width, height),
        opacity=or_default(layout.opacity, 1.0),
        blend_mode=resolve_blend_mode(layout.blend_mode),
    )


@dataclass(frozen=True)
class CopyStampBox:
    """Geometry of the framed copy marker."""

    text: str
    rect: Rect
    font_size: float
    border_width: float
    text_x: float
    text_y: float


def copy_stamp_box(
    metrics: PageMetrics,
    text: str,
    font: TextMeasure,
    layout: CopyStampLayout,
) -> CopyStampBox:
    """
    Lay out the copy marker. The box is sized by the layout or, failing
    that, by the text plus padding; the text is centred in the box, using
    its ascent for vertical centring.
    """
    size = or_default(layout.size, 20)
    padding_x = or_default(layout.padding_x, 8)
    padding_y = or_default(layout.padding_y, 4)
    border_width = or_default(layout.border_width, 3)

    text_width = font.text_width(text, size)
    text_height = font.text_height(size)
    ascent = font.text_height(size, descender=False)
    visual_height = ascent if ascent > 0 else text_height
    baseline_offset = or_default(layout.text_baseline_offset, 0)

    box_w = or_default(layout.width, text_width + 2 * padding_x)
    box_h = or_default(layout.height, text_height + 2 * padding_y)
    x, y = anchor_position(metrics, layout, box_w, box_h)
    return CopyStampBox(
        text=text,
        rect=Rect(x, y, box_w, box_h),
        font_size=size,
        border_width=border_width,
        text_x=x + (box_w - text_width) / 2,
        text_y=y + (box_h - visual_height) / 2 + baseline_offset,
    )


@dataclass(frozen=True)
class StampPlan:
    """
    Everything needed to draw the panel and images on a page, and to plan
    the signature regions below the panel.
    """

    page_index: int
    metrics: PageMetrics
    lines: StampLines
    panel: PanelGeometry
    images: List[ImagePlacement]
    margin_bottom: float
    signature_fields: SignatureFieldsLayout
    anchor: Optional[AnchorResult] = None
    auto_margin: bool = False
    ignored_texts: Tuple[str, ...] = field(default=())


@dataclass(frozen=True)
class CopyStampPlan:
    page_index: int
    metrics: PageMetrics
    box: CopyStampBox


def _image_layouts(image_layout, metrics, margin_bottom=None):
    result = {}
    for key in IMAGE_KEYS:
        defaults = dict(IMAGE_DEFAULTS[key])
        if margin_bottom is not None:
            defaults['margin_bottom'] = margin_bottom
        resolved = resolve_layout(
            image_layout, metrics.orientation, defaults, key=key
        )
        result[key] = ImageLayout.from_layout(resolved)
    return result


def build_stamp_plan(
    page_index: int,
    metrics: PageMetrics,
    lines: StampLines,
    heading_font: TextMeasure,
    body_font: TextMeasure,
    image_aspects: Mapping[str, Optional[float]],
    text_layout=None,
    image_layout=None,
    signature_fields=None,
    copy_text: Optional[str] = None,
    scanner: Optional[
        Callable[[Tuple[str, ...], TextLayout], Optional[AnchorResult]]
    ] = None,
) -> StampPlan:
    """
    Plan the panel and the images on the target page.

    :param page_index:
        Index of the target page.
    :param metrics:
        Metrics of the target page.
    :param lines:
        The panel's text.
    :param heading_font:
        Measurement for the heading font.
    :param body_font:
        Measurement for the body font.
    :param image_aspects:
        Aspect ratio (height over width) of the seal, certification stamp
        and signature images, keyed by ``seal``, ``certified_stamp`` and
        ``signature``. Missing or ``None`` entries denote absent images.
    :param text_layout:
        Caller-supplied text layout overrides.
    :param image_layout:
        Caller-supplied image layout overrides.
    :param signature_fields:
        Caller-supplied signature region settings.
    :param copy_text:
        Text of the copy marker, if any. It's excluded from the content scan.
    :param scanner:
        Callable that scans the target page for existing content, given the
        strings to ignore and the (first pass) text layout.
        If ``None``, no automatic placement takes place.
    :return:
        A :class:`.StampPlan`.
    """
    orientation = metrics.orientation

    # first pass: without a bottom margin
    base_text_layout = TextLayout.from_layout(
        resolve_layout(text_layout, orientation)
    )
    base_image_layouts = _image_layouts(image_layout, metrics)
    block_height = stamp_block_height(
        base_text_layout,
        {
            key: (image_aspects.get(key), base_image_layouts[key])
            for key in IMAGE_KEYS
        },
    )
    ignored = tuple(t for t in (*lines, copy_text) if t)

    anchor_result: Optional[AnchorResult] = None

    def _scan():
        nonlocal anchor_result
        anchor_result = scanner(ignored, base_text_layout)
        return anchor_result

    auto_margin = None
    if scanner is not None:
        auto_margin = resolve_auto_margin_bottom(
            metrics, base_text_layout, block_height, _scan
        )

    if auto_margin is not None:
        margin_bottom = auto_margin
    elif base_text_layout.margin_bottom is not None:
        margin_bottom = base_text_layout.margin_bottom
    else:
        margin_bottom = default_margin_bottom(metrics)
    source = 'auto' if auto_margin is not None else 'static'
    logger.debug(
        f"Stamp block height {block_height:.1f}, "
        f"margin bottom {margin_bottom:.1f} ({source})"
    )

    # second pass: feed the margin in as a default
    final_text_layout = TextLayout.from_layout(
        resolve_layout(
            text_layout, orientation, {'margin_bottom': margin_bottom}
        )
    )
    final_image_layouts = _image_layouts(image_layout, metrics, margin_bottom)
    panel = panel_geometry(
        metrics, lines, heading_font, body_font, final_text_layout
    )
    images = [
        place_image(key, metrics, image_aspects[key], final_image_layouts[key])
        for key in IMAGE_KEYS
        if image_aspects.get(key) is not None
    ]
    return StampPlan(
        page_index=page_index,
        metrics=metrics,
        lines=lines,
        panel=panel,
        images=images,
        margin_bottom=margin_bottom,
        signature_fields=SignatureFieldsLayout.from_layout(
            resolve_layout(signature_fields, orientation)
        ),
        anchor=anchor_result,
        auto_margin=auto_margin is not None,
        ignored_texts=ignored,
    )


def build_copy_stamp_plan(
    page_index: int,
    metrics: PageMetrics,
    text: str,
    font: TextMeasure,
    image_layout=None,
) -> CopyStampPlan:
    """
    Plan the copy marker on its target page. Its layout is taken from the
    ``copy_stamp`` entries of the image layout overrides.
    """
    layout = CopyStampLayout.from_layout(
        resolve_layout(
            image_layout,
            metrics.orientation,
            COPY_STAMP_DEFAULTS,
            key='copy_stamp',
        )
    )
    return CopyStampPlan(
        page_index=page_index,
        metrics=metrics,
        box=copy_stamp_box(metrics, text, font, layout),
    )
