"""
Planning of the signable regions below the certification panel.

Two regions are planned: one for the certifying organisation and one for
the notary personally. By default, the personal region overlaps the
organisation's region, shifted down by a quarter of its height; this
mimics how such certifications are signed on paper.
"""

import logging
import math
import re
from typing import Iterable, List, Optional, Set

from pyhanko.pdf_utils import generic

from .geometry import PageMetrics, Rect, map_display_rect_to_page
from .injection import FieldSpec
from .layout import SignatureFieldsLayout, or_default
from .plan import PanelGeometry

__all__ = [
    'DEFAULT_ENTERPRISE_FIELD_NAME',
    'DEFAULT_PERSONAL_FIELD_NAME',
    'sanitize_field_name',
    'reserve_field_name',
    'existing_field_names',
    'plan_signature_regions',
]

logger = logging.getLogger(__name__)

DEFAULT_ENTERPRISE_FIELD_NAME = 'sig_enterprise'
DEFAULT_PERSONAL_FIELD_NAME = 'sig_personal'

# absolute lower bound on the width of a region
MIN_FIELD_WIDTH = 24

_UNSAFE_NAME_CHARS = re.compile(r'[^A-Za-z0-9_.-]+')


def sanitize_field_name(value, fallback: str) -> str:
    """
    Reduce a field name to letters, digits, underscores, dots and dashes.

    >>> sanitize_field_name('Chữ ký số', 'sig')
    'Ch_k_s_'
    >>> sanitize_field_name('   ', 'sig')
    'sig'
    """
    if not isinstance(value, str):
        return fallback
    sanitized = _UNSAFE_NAME_CHARS.sub('_', value.strip())
    return sanitized or fallback


def reserve_field_name(preferred: str, taken: Set[str]) -> str:
    """
    Pick a name that isn't in ``taken``, and add it to ``taken``.

    If ``preferred`` is taken, the suffixes ``_2``, ``_3``, ... are tried
    in turn.
    """
    candidate = preferred
    ix = 2
    while candidate in taken:
        candidate = f'{preferred}_{ix}'
        ix += 1
    taken.add(candidate)
    return candidate


def _walk_fields(field_list, parent_name, seen, names):
    for field_ref in field_list:
        idnum = getattr(field_ref, 'idnum', None)
        if idnum is not None:
            if idnum in seen:
                logger.debug(f"Cycle in form field tree at object {idnum}")
                continue
            seen.add(idnum)
        field = field_ref.get_object()
        if not isinstance(field, generic.DictionaryObject):
            continue
        try:
            partial_name = str(field['/T'])
        except KeyError:
            # widget annotation or nameless intermediate node
            partial_name = None
        if partial_name is not None:
            qualified = (
                f'{parent_name}.{partial_name}' if parent_name
                else partial_name
            )
            names.append(qualified)
        else:
            qualified = parent_name
        try:
            kids = field['/Kids']
        except KeyError:
            continue
        _walk_fields(kids, qualified, seen, names)


def existing_field_names(root) -> List[str]:
    """
    List the fully qualified names of all form fields in a document.

    :param root:
        The document catalog, e.g. ``writer.root``.
    :return:
        A list of dotted field names, in document order.
    """
    try:
        fields = root['/AcroForm']['/Fields']
    except KeyError:
        return []
    names: List[str] = []
    _walk_fields(fields, None, set(), names)
    return names


def plan_signature_regions(
    page_index: int,
    metrics: PageMetrics,
    panel: PanelGeometry,
    layout: Optional[SignatureFieldsLayout] = None,
    existing_names: Iterable[str] = (),
) -> List[FieldSpec]:
    """
    Plan the two signable regions below the panel's authority line.

    :param page_index:
        Index of the page carrying the panel.
    :param metrics:
        Metrics of that page.
    :param panel:
        Geometry of the panel.
    :param layout:
        Settings for the regions.
    :param existing_names:
        Names of the fields already present in the document. Only consulted
        if ``replace_existing`` is ``False``.
    :return:
        A list of two :class:`~certstamp.injection.FieldSpec` objects in page
        space, or an empty list if regions are disabled or don't fit.
    """
    layout = layout or SignatureFieldsLayout()
    if layout.enabled is False:
        return []

    side_inset = max(0, or_default(layout.side_inset, panel.padding_x))
    center_gap = max(0, or_default(layout.center_gap, 20))
    line_gap = max(0, or_default(layout.line_gap, 8))
    min_bottom = max(0, or_default(layout.min_bottom, 8))
    min_height = max(10, or_default(layout.min_height, 12))
    min_width = max(MIN_FIELD_WIDTH, or_default(layout.min_width, 120))
    overlap = layout.overlap is not False

    area_left = panel.x + side_inset
    area_right = panel.x + panel.width - side_inset
    available = area_right - area_left
    if not math.isfinite(available) or available <= min_width * 2:
        logger.info(
            f"Not enough room below the panel for signature regions "
            f"({available:.1f}pt available); skipping them."
        )
        return []

    if center_gap > available * 0.35:
        center_gap = available * 0.12

    width = max(
        min_width, or_default(layout.width, (available - center_gap) / 2)
    )
    if width * 2 + center_gap > available:
        width = (available - center_gap) / 2
    if not math.isfinite(width) or width < MIN_FIELD_WIDTH:
        logger.info("Signature regions would be too narrow; skipping them.")
        return []

    height = max(min_height, or_default(layout.height, 52))
    overlap_dx = or_default(layout.overlap_offset_x, 0)
    overlap_dy = or_default(layout.overlap_offset_y, -height * 0.25)

    max_top = panel.notary_line_y - line_gap
    y = max(max_top - height, min_bottom)
    if y + height > max_top:
        height = max_top - y
    if not math.isfinite(height) or height < min_height:
        logger.info(
            "Not enough room below the authority line for signature "
            "regions; skipping them."
        )
        return []

    enterprise_rect = Rect(area_left, y, width, height)
    if overlap:
        personal_rect = Rect(
            area_left + overlap_dx, y + overlap_dy, width, height
        )
    else:
        personal_rect = Rect(area_right - width, y, width, height)

    enterprise_name = sanitize_field_name(
        layout.enterprise_name, DEFAULT_ENTERPRISE_FIELD_NAME
    )
    personal_name = sanitize_field_name(
        layout.personal_name, DEFAULT_PERSONAL_FIELD_NAME
    )
    if layout.replace_existing is False:
        taken = set(existing_names)
        enterprise_name = reserve_field_name(enterprise_name, taken)
        personal_name = reserve_field_name(personal_name, taken)
    elif enterprise_name == personal_name:
        personal_name += '_2'

    def _spec(name, display_rect):
        rect = map_display_rect_to_page(metrics, display_rect)
        return FieldSpec(
            name=name,
            page_index=page_index,
            x=rect.x,
            y=rect.y,
            width=rect.width,
            height=rect.height,
            rotation=metrics.rotation,
        )

    return [
        _spec(enterprise_name, enterprise_rect),
        _spec(personal_name, personal_rect),
    ]
