"""
Resolution of caller-supplied layout overrides.

Callers describe layout tweaks as nested mappings of untrusted values.
A layout mapping can carry

 * base settings, e.g. ``{'marginBottom': 80}``;
 * per-orientation buckets under ``portrait`` and ``landscape``;
 * for image elements, per-element buckets under ``seal``,
   ``certifiedStamp``, ``signature`` and ``copyStamp``, both at the top level
   and inside the orientation buckets.

:func:`resolve_layout` flattens such a mapping into a single dictionary for
one element on a page of a given orientation, and the ``from_layout``
constructors of the record classes in this module turn that dictionary into
a typed record. Values that cannot be interpreted are dropped silently;
the consumer of the record supplies its own fallbacks.

.. note::
    Key names are normalised to snake case, so ``marginBottom``,
    ``margin-bottom`` and ``margin_bottom`` are interchangeable.
"""

import dataclasses
import enum
import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Union

from pyhanko.pdf_utils.layout import AxisAlignment

from .geometry import Orientation

__all__ = [
    'normalize_key',
    'resolve_layout',
    'as_number',
    'as_flag',
    'AnchorCorner',
    'ScanMode',
    'TextLayout',
    'ImageLayout',
    'CopyStampLayout',
    'SignatureFieldsLayout',
    'ORIENTATION_KEYS',
    'ELEMENT_KEYS',
    'or_default',
]

logger = logging.getLogger(__name__)

ORIENTATION_KEYS = frozenset(o.value for o in Orientation)
ELEMENT_KEYS = frozenset(
    ('seal', 'certified_stamp', 'signature', 'copy_stamp')
)

_CAMEL_BOUNDARY = re.compile(r'(?<=[a-z0-9])(?=[A-Z])')


def normalize_key(key) -> str:
    """
    Convert a camelCase or kebab-case key into snake case.

    >>> normalize_key('overlapOffsetX')
    'overlap_offset_x'
    >>> normalize_key('margin-bottom')
    'margin_bottom'
    """
    key = _CAMEL_BOUNDARY.sub('_', str(key).strip())
    return key.replace('-', '_').lower()


def _as_mapping(value) -> Dict[str, Any]:
    if not isinstance(value, Mapping):
        return {}
    return {normalize_key(k): v for k, v in value.items()}


def resolve_layout(
    raw,
    orientation: Union[Orientation, str],
    defaults: Optional[Mapping] = None,
    key: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Resolve layout settings for one element on a page.

    Layers are merged shallowly, later layers winning key by key:

    1. ``defaults``;
    2. the caller's base settings;
    3. the caller's settings for ``key`` (if given);
    4. the caller's base settings for ``orientation``;
    5. the caller's settings for ``key`` within ``orientation``.

    This function has no side effects and never fails: layers that are not
    mappings are treated as empty.

    :param raw:
        The caller-supplied layout mapping.
    :param orientation:
        Orientation of the target page.
    :param defaults:
        Default values for the element.
    :param key:
        Element key, for per-element overrides.
    :return:
        A new dictionary with snake case keys.
    """
    if isinstance(orientation, Orientation):
        orientation = orientation.value
    root = _as_mapping(raw)
    element_key = normalize_key(key) if key is not None else None

    def _strip(layer: Dict[str, Any]) -> Dict[str, Any]:
        return {
            k: v
            for k, v in layer.items()
            if k not in ORIENTATION_KEYS and k not in ELEMENT_KEYS
        }

    orientation_bucket = _as_mapping(root.get(orientation))
    layers = [_as_mapping(defaults), _strip(root)]
    if element_key is not None:
        layers.append(_as_mapping(root.get(element_key)))
    layers.append(_strip(orientation_bucket))
    if element_key is not None:
        layers.append(_as_mapping(orientation_bucket.get(element_key)))

    result: Dict[str, Any] = {}
    for layer in layers:
        result.update(layer)
    return result


def as_number(value) -> Optional[float]:
    """
    Leniently interpret a layout value as a finite number.

    Numbers and numeric strings are accepted; booleans, ``None``,
    non-finite values and anything else yield ``None``.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    return result if math.isfinite(result) else None


def as_flag(value) -> Optional[bool]:
    """Only genuine booleans count as flags."""
    return value if isinstance(value, bool) else None


def as_text(value) -> Optional[str]:
    if not isinstance(value, str):
        return None
    return value


class AnchorCorner(enum.Enum):
    """Corner of the page an element is anchored to."""

    BOTTOM_RIGHT = 'bottom-right'
    BOTTOM_LEFT = 'bottom-left'
    TOP_LEFT = 'top-left'
    TOP_RIGHT = 'top-right'

    @property
    def x_align(self) -> AxisAlignment:
        if self in (AnchorCorner.BOTTOM_LEFT, AnchorCorner.TOP_LEFT):
            return AxisAlignment.ALIGN_MIN
        return AxisAlignment.ALIGN_MAX

    @property
    def y_align(self) -> AxisAlignment:
        if self in (AnchorCorner.TOP_LEFT, AnchorCorner.TOP_RIGHT):
            return AxisAlignment.ALIGN_MAX
        return AxisAlignment.ALIGN_MIN

    @classmethod
    def parse(cls, value) -> Optional['AnchorCorner']:
        if isinstance(value, AnchorCorner):
            return value
        if not isinstance(value, str) or not value.strip():
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            logger.debug(f"Unknown anchor corner '{value}', ignoring")
            return None


class ScanMode(enum.Enum):
    """
    Determines whether raster content is taken into account when looking
    for the lowest piece of existing content on a page.
    """

    AUTO = 'auto'
    """Scan images only if the page draws on image XObjects."""

    TEXT_ONLY = 'textonly'

    TEXT_AND_IMAGES = 'textandimages'

    @classmethod
    def parse(cls, value) -> 'ScanMode':
        if isinstance(value, ScanMode):
            return value
        if isinstance(value, str):
            normalized = re.sub(r'[\s_-]', '', value).lower()
            try:
                return cls(normalized)
            except ValueError:
                pass
        return ScanMode.AUTO


def _setting(coerce: Callable[[Any], Any]):
    return dataclasses.field(default=None, metadata={'coerce': coerce})


def _number():
    return _setting(as_number)


def _flag():
    return _setting(as_flag)


class LayoutRecord:
    """
    Mixin for layout records. Every field is optional, and ``None`` means
    "not specified".
    """

    @classmethod
    def from_layout(cls, resolved: Mapping):
        """
        Build a record from a (resolved) layout mapping.

        Keys that are not part of the record are ignored, and so are values
        that can't be coerced into the type of their field.

        :param resolved:
            A mapping, typically the output of :func:`resolve_layout`.
        """
        resolved = _as_mapping(resolved)
        # noinspection PyDataclass
        fields = {f.name: f for f in dataclasses.fields(cls)}
        kwargs = {}
        for k, v in resolved.items():
            try:
                field = fields[k]
            except KeyError:
                logger.debug(f"Ignoring unknown {cls.__name__} setting '{k}'")
                continue
            kwargs[k] = field.metadata['coerce'](v)
        # noinspection PyArgumentList
        return cls(**kwargs)


@dataclass(frozen=True)
class _Placement(LayoutRecord):
    margin_left: Optional[float] = _number()
    margin_right: Optional[float] = _number()
    margin_top: Optional[float] = _number()
    margin_bottom: Optional[float] = _number()
    offset_x: Optional[float] = _number()
    offset_y: Optional[float] = _number()
    anchor: Optional[AnchorCorner] = _setting(AnchorCorner.parse)


@dataclass(frozen=True)
class TextLayout(_Placement):
    """
    Layout of the certification text panel, together with the settings
    that govern automatic placement below existing content.
    """

    panel_padding_x: Optional[float] = _number()
    panel_padding_y: Optional[float] = _number()
    heading_size: Optional[float] = _number()
    body_size: Optional[float] = _number()
    line_gap: Optional[float] = _number()
    notary_gap: Optional[float] = _number()
    max_panel_width: Optional[float] = _number()
    panel_opacity: Optional[float] = _number()

    anchor_to_last_text: Optional[bool] = _flag()
    min_margin_bottom: Optional[float] = _number()
    bottom_safe_margin: Optional[float] = _number()
    last_text_gap: Optional[float] = _number()

    ignore_footer: Optional[bool] = _flag()
    footer_ignore_ratio: Optional[float] = _number()
    footer_ignore_height: Optional[float] = _number()

    scan_mode: Optional[ScanMode] = _setting(ScanMode.parse)
    scan_images: Optional[bool] = _flag()


@dataclass(frozen=True)
class ImageLayout(_Placement):
    """Placement of a raster element."""

    width: Optional[float] = _number()
    height: Optional[float] = _number()
    opacity: Optional[float] = _number()
    blend_mode: Optional[str] = _setting(as_text)


@dataclass(frozen=True)
class CopyStampLayout(_Placement):
    """Placement and styling of the framed "copy" marker."""

    width: Optional[float] = _number()
    height: Optional[float] = _number()
    size: Optional[float] = _number()
    padding_x: Optional[float] = _number()
    padding_y: Optional[float] = _number()
    border_width: Optional[float] = _number()
    text_baseline_offset: Optional[float] = _number()


@dataclass(frozen=True)
class SignatureFieldsLayout(LayoutRecord):
    """Settings for the two signable regions below the text panel."""

    enabled: Optional[bool] = _flag()
    side_inset: Optional[float] = _number()
    center_gap: Optional[float] = _number()
    line_gap: Optional[float] = _number()
    min_bottom: Optional[float] = _number()
    min_height: Optional[float] = _number()
    min_width: Optional[float] = _number()
    width: Optional[float] = _number()
    height: Optional[float] = _number()
    overlap: Optional[bool] = _flag()
    overlap_offset_x: Optional[float] = _number()
    overlap_offset_y: Optional[float] = _number()
    enterprise_name: Optional[str] = _setting(as_text)
    personal_name: Optional[str] = _setting(as_text)
    replace_existing: Optional[bool] = _flag()
    border_width: Optional[float] = _number()
    border_gray: Optional[float] = _number()


def or_default(value, default):
    """Return ``value``, unless it's ``None``."""
    return default if value is None else value
