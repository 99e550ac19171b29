import copy

import pytest
from pyhanko.pdf_utils.layout import AxisAlignment

from certstamp.geometry import Orientation
from certstamp.layout import (
    AnchorCorner,
    ImageLayout,
    ScanMode,
    SignatureFieldsLayout,
    TextLayout,
    as_flag,
    as_number,
    normalize_key,
    resolve_layout,
)


@pytest.mark.parametrize(
    'key,expected',
    [
        ('marginBottom', 'margin_bottom'),
        ('margin-bottom', 'margin_bottom'),
        ('margin_bottom', 'margin_bottom'),
        ('overlapOffsetX', 'overlap_offset_x'),
        ('certifiedStamp', 'certified_stamp'),
    ],
)
def test_normalize_key(key, expected):
    assert normalize_key(key) == expected


def test_resolve_layout_precedence():
    raw = {
        'width': 1,
        'opacity': 0.5,
        'seal': {'width': 2, 'marginRight': 10},
        'portrait': {
            'width': 3,
            'seal': {'width': 4},
        },
        'landscape': {'width': 99},
    }
    resolved = resolve_layout(
        raw, Orientation.PORTRAIT, {'width': 0, 'margin_top': 5}, key='seal'
    )
    assert resolved == {
        'width': 4,
        'opacity': 0.5,
        'margin_right': 10,
        'margin_top': 5,
    }


def test_resolve_layout_without_element_key():
    raw = {'marginBottom': 80, 'seal': {'width': 2}, 'portrait': {'x': 1}}
    resolved = resolve_layout(raw, 'portrait')
    assert resolved == {'margin_bottom': 80, 'x': 1}


def test_resolve_layout_orientation_overrides_element():
    raw = {'seal': {'width': 2}, 'landscape': {'width': 3}}
    resolved = resolve_layout(raw, Orientation.LANDSCAPE, key='seal')
    assert resolved['width'] == 3


@pytest.mark.parametrize('raw', [None, 'nonsense', 12, ['a']])
def test_resolve_layout_tolerates_junk(raw):
    assert resolve_layout(raw, 'portrait', {'width': 1}) == {'width': 1}


def test_resolve_layout_junk_buckets():
    raw = {'portrait': 'oops', 'seal': 3, 'width': 5}
    assert resolve_layout(raw, 'portrait', key='seal') == {'width': 5}


def test_as_number():
    assert as_number(12) == 12.0
    assert as_number(' 12.5 ') == 12.5
    assert as_number('') is None
    assert as_number('abc') is None
    assert as_number(True) is None
    assert as_number(None) is None
    assert as_number(float('inf')) is None
    assert as_number('nan') is None


def test_as_flag():
    assert as_flag(True) is True
    assert as_flag(False) is False
    assert as_flag('true') is None
    assert as_flag(1) is None


def test_text_layout_coercion():
    text_layout = TextLayout.from_layout({
        'marginBottom': '80',
        'anchorToLastText': 'false',
        'ignoreFooter': False,
        'scanMode': 'text-only',
        'anchor': 'TOP-LEFT',
        'headingSize': 'big',
        'somethingElse': 1,
    })
    assert text_layout.margin_bottom == 80.0
    assert text_layout.anchor_to_last_text is None
    assert text_layout.ignore_footer is False
    assert text_layout.scan_mode == ScanMode.TEXT_ONLY
    assert text_layout.anchor == AnchorCorner.TOP_LEFT
    assert text_layout.heading_size is None


def test_image_layout_blend_mode_text():
    image_layout = ImageLayout.from_layout({'blendMode': 'multiply'})
    assert image_layout.blend_mode == 'multiply'
    assert ImageLayout.from_layout({'blendMode': 3}).blend_mode is None


def test_signature_fields_layout():
    sig_layout = SignatureFieldsLayout.from_layout({
        'enabled': False,
        'enterpriseName': 'org',
        'overlap': 'yes',
    })
    assert sig_layout.enabled is False
    assert sig_layout.enterprise_name == 'org'
    assert sig_layout.overlap is None


def test_anchor_corner():
    assert AnchorCorner.parse('bottom-left') == AnchorCorner.BOTTOM_LEFT
    assert AnchorCorner.parse(' Top-Right ') == AnchorCorner.TOP_RIGHT
    assert AnchorCorner.parse('middle') is None
    assert AnchorCorner.parse(None) is None
    assert AnchorCorner.BOTTOM_LEFT.x_align == AxisAlignment.ALIGN_MIN
    assert AnchorCorner.BOTTOM_LEFT.y_align == AxisAlignment.ALIGN_MIN
    assert AnchorCorner.TOP_RIGHT.x_align == AxisAlignment.ALIGN_MAX
    assert AnchorCorner.TOP_RIGHT.y_align == AxisAlignment.ALIGN_MAX


@pytest.mark.parametrize(
    'value,expected',
    [
        ('auto', ScanMode.AUTO),
        ('textOnly', ScanMode.TEXT_ONLY),
        ('text_only', ScanMode.TEXT_ONLY),
        ('text-and-images', ScanMode.TEXT_AND_IMAGES),
        ('whatever', ScanMode.AUTO),
        (None, ScanMode.AUTO),
    ],
)
def test_scan_mode(value, expected):
    assert ScanMode.parse(value) == expected


def test_resolve_layout_is_repeatable():
    raw = {
        'marginBottom': 80,
        'seal': {'width': 2, 'anchor': 'top-left'},
        'landscape': {'opacity': 0.3, 'seal': {'width': 5}},
    }
    snapshot = copy.deepcopy(raw)
    defaults = {'width': 1, 'margin_top': 5}
    for orientation in Orientation:
        first = resolve_layout(raw, orientation, defaults, key='seal')
        second = resolve_layout(raw, orientation, defaults, key='seal')
        assert first == second
        assert ImageLayout.from_layout(first) == ImageLayout.from_layout(
            second
        )
    assert raw == snapshot
    assert defaults == {'width': 1, 'margin_top': 5}
