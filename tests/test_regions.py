from io import BytesIO

import pytest
from pyhanko.pdf_utils.reader import PdfFileReader

from certstamp.geometry import PageMetrics
from certstamp.layout import SignatureFieldsLayout
from certstamp.plan import PanelGeometry
from certstamp.regions import (
    existing_field_names,
    plan_signature_regions,
    reserve_field_name,
    sanitize_field_name,
)

from .samples import BLANK_LETTER, WITH_FIELDS

LETTER = PageMetrics.from_box(612, 792)


def _panel(width=300, notary_line_y=119):
    return PanelGeometry(
        x=28, y=100, width=width, height=91, padding_x=10,
        heading_size=15, body_size=12.5, opacity=0,
        line_ys=(175, 156, 139.5, notary_line_y),
    )


SCENARIO = SignatureFieldsLayout(side_inset=10, center_gap=20, min_width=120)


def test_regions_width():
    enterprise, personal = plan_signature_regions(
        0, LETTER, _panel(), SCENARIO
    )
    # (300 - 2 * 10 - 20) / 2
    assert enterprise.width == 130
    assert personal.width == 130


def test_regions_overlap_by_default():
    enterprise, personal = plan_signature_regions(
        3, LETTER, _panel(), SCENARIO
    )
    assert enterprise.name == 'sig_enterprise'
    assert personal.name == 'sig_personal'
    assert enterprise.page_index == personal.page_index == 3
    # the top sits 8pt below the authority line
    assert (enterprise.x, enterprise.y) == (38, 119 - 8 - 52)
    assert enterprise.height == 52
    # shifted down by a quarter of the height
    assert (personal.x, personal.y) == (38, 119 - 8 - 52 - 13)


def test_regions_side_by_side():
    layout = SignatureFieldsLayout(
        side_inset=10, center_gap=20, min_width=120, overlap=False
    )
    enterprise, personal = plan_signature_regions(
        0, LETTER, _panel(), layout
    )
    assert enterprise.x == 38
    assert personal.x == 28 + 300 - 10 - 130
    assert personal.y == enterprise.y


def test_regions_explicit_size():
    layout = SignatureFieldsLayout(width=100, height=30, min_width=60)
    enterprise, _ = plan_signature_regions(0, LETTER, _panel(), layout)
    assert enterprise.width == 100
    assert enterprise.height == 30


def test_regions_too_narrow():
    assert plan_signature_regions(0, LETTER, _panel(width=200), SCENARIO) == []


def test_regions_no_vertical_room():
    panel = _panel(notary_line_y=20)
    assert plan_signature_regions(0, LETTER, panel, SCENARIO) == []


def test_regions_disabled():
    layout = SignatureFieldsLayout(enabled=False)
    assert plan_signature_regions(0, LETTER, _panel(), layout) == []


def test_regions_clamped_to_min_bottom():
    panel = _panel(notary_line_y=60)
    enterprise, _ = plan_signature_regions(0, LETTER, panel, SCENARIO)
    assert enterprise.y == 8
    assert enterprise.height == 60 - 8 - 8


def test_regions_rotated_page():
    metrics = PageMetrics.from_box(612, 792, 90)
    enterprise, _ = plan_signature_regions(0, metrics, _panel(), SCENARIO)
    assert enterprise.rotation == 90
    # display (38, 59, 130, 52) in page space
    assert (enterprise.x, enterprise.y) == (612 - 111, 38)
    assert (enterprise.width, enterprise.height) == (52, 130)


def test_regions_custom_names():
    layout = SignatureFieldsLayout(
        enterprise_name='Chữ ký tổ chức', personal_name='Chữ ký tổ chức'
    )
    enterprise, personal = plan_signature_regions(
        0, LETTER, _panel(), layout
    )
    assert enterprise.name == 'Ch_k_t_ch_c'
    assert personal.name == 'Ch_k_t_ch_c_2'


def test_regions_keep_existing_fields():
    layout = SignatureFieldsLayout(replace_existing=False)
    enterprise, personal = plan_signature_regions(
        0, LETTER, _panel(), layout,
        existing_names=['sig_enterprise', 'sig_enterprise_2'],
    )
    assert enterprise.name == 'sig_enterprise_3'
    assert personal.name == 'sig_personal'


def test_regions_replace_existing_fields():
    enterprise, _ = plan_signature_regions(
        0, LETTER, _panel(), SignatureFieldsLayout(),
        existing_names=['sig_enterprise'],
    )
    assert enterprise.name == 'sig_enterprise'


@pytest.mark.parametrize(
    'value,expected',
    [
        ('sig.org-1', 'sig.org-1'),
        (' a b ', 'a_b'),
        ('Chữ ký số', 'Ch_k_s_'),
        ('', 'fallback'),
        (None, 'fallback'),
        (12, 'fallback'),
    ],
)
def test_sanitize_field_name(value, expected):
    assert sanitize_field_name(value, 'fallback') == expected


def test_reserve_field_name():
    taken = {'a', 'a_2'}
    assert reserve_field_name('a', taken) == 'a_3'
    assert reserve_field_name('b', taken) == 'b'
    assert taken == {'a', 'a_2', 'a_3', 'b'}


def test_existing_field_names():
    r = PdfFileReader(BytesIO(WITH_FIELDS))
    assert existing_field_names(r.root) == [
        'outer', 'outer.inner', 'sig_enterprise'
    ]


def test_existing_field_names_no_form():
    r = PdfFileReader(BytesIO(BLANK_LETTER))
    assert existing_field_names(r.root) == []
