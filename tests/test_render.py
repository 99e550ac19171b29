from io import BytesIO

import pytest
from pyhanko.pdf_utils import generic
from pyhanko.pdf_utils.generic import pdf_name
from pyhanko.pdf_utils.reader import PdfFileReader

from certstamp.errors import InvalidInput
from certstamp.geometry import Orientation
from certstamp.injection import FieldInjector
from certstamp.render import read_page_metrics, render_stamp, stamp_pdf
from certstamp.request import StampRequest

from .samples import (
    BLANK_LETTER,
    BROKEN_XOBJECTS,
    CERT_PAYLOAD,
    NO_PAGES,
    PAGE_NUMBER_AT_700,
    ROTATED_90,
    THREE_PAGES,
    WITH_FIELDS,
    png_bytes,
)


def _request(**extra):
    return StampRequest.from_payload({**CERT_PAYLOAD, **extra})


def _page(pdf_bytes, ix):
    r = PdfFileReader(BytesIO(pdf_bytes))
    page, _ = r.find_page_for_modification(ix)
    return page.get_object()


def _stamp_xobject_names(page):
    resources = page['/Resources']
    if '/XObject' not in resources:
        return []
    return [
        name for name in resources['/XObject'] if name.startswith('/Stamp')
    ]


class RecordingInjector(FieldInjector):
    def __init__(self):
        self.calls = []

    def inject(self, pdf_bytes, specs, options):
        self.calls.append((specs, options))
        return pdf_bytes + b'\n%injected\n'


def test_blank_page(courier_settings):
    result = render_stamp(BLANK_LETTER, _request(), courier_settings)
    plan = result.plan
    assert plan.anchor is None
    assert not plan.auto_margin
    assert plan.margin_bottom == pytest.approx(95.04)
    assert plan.lines.heading == 'CHỨNG THỰC BẢN SAO ĐÚNG VỚI BẢN CHÍNH'
    assert plan.images == []

    # incremental update
    assert result.pdf_bytes.startswith(BLANK_LETTER)
    page = _page(result.pdf_bytes, 0)
    assert len(_stamp_xobject_names(page)) == 2

    names = [spec.name for spec in result.field_specs]
    assert names == ['sig_enterprise', 'sig_personal']
    assert all(spec.page_index == 0 for spec in result.field_specs)
    assert result.copy_stamp is not None
    assert result.copy_stamp.box.text == 'BẢN SAO'


def test_stamp_is_readable(courier_settings):
    stamped = render_stamp(
        BLANK_LETTER, _request(copyStampText=None), courier_settings
    ).pdf_bytes
    page = _page(stamped, 0)
    (name,) = _stamp_xobject_names(page)
    xobj = page['/Resources']['/XObject'][name]
    assert xobj['/Subtype'] == '/Form'
    # the box may list its corners in any order
    bbox = [float(v) for v in xobj['/BBox']]
    assert sorted(bbox[0::2]) == [0, 612]
    assert sorted(bbox[1::2]) == [0, 792]


def test_anchor_below_existing_text(courier_settings):
    req = _request(textLayout={'ignoreFooter': False})
    result = render_stamp(PAGE_NUMBER_AT_700, req, courier_settings)
    assert result.plan.anchor.baseline_y == pytest.approx(700)
    assert result.plan.auto_margin
    # not enough room below the text: clamp to the safe margin
    assert result.plan.margin_bottom == pytest.approx(36)


def test_anchor_disabled(courier_settings):
    req = _request(
        textLayout={'ignoreFooter': False, 'anchorToLastText': False}
    )
    result = render_stamp(PAGE_NUMBER_AT_700, req, courier_settings)
    assert result.plan.anchor is None
    assert result.plan.margin_bottom == pytest.approx(95.04)


def test_explicit_margin(courier_settings):
    req = _request(textLayout={'marginBottom': 200, 'anchorToLastText': False})
    result = render_stamp(BLANK_LETTER, req, courier_settings)
    assert result.plan.margin_bottom == 200
    assert result.plan.panel.rect.y == 200


@pytest.mark.parametrize(
    'copy_page,expected',
    [(None, 0), ('last', 2), ('first', 0), (5, 2), (1, 1), (-3, 0)],
)
def test_copy_stamp_page(courier_settings, copy_page, expected):
    result = render_stamp(
        THREE_PAGES, _request(copyStampPage=copy_page), courier_settings
    )
    assert result.copy_stamp.page_index == expected
    assert result.plan.page_index == 2
    stamped_pages = {
        ix for ix in range(3)
        if _stamp_xobject_names(_page(result.pdf_bytes, ix))
    }
    assert stamped_pages == {2, expected}


def test_no_copy_stamp(courier_settings):
    result = render_stamp(
        THREE_PAGES, _request(copyStampEnabled=False), courier_settings
    )
    assert result.copy_stamp is None
    assert not _stamp_xobject_names(_page(result.pdf_bytes, 0))


def test_seal_image(courier_settings):
    req = _request(images={'sealBase64': png_bytes(40, 20)})
    result = render_stamp(BLANK_LETTER, req, courier_settings)
    (placement,) = result.plan.images
    assert placement.key == 'seal'
    assert placement.rect.width == 120
    assert placement.rect.height == 60


def test_bad_image(courier_settings):
    req = _request(images={'signatureBase64': b'GIF89a'})
    with pytest.raises(InvalidInput) as exc_info:
        render_stamp(BLANK_LETTER, req, courier_settings)
    assert exc_info.value.code == 'UNSUPPORTED_IMAGE'


def test_rotated_page(courier_settings):
    result = render_stamp(ROTATED_90, _request(), courier_settings)
    metrics = result.plan.metrics
    assert metrics.rotation == 90
    assert metrics.orientation == Orientation.LANDSCAPE
    assert result.plan.margin_bottom == pytest.approx(73.44)
    assert result.field_specs
    for spec in result.field_specs:
        assert spec.rotation == 90
        # regions are expressed in page space
        assert 0 <= spec.x <= 612
        assert 0 <= spec.y <= 792


def test_existing_field_names_avoided(courier_settings):
    req = _request(signatureFields={'replaceExisting': False})
    result = render_stamp(WITH_FIELDS, req, courier_settings)
    names = [spec.name for spec in result.field_specs]
    assert names == ['sig_enterprise_2', 'sig_personal']


def test_fields_disabled(courier_settings):
    req = _request(signatureFields={'enabled': False})
    result = render_stamp(BLANK_LETTER, req, courier_settings)
    assert result.field_specs == []


@pytest.mark.parametrize(
    'pdf_bytes,code',
    [
        (b'', 'INVALID_PDF'),
        (b'hello', 'INVALID_PDF'),
        (b'%PDF-1.7\nnothing to see here', 'INVALID_PDF'),
        (NO_PAGES, 'EMPTY_PDF'),
    ],
)
def test_invalid_documents(courier_settings, pdf_bytes, code):
    with pytest.raises(InvalidInput) as exc_info:
        render_stamp(pdf_bytes, _request(), courier_settings)
    assert exc_info.value.code == code


def test_missing_certification_number(courier_settings):
    req = StampRequest.from_payload({'certificationDate': '2024-01-15'})
    with pytest.raises(InvalidInput) as exc_info:
        render_stamp(BLANK_LETTER, req, courier_settings)
    assert exc_info.value.code == 'MISSING_CERTIFICATION_NUMBER'


def test_optional_certification_fields(courier_settings):
    from dataclasses import replace

    settings = replace(courier_settings, require_certification_fields=False)
    result = render_stamp(BLANK_LETTER, StampRequest(), settings)
    assert result.plan.lines.number_line == (
        'Số chứng thực: --  Quyển số: -- SCT/BS'
    )


def test_stamp_pdf_with_injector(courier_settings):
    injector = RecordingInjector()
    out = stamp_pdf(
        BLANK_LETTER, _request(), injector=injector, settings=courier_settings
    )
    assert out.endswith(b'%injected\n')
    ((specs, options),) = injector.calls
    assert [s.name for s in specs] == ['sig_enterprise', 'sig_personal']
    assert options.border_width >= 0


def test_stamp_pdf_without_injector(courier_settings):
    out = stamp_pdf(BLANK_LETTER, _request(), settings=courier_settings)
    assert out.startswith(BLANK_LETTER)
    assert b'%injected' not in out


def test_stamp_pdf_no_fields_skips_injector(courier_settings):
    injector = RecordingInjector()
    stamp_pdf(
        BLANK_LETTER, _request(signatureFields={'enabled': False}),
        injector=injector, settings=courier_settings,
    )
    assert injector.calls == []


def test_read_page_metrics_inherited():
    parent = generic.DictionaryObject({
        pdf_name('/MediaBox'): generic.ArrayObject(
            [generic.NumberObject(v) for v in (0, 0, 595, 842)]
        ),
        pdf_name('/Rotate'): generic.NumberObject(270),
    })
    page = generic.DictionaryObject({pdf_name('/Parent'): parent})
    metrics = read_page_metrics(page)
    assert (metrics.width, metrics.height) == (595, 842)
    assert metrics.rotation == 270
    assert metrics.visual_width == 842
    assert metrics.orientation == Orientation.LANDSCAPE


def test_read_page_metrics_from_document():
    metrics = read_page_metrics(_page(BLANK_LETTER, 0))
    assert (metrics.width, metrics.height) == (612, 792)
    assert metrics.rotation == 0
    metrics = read_page_metrics(_page(ROTATED_90, 0))
    assert metrics.rotation == 90
    assert metrics.orientation == Orientation.LANDSCAPE


def test_read_page_metrics_without_mediabox():
    with pytest.raises(InvalidInput):
        read_page_metrics(generic.DictionaryObject())


def test_existing_field_names_replaced_by_default(courier_settings):
    result = render_stamp(WITH_FIELDS, _request(), courier_settings)
    names = [spec.name for spec in result.field_specs]
    assert names == ['sig_enterprise', 'sig_personal']


def test_malformed_xobject_resources(courier_settings):
    result = render_stamp(BROKEN_XOBJECTS, _request(), courier_settings)
    assert result.plan.anchor is None
    assert result.plan.margin_bottom == pytest.approx(95.04)
    assert result.pdf_bytes.startswith(BROKEN_XOBJECTS)
