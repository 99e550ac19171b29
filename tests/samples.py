from io import BytesIO

from PIL import Image
from pyhanko.pdf_utils import generic, writer
from pyhanko.pdf_utils.font.basic import get_courier
from pyhanko.pdf_utils.generic import pdf_name

LETTER = (0, 0, 612, 792)


def text_ops(txt, x, y, size=12):
    return f'BT /F1 {size} Tf {x} {y} Td ({txt}) Tj ET'.encode('ascii')


def image_xobject(pdf_out):
    # 2x2 grey pixels
    return pdf_out.add_object(
        generic.StreamObject(
            {
                pdf_name('/Type'): pdf_name('/XObject'),
                pdf_name('/Subtype'): pdf_name('/Image'),
                pdf_name('/Width'): generic.NumberObject(2),
                pdf_name('/Height'): generic.NumberObject(2),
                pdf_name('/ColorSpace'): pdf_name('/DeviceGray'),
                pdf_name('/BitsPerComponent'): generic.NumberObject(8),
            },
            stream_data=b'\x80\x80\x80\x80',
        )
    )


def simple_page(pdf_out, content=b'', media_box=LETTER, rotate=None,
                with_image=False, xobjects=None):
    resources = generic.DictionaryObject({
        pdf_name('/Font'): generic.DictionaryObject({
            pdf_name('/F1'): get_courier(pdf_out)
        })
    })
    if with_image:
        resources[pdf_name('/XObject')] = generic.DictionaryObject({
            pdf_name('/Im0'): image_xobject(pdf_out)
        })
    if xobjects is not None:
        resources[pdf_name('/XObject')] = xobjects(pdf_out)
    stream = generic.StreamObject(stream_data=content)
    page = writer.PageObject(
        contents=pdf_out.add_object(stream), media_box=media_box,
        resources=resources,
    )
    if rotate is not None:
        page[pdf_name('/Rotate')] = generic.NumberObject(rotate)
    return page


def form_xobject(pdf_out, content=b'q Q', bbox=(0, 0, 100, 100),
                 matrix=None, xobjects=None):
    """
    Add a form XObject. ``xobjects`` is called with the form's own
    reference, so that self-referencing forms can be built.
    """
    stream = generic.StreamObject(
        {
            pdf_name('/Type'): pdf_name('/XObject'),
            pdf_name('/Subtype'): pdf_name('/Form'),
            pdf_name('/BBox'): generic.ArrayObject(
                [generic.NumberObject(v) for v in bbox]
            ),
        },
        stream_data=content,
    )
    if matrix is not None:
        stream[pdf_name('/Matrix')] = generic.ArrayObject(
            [generic.NumberObject(v) for v in matrix]
        )
    ref = pdf_out.add_object(stream)
    stream[pdf_name('/Resources')] = generic.DictionaryObject({
        pdf_name('/XObject'): generic.DictionaryObject(
            xobjects(ref) if xobjects is not None else {}
        )
    })
    return ref


def _form_with_image(pdf_out):
    # the form box covers page y 150 to 300, the image inside it 100 to 150
    img = image_xobject(pdf_out)
    form = form_xobject(
        pdf_out,
        content=b'q 50 0 0 50 0 0 cm /Im0 Do Q',
        bbox=(0, 50, 200, 200),
        matrix=(1, 0, 0, 1, 100, 100),
        xobjects=lambda _: {pdf_name('/Im0'): img},
    )
    return generic.DictionaryObject({pdf_name('/Fm0'): form})


def _nested_forms(pdf_out, levels=14):
    # every level moves 10pt further down the page
    inner = None
    for level in reversed(range(levels)):
        matrix = (1, 0, 0, 1, 100, 500) if level == 0 else (1, 0, 0, 1, 0, -10)
        nxt = inner
        inner = form_xobject(
            pdf_out,
            content=b'/Fm0 Do' if nxt is not None else b'q Q',
            bbox=(0, 0, 10, 10),
            matrix=matrix,
            xobjects=(
                (lambda _, n=nxt: {pdf_name('/Fm0'): n})
                if nxt is not None else None
            ),
        )
    return generic.DictionaryObject({pdf_name('/Fm0'): inner})


def _self_referencing_form(pdf_out):
    form = form_xobject(
        pdf_out,
        content=b'/Fm0 Do',
        matrix=(1, 0, 0, 1, 100, 150),
        xobjects=lambda ref: {pdf_name('/Fm0'): ref},
    )
    return generic.DictionaryObject({pdf_name('/Fm0'): form})


def build_pdf(*page_specs, fields=None) -> bytes:
    """
    Build a document with one page per spec. Every spec is a dictionary
    of keyword arguments to :func:`simple_page`.
    """
    w = writer.PdfFileWriter(stream_xrefs=False)
    for spec in page_specs:
        w.insert_page(simple_page(w, **spec))
    if fields is not None:
        w.root[pdf_name('/AcroForm')] = generic.DictionaryObject({
            pdf_name('/Fields'): generic.ArrayObject(fields(w))
        })
    out = BytesIO()
    w.write(out)
    return out.getvalue()


def field_tree(pdf_out):
    inner = pdf_out.add_object(generic.DictionaryObject({
        pdf_name('/FT'): pdf_name('/Sig'),
        pdf_name('/T'): generic.TextStringObject('inner'),
    }))
    outer = pdf_out.add_object(generic.DictionaryObject({
        pdf_name('/T'): generic.TextStringObject('outer'),
        pdf_name('/Kids'): generic.ArrayObject([inner]),
    }))
    sig = pdf_out.add_object(generic.DictionaryObject({
        pdf_name('/FT'): pdf_name('/Sig'),
        pdf_name('/T'): generic.TextStringObject('sig_enterprise'),
    }))
    return [outer, sig]


def png_bytes(width=40, height=20, mode='RGB', color=(200, 20, 20)):
    out = BytesIO()
    Image.new(mode, (width, height), color).save(out, format='PNG')
    return out.getvalue()


def jpeg_bytes(width=30, height=30):
    out = BytesIO()
    Image.new('RGB', (width, height), (10, 10, 200)).save(out, format='JPEG')
    return out.getvalue()


BLANK_LETTER = build_pdf({})
# text drawn at page y = 92, i.e. 700pt below the top edge
PAGE_NUMBER_AT_700 = build_pdf({'content': text_ops('Page 1 of 1', 72, 92)})
THREE_PAGES = build_pdf(
    {'content': text_ops('one', 72, 700)},
    {'content': text_ops('two', 72, 700)},
    {'content': text_ops('three', 72, 700)},
)
ROTATED_90 = build_pdf({'rotate': 90})
TEXT_AND_IMAGE = build_pdf({
    'content': (
        text_ops('Heading', 72, 700)
        + b' q 200 0 0 100 100 150 cm /Im0 Do Q'
    ),
    'with_image': True,
})
WITH_FIELDS = build_pdf({}, fields=field_tree)
NO_PAGES = build_pdf()

CERT_PAYLOAD = {
    'certificationNumber': '123',
    'certificationBookNumber': '01/2024',
    'certificationDate': '2024-01-15',
}
FORM_WITH_IMAGE = build_pdf({
    'content': b'/Fm0 Do', 'xobjects': _form_with_image
})
NESTED_FORMS = build_pdf({'content': b'/Fm0 Do', 'xobjects': _nested_forms})
SELF_REFERENCING_FORM = build_pdf({
    'content': b'/Fm0 Do', 'xobjects': _self_referencing_form
})
INLINE_IMAGE = build_pdf({
    'content': (
        b'q 200 0 0 100 100 150 cm '
        b'BI /W 2 /H 2 /CS /G /BPC 8 ID \x80\x80\x80\x80 EI Q'
    )
})
# image covering page y 20 to 100, i.e. reaching into the footer band
IMAGE_INTO_FOOTER = build_pdf({
    'content': b'q 100 0 0 80 100 20 cm /Im0 Do Q', 'with_image': True
})
# image covering page y 10 to 40, entirely inside the footer band
IMAGE_IN_FOOTER = build_pdf({
    'content': (
        text_ops('body', 72, 400) + b' q 100 0 0 30 100 10 cm /Im0 Do Q'
    ),
    'with_image': True,
})
BROKEN_XOBJECTS = build_pdf({
    'xobjects': lambda pdf_out: generic.NumberObject(5)
})
