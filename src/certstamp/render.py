"""
Drawing the certification stamp onto a document.

The stamp is written as an incremental update: for every page that receives
stamp elements, the page's existing content is isolated in a ``q ... Q``
pair, and a form XObject is painted on top of it. The form XObject is laid
out in display space (see :mod:`certstamp.geometry`) and mapped onto the page
through the display-to-page matrix, so rotated pages don't need any special
treatment while drawing.
"""

import logging
import uuid
from binascii import hexlify
from dataclasses import dataclass
from io import BytesIO
from typing import Dict, List, Optional, Tuple

from pyhanko.pdf_utils import content, generic, layout
from pyhanko.pdf_utils.generic import pdf_name
from pyhanko.pdf_utils.incremental_writer import IncrementalPdfFileWriter
from pyhanko.pdf_utils.misc import PdfError, rd

from .anchor import (
    AnchorResult,
    find_last_content_baseline,
    page_has_image_xobject,
    resolve_scan_images,
)
from .assets import (
    BoundFont,
    FontSettings,
    StampImage,
    load_image,
    resolve_fonts,
)
from .errors import InvalidInput
from .geometry import (
    PageMetrics,
    Rect,
    display_to_page_matrix,
)
from .injection import (
    FieldInjector,
    FieldSpec,
    InjectionOptions,
    inject_signature_fields,
)
from .layout import TextLayout
from .plan import (
    BlendMode,
    CopyStampPlan,
    StampPlan,
    build_copy_stamp_plan,
    build_stamp_plan,
    resolve_copy_stamp_page_index,
)
from .regions import existing_field_names, plan_signature_regions
from .request import StampRequest, is_pdf_bytes

__all__ = [
    'HEADING_COLOR',
    'BODY_COLOR',
    'StampSettings',
    'StampResult',
    'DisplaySpaceCanvas',
    'read_page_metrics',
    'render_stamp',
    'stamp_pdf',
]

logger = logging.getLogger(__name__)

HEADING_COLOR = (0.72, 0.11, 0.18)
BODY_COLOR = (0.08, 0.14, 0.52)
PANEL_BACKGROUND = (1, 1, 1)

INVALID_PDF_MSG = 'The payload is not a valid PDF.'


@dataclass(frozen=True)
class StampSettings:
    """Deployment-level settings that apply to every request."""

    fonts: FontSettings = FontSettings()

    require_certification_fields: bool = True
    """
    Reject requests without certification number or date.
    """


@dataclass(frozen=True)
class StampResult:
    """Outcome of :func:`render_stamp`, before field injection."""

    pdf_bytes: bytes
    plan: StampPlan
    copy_stamp: Optional[CopyStampPlan]
    field_specs: List[FieldSpec]
    injection_options: InjectionOptions


def _inherited(page, key, default=None):
    node = page
    seen = set()
    while node is not None:
        if key in node:
            return node[key]
        if '/Parent' not in node or id(node) in seen:
            break
        seen.add(id(node))
        node = node['/Parent']
    return default


def read_page_metrics(page) -> PageMetrics:
    """
    Determine the metrics of a page from its (possibly inherited) media box
    and rotation.

    :param page:
        A page dictionary, from either pyHanko or pypdf.
    """
    mediabox = _inherited(page, '/MediaBox')
    if mediabox is None or len(mediabox) < 4:
        raise InvalidInput(INVALID_PDF_MSG, code='INVALID_PDF')
    x1, y1, x2, y2 = (float(mediabox[i]) for i in range(4))
    rotation = _inherited(page, '/Rotate', 0)
    return PageMetrics.from_box(abs(x2 - x1), abs(y2 - y1), rotation)


def _color_op(rgb, op: bytes) -> bytes:
    r, g, b = rgb
    return b'%g %g %g %s' % (r, g, b, op)


class DisplaySpaceCanvas(content.PdfContent):
    """
    Collects drawing operations for one page, in display space.

    :param writer:
        The writer for the document.
    :param metrics:
        Metrics of the page.
    """

    def __init__(self, writer, metrics: PageMetrics):
        box = layout.BoxConstraints(
            width=metrics.visual_width, height=metrics.visual_height
        )
        super().__init__(box=box, writer=writer)
        self.metrics = metrics
        self._commands: List[bytes] = []
        self._font_names: Dict[int, bytes] = {}
        self._gs_names: Dict[Tuple, bytes] = {}
        self._image_names: Dict[int, bytes] = {}

    def _add_resource(self, category, prefix: bytes, registry, key, value):
        name = b'/%s%d' % (prefix, len(registry) + 1)
        self.set_resource(category, pdf_name(name.decode('ascii')), value)
        registry[key] = name
        return name

    def _font_resource(self, font: BoundFont, size: float):
        engine = font.engine(size)
        try:
            return engine, self._font_names[id(engine)]
        except KeyError:
            pass
        name = self._add_resource(
            content.ResourceType.FONT, b'F', self._font_names, id(engine),
            engine.as_resource(),
        )
        return engine, name

    def _graphics_state(
        self, opacity: Optional[float], blend_mode: Optional[BlendMode]
    ) -> Optional[bytes]:
        if (opacity is None or opacity >= 1) and blend_mode is None:
            return None
        key = (opacity, blend_mode)
        try:
            return self._gs_names[key]
        except KeyError:
            pass
        gs = generic.DictionaryObject()
        if opacity is not None:
            alpha = generic.FloatObject(max(0.0, min(1.0, opacity)))
            gs[pdf_name('/CA')] = alpha
            gs[pdf_name('/ca')] = alpha
        if blend_mode is not None:
            gs[pdf_name('/BM')] = pdf_name(blend_mode.pdf_name)
        return self._add_resource(
            content.ResourceType.EXT_G_STATE, b'GS', self._gs_names, key, gs
        )

    def draw_text(
        self, text: str, x: float, y: float, font: BoundFont, size: float,
        color=HEADING_COLOR,
    ):
        if not text:
            return
        engine, font_name = self._font_resource(font, size)
        shaped = engine.shape(text)
        self._commands.append(
            b'BT %s %g Tf %s 1 0 0 1 %g %g Tm %s ET' % (
                font_name, rd(size), _color_op(color, b'rg'),
                rd(x), rd(y), shaped.graphics_ops,
            )
        )

    def draw_rectangle(
        self, rect: Rect, fill=None, stroke=None, border_width: float = 1,
        opacity: Optional[float] = None,
    ):
        if fill is None and (stroke is None or border_width <= 0):
            return
        ops = [b'q']
        gs_name = self._graphics_state(opacity, None)
        if gs_name is not None:
            ops.append(b'%s gs' % gs_name)
        if fill is not None:
            ops.append(_color_op(fill, b'rg'))
        if stroke is not None and border_width > 0:
            ops.append(_color_op(stroke, b'RG'))
            ops.append(b'%g w' % rd(border_width))
            paint = b'B' if fill is not None else b'S'
        else:
            paint = b'f'
        ops.append(
            b'%g %g %g %g re %s' % (
                rd(rect.x), rd(rect.y), rd(rect.width), rd(rect.height),
                paint,
            )
        )
        ops.append(b'Q')
        self._commands.append(b' '.join(ops))

    def draw_image(
        self, image: StampImage, rect: Rect, opacity: float = 1.0,
        blend_mode: Optional[BlendMode] = None,
    ):
        image_ref = image.embed(self.writer)
        try:
            name = self._image_names[id(image)]
        except KeyError:
            name = self._add_resource(
                content.ResourceType.XOBJECT, b'Im', self._image_names,
                id(image), image_ref,
            )
        ops = [b'q']
        gs_name = self._graphics_state(opacity, blend_mode)
        if gs_name is not None:
            ops.append(b'%s gs' % gs_name)
        ops.append(
            b'%g 0 0 %g %g %g cm %s Do Q' % (
                rd(rect.width), rd(rect.height), rd(rect.x), rd(rect.y), name
            )
        )
        self._commands.append(b' '.join(ops))

    def render(self) -> bytes:
        return b'\n'.join(self._commands)

    def apply(self, dest_page: int):
        """
        Paint the collected operations onto a page.

        :param dest_page:
            Index of the page.
        :return:
            A reference to the affected page object.
        """
        wr = self.writer
        stamp_ref = wr.add_object(self.as_form_xobject())
        resource_name = b'/Stamp' + hexlify(uuid.uuid4().bytes)
        matrix = b' '.join(
            b'%g' % rd(v) for v in display_to_page_matrix(self.metrics)
        )
        # the existing content gets wrapped in q ... Q so that whatever
        # graphics state it leaves behind doesn't affect the stamp
        wr.add_stream_to_page(
            dest_page,
            wr.add_object(generic.StreamObject(stream_data=b'q')),
            prepend=True,
        )
        stamp_paint = b'Q q %s cm %s Do Q' % (matrix, resource_name)
        resources = generic.DictionaryObject({
            pdf_name('/XObject'): generic.DictionaryObject({
                pdf_name(resource_name.decode('ascii')): stamp_ref
            })
        })
        return wr.add_stream_to_page(
            dest_page,
            wr.add_object(generic.StreamObject(stream_data=stamp_paint)),
            resources,
        )


def _draw_panel(canvas: DisplaySpaceCanvas, plan: StampPlan, heading_font,
                body_font):
    panel = plan.panel
    if panel.opacity > 0:
        canvas.draw_rectangle(
            panel.rect, fill=PANEL_BACKGROUND, opacity=panel.opacity
        )
    heading_y, number_y, date_y, notary_y = panel.line_ys
    lines = plan.lines
    x = panel.text_x
    canvas.draw_text(
        lines.heading, x, heading_y, heading_font, panel.heading_size,
        color=HEADING_COLOR,
    )
    canvas.draw_text(
        lines.number_line, x, number_y, body_font, panel.body_size,
        color=BODY_COLOR,
    )
    canvas.draw_text(
        lines.date_line, x, date_y, body_font, panel.body_size,
        color=BODY_COLOR,
    )
    canvas.draw_text(
        lines.notary_line, x, notary_y, heading_font, panel.heading_size,
        color=HEADING_COLOR,
    )


def _draw_copy_stamp(canvas: DisplaySpaceCanvas, plan: CopyStampPlan, font):
    box = plan.box
    canvas.draw_rectangle(
        box.rect, stroke=HEADING_COLOR, border_width=box.border_width
    )
    canvas.draw_text(
        box.text, box.text_x, box.text_y, font, box.font_size,
        color=HEADING_COLOR,
    )


def _open_writer(pdf_bytes) -> IncrementalPdfFileWriter:
    if not is_pdf_bytes(pdf_bytes):
        raise InvalidInput(INVALID_PDF_MSG, code='INVALID_PDF')
    try:
        return IncrementalPdfFileWriter(BytesIO(pdf_bytes), strict=False)
    except (PdfError, ValueError, KeyError, TypeError) as e:
        logger.debug(f"Failed to parse input document: {e}", exc_info=e)
        raise InvalidInput(INVALID_PDF_MSG, code='INVALID_PDF') from e


def render_stamp(
    pdf_bytes: bytes,
    request: StampRequest,
    settings: Optional[StampSettings] = None,
) -> StampResult:
    """
    Draw the stamp and plan the signature regions, without injecting them.

    :param pdf_bytes:
        The input document.
    :param request:
        The stamping request.
    :param settings:
        Deployment settings.
    :return:
        A :class:`.StampResult`.
    :raises InvalidInput:
        if the document or the request can't be used.
    """
    settings = settings or StampSettings()
    writer = _open_writer(pdf_bytes)
    request.validate(settings.require_certification_fields)

    try:
        page_count = int(writer.root['/Pages']['/Count'])
    except (KeyError, TypeError, ValueError) as e:
        raise InvalidInput(INVALID_PDF_MSG, code='INVALID_PDF') from e
    if page_count <= 0:
        raise InvalidInput('Input PDF has no pages.', code='EMPTY_PDF')

    fonts = resolve_fonts(
        request.fonts.regular, request.fonts.bold, settings=settings.fonts
    )
    heading_font = fonts.bold.bind(writer)
    body_font = fonts.regular.bind(writer)
    lines = request.stamp_lines()
    copy_text = request.copy_text()
    images: Dict[str, Optional[StampImage]] = {
        'seal': load_image(request.images.seal),
        'certified_stamp': load_image(request.images.certified_stamp),
        'signature': load_image(request.images.signature),
    }

    page_ix = page_count - 1
    page_ref, page_resources = writer.find_page_for_modification(page_ix)
    metrics = read_page_metrics(page_ref.get_object())
    has_images = page_has_image_xobject(page_resources)

    def _scan(ignored, text_layout: TextLayout) -> Optional[AnchorResult]:
        scan_images = resolve_scan_images(text_layout, has_images)
        logger.debug(
            f"Scanning page {page_ix} for existing content "
            f"(images: {scan_images})"
        )
        return find_last_content_baseline(
            pdf_bytes, page_ix,
            ignored_texts=ignored,
            text_layout=text_layout,
            scan_images=scan_images,
            rotation=metrics.rotation,
        )

    plan = build_stamp_plan(
        page_ix, metrics, lines, heading_font, body_font,
        image_aspects={
            key: (img.aspect_ratio if img is not None else None)
            for key, img in images.items()
        },
        text_layout=request.text_layout,
        image_layout=request.image_layout,
        signature_fields=request.signature_fields,
        copy_text=copy_text,
        scanner=_scan,
    )
    if plan.anchor is None:
        logger.info(
            f"No existing content found to anchor to; using static margin "
            f"{plan.margin_bottom:.1f}."
        )

    canvas = DisplaySpaceCanvas(writer, metrics)
    _draw_panel(canvas, plan, heading_font, body_font)
    for placement in plan.images:
        canvas.draw_image(
            images[placement.key], placement.rect,
            opacity=placement.opacity, blend_mode=placement.blend_mode,
        )
    field_specs = plan_signature_regions(
        page_ix, metrics, plan.panel, plan.signature_fields,
        existing_names=existing_field_names(writer.root),
    )
    canvas.apply(page_ix)

    copy_plan = None
    if copy_text:
        copy_ix = resolve_copy_stamp_page_index(
            request.copy_stamp_page, page_count
        )
        copy_page_ref, _ = writer.find_page_for_modification(copy_ix)
        copy_metrics = read_page_metrics(copy_page_ref.get_object())
        copy_plan = build_copy_stamp_plan(
            copy_ix, copy_metrics, copy_text, heading_font,
            image_layout=request.image_layout,
        )
        copy_canvas = DisplaySpaceCanvas(writer, copy_metrics)
        _draw_copy_stamp(copy_canvas, copy_plan, heading_font)
        copy_canvas.apply(copy_ix)

    out = BytesIO()
    writer.write(out)
    return StampResult(
        pdf_bytes=out.getvalue(),
        plan=plan,
        copy_stamp=copy_plan,
        field_specs=field_specs,
        injection_options=InjectionOptions.from_layout(plan.signature_fields),
    )


def stamp_pdf(
    pdf_bytes: bytes,
    request: StampRequest,
    *,
    injector: Optional[FieldInjector] = None,
    settings: Optional[StampSettings] = None,
) -> bytes:
    """
    Stamp a document.

    The certification panel and the images go on the last page, the copy
    marker on the page selected by the request. Afterwards, the signature
    regions planned below the panel are handed to ``injector``.

    :param pdf_bytes:
        The input document.
    :param request:
        The stamping request.
    :param injector:
        The signature field injector. If ``None``, regions are planned but
        not added.
    :param settings:
        Deployment settings.
    :return:
        The stamped document.
    :raises InvalidInput:
        if the document or the request can't be used.
    :raises IntegrationFailure:
        if the field injector fails.
    """
    result = render_stamp(pdf_bytes, request, settings=settings)
    return inject_signature_fields(
        result.pdf_bytes, result.field_specs, result.injection_options,
        injector=injector,
    )

