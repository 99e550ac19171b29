"""
Discovery of the lowest piece of content already present on a page.

The stamp should sit just below whatever the page already shows, e.g. the
final paragraph of a contract. This module finds that line by looking at the
text runs on the page and, optionally, at the raster images it paints.

All vertical positions computed here are expressed in viewer coordinates
(see :class:`~certstamp.geometry.ViewerViewport`), where the y axis points
down. The "lowest" content is therefore the content with the *largest*
y coordinate.
"""

import logging
import math
from dataclasses import dataclass
from io import BytesIO
from typing import Iterable, Optional, Sequence

from pypdf import PdfReader
from pypdf.generic import ContentStream

from .geometry import (
    IDENTITY,
    Matrix,
    ViewerViewport,
    apply_matrix,
    multiply_matrices,
    normalize_rotation,
    viewer_viewport,
)
from .layout import ScanMode, TextLayout, or_default

__all__ = [
    'AnchorResult',
    'FooterBand',
    'ContentAnchorScanner',
    'find_last_content_baseline',
    'resolve_scan_images',
    'page_has_image_xobject',
    'DEFAULT_FOOTER_IGNORE_RATIO',
]

logger = logging.getLogger(__name__)

DEFAULT_FOOTER_IGNORE_RATIO = 0.06

# nesting limit for form XObjects
MAX_FORM_DEPTH = 12

_UNIT_SQUARE = (0, 0, 1, 1)


@dataclass(frozen=True)
class AnchorResult:
    """Outcome of a successful content scan."""

    baseline_y: float
    """
    Viewer y coordinate of the lowest relevant content on the page.
    """

    page_height: float
    """
    Height of the page in viewer coordinates.
    """


@dataclass(frozen=True)
class FooterBand:
    """
    Horizontal band at the bottom of the page whose content should not be
    used as an anchor (page numbers, running footers and the like).
    """

    start: float
    """
    Viewer y coordinate where the band starts. Infinite when disabled.
    """

    @property
    def enabled(self) -> bool:
        return math.isfinite(self.start)

    def contains(self, y: float) -> bool:
        return y >= self.start

    @classmethod
    def disabled(cls) -> 'FooterBand':
        return cls(start=math.inf)

    @classmethod
    def from_layout(cls, text_layout: TextLayout, page_height: float):
        if text_layout.ignore_footer is False:
            return cls.disabled()
        ratio = max(
            0.0,
            or_default(
                text_layout.footer_ignore_ratio, DEFAULT_FOOTER_IGNORE_RATIO
            ),
        )
        height = max(
            0.0,
            or_default(text_layout.footer_ignore_height, page_height * ratio),
        )
        return cls(start=max(0.0, page_height - height))


class _Extent:
    """
    Tracks the lowest position seen so far, both with and without
    the footer band filter.
    """

    def __init__(self, footer: FooterBand):
        self.footer = footer
        self.lowest = -math.inf
        self.lowest_unfiltered = -math.inf

    def add_point(self, y: float):
        if not math.isfinite(y):
            return
        self.lowest_unfiltered = max(self.lowest_unfiltered, y)
        if self.footer.contains(y):
            return
        self.lowest = max(self.lowest, y)

    def add_shape(self, top: float, bottom: float):
        if not math.isfinite(bottom):
            return
        self.lowest_unfiltered = max(self.lowest_unfiltered, bottom)
        if self.footer.contains(top):
            return
        if self.footer.contains(bottom):
            # shape straddles the footer band; only count the part above it
            bottom = self.footer.start - 1
        self.lowest = max(self.lowest, bottom)


def resolve_scan_images(text_layout: TextLayout, page_has_images: bool):
    """
    Decide whether raster content should be scanned.

    An explicit ``scan_images`` flag takes precedence. Otherwise, the scan
    mode decides; in :attr:`.ScanMode.AUTO` mode images are scanned only
    if the page is known to use image XObjects.
    """
    if text_layout.scan_images is not None:
        return text_layout.scan_images
    mode = or_default(text_layout.scan_mode, ScanMode.AUTO)
    if mode == ScanMode.TEXT_ONLY:
        return False
    elif mode == ScanMode.TEXT_AND_IMAGES:
        return True
    return bool(page_has_images)


def page_has_image_xobject(resources) -> bool:
    """
    Check whether a resource dictionary declares at least one image XObject.

    :param resources:
        A page resource dictionary, or ``None``.
    :return:
        ``True`` if an image XObject was found. Malformed resources are
        treated as if they declared no images.
    """
    if resources is None:
        return False
    try:
        resources = resources.get_object()
        if '/XObject' not in resources:
            return False
        xobjects = resources['/XObject'].get_object()
        for name in xobjects:
            xobj = xobjects[name].get_object()
            if '/Subtype' in xobj and xobj['/Subtype'] == '/Image':
                return True
    except Exception as e:
        logger.debug(f"Could not inspect XObject resources: {e}", exc_info=e)
    return False


def _lookup(dictionary, key, default=None):
    # subscripting dereferences indirect objects, .get() doesn't
    return dictionary[key] if key in dictionary else default


def _as_matrix(values) -> Matrix:
    a, b, c, d, e, f = (float(v) for v in values)
    return a, b, c, d, e, f


class ContentAnchorScanner:
    """
    Scanner for the pages of one document.

    :param reader:
        A :class:`~pypdf.PdfReader` for the document.
    """

    def __init__(self, reader: PdfReader):
        self.reader = reader

    @classmethod
    def from_bytes(cls, pdf_bytes: bytes) -> 'ContentAnchorScanner':
        return cls(PdfReader(BytesIO(pdf_bytes)))

    def viewport(self, page_index: int, rotation=None) -> ViewerViewport:
        page = self.reader.pages[page_index]
        box = page.cropbox
        x1, y1, x2, y2 = (float(v) for v in box)
        view_box = (min(x1, x2), min(y1, y2), max(x1, x2), max(y1, y2))
        if rotation is None:
            rotation = page.rotation
        return viewer_viewport(view_box, normalize_rotation(rotation))

    def page_has_images(self, page_index: int) -> bool:
        page = self.reader.pages[page_index]
        return page_has_image_xobject(_lookup(page, '/Resources'))

    def scan(
        self,
        page_index: int,
        ignored_texts: Iterable[str] = (),
        text_layout: Optional[TextLayout] = None,
        scan_images: bool = False,
        rotation=None,
    ) -> Optional[AnchorResult]:
        """
        Find the lowest content on a page.

        :param page_index:
            Index of the page to scan.
        :param ignored_texts:
            Text runs that should not be taken into account, compared after
            trimming and case-insensitively. This is how the stamp avoids
            anchoring against a copy of itself.
        :param text_layout:
            Text layout settings (footer band configuration).
        :param scan_images:
            Whether raster images should be taken into account.
        :param rotation:
            Page rotation to use. Defaults to the page's own rotation.
        :return:
            An :class:`.AnchorResult`, or ``None`` if the page has no
            relevant content at all.
        """
        text_layout = text_layout or TextLayout()
        page = self.reader.pages[page_index]
        viewport = self.viewport(page_index, rotation)
        footer = FooterBand.from_layout(text_layout, viewport.height)
        ignored = {
            t.strip().upper() for t in ignored_texts if t and t.strip()
        }

        text_extent = _Extent(footer)

        def _visit_text(text, cm, tm, font_dict, font_size):
            stripped = text.strip() if isinstance(text, str) else ''
            if not stripped or stripped.upper() in ignored:
                return
            x, y = apply_matrix(cm, float(tm[4]), float(tm[5]))
            text_extent.add_point(viewport.to_viewer(x, y)[1])

        page.extract_text(visitor_text=_visit_text)

        image_extent = _Extent(footer)
        if scan_images:
            try:
                self._walk_images(page, viewport, image_extent)
            except Exception as e:
                # malformed content streams only cost us the image results
                logger.debug(
                    f"Image scan of page {page_index} aborted: {e}",
                    exc_info=e,
                )

        candidates = [text_extent.lowest, image_extent.lowest]
        baseline = max(candidates)
        if not math.isfinite(baseline):
            # everything is in the footer band, but an anchor is still
            # better than no anchor at all
            baseline = max(
                text_extent.lowest_unfiltered, image_extent.lowest_unfiltered
            )
        if not math.isfinite(baseline):
            return None
        return AnchorResult(baseline_y=baseline, page_height=viewport.height)

    def _walk_images(self, page, viewport: ViewerViewport, extent: _Extent):
        contents = page.get_contents()
        if contents is None:
            return
        if not isinstance(contents, ContentStream):
            contents = ContentStream(contents, self.reader)

        def _add_box(box: Sequence[float], ctm: Matrix):
            x1, y1, x2, y2 = box
            points = [
                viewport.to_viewer(*apply_matrix(ctm, x, y))
                for x, y in ((x1, y1), (x1, y2), (x2, y1), (x2, y2))
            ]
            ys = [pt[1] for pt in points]
            extent.add_shape(top=min(ys), bottom=max(ys))

        self._walk_operations(
            contents, _lookup(page, '/Resources'), IDENTITY, _add_box,
            depth=0, active_forms=set(),
        )

    def _walk_operations(
        self, contents, resources, ctm: Matrix, add_box, depth, active_forms
    ):
        resources = resources.get_object() if resources is not None else {}
        xobjects = (
            resources['/XObject'].get_object()
            if '/XObject' in resources
            else {}
        )
        stack = []
        for operands, operator in contents.operations:
            if operator == b'q':
                stack.append(ctm)
            elif operator == b'Q':
                if stack:
                    ctm = stack.pop()
            elif operator == b'cm':
                if len(operands) >= 6:
                    ctm = multiply_matrices(ctm, _as_matrix(operands[:6]))
            elif operator == b'INLINE IMAGE':
                add_box(_UNIT_SQUARE, ctm)
            elif operator == b'Do':
                if not operands or operands[0] not in xobjects:
                    continue
                xobj_ref = xobjects[operands[0]]
                xobj = xobj_ref.get_object()
                subtype = _lookup(xobj, '/Subtype')
                if subtype == '/Image':
                    add_box(_UNIT_SQUARE, ctm)
                elif subtype == '/Form':
                    self._enter_form(
                        xobj_ref, xobj, resources, ctm, add_box, depth,
                        active_forms,
                    )

    def _enter_form(
        self, xobj_ref, xobj, parent_resources, ctm, add_box, depth,
        active_forms,
    ):
        form_id = getattr(xobj_ref, 'idnum', None) or id(xobj)
        if depth >= MAX_FORM_DEPTH or form_id in active_forms:
            logger.debug("Not descending into (recursive) form XObject")
            return
        form_matrix = _lookup(xobj, '/Matrix')
        if form_matrix is not None and len(form_matrix) >= 6:
            ctm = multiply_matrices(ctm, _as_matrix(form_matrix[:6]))
        bbox = _lookup(xobj, '/BBox')
        if bbox is not None and len(bbox) >= 4:
            x1, y1, x2, y2 = (float(v) for v in bbox[:4])
            add_box((min(x1, x2), min(y1, y2), max(x1, x2), max(y1, y2)), ctm)
        form_resources = _lookup(xobj, '/Resources', parent_resources)
        active_forms.add(form_id)
        try:
            self._walk_operations(
                ContentStream(xobj, self.reader), form_resources, ctm,
                add_box, depth=depth + 1, active_forms=active_forms,
            )
        finally:
            active_forms.discard(form_id)


def find_last_content_baseline(
    pdf_bytes: bytes,
    page_index: int,
    ignored_texts: Iterable[str] = (),
    text_layout: Optional[TextLayout] = None,
    scan_images: bool = False,
    rotation=None,
) -> Optional[AnchorResult]:
    """
    Convenience wrapper around :meth:`.ContentAnchorScanner.scan` that never
    fails: any problem while reading the document results in ``None``.
    """
    try:
        scanner = ContentAnchorScanner.from_bytes(pdf_bytes)
        return scanner.scan(
            page_index,
            ignored_texts=ignored_texts,
            text_layout=text_layout,
            scan_images=scan_images,
            rotation=rotation,
        )
    except Exception as e:
        logger.warning(
            f"Failed to scan page {page_index} for existing content; "
            f"falling back to static placement. Error: {e}",
            exc_info=e,
        )
        return None
