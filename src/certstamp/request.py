"""
The stamping request, as received from an upstream caller (typically the
HTTP layer that accepts uploads).
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from .errors import InvalidInput
from .layout import normalize_key
from .text import UNSET, build_stamp_lines, resolve_copy_stamp_text

__all__ = [
    'StampRequest',
    'StampImages',
    'StampFonts',
    'is_pdf_bytes',
    'sanitize_pdf_file_name',
    'parse_optional_json',
    'PDF_HEADER',
]

logger = logging.getLogger(__name__)

PDF_HEADER = b'%PDF-'

_UNSAFE_FILE_NAME_CHARS = re.compile(r'[^A-Za-z0-9_.-]+')
_PDF_SUFFIX = re.compile(r'\.pdf$', re.IGNORECASE)


def is_pdf_bytes(data) -> bool:
    """Check whether ``data`` starts with a PDF header."""
    if not isinstance(data, (bytes, bytearray, memoryview)):
        return False
    return bytes(data[:5]) == PDF_HEADER


def sanitize_pdf_file_name(name: Optional[str], fallback='document') -> str:
    """
    Turn a caller-supplied name into a safe file name ending in ``.pdf``.

    >>> sanitize_pdf_file_name('hợp đồng.PDF')
    'h_p_ng.pdf'
    >>> sanitize_pdf_file_name(None)
    'document.pdf'
    """
    raw = name or fallback or 'document'
    raw = _UNSAFE_FILE_NAME_CHARS.sub('_', _PDF_SUFFIX.sub('', raw))
    return f'{raw or "document"}.pdf'


def parse_optional_json(value) -> Dict[str, Any]:
    """
    Interpret an optional JSON object that may also arrive as a string
    (e.g. a multipart form field). Anything unusable yields an empty dict.
    """
    if not value:
        return {}
    if isinstance(value, Mapping):
        return dict(value)
    if not isinstance(value, str) or not value.strip():
        return {}
    try:
        parsed = json.loads(value)
    except ValueError:
        logger.debug("Ignoring malformed JSON value in request")
        return {}
    return parsed if isinstance(parsed, dict) else {}


def _trimmed(value) -> Optional[str]:
    if not isinstance(value, str):
        return None
    return value.strip() or None


@dataclass(frozen=True)
class StampImages:
    """Raster elements of the stamp, as raw bytes or base64 strings."""

    seal: Any = None
    certified_stamp: Any = None
    signature: Any = None

    @classmethod
    def from_payload(cls, payload) -> 'StampImages':
        payload = parse_optional_json(payload)
        return cls(
            seal=payload.get('sealBase64'),
            certified_stamp=payload.get('certifiedStampBase64'),
            signature=payload.get('signatureBase64'),
        )


@dataclass(frozen=True)
class StampFonts:
    """Caller-supplied fonts, as raw bytes or base64 strings."""

    regular: Any = None
    bold: Any = None

    @classmethod
    def from_payload(cls, payload) -> 'StampFonts':
        payload = parse_optional_json(payload)
        return cls(
            regular=payload.get('regularBase64'),
            bold=payload.get('boldBase64'),
        )


@dataclass(frozen=True)
class StampRequest:
    """
    Everything a caller can ask of the stamping core.

    Layout overrides are kept as plain mappings; they're interpreted per
    page by :func:`certstamp.layout.resolve_layout`.
    """

    certification_number: Optional[str] = None
    certification_book_number: Optional[str] = None
    certification_date: Optional[str] = None
    certification_text: Optional[str] = None
    notary_title: Optional[str] = None

    copy_stamp_text: Any = UNSET
    """
    Text of the copy marker. ``None`` disables the marker, :data:`.UNSET`
    selects the default text.
    """

    copy_stamp_enabled: Optional[bool] = None
    copy_stamp_page: Any = None
    """Page of the copy marker: an index, ``'first'`` or ``'last'``."""

    images: StampImages = StampImages()
    fonts: StampFonts = StampFonts()
    text_layout: Dict[str, Any] = field(default_factory=dict)
    image_layout: Dict[str, Any] = field(default_factory=dict)
    signature_fields: Dict[str, Any] = field(default_factory=dict)
    output_file_name: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Mapping) -> 'StampRequest':
        """
        Build a request from an upstream payload with camelCase keys.

        :param payload:
            The request body.
        :raises InvalidInput:
            if the payload isn't a mapping.
        """
        if not isinstance(payload, Mapping):
            raise InvalidInput(
                "Request payload must be an object.", code='INVALID_REQUEST'
            )
        # tolerate snake_case and kebab-case as well
        data = {normalize_key(k): v for k, v in payload.items()}

        if 'copy_stamp_text' not in data:
            copy_text = UNSET
        elif data['copy_stamp_text'] is None:
            copy_text = None
        else:
            # blank means "default", like an absent value
            copy_text = _trimmed(data['copy_stamp_text']) or UNSET

        # either spelling can switch the marker off
        flags = [
            data.get(k) for k in ('copy_stamp_enabled', 'enable_copy_stamp')
        ]
        flags = [f for f in flags if isinstance(f, bool)]
        enabled = all(flags) if flags else None
        return cls(
            certification_number=_trimmed(data.get('certification_number')),
            certification_book_number=_trimmed(
                data.get('certification_book_number')
            ),
            certification_date=_trimmed(data.get('certification_date')),
            certification_text=_trimmed(data.get('certification_text')),
            notary_title=_trimmed(data.get('notary_title')),
            copy_stamp_text=copy_text,
            copy_stamp_enabled=enabled if isinstance(enabled, bool) else None,
            copy_stamp_page=data.get('copy_stamp_page'),
            images=StampImages.from_payload(data.get('images')),
            fonts=StampFonts.from_payload(data.get('fonts')),
            text_layout=parse_optional_json(data.get('text_layout')),
            image_layout=parse_optional_json(data.get('image_layout')),
            signature_fields=parse_optional_json(
                data.get('signature_fields')
            ),
            output_file_name=_trimmed(data.get('output_file_name')),
        )

    def validate(self, require_certification_fields: bool = True):
        """
        Check that the request carries the mandatory fields.

        :raises InvalidInput:
            if the certification number or date is missing.
        """
        if not require_certification_fields:
            return
        if not self.certification_number:
            raise InvalidInput(
                "certificationNumber is required.",
                code='MISSING_CERTIFICATION_NUMBER',
            )
        if not self.certification_date:
            raise InvalidInput(
                "certificationDate is required.",
                code='MISSING_CERTIFICATION_DATE',
            )

    def stamp_lines(self):
        return build_stamp_lines(
            certification_number=self.certification_number,
            book_number=self.certification_book_number,
            certification_date=self.certification_date,
            certification_text=self.certification_text,
            notary_title=self.notary_title,
        )

    def copy_text(self) -> Optional[str]:
        return resolve_copy_stamp_text(
            self.copy_stamp_text, enabled=self.copy_stamp_enabled
        )

    def output_name(self, fallback='stamped') -> str:
        return sanitize_pdf_file_name(self.output_file_name, fallback)
