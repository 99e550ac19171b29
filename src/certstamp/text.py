"""
Wording of the certification stamp.
"""

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple

__all__ = [
    'DEFAULT_CERTIFICATION_TEXT',
    'DEFAULT_NOTARY_TITLE',
    'DEFAULT_COPY_STAMP_TEXT',
    'StampLines',
    'build_stamp_lines',
    'format_date_line',
    'resolve_copy_stamp_text',
    'UNSET',
]

DEFAULT_CERTIFICATION_TEXT = 'CHỨNG THỰC BẢN SAO ĐÚNG VỚI BẢN CHÍNH'
DEFAULT_NOTARY_TITLE = 'CÔNG CHỨNG VIÊN'
DEFAULT_COPY_STAMP_TEXT = 'BẢN SAO'

PLACEHOLDER = '--'
BLANK_DATE_LINE = 'Ngày -- tháng -- năm ----'

_ISO_DATE = re.compile(r'^(\d{4})-(\d{1,2})-(\d{1,2})$')
_DMY_DATE = re.compile(r'^(\d{1,2})/(\d{1,2})/(\d{4})$')


@dataclass(frozen=True)
class StampLines:
    """The four lines of the certification panel, top to bottom."""

    heading: str
    number_line: str
    date_line: str
    notary_line: str

    def __iter__(self):
        yield from (
            self.heading, self.number_line, self.date_line, self.notary_line
        )


def _parse_date(raw: str) -> Optional[Tuple[int, int, int]]:
    m = _ISO_DATE.match(raw)
    if m is not None:
        year, month, day = (int(g) for g in m.groups())
        return year, month, day
    m = _DMY_DATE.match(raw)
    if m is not None:
        day, month, year = (int(g) for g in m.groups())
        return year, month, day
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        return None
    return parsed.year, parsed.month, parsed.day


def format_date_line(date_value) -> str:
    """
    Format the date line of the panel.

    ``YYYY-M-D`` and ``D/M/YYYY`` strings are reformatted without checking
    whether the date actually exists; other ISO 8601 dates and date-times
    are parsed. Anything else is reproduced verbatim.

    >>> format_date_line('2024-01-15')
    'Ngày 15 tháng 01 năm 2024'
    >>> format_date_line('giữa tháng Giêng')
    'Ngày giữa tháng Giêng'
    """
    if not isinstance(date_value, str) or not date_value.strip():
        return BLANK_DATE_LINE
    raw = date_value.strip()
    parsed = _parse_date(raw)
    if parsed is None or not all(parsed):
        return f'Ngày {raw}'
    year, month, day = parsed
    return f'Ngày {day:02d} tháng {month:02d} năm {year}'


def _non_empty(value) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def build_stamp_lines(
    certification_number=None,
    book_number=None,
    certification_date=None,
    certification_text=None,
    notary_title=None,
) -> StampLines:
    heading = _non_empty(certification_text) or DEFAULT_CERTIFICATION_TEXT
    notary = _non_empty(notary_title) or DEFAULT_NOTARY_TITLE
    cert_no = _non_empty(certification_number) or PLACEHOLDER
    book_no = _non_empty(book_number) or PLACEHOLDER
    return StampLines(
        heading=heading.upper(),
        number_line=(
            f'Số chứng thực: {cert_no}  Quyển số: {book_no} SCT/BS'
        ),
        date_line=format_date_line(certification_date),
        notary_line=notary.upper(),
    )


class _Unset:
    def __repr__(self):
        return 'UNSET'


UNSET = _Unset()
"""Marker for "the caller did not say anything"."""


def resolve_copy_stamp_text(text=UNSET, enabled=None) -> Optional[str]:
    """
    Determine the text of the copy marker.

    :param text:
        Caller-supplied text. ``None`` disables the marker, a blank string
        disables it as well, and leaving it unset selects the default text.
    :param enabled:
        Passing ``False`` disables the marker regardless of ``text``.
    :return:
        The upper-cased marker text, or ``None`` if there is no marker.
    """
    if enabled is False:
        return None
    if text is UNSET:
        return DEFAULT_COPY_STAMP_TEXT
    if isinstance(text, str):
        return text.strip().upper() or None
    return None
