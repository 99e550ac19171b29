"""
Raster images and fonts used on the stamp.

Images and fonts reach the stamping core as base64 strings (possibly wrapped
in a ``data:`` URI) or as raw bytes. This module decodes them, checks that
they are usable, and turns them into pyHanko objects when the time comes to
write them to a document.
"""

import base64
import binascii
import logging
import os
from dataclasses import dataclass
from io import BytesIO
from typing import Dict, Iterable, List, Optional, Tuple, Union

from fontTools import ttLib
from PIL import Image
from pyhanko.pdf_utils import generic
from pyhanko.pdf_utils.font.api import FontEngine
from pyhanko.pdf_utils.font.basic import SimpleFontEngineFactory
from pyhanko.pdf_utils.font.opentype import GlyphAccumulator
from pyhanko.pdf_utils.images import pil_image
from pyhanko.pdf_utils.writer import BasePdfFileWriter

from .errors import InvalidInput

__all__ = [
    'decode_base64_payload',
    'parse_image_input',
    'is_png',
    'is_jpeg',
    'StampImage',
    'load_image',
    'StampFont',
    'BoundFont',
    'FontPair',
    'FontSettings',
    'resolve_fonts',
    'FONT_PATH_ENV',
    'FONT_BOLD_PATH_ENV',
]

logger = logging.getLogger(__name__)

BinaryInput = Union[str, bytes, bytearray, None]

PNG_SIGNATURE = b'\x89PNG\r\n\x1a\n'

UNSUPPORTED_IMAGE_MSG = 'Unsupported image format. Use PNG or JPEG base64 data.'

FONT_PATH_ENV = 'PDF_STAMP_FONT_PATH'
FONT_BOLD_PATH_ENV = 'PDF_STAMP_FONT_BOLD_PATH'

SYSTEM_FONT_CANDIDATES = {
    'regular': [
        'C:\\Windows\\Fonts\\arial.ttf',
        'C:\\Windows\\Fonts\\tahoma.ttf',
        '/usr/share/fonts/truetype/msttcorefonts/Arial.ttf',
        '/usr/share/fonts/truetype/msttcorefonts/arial.ttf',
        '/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf',
        '/usr/share/fonts/truetype/noto/NotoSans-Regular.ttf',
        '/usr/share/fonts/truetype/freefont/FreeSans.ttf',
        '/usr/share/fonts/truetype/liberation2/LiberationSans-Regular.ttf',
        '/usr/share/fonts/truetype/liberation/LiberationSans-Regular.ttf',
        '/Library/Fonts/Arial.ttf',
    ],
    'bold': [
        'C:\\Windows\\Fonts\\arialbd.ttf',
        'C:\\Windows\\Fonts\\tahomabd.ttf',
        '/usr/share/fonts/truetype/msttcorefonts/Arial_Bold.ttf',
        '/usr/share/fonts/truetype/msttcorefonts/arialbd.ttf',
        '/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf',
        '/usr/share/fonts/truetype/noto/NotoSans-Bold.ttf',
        '/usr/share/fonts/truetype/freefont/FreeSansBold.ttf',
        '/usr/share/fonts/truetype/liberation2/LiberationSans-Bold.ttf',
        '/usr/share/fonts/truetype/liberation/LiberationSans-Bold.ttf',
        '/Library/Fonts/Arial Bold.ttf',
    ],
}


def _split_data_uri(value: str) -> Tuple[Optional[str], str]:
    if value.startswith('data:'):
        comma = value.find(',')
        if comma > -1:
            header = value[5:comma]
            mime_type = header.split(';', 1)[0].strip().lower() or None
            return mime_type, value[comma + 1:]
    return None, value


def decode_base64_payload(value: BinaryInput) -> Optional[bytes]:
    """
    Decode binary data passed as raw bytes, base64 or a base64 ``data:`` URI.

    :param value:
        The input value.
    :return:
        The decoded bytes, or ``None`` if the input is empty.
    :raises InvalidInput:
        if the input is not valid base64.
    """
    if isinstance(value, (bytes, bytearray)):
        return bytes(value) or None
    if not isinstance(value, str) or not value.strip():
        return None
    _, payload = _split_data_uri(value.strip())
    payload = ''.join(payload.split())
    # be forgiving about stripped padding
    payload += '=' * (-len(payload) % 4)
    try:
        return base64.b64decode(payload) or None
    except (binascii.Error, ValueError) as e:
        raise InvalidInput(f'Invalid base64 data: {e}') from e


def parse_image_input(
    value: BinaryInput,
) -> Optional[Tuple[bytes, Optional[str]]]:
    """
    Split an image input into its bytes and the declared mime type (if any).
    """
    if isinstance(value, str):
        mime_type, _ = _split_data_uri(value.strip())
    else:
        mime_type = None
    data = decode_base64_payload(value)
    if data is None:
        return None
    return data, mime_type


def is_png(data: bytes) -> bool:
    return len(data) >= 8 and data[:8] == PNG_SIGNATURE


def is_jpeg(data: bytes) -> bool:
    return (
        len(data) >= 4
        and data[:2] == b'\xff\xd8'
        and data[-2:] == b'\xff\xd9'
    )


def _pdf_compatible(img: Image.Image) -> Image.Image:
    # pyHanko's pil_image only deals with a handful of modes
    if img.mode in ('RGB', 'RGBA', 'L', 'LA'):
        return img
    if img.mode in ('P', 'PA') and (
        img.mode == 'PA' or 'transparency' in img.info
    ):
        return img.convert('RGBA')
    if img.mode in ('1', 'I', 'I;16', 'F'):
        return img.convert('L')
    return img.convert('RGB')


class StampImage:
    """
    A decoded raster image.

    :param data:
        The encoded image (PNG or JPEG).
    :param image:
        The decoded image.
    """

    def __init__(self, data: bytes, image: Image.Image):
        self.data = data
        self.image = image
        self._refs: Dict[int, generic.IndirectObject] = {}

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    @property
    def aspect_ratio(self) -> float:
        """Height divided by width."""
        return self.height / self.width

    def embed(self, writer: BasePdfFileWriter) -> generic.IndirectObject:
        """
        Write the image to a PDF writer as an image XObject.
        Repeated calls for the same writer reuse the XObject.
        """
        try:
            return self._refs[id(writer)]
        except KeyError:
            pass
        ref = pil_image(_pdf_compatible(self.image), writer)
        self._refs[id(writer)] = ref
        return ref


def load_image(value: BinaryInput) -> Optional[StampImage]:
    """
    Decode an image passed as raw bytes or as base64 data.

    :param value:
        The image data. Empty values are allowed.
    :return:
        A :class:`.StampImage`, or ``None`` if no image was supplied.
    :raises InvalidInput:
        if the data is not a PNG or JPEG image, or can't be decoded.
    """
    parsed = parse_image_input(value)
    if parsed is None:
        return None
    data, mime_type = parsed
    if mime_type == 'image/png' or (mime_type is None and is_png(data)):
        expected_format = 'PNG'
    elif mime_type in ('image/jpeg', 'image/jpg') or (
        mime_type is None and is_jpeg(data)
    ):
        expected_format = 'JPEG'
    else:
        raise InvalidInput(UNSUPPORTED_IMAGE_MSG, code='UNSUPPORTED_IMAGE')

    try:
        img = Image.open(BytesIO(data))
        img.load()
    except (OSError, SyntaxError, ValueError) as e:
        raise InvalidInput(
            f'Failed to decode {expected_format} image: {e}',
            code='UNSUPPORTED_IMAGE',
        ) from e
    if not img.width or not img.height:
        raise InvalidInput('Image has no pixels', code='UNSUPPORTED_IMAGE')
    return StampImage(data, img)


# Courier metrics, in font units (1000 per em)
_COURIER_ASCENT = 629
_COURIER_DESCENT = -157


class StampFont:
    """
    A font for the stamp: either a TrueType/OpenType font program or
    (as a last resort) the Courier standard font.

    :param name:
        Descriptive name, for logging.
    :param font_bytes:
        The font program, or ``None`` for Courier.
    """

    def __init__(self, name: str, font_bytes: Optional[bytes] = None):
        self.name = name
        self.font_bytes = font_bytes
        if font_bytes is not None:
            tt = ttLib.TTFont(BytesIO(font_bytes), lazy=True)
            units_per_em = tt['head'].unitsPerEm
            hhea = tt['hhea']
            self._ascent = hhea.ascent * 1000 / units_per_em
            self._descent = hhea.descent * 1000 / units_per_em
            tt.close()
        else:
            self._ascent = _COURIER_ASCENT
            self._descent = _COURIER_DESCENT

    @classmethod
    def standard(cls) -> 'StampFont':
        return cls('Courier')

    @property
    def is_standard(self) -> bool:
        return self.font_bytes is None

    def text_height(self, size: float, descender: bool = True) -> float:
        """
        Height of a line of text in this font.

        :param size:
            Font size.
        :param descender:
            Include the part below the baseline.
        """
        height = self._ascent - self._descent
        if not descender:
            height -= abs(self._descent)
        return height / 1000 * size

    def bind(self, writer: BasePdfFileWriter) -> 'BoundFont':
        return BoundFont(self, writer)

    def __repr__(self):
        return f'<StampFont {self.name}>'


class BoundFont:
    """
    A :class:`.StampFont` attached to a particular PDF writer.
    Font engines are created on demand, one per font size.
    """

    def __init__(self, font: StampFont, writer: BasePdfFileWriter):
        self.font = font
        self.writer = writer
        self._engines: Dict[float, FontEngine] = {}

    def engine(self, size: float) -> FontEngine:
        try:
            return self._engines[size]
        except KeyError:
            pass
        if self.font.is_standard:
            factory = SimpleFontEngineFactory.default_factory()
            engine = factory.create_font_engine(self.writer)
        else:
            engine = GlyphAccumulator(
                self.writer, BytesIO(self.font.font_bytes), font_size=size
            )
        self._engines[size] = engine
        return engine

    def text_width(self, text: str, size: float) -> float:
        if not text:
            return 0.0
        return self.engine(size).shape(text).x_advance * size

    def text_height(self, size: float, descender: bool = True) -> float:
        return self.font.text_height(size, descender=descender)


@dataclass(frozen=True)
class FontPair:
    regular: StampFont
    bold: StampFont


@dataclass(frozen=True)
class FontSettings:
    """Where to look for fonts when the caller doesn't supply any."""

    regular_path: Optional[str] = None
    bold_path: Optional[str] = None
    search_system: bool = True


def _load_font(name: str, font_bytes: Optional[bytes]) -> Optional[StampFont]:
    if not font_bytes:
        return None
    try:
        return StampFont(name, font_bytes)
    except Exception as e:
        logger.warning(f"Could not load font {name}, skipping: {e}")
        return None


def _decode_font_input(name: str, value: BinaryInput) -> Optional[bytes]:
    try:
        return decode_base64_payload(value)
    except InvalidInput as e:
        logger.warning(f"Could not decode font {name}, skipping: {e.msg}")
        return None


def _first_loadable(kind: str, candidates: Iterable[Optional[str]]):
    for path in candidates:
        if not path or not os.path.isfile(path):
            continue
        try:
            with open(path, 'rb') as f:
                font_bytes = f.read()
        except OSError as e:
            logger.debug(f"Failed to read {kind} font {path}: {e}")
            continue
        font = _load_font(path, font_bytes)
        if font is not None:
            logger.debug(f"Using {kind} font {path}")
            return font
    return None


def _candidates(kind: str, settings: FontSettings) -> List[Optional[str]]:
    if kind == 'regular':
        result = [settings.regular_path, os.environ.get(FONT_PATH_ENV)]
    else:
        result = [settings.bold_path, os.environ.get(FONT_BOLD_PATH_ENV)]
    if settings.search_system:
        result.extend(SYSTEM_FONT_CANDIDATES[kind])
    return result


def resolve_fonts(
    regular: BinaryInput = None,
    bold: BinaryInput = None,
    settings: Optional[FontSettings] = None,
) -> FontPair:
    """
    Select the regular and bold stamp fonts.

    Fonts supplied by the caller take precedence. A missing bold font falls
    back to the regular one. Without usable caller fonts, configured paths,
    the ``PDF_STAMP_FONT_PATH`` and ``PDF_STAMP_FONT_BOLD_PATH`` environment
    variables and a list of well-known system fonts are tried, in that order.
    If all of that fails, Courier is used, which can't render most
    Vietnamese text.

    :param regular:
        Caller-supplied regular font (bytes or base64).
    :param bold:
        Caller-supplied bold font (bytes or base64).
    :param settings:
        Font search settings.
    :return:
        A :class:`.FontPair`.
    """
    settings = settings or FontSettings()
    regular_custom = _load_font(
        'regular', _decode_font_input('regular', regular)
    )
    bold_custom = (
        _load_font('bold', _decode_font_input('bold', bold)) or regular_custom
    )
    if regular_custom is not None and bold_custom is not None:
        return FontPair(regular=regular_custom, bold=bold_custom)

    regular_font = _first_loadable('regular', _candidates('regular', settings))
    if regular_font is None:
        logger.warning(
            "No Vietnamese-capable font found; falling back to Courier. "
            f"Set {FONT_PATH_ENV} to a TrueType font to fix this."
        )
        courier = StampFont.standard()
        return FontPair(regular=courier, bold=courier)
    bold_font = (
        _first_loadable('bold', _candidates('bold', settings)) or regular_font
    )
    return FontPair(regular=regular_font, bold=bold_font)
