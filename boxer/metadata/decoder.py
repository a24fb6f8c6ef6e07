"""
Binary metadata decoder for image containers.

Finds the embedded TIFF-style directory block (EXIF) inside JPEG, PNG, WebP,
TIFF and ISO-BMFF (HEIC/AVIF) files, decodes its directories into a flat tag
map and reads container header dimensions where the format carries them.
Malformed input never raises out of ImageDecoder.decode(); problems are
recorded as notes on the result.
"""
import logging
import struct
from typing import Any, Dict, List, Optional, Set

from ..exceptions import DecodeError
from ..models import DecodeResult, DirectoryEntry
from . import tags as T

EXIF_HEADER = b'Exif\x00\x00'
TIFF_LE = b'II*\x00'
TIFF_BE = b'MM\x00*'

HEIC_BRANDS = {'heic', 'heix', 'hevc', 'hevx', 'heim', 'heis', 'hevm', 'hevs', 'mif1', 'msf1', 'iso8'}
AVIF_BRANDS = {'avif', 'avis'}

MAX_IFD_ENTRIES = 500

# Containers without a walker; their EXIF block is found by scanning
SCANNED_FORMATS = {'heic', 'avif', 'unknown'}

# JPEG markers without a length field
_STANDALONE_MARKERS = {0x01, 0xD0, 0xD1, 0xD2, 0xD3, 0xD4, 0xD5, 0xD6, 0xD7, 0xD8}
# Start-of-frame markers carrying image dimensions
_SOF_MARKERS = {0xC0, 0xC1, 0xC2, 0xC3, 0xC5, 0xC6, 0xC7, 0xC9, 0xCA, 0xCB, 0xCD, 0xCE, 0xCF}

_STRUCT_CODES = {
    T.TYPE_BYTE: 'B',
    T.TYPE_SBYTE: 'b',
    T.TYPE_SHORT: 'H',
    T.TYPE_SSHORT: 'h',
    T.TYPE_LONG: 'I',
    T.TYPE_SLONG: 'i',
    T.TYPE_FLOAT: 'f',
    T.TYPE_DOUBLE: 'd',
}


def detect_format(data: bytes) -> str:
    """Identifies the container from its leading magic bytes."""
    if data[:2] == b'\xff\xd8':
        return 'jpeg'
    if data[:4] == b'\x89PNG':
        return 'png'
    if data[:4] == b'RIFF' and data[8:12] == b'WEBP':
        return 'webp'
    if data[4:8] == b'ftyp':
        brand = data[8:12].decode('latin-1').lower()
        if brand in AVIF_BRANDS:
            return 'avif'
        if brand in HEIC_BRANDS:
            return 'heic'
        return 'unknown'
    if data[:3] == b'GIF':
        return 'gif'
    if data[:4] in (TIFF_LE, TIFF_BE):
        return 'tiff'
    if data[:2] == b'BM':
        return 'bmp'
    return 'unknown'


def rational(numerator: int, denominator: int) -> float:
    return 0 if denominator == 0 else numerator / denominator


def gps_to_decimal(value: Any, ref: Optional[str]) -> Optional[float]:
    """
    Converts a (degrees, minutes, seconds) triple to signed decimal degrees.
    South and West references produce negative values.
    """
    if isinstance(value, (int, float)):
        parts = [float(value)]
    elif isinstance(value, (list, tuple)) and value:
        parts = [float(v) for v in value[:3]]
    else:
        return None
    parts += [0.0] * (3 - len(parts))
    deg, minutes, seconds = parts
    decimal = deg + minutes / 60 + seconds / 3600
    if ref and str(ref).strip().upper()[:1] in ('S', 'W'):
        decimal = -decimal
    return decimal


def gps_altitude(value: Any, ref: Any) -> Optional[float]:
    """Altitude in metres; reference 1 means below sea level."""
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if value is None:
        return None
    if isinstance(ref, (bytes, bytearray)):
        ref = ref[0] if ref else 0
    if isinstance(ref, (list, tuple)):
        ref = ref[0] if ref else 0
    altitude = float(value)
    return -altitude if ref == 1 else altitude


class ImageDecoder:
    def __init__(self, marker_search_limit: int = 65536):
        self.marker_search_limit = marker_search_limit

    def decode(self, data: bytes, declared_format: Optional[str] = None) -> DecodeResult:
        """
        Decodes one file's bytes. Returns a result with an empty tag map when
        no embedded directory could be read.
        """
        if not data:
            return DecodeResult(format=declared_format or 'unknown', notes=['Empty file'])

        fmt = detect_format(data)
        result = DecodeResult(format=fmt)
        if declared_format and fmt != 'unknown' and declared_format != fmt:
            result.notes.append(f"Declared {declared_format} but content is {fmt}")

        try:
            tiff = self._locate_tiff_block(data, fmt, result)
            if tiff is None and fmt in SCANNED_FORMATS:
                tiff = self._scan_for_tiff(data, result)
            if tiff is not None:
                self.parse_tiff(tiff, result)
        except (DecodeError, struct.error, IndexError, ValueError) as e:
            result.notes.append(f"Metadata decode aborted: {e}")

        if not result.has_metadata:
            result.notes.append('No EXIF data found')
        for note in result.notes:
            logging.debug(f"Decoder note ({fmt}): {note}")
        return result

    # --- Container walkers ---

    def _locate_tiff_block(self, data: bytes, fmt: str, result: DecodeResult) -> Optional[bytes]:
        if fmt == 'jpeg':
            return self._walk_jpeg(data, result)
        if fmt == 'png':
            return self._walk_png(data, result)
        if fmt == 'webp':
            return self._walk_webp(data, result)
        if fmt == 'tiff':
            return data
        if fmt == 'gif' and len(data) >= 10:
            result.width, result.height = struct.unpack('<HH', data[6:10])
        elif fmt == 'bmp' and len(data) >= 26:
            width, height = struct.unpack('<ii', data[18:26])
            result.width, result.height = width, abs(height)
        return None

    def _walk_jpeg(self, data: bytes, result: DecodeResult) -> Optional[bytes]:
        """Walks JPEG markers looking for the Exif APP1 segment and a SOF header."""
        tiff = None
        end = min(len(data), self.marker_search_limit)
        pos = 2
        while pos + 4 <= end:
            if data[pos] != 0xFF:
                pos += 1
                continue
            marker = data[pos + 1]
            if marker == 0xFF:
                pos += 1
                continue
            if marker in _STANDALONE_MARKERS:
                pos += 2
                continue
            if marker in (0xD9, 0xDA):
                break

            seg_len = struct.unpack('>H', data[pos + 2:pos + 4])[0]
            if seg_len < 2:
                pos += 1
                continue
            seg_end = pos + 2 + seg_len

            if marker == 0xE1 and tiff is None and data[pos + 4:pos + 10] == EXIF_HEADER:
                tiff = data[pos + 10:seg_end]
                if seg_end > len(data):
                    result.notes.append('APP1 segment truncated')
            elif marker in _SOF_MARKERS and pos + 9 <= len(data):
                result.height, result.width = struct.unpack('>HH', data[pos + 5:pos + 9])

            if tiff is not None and result.width is not None:
                break
            pos = seg_end
        return tiff

    def _walk_png(self, data: bytes, result: DecodeResult) -> Optional[bytes]:
        if len(data) >= 24 and data[12:16] == b'IHDR':
            result.width, result.height = struct.unpack('>II', data[16:24])
        pos = 8
        while pos + 8 <= len(data):
            length, ctype = struct.unpack('>I4s', data[pos:pos + 8])
            if ctype == b'eXIf':
                block = data[pos + 8:pos + 8 + length]
                return block[6:] if block.startswith(EXIF_HEADER) else block
            if ctype == b'IEND':
                break
            pos += 12 + length
        return None

    def _walk_webp(self, data: bytes, result: DecodeResult) -> Optional[bytes]:
        tiff = None
        pos = 12
        while pos + 8 <= len(data):
            fourcc, size = struct.unpack('<4sI', data[pos:pos + 8])
            payload = data[pos + 8:pos + 8 + size]
            if fourcc == b'VP8X' and len(payload) >= 10:
                result.width = 1 + int.from_bytes(payload[4:7], 'little')
                result.height = 1 + int.from_bytes(payload[7:10], 'little')
            elif fourcc == b'VP8 ' and len(payload) >= 10 and payload[3:6] == b'\x9d\x01\x2a':
                width, height = struct.unpack('<HH', payload[6:10])
                result.width, result.height = width & 0x3FFF, height & 0x3FFF
            elif fourcc == b'VP8L' and len(payload) >= 5 and payload[0] == 0x2F:
                bits = struct.unpack('<I', payload[1:5])[0]
                result.width = (bits & 0x3FFF) + 1
                result.height = ((bits >> 14) & 0x3FFF) + 1
            elif fourcc == b'EXIF':
                tiff = payload[6:] if payload.startswith(EXIF_HEADER) else payload
            pos += 8 + size + (size & 1)
        return tiff

    def _scan_for_tiff(self, data: bytes, result: DecodeResult) -> Optional[bytes]:
        """
        Generic fallback: looks for an Exif header or a bare TIFF header in
        the leading bytes. Used for HEIC/AVIF and unrecognized containers.
        """
        window = data[:max(self.marker_search_limit, 1 << 20)]
        idx = window.find(EXIF_HEADER)
        while idx != -1:
            start = idx + len(EXIF_HEADER)
            if data[start:start + 4] in (TIFF_LE, TIFF_BE):
                return data[start:]
            idx = window.find(EXIF_HEADER, idx + 1)

        for header in (TIFF_LE, TIFF_BE):
            idx = window.find(header)
            while idx != -1:
                candidate = data[idx:]
                first = struct.unpack('<I' if header == TIFF_LE else '>I', candidate[4:8])[0] if len(candidate) >= 8 else 0
                if 8 <= first < len(candidate):
                    result.notes.append(f"TIFF header found by scan at offset {idx}")
                    return candidate
                idx = window.find(header, idx + 1)
        return None

    # --- TIFF / IFD parsing ---

    def parse_tiff(self, tiff: bytes, result: DecodeResult) -> None:
        """Parses IFD0 and the Exif and GPS sub-directories into result.tags."""
        if len(tiff) < 8:
            result.notes.append('TIFF header truncated')
            return
        if tiff[:2] == b'II':
            endian = '<'
        elif tiff[:2] == b'MM':
            endian = '>'
        else:
            result.notes.append('Invalid TIFF byte order')
            return
        magic, ifd0_offset = struct.unpack(endian + 'HI', tiff[2:8])
        if magic != 42:
            result.notes.append(f"Invalid TIFF magic {magic}")
            return
        if ifd0_offset == 0 or ifd0_offset >= len(tiff):
            result.notes.append('Invalid IFD0 offset')
            return

        visited: Set[int] = set()
        entries = self._parse_ifd(tiff, ifd0_offset, endian, 'IFD0', result, visited)
        pointers = {e.tag: e.value for e in entries}
        for pointer_tag, ifd in ((T.EXIF_IFD_POINTER, 'Exif'), (T.GPS_IFD_POINTER, 'GPS')):
            offset = pointers.get(pointer_tag)
            if offset is None:
                continue
            if not isinstance(offset, int) or offset <= 0 or offset >= len(tiff):
                result.notes.append(f"{ifd} pointer out of range")
                continue
            self._parse_ifd(tiff, offset, endian, ifd, result, visited)

    def _parse_ifd(self, tiff: bytes, offset: int, endian: str, ifd: str,
                   result: DecodeResult, visited: Set[int]) -> List[DirectoryEntry]:
        entries: List[DirectoryEntry] = []
        if offset in visited:
            result.notes.append(f"{ifd} directory loop at offset {offset}")
            return entries
        visited.add(offset)

        if offset + 2 > len(tiff):
            result.notes.append(f"{ifd} directory truncated")
            return entries
        count = struct.unpack(endian + 'H', tiff[offset:offset + 2])[0]
        if count > MAX_IFD_ENTRIES:
            result.notes.append(f"{ifd} entry count {count} is implausible")
            return entries

        for i in range(count):
            try:
                entry = self._read_entry(tiff, offset + 2 + i * 12, endian, ifd)
            except DecodeError as e:
                result.notes.append(f"{ifd} truncated at entry {i}: {e}")
                break
            entries.append(entry)
            result.tags[T.tag_name(ifd, entry.tag)] = entry.value
        return entries

    def _read_entry(self, tiff: bytes, pos: int, endian: str, ifd: str) -> DirectoryEntry:
        if pos + 12 > len(tiff):
            raise DecodeError('entry beyond end of buffer')
        tag, typ, count = struct.unpack(endian + 'HHI', tiff[pos:pos + 8])

        size = T.TYPE_SIZES.get(typ)
        if size is None:
            return DirectoryEntry(tag, typ, count, tiff[pos + 8:pos + 12], ifd)

        total = size * count
        if total <= 4:
            value_offset = pos + 8
        else:
            value_offset = struct.unpack(endian + 'I', tiff[pos + 8:pos + 12])[0]
        if value_offset + total > len(tiff):
            raise DecodeError(f"value of tag 0x{tag:04X} beyond end of buffer")

        raw = tiff[value_offset:value_offset + total]
        return DirectoryEntry(tag, typ, count, self._decode_value(raw, typ, count, endian), ifd)

    def _decode_value(self, raw: bytes, typ: int, count: int, endian: str) -> Any:
        if typ == T.TYPE_ASCII:
            return raw.split(b'\x00', 1)[0].decode('utf-8', errors='replace').strip()
        if typ == T.TYPE_UNDEFINED:
            return raw
        if typ in (T.TYPE_RATIONAL, T.TYPE_SRATIONAL):
            code = 'I' if typ == T.TYPE_RATIONAL else 'i'
            pairs = struct.unpack(f"{endian}{count * 2}{code}", raw)
            values = [rational(pairs[i], pairs[i + 1]) for i in range(0, len(pairs), 2)]
        else:
            values = list(struct.unpack(f"{endian}{count}{_STRUCT_CODES[typ]}", raw))
        if count == 1:
            return values[0]
        return values


def decode(data: bytes, declared_format: Optional[str] = None, marker_search_limit: int = 65536) -> DecodeResult:
    """Convenience wrapper around ImageDecoder."""
    return ImageDecoder(marker_search_limit).decode(data, declared_format)
