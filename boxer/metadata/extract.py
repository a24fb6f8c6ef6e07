import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..models import DecodeResult, TechnicalMetadata
from . import tags as T
from .decoder import gps_altitude, gps_to_decimal

DATE_TAGS = ['DateTimeOriginal', 'DateTimeDigitized', 'DateTime']


class MetadataExtractor:
    """
    Turns a decoded tag map into a TechnicalMetadataRecord.

    Dimension precedence: EXIF PixelX/YDimension, then IFD0
    ImageWidth/ImageLength, then the container header.
    """

    def extract(self, decoded: DecodeResult) -> TechnicalMetadata:
        tags = decoded.tags
        width, height = self._dimensions(tags, decoded)

        lat, lon = self._gps_position(tags)
        altitude = None
        if 'GPSAltitude' in tags:
            try:
                altitude = gps_altitude(tags['GPSAltitude'], tags.get('GPSAltitudeRef'))
            except (TypeError, ValueError):
                altitude = None

        make = self._text(tags.get('Make'))
        model = self._text(tags.get('Model'))

        return TechnicalMetadata(
            width=width,
            height=height,
            camera_make=make,
            camera_model=self._camera_name(make, model),
            lens_model=self._text(tags.get('LensModel')),
            photographer=self._text(tags.get('Artist')) or self._text(tags.get('CameraOwnerName')),
            exposure_time=self._number(tags.get('ExposureTime')),
            f_number=self._number(tags.get('FNumber')),
            iso=self._integer(tags.get('ISOSpeedRatings')),
            focal_length=self._number(tags.get('FocalLength')),
            date_taken=self._parse_exif_date(tags),
            gps_latitude=lat,
            gps_longitude=lon,
            gps_altitude=altitude,
            camera_settings=self.camera_settings(tags),
            technical_notes=self.technical_notes(tags),
        )

    # --- Summaries ---

    def camera_settings(self, tags: Dict[str, Any]) -> Optional[str]:
        """One-line exposure summary, e.g. 'f/2.8, 1/250s, ISO 200, 50mm'."""
        parts: List[str] = []
        f_number = self._number(tags.get('FNumber'))
        if f_number:
            parts.append(f"f/{f_number:g}")
        exposure = self._number(tags.get('ExposureTime'))
        if exposure:
            if exposure >= 0.25:
                parts.append(f"{exposure:.2f}s")
            else:
                parts.append(f"1/{round(1 / exposure)}s")
        iso = self._integer(tags.get('ISOSpeedRatings'))
        if iso:
            parts.append(f"ISO {iso}")
        focal = self._number(tags.get('FocalLength'))
        if focal:
            parts.append(f"{focal:g}mm")
        if 'Flash' in tags:
            parts.append(f"Flash: {tags['Flash']}")
        if 'ExposureProgram' in tags:
            parts.append(T.describe('ExposureProgram', tags['ExposureProgram']))
        if 'WhiteBalance' in tags:
            parts.append(T.describe('WhiteBalance', tags['WhiteBalance']))
        if 'MeteringMode' in tags:
            parts.append(T.describe('MeteringMode', tags['MeteringMode']))
        return ', '.join(parts) or None

    def technical_notes(self, tags: Dict[str, Any]) -> Optional[str]:
        parts: List[str] = []
        if 'Orientation' in tags:
            parts.append(f"Orientation: {T.describe('Orientation', tags['Orientation'])}")
        x_res = self._number(tags.get('XResolution'))
        if x_res:
            unit = T.describe('ResolutionUnit', tags.get('ResolutionUnit', 2))
            parts.append(f"Resolution: {x_res:g} {unit}")
        if 'ColorSpace' in tags:
            parts.append(f"Color space: {T.describe('ColorSpace', tags['ColorSpace'])}")
        return '; '.join(parts) or None

    # --- Field helpers ---

    def _dimensions(self, tags: Dict[str, Any], decoded: DecodeResult):
        for w_tag, h_tag in (('PixelXDimension', 'PixelYDimension'), ('ImageWidth', 'ImageLength')):
            width, height = self._integer(tags.get(w_tag)), self._integer(tags.get(h_tag))
            if width and height:
                return width, height
        if decoded.width and decoded.height:
            return decoded.width, decoded.height
        return None, None

    def _gps_position(self, tags: Dict[str, Any]):
        """Returns (lat, lon) or (None, None); out-of-range pairs are dropped together."""
        if 'GPSLatitude' not in tags or 'GPSLongitude' not in tags:
            return None, None
        try:
            lat = gps_to_decimal(tags['GPSLatitude'], tags.get('GPSLatitudeRef'))
            lon = gps_to_decimal(tags['GPSLongitude'], tags.get('GPSLongitudeRef'))
        except (TypeError, ValueError) as e:
            logging.debug(f"Unreadable GPS position: {e}")
            return None, None
        if lat is None or lon is None:
            return None, None
        if not (-90 <= lat <= 90 and -180 <= lon <= 180):
            logging.debug(f"Discarding out-of-range GPS position {lat}, {lon}")
            return None, None
        return lat, lon

    def _camera_name(self, make: Optional[str], model: Optional[str]) -> Optional[str]:
        if make and model:
            # Most vendors already repeat the make in the model string
            if model.lower().startswith(make.lower().split()[0]):
                return model
            return f"{make} {model}"
        return model or make

    def _text(self, value: Any) -> Optional[str]:
        if value is None:
            return None
        if isinstance(value, (bytes, bytearray)):
            value = value.split(b'\x00', 1)[0].decode('utf-8', errors='replace')
        text = str(value).strip()
        return text or None

    def _number(self, value: Any) -> Optional[float]:
        if isinstance(value, (list, tuple)):
            value = value[0] if value else None
        if isinstance(value, (int, float)):
            return float(value)
        return None

    def _integer(self, value: Any) -> Optional[int]:
        number = self._number(value)
        return int(number) if number is not None else None

    def _parse_exif_date(self, tags: Dict[str, Any]) -> Optional[datetime]:
        """Parses the first usable EXIF 'YYYY:MM:DD HH:MM:SS' timestamp."""
        for tag in DATE_TAGS:
            if tag in tags:
                try:
                    dt_str = str(tags[tag]).strip().replace(':', '-', 2)
                    return datetime.strptime(dt_str[:19], "%Y-%m-%d %H:%M:%S")
                except ValueError:
                    continue
        return None
