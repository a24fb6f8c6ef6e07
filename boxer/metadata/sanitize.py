"""
Total sanitizer for enriched metadata.

Every field is coerced to its template kind; anything that cannot be coerced
is dropped (optional fields) or replaced by a default (required fields).
sanitize_metadata() never raises.
"""
import logging
import math
from datetime import date, datetime, UTC
from typing import Any, Dict, Optional, Union

from .. import config
from ..models import EnrichedMetadata
from .template import DATE, ENUM, FIELD_KINDS, FLOAT, STRING

LONG_TEXT_FIELDS = {'extractedText', 'notes', 'aiSceneDescription', 'aiDetectedObjects', 'dominantColors'}

GPS_RANGES = {
    'gpsLatitude': (-90.0, 90.0),
    'gpsLongitude': (-180.0, 180.0),
}

STRING_DEFAULTS = {
    'originalFilename': 'unknown',
    'fileFormat': 'UNKNOWN',
}


def format_date(value: datetime) -> str:
    """Canonical template date: UTC with millisecond precision and a Z suffix."""
    if value.tzinfo is not None:
        value = value.astimezone(UTC)
    return value.strftime('%Y-%m-%dT%H:%M:%S') + '.000Z'


def coerce_date(value: Any) -> Optional[str]:
    if isinstance(value, datetime):
        return format_date(value)
    if isinstance(value, date):
        return format_date(datetime(value.year, value.month, value.day))
    if not isinstance(value, str) or not value.strip():
        return None

    text = value.strip()
    try:
        return format_date(datetime.fromisoformat(text.replace('Z', '+00:00')))
    except ValueError:
        pass
    # EXIF style "YYYY:MM:DD HH:MM:SS"
    try:
        return format_date(datetime.strptime(text[:19].replace(':', '-', 2), '%Y-%m-%d %H:%M:%S'))
    except ValueError:
        return None


def coerce_float(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def coerce_string(value: Any, limit: int) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (list, tuple, set)):
        value = ', '.join(str(v) for v in value if v is not None)
    elif isinstance(value, (bytes, bytearray)):
        value = value.decode('utf-8', errors='replace')
    elif isinstance(value, datetime):
        value = format_date(value)
    text = str(value).strip()
    if not text:
        return None
    return text[:limit]


def coerce_enum(key: str, value: Any) -> str:
    options, default = config.ENUM_FIELDS[key]
    if isinstance(value, str):
        normalized = value.strip().lower().replace(' ', '_').replace('-', '_')
        if normalized in options:
            return normalized
    return default


def sanitize_metadata(record: Union[EnrichedMetadata, Dict[str, Any], None],
                      processing_version: str = 'v3.0',
                      build_number: str = '',
                      now: Optional[datetime] = None) -> EnrichedMetadata:
    """
    Returns a schema-valid copy of record. Accepts a record or a
    template-keyed dict; unknown keys are ignored.
    """
    if isinstance(record, EnrichedMetadata):
        raw = record.to_payload()
    elif isinstance(record, dict):
        raw = {k: v for k, v in record.items() if isinstance(k, str)}
    else:
        raw = {}

    clean: Dict[str, Any] = {}
    for key, kind in FIELD_KINDS.items():
        value = raw.get(key)
        if kind == STRING:
            limit = config.MAX_TEXT_LENGTH if key in LONG_TEXT_FIELDS else config.MAX_STRING_LENGTH
            clean[key] = coerce_string(value, limit)
        elif kind == FLOAT:
            clean[key] = coerce_float(value)
        elif kind == DATE:
            clean[key] = coerce_date(value)
        elif kind == ENUM:
            clean[key] = coerce_enum(key, value)

    for key, (low, high) in GPS_RANGES.items():
        number = clean.get(key)
        if number is not None and not (low <= number <= high):
            logging.debug(f"Dropping out-of-range {key}={number}")
            clean['gpsLatitude'] = None
            clean['gpsLongitude'] = None

    for key in ('imageWidth', 'imageHeight', 'fileSizeMB', 'megapixels'):
        if clean.get(key) is not None and clean[key] < 0:
            clean[key] = None

    for key, default in STRING_DEFAULTS.items():
        if clean.get(key) is None:
            clean[key] = default
    if clean.get('processingVersion') is None:
        clean['processingVersion'] = processing_version
    if clean.get('buildNumber') is None:
        clean['buildNumber'] = build_number or 'unknown'
    if clean.get('lastProcessedDate') is None:
        clean['lastProcessedDate'] = format_date(now or datetime.now(UTC))

    return EnrichedMetadata.from_payload({k: v for k, v in clean.items() if v is not None})
