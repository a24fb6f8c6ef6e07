"""
Remote metadata template schema.

The enum option sets are built from the same allow-lists the sanitizer
clamps against, so a sanitized record always validates against the template.
"""
from typing import Any, Dict, List

from .. import config

STRING = 'string'
FLOAT = 'float'
DATE = 'date'
ENUM = 'enum'

# (key, kind, display name)
TEMPLATE_FIELDS = [
    ('originalFilename', STRING, 'Original Filename'),
    ('folderPath', STRING, 'Folder Path'),
    ('fileFormat', STRING, 'File Format'),
    ('fileSizeMB', FLOAT, 'File Size (MB)'),
    ('contentType', ENUM, 'Content Type'),
    ('facilityLocation', ENUM, 'Facility Location'),
    ('department', ENUM, 'Department'),
    ('usageRights', ENUM, 'Usage Rights'),
    ('qualityRating', ENUM, 'Quality Rating'),
    ('importance', ENUM, 'Importance'),
    ('needsReview', ENUM, 'Needs Review'),
    ('subject', STRING, 'Subject'),
    ('manualKeywords', STRING, 'Keywords'),
    ('imageWidth', FLOAT, 'Image Width'),
    ('imageHeight', FLOAT, 'Image Height'),
    ('aspectRatio', STRING, 'Aspect Ratio'),
    ('megapixels', FLOAT, 'Megapixels'),
    ('cameraModel', STRING, 'Camera Model'),
    ('lensModel', STRING, 'Lens Model'),
    ('cameraSettings', STRING, 'Camera Settings'),
    ('photographer', STRING, 'Photographer'),
    ('dateTaken', DATE, 'Date Taken'),
    ('gpsLatitude', FLOAT, 'GPS Latitude'),
    ('gpsLongitude', FLOAT, 'GPS Longitude'),
    ('gpsAltitude', FLOAT, 'GPS Altitude'),
    ('gpsLocation', STRING, 'GPS Location'),
    ('gpsVenue', STRING, 'GPS Venue'),
    ('gpsNeighborhood', STRING, 'GPS Neighborhood'),
    ('gpsCity', STRING, 'GPS City'),
    ('gpsRegion', STRING, 'GPS Region'),
    ('gpsCountry', STRING, 'GPS Country'),
    ('aiDetectedObjects', STRING, 'AI Detected Objects'),
    ('aiSceneDescription', STRING, 'AI Scene Description'),
    ('extractedText', STRING, 'Extracted Text'),
    ('dominantColors', STRING, 'Dominant Colors'),
    ('aiConfidenceScore', FLOAT, 'AI Confidence Score'),
    ('projectName', STRING, 'Project Name'),
    ('clientName', STRING, 'Client Name'),
    ('eventName', STRING, 'Event Name'),
    ('eventDate', DATE, 'Event Date'),
    ('peopleInImage', STRING, 'People in Image'),
    ('artistName', STRING, 'Artist Name'),
    ('processingStage', ENUM, 'Processing Stage'),
    ('processingVersion', STRING, 'Processing Version'),
    ('buildNumber', STRING, 'Build Number'),
    ('lastProcessedDate', DATE, 'Last Processed Date'),
    ('notes', STRING, 'Notes'),
]

FIELD_KINDS: Dict[str, str] = {key: kind for key, kind, _ in TEMPLATE_FIELDS}

# Always present in a sanitized record
REQUIRED_FIELDS = [
    'originalFilename',
    'fileFormat',
    'contentType',
    'facilityLocation',
    'department',
    'usageRights',
    'qualityRating',
    'importance',
    'needsReview',
    'processingStage',
    'processingVersion',
    'buildNumber',
    'lastProcessedDate',
]


def enum_options(key: str) -> List[str]:
    options, _ = config.ENUM_FIELDS[key]
    return list(options)


def template_definition(template_key: str, display_name: str, scope: str = 'enterprise') -> Dict[str, Any]:
    """Body for creating the metadata template on the remote store."""
    fields: List[Dict[str, Any]] = []
    for key, kind, label in TEMPLATE_FIELDS:
        entry: Dict[str, Any] = {'type': kind, 'key': key, 'displayName': label}
        if kind == ENUM:
            entry['options'] = [{'key': option} for option in enum_options(key)]
        fields.append(entry)
    return {
        'scope': scope,
        'templateKey': template_key,
        'displayName': display_name,
        'hidden': False,
        'fields': fields,
    }
