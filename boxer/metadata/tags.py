"""
Tag tables for TIFF-style embedded directories.

Each directory kind has its own id space; GPS ids overlap IFD0 ids.
"""

# Sub-directory pointers
EXIF_IFD_POINTER = 0x8769
GPS_IFD_POINTER = 0x8825

# Field types: id -> (name, size in bytes)
TYPE_BYTE = 1
TYPE_ASCII = 2
TYPE_SHORT = 3
TYPE_LONG = 4
TYPE_RATIONAL = 5
TYPE_SBYTE = 6
TYPE_UNDEFINED = 7
TYPE_SSHORT = 8
TYPE_SLONG = 9
TYPE_SRATIONAL = 10
TYPE_FLOAT = 11
TYPE_DOUBLE = 12

TYPE_SIZES = {
    TYPE_BYTE: 1,
    TYPE_ASCII: 1,
    TYPE_SHORT: 2,
    TYPE_LONG: 4,
    TYPE_RATIONAL: 8,
    TYPE_SBYTE: 1,
    TYPE_UNDEFINED: 1,
    TYPE_SSHORT: 2,
    TYPE_SLONG: 4,
    TYPE_SRATIONAL: 8,
    TYPE_FLOAT: 4,
    TYPE_DOUBLE: 8,
}

IFD0_TAGS = {
    0x0100: 'ImageWidth',
    0x0101: 'ImageLength',
    0x010E: 'ImageDescription',
    0x010F: 'Make',
    0x0110: 'Model',
    0x0112: 'Orientation',
    0x011A: 'XResolution',
    0x011B: 'YResolution',
    0x0128: 'ResolutionUnit',
    0x0131: 'Software',
    0x0132: 'DateTime',
    0x013B: 'Artist',
    0x8298: 'Copyright',
    EXIF_IFD_POINTER: 'ExifIFDPointer',
    GPS_IFD_POINTER: 'GPSInfoIFDPointer',
}

EXIF_TAGS = {
    0x829A: 'ExposureTime',
    0x829D: 'FNumber',
    0x8822: 'ExposureProgram',
    0x8827: 'ISOSpeedRatings',
    0x9000: 'ExifVersion',
    0x9003: 'DateTimeOriginal',
    0x9004: 'DateTimeDigitized',
    0x9201: 'ShutterSpeedValue',
    0x9202: 'ApertureValue',
    0x9204: 'ExposureBiasValue',
    0x9207: 'MeteringMode',
    0x9208: 'LightSource',
    0x9209: 'Flash',
    0x920A: 'FocalLength',
    0xA001: 'ColorSpace',
    0xA002: 'PixelXDimension',
    0xA003: 'PixelYDimension',
    0xA402: 'ExposureMode',
    0xA403: 'WhiteBalance',
    0xA405: 'FocalLengthIn35mmFilm',
    0xA406: 'SceneCaptureType',
    0xA430: 'CameraOwnerName',
    0xA431: 'BodySerialNumber',
    0xA433: 'LensMake',
    0xA434: 'LensModel',
}

GPS_TAGS = {
    0x0000: 'GPSVersionID',
    0x0001: 'GPSLatitudeRef',
    0x0002: 'GPSLatitude',
    0x0003: 'GPSLongitudeRef',
    0x0004: 'GPSLongitude',
    0x0005: 'GPSAltitudeRef',
    0x0006: 'GPSAltitude',
    0x0007: 'GPSTimeStamp',
    0x001D: 'GPSDateStamp',
}

TAG_TABLES = {
    'IFD0': IFD0_TAGS,
    'Exif': EXIF_TAGS,
    'GPS': GPS_TAGS,
}


def tag_name(ifd: str, tag: int) -> str:
    """Name for a tag id; unknown ids keep a generic hex label."""
    return TAG_TABLES.get(ifd, {}).get(tag, f"Tag0x{tag:04X}")


# --- Value interpretations ---
ORIENTATION = {
    1: 'Normal',
    2: 'Mirrored horizontal',
    3: 'Rotated 180',
    4: 'Mirrored vertical',
    5: 'Mirrored horizontal, rotated 270 CW',
    6: 'Rotated 90 CW',
    7: 'Mirrored horizontal, rotated 90 CW',
    8: 'Rotated 270 CW',
}

EXPOSURE_PROGRAM = {
    0: 'Not defined',
    1: 'Manual',
    2: 'Normal program',
    3: 'Aperture priority',
    4: 'Shutter priority',
    5: 'Creative program',
    6: 'Action program',
    7: 'Portrait mode',
    8: 'Landscape mode',
}

METERING_MODE = {
    0: 'Unknown',
    1: 'Average',
    2: 'Center weighted average',
    3: 'Spot',
    4: 'Multi-spot',
    5: 'Pattern',
    6: 'Partial',
    255: 'Other',
}

LIGHT_SOURCE = {
    0: 'Unknown',
    1: 'Daylight',
    2: 'Fluorescent',
    3: 'Tungsten',
    4: 'Flash',
    9: 'Fine weather',
    10: 'Cloudy weather',
    11: 'Shade',
    17: 'Standard light A',
    18: 'Standard light B',
    19: 'Standard light C',
    255: 'Other',
}

WHITE_BALANCE = {
    0: 'Auto WB',
    1: 'Manual WB',
}

COLOR_SPACE = {
    1: 'sRGB',
    0xFFFF: 'Uncalibrated',
}

RESOLUTION_UNIT = {
    1: 'none',
    2: 'dpi',
    3: 'dpcm',
}

INTERPRETATIONS = {
    'Orientation': ORIENTATION,
    'ExposureProgram': EXPOSURE_PROGRAM,
    'MeteringMode': METERING_MODE,
    'LightSource': LIGHT_SOURCE,
    'WhiteBalance': WHITE_BALANCE,
    'ColorSpace': COLOR_SPACE,
    'ResolutionUnit': RESOLUTION_UNIT,
}


def describe(name: str, value) -> str:
    """Human label for an enumerated tag value, or the raw value as text."""
    table = INTERPRETATIONS.get(name)
    if table is None:
        return str(value)
    return table.get(value, f"Unknown ({value})")
