"""
Rule-based content classification from folder path and filename.
"""
import re
from pathlib import PurePosixPath
from typing import Callable, List, Optional, Tuple

from ..models import HeuristicAnalysis

DIMENSION_PATTERN = re.compile(r'(\d+)[xX](\d+)')

# Path segments that carry no meaning
FILLER_SEGMENTS = {'files', 'all files', 'root'}

# First match wins. Keywords are tested against the lower-cased path and name.
LOCATION_KEYWORDS: List[Tuple[str, List[str]]] = [
    ('main_lobby', ['lobby', 'reception', 'front desk']),
    ('studio_1', ['studio 1', 'studio one', 'studio-1', 'studio1', 'studio_1']),
    ('fabrication_workshop', ['fabrication', 'workshop', 'fab shop', 'fab_shop']),
    ('metal_shop', ['metal shop', 'metalwork', 'metal_shop']),
    ('wood_shop', ['wood shop', 'carpentry', 'wood_shop']),
    ('paint_booth', ['paint booth', 'paint_booth']),
    ('assembly_area', ['assembly', 'assembly area']),
    ('storage_warehouse', ['storage', 'warehouse']),
    ('office_space', ['office', 'office space']),
    ('conference_room', ['conference', 'meeting room']),
    ('gallery_space', ['gallery', 'exhibition']),
    ('outdoor_yard', ['outdoor', 'yard', 'outside']),
    ('loading_dock', ['loading', 'dock']),
]


class ContentRule:
    """A predicate over (path, name) plus the classification it assigns."""

    def __init__(self, name: str, predicate: Callable[[str, str], bool], **assign):
        self.name = name
        self.predicate = predicate
        self.assign = assign

    def matches(self, path: str, name: str) -> bool:
        return self.predicate(path, name)


def _any_in(text: str, words) -> bool:
    return any(w in text for w in words)


CONTENT_RULES: List[ContentRule] = [
    ContentRule(
        'marketing',
        lambda p, n: _any_in(p, ('logo', 'brand')) or _any_in(n, ('logo', 'brand')),
        content_type='marketing_material', department='marketing',
        usage_rights='marketing_approved', importance='high',
    ),
    ContentRule(
        'portrait',
        lambda p, n: _any_in(p, ('team', 'staff')) or 'portrait' in n,
        content_type='team_portrait', department='administration',
    ),
    ContentRule(
        'event',
        lambda p, n: 'event' in p or 'event' in n or _any_in(p, ('opening', 'ceremony')),
        content_type='event_photo', importance='high',
    ),
    ContentRule(
        'fabrication',
        lambda p, n: _any_in(p, ('fabrication', 'workshop')) or _any_in(n, ('fab', 'wip')),
        content_type='fabrication_process', department='fabrication',
        facility_location='fabrication_workshop',
    ),
    ContentRule(
        'artwork',
        lambda p, n: _any_in(p, ('artwork', 'piece', 'sculpture')) or 'art' in n,
        content_type='artwork', department='design', importance='high',
    ),
]


def dimensions_from_name(name: str) -> Tuple[Optional[int], Optional[int]]:
    """Reads a WIDTHxHEIGHT token out of a filename."""
    match = DIMENSION_PATTERN.search(name)
    if not match:
        return None, None
    width, height = int(match.group(1)), int(match.group(2))
    if width <= 0 or height <= 0:
        return None, None
    return width, height


def clean_name(name: str) -> str:
    """Filename without extension, dimension tokens or separators."""
    stem = PurePosixPath(name).stem if '.' in name else name
    stem = DIMENSION_PATTERN.sub('', stem)
    stem = re.sub(r'[_\-]+', ' ', stem)
    return re.sub(r'\s+', ' ', stem).strip()


def extract_keywords(path: str, name: str) -> List[str]:
    """Path segments followed by filename tokens, lower-cased and de-duplicated in order."""
    candidates: List[str] = []
    for segment in path.split('/'):
        segment = segment.strip()
        if len(segment) > 2 and segment.lower() not in FILLER_SEGMENTS:
            candidates.append(segment)
    candidates.extend(w for w in clean_name(name).split(' ') if len(w) > 2)

    seen = set()
    keywords = []
    for word in candidates:
        lowered = word.lower()
        if lowered not in seen:
            seen.add(lowered)
            keywords.append(lowered)
    return keywords


def classify_location(path: str, name: str) -> str:
    for location, words in LOCATION_KEYWORDS:
        if _any_in(path, words) or _any_in(name, words):
            return location
    return 'unknown'


class ContentAnalyzer:
    def __init__(self, rules: Optional[List[ContentRule]] = None):
        self.rules = rules if rules is not None else CONTENT_RULES

    def analyze(self, folder_path: str, filename: str) -> HeuristicAnalysis:
        path = (folder_path or '').lower()
        name = (filename or '').lower()
        result = HeuristicAnalysis()

        for rule in self.rules:
            if rule.matches(path, name):
                for attr, value in rule.assign.items():
                    setattr(result, attr, value)
                break

        # A keyword-map hit overrides any location a content rule assigned
        location = classify_location(path, name)
        if location != 'unknown':
            result.facility_location = location

        result.keywords = extract_keywords(folder_path or '', filename or '')
        result.subject = clean_name(filename or '') or None
        result.width, result.height = dimensions_from_name(filename or '')
        return result
