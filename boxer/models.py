from dataclasses import dataclass, field, fields, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Set

# Attribute names whose template key is not a plain camelCase conversion
_KEY_OVERRIDES = {
    'file_size_mb': 'fileSizeMB',
}


def template_key_for(attr: str) -> str:
    """Maps a snake_case attribute to its key in the remote template."""
    if attr in _KEY_OVERRIDES:
        return _KEY_OVERRIDES[attr]
    head, *rest = attr.split('_')
    return head + ''.join(part.capitalize() for part in rest)


@dataclass
class FileCandidate:
    """
    A file the scheduler may process, as supplied by a candidate source.
    """
    file_id: str
    name: str
    path: str = ''           # folder path, '/'-joined, excluding the root
    size: int = 0
    created_at: Optional[str] = None
    modified_at: Optional[str] = None


@dataclass
class DirectoryEntry:
    tag: int
    type: int
    count: int
    value: Any
    ifd: str = 'IFD0'


@dataclass
class DecodeResult:
    """
    Output of one decoder pass. An empty tag map is the "no metadata" result.
    """
    format: str
    tags: Dict[str, Any] = field(default_factory=dict)
    width: Optional[int] = None     # from the container header, not EXIF
    height: Optional[int] = None
    notes: List[str] = field(default_factory=list)

    @property
    def has_metadata(self) -> bool:
        return bool(self.tags)


@dataclass(frozen=True)
class TechnicalMetadata:
    width: Optional[int] = None
    height: Optional[int] = None
    camera_make: Optional[str] = None
    camera_model: Optional[str] = None
    lens_model: Optional[str] = None
    photographer: Optional[str] = None
    exposure_time: Optional[float] = None
    f_number: Optional[float] = None
    iso: Optional[int] = None
    focal_length: Optional[float] = None
    date_taken: Optional[datetime] = None
    gps_latitude: Optional[float] = None
    gps_longitude: Optional[float] = None
    gps_altitude: Optional[float] = None
    camera_settings: Optional[str] = None
    technical_notes: Optional[str] = None


@dataclass
class HeuristicAnalysis:
    content_type: str = 'other'
    facility_location: str = 'unknown'
    department: str = 'general'
    importance: str = 'medium'
    usage_rights: str = 'internal_only'
    needs_review: str = 'no'
    keywords: List[str] = field(default_factory=list)
    subject: Optional[str] = None
    # WIDTHxHEIGHT parsed out of the filename, if present
    width: Optional[int] = None
    height: Optional[int] = None


@dataclass
class VisionObject:
    name: str
    confidence: float


@dataclass
class VisionLabel:
    description: str
    confidence: float


@dataclass
class DominantColor:
    rgb: str
    score: float
    pixel_fraction: float
    name: str = ''


@dataclass
class VisionAnalysis:
    objects: List[VisionObject] = field(default_factory=list)
    labels: List[VisionLabel] = field(default_factory=list)
    text: Optional[str] = None
    colors: List[DominantColor] = field(default_factory=list)
    face_count: int = 0
    safe_search: Dict[str, str] = field(default_factory=dict)
    confidence_score: Optional[float] = None
    scene_description: Optional[str] = None


@dataclass
class GeocodeResult:
    formatted_address: Optional[str] = None
    venue: Optional[str] = None
    neighborhood: Optional[str] = None
    city: Optional[str] = None
    region: Optional[str] = None
    country: Optional[str] = None


@dataclass
class EnrichedMetadata:
    """
    The single persisted record per file. None means "no value"; only
    present fields are written to the remote store.
    """
    # Base file attributes
    original_filename: Optional[str] = None
    folder_path: Optional[str] = None
    file_format: Optional[str] = None
    file_size_mb: Optional[float] = None

    # Classification
    content_type: Optional[str] = None
    facility_location: Optional[str] = None
    department: Optional[str] = None
    usage_rights: Optional[str] = None
    quality_rating: Optional[str] = None
    importance: Optional[str] = None
    needs_review: Optional[str] = None
    subject: Optional[str] = None
    manual_keywords: Optional[str] = None

    # Technical
    image_width: Optional[float] = None
    image_height: Optional[float] = None
    aspect_ratio: Optional[str] = None
    megapixels: Optional[float] = None
    camera_model: Optional[str] = None
    lens_model: Optional[str] = None
    camera_settings: Optional[str] = None
    photographer: Optional[str] = None
    date_taken: Optional[Any] = None
    gps_latitude: Optional[float] = None
    gps_longitude: Optional[float] = None
    gps_altitude: Optional[float] = None

    # Geocoded place
    gps_location: Optional[str] = None
    gps_venue: Optional[str] = None
    gps_neighborhood: Optional[str] = None
    gps_city: Optional[str] = None
    gps_region: Optional[str] = None
    gps_country: Optional[str] = None

    # Vision
    ai_detected_objects: Optional[str] = None
    ai_scene_description: Optional[str] = None
    extracted_text: Optional[str] = None
    dominant_colors: Optional[str] = None
    ai_confidence_score: Optional[float] = None

    # Human-entered fields (never derived, carried through when present)
    project_name: Optional[str] = None
    client_name: Optional[str] = None
    event_name: Optional[str] = None
    event_date: Optional[Any] = None
    people_in_image: Optional[str] = None
    artist_name: Optional[str] = None

    # Processing bookkeeping
    processing_stage: Optional[str] = None
    processing_version: Optional[str] = None
    build_number: Optional[str] = None
    last_processed_date: Optional[Any] = None
    notes: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        """Template-keyed dict of every present field."""
        return {
            template_key_for(f.name): getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> 'EnrichedMetadata':
        """Builds a record from a template-keyed dict, ignoring unknown and '$'-prefixed keys."""
        by_key = {template_key_for(f.name): f.name for f in fields(cls)}
        return cls(**{by_key[k]: v for k, v in payload.items() if k in by_key})


class SyncOutcome(str, Enum):
    CREATED = 'created'
    UPDATED_NOOP = 'updated_noop'
    UPDATED = 'updated'
    FAILED = 'failed'


@dataclass
class SyncResult:
    file_id: str
    outcome: SyncOutcome
    operations: List[Dict[str, Any]] = field(default_factory=list)
    attempts: int = 0
    error: Optional[Exception] = None


@dataclass
class ProcessingCheckpoint:
    """
    Durable scheduler progress. processed_ids only grows until the
    processing version changes.
    """
    version: str
    tier: int = 0
    position: int = 0
    last_file_id: Optional[str] = None
    processed_ids: Set[str] = field(default_factory=set)
    last_run: Optional[str] = None
    cycle_complete: bool = False
    cycle_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['processed_ids'] = sorted(self.processed_ids)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ProcessingCheckpoint':
        return cls(
            version=str(data.get('version', '')),
            tier=int(data.get('tier', 0)),
            position=int(data.get('position', 0)),
            last_file_id=data.get('last_file_id'),
            processed_ids=set(data.get('processed_ids') or []),
            last_run=data.get('last_run'),
            cycle_complete=bool(data.get('cycle_complete', False)),
            cycle_count=int(data.get('cycle_count', 0)),
        )


@dataclass
class FileOutcome:
    file_id: str
    status: str                  # processed / skipped / error
    stage: str                   # last pipeline stage reached
    message: str = ''
    sync_outcome: Optional[SyncOutcome] = None


@dataclass
class RunSummary:
    started_at: str
    elapsed_seconds: float = 0.0
    processed: int = 0
    skipped: int = 0
    failed: int = 0
    budget_exhausted: bool = False
    cycle_complete: bool = False
    outcomes: List[FileOutcome] = field(default_factory=list)

    @property
    def failures(self) -> List[FileOutcome]:
        return [o for o in self.outcomes if o.status == 'error']
