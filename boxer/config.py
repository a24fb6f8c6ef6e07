"""
Configuration for the Boxer metadata pipeline.

Module constants hold the fixed vocabularies (allow-lists, stage order,
extensions). Everything tunable per deployment lives on BoxerConfig, which is
built once and passed to the scheduler, pipeline and adapters.
"""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

# --- File Type Definitions ---
IMAGE_EXTS = {'.jpg', '.jpeg', '.png', '.gif', '.bmp', '.tiff', '.tif', '.webp', '.heic', '.heif'}

# Formats the vision backend refuses
VISION_UNSUPPORTED_FORMATS = {'tiff'}

# --- Template Vocabularies ---
# Enum option sets; the remote template is generated from these same lists.
CONTENT_TYPES = [
    'artwork', 'fabrication_process', 'marketing_material', 'team_portrait',
    'event_photo', 'equipment', 'facility_interior', 'facility_exterior',
    'documentation', 'other',
]
PROCESSING_STAGES = [
    'unprocessed', 'basic_extracted', 'exif_extracted', 'ai_analyzed',
    'human_reviewed', 'complete',
]
DEPARTMENTS = ['fabrication', 'design', 'marketing', 'administration', 'operations', 'general']
FACILITY_LOCATIONS = [
    'main_lobby', 'studio_1', 'fabrication_workshop', 'metal_shop', 'wood_shop',
    'paint_booth', 'assembly_area', 'storage_warehouse', 'office_space',
    'conference_room', 'gallery_space', 'outdoor_yard', 'loading_dock', 'unknown',
]
USAGE_RIGHTS = ['internal_only', 'marketing_approved', 'client_shared', 'public_domain', 'pending_approval']
QUALITY_RATINGS = ['excellent', 'good', 'fair', 'poor', 'unrated']
IMPORTANCE_LEVELS = ['critical', 'high', 'medium', 'low', 'archive']
REVIEW_STATES = ['yes', 'no', 'completed']

ENUM_FIELDS = {
    'contentType': (CONTENT_TYPES, 'other'),
    'processingStage': (PROCESSING_STAGES, 'basic_extracted'),
    'department': (DEPARTMENTS, 'general'),
    'facilityLocation': (FACILITY_LOCATIONS, 'unknown'),
    'usageRights': (USAGE_RIGHTS, 'internal_only'),
    'qualityRating': (QUALITY_RATINGS, 'unrated'),
    'importance': (IMPORTANCE_LEVELS, 'medium'),
    'needsReview': (REVIEW_STATES, 'no'),
}

# Stages a file can be stuck in that always warrant another pass
RETRY_STAGES = {'unprocessed', 'failed'}

# --- Text Limits ---
MAX_TEXT_LENGTH = 5000
MAX_STRING_LENGTH = 1000

# --- Remote Store ---
RETRYABLE_STATUS = {429, 500, 502, 503, 504}
CHECKPOINT_KEY = 'processing_checkpoint'
RUN_HISTORY_LIMIT = 10

# Fields that change every run and must not on their own trigger a patch
VOLATILE_FIELDS = {'lastProcessedDate'}

# --- Vision ---
VISION_FEATURES = [
    {'type': 'OBJECT_LOCALIZATION', 'maxResults': 25},
    {'type': 'LABEL_DETECTION', 'maxResults': 30},
    {'type': 'TEXT_DETECTION', 'maxResults': 15},
    {'type': 'IMAGE_PROPERTIES'},
    {'type': 'SAFE_SEARCH_DETECTION'},
    {'type': 'FACE_DETECTION', 'maxResults': 10},
]


def _env_float(environ: Mapping[str, str], key: str, default: float) -> float:
    raw = environ.get(key)
    if raw is None or raw == '':
        return default
    return float(raw)


def _env_int(environ: Mapping[str, str], key: str, default: int) -> int:
    raw = environ.get(key)
    if raw is None or raw == '':
        return default
    return int(raw)


@dataclass
class BoxerConfig:
    # Box
    box_base_url: str = 'https://api.box.com/2.0'
    box_token: Optional[str] = None
    metadata_scope: str = 'enterprise'
    template_key: str = 'comprehensiveImageMetadata'
    template_display_name: str = 'Comprehensive Image Metadata'
    root_folder_id: str = '0'

    # Vision / Geocoding
    vision_api_key: Optional[str] = None
    vision_endpoint: str = 'https://vision.googleapis.com/v1/images:annotate'
    vision_max_bytes: int = 20 * 1024 * 1024
    geocode_api_key: Optional[str] = None
    geocode_endpoint: str = 'https://maps.googleapis.com/maps/api/geocode/json'
    geocode_delay: float = 0.5

    # Scheduler
    budget_seconds: float = 300.0
    budget_check_interval: int = 25
    max_files_per_run: int = 100
    file_delay: float = 0.3
    priority_path: Optional[str] = None

    # Retry
    max_retries: int = 5
    retry_base_delay: float = 1.0
    retry_max_delay: float = 30.0
    request_timeout: float = 30.0

    # Decoder
    marker_search_limit: int = 65536

    # Versioning
    processing_version: str = 'v3.0'
    build_number: str = '20240101.001'

    # State
    state_db: Path = Path('boxer_state.db')

    @property
    def vision_enabled(self) -> bool:
        return bool(self.vision_api_key)

    @property
    def geocoding_enabled(self) -> bool:
        return bool(self.geocode_api_key)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'BoxerConfig':
        """Builds a config from BOXER_* environment variables, falling back to defaults."""
        env = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            box_base_url=env.get('BOXER_BOX_BASE_URL', defaults.box_base_url),
            box_token=env.get('BOXER_BOX_TOKEN') or None,
            metadata_scope=env.get('BOXER_METADATA_SCOPE', defaults.metadata_scope),
            template_key=env.get('BOXER_TEMPLATE_KEY', defaults.template_key),
            root_folder_id=env.get('BOXER_ROOT_FOLDER', defaults.root_folder_id),
            vision_api_key=env.get('BOXER_VISION_API_KEY') or None,
            geocode_api_key=env.get('BOXER_GEOCODE_API_KEY') or None,
            budget_seconds=_env_float(env, 'BOXER_BUDGET_SECONDS', defaults.budget_seconds),
            max_files_per_run=_env_int(env, 'BOXER_MAX_FILES', defaults.max_files_per_run),
            priority_path=env.get('BOXER_PRIORITY_PATH') or None,
            max_retries=_env_int(env, 'BOXER_MAX_RETRIES', defaults.max_retries),
            processing_version=env.get('BOXER_PROCESSING_VERSION', defaults.processing_version),
            build_number=env.get('BOXER_BUILD_NUMBER', defaults.build_number),
            state_db=Path(env.get('BOXER_STATE_DB', str(defaults.state_db))),
        )
