import logging
from datetime import datetime, UTC
from typing import Any, Dict, List, Optional, Protocol

from .config import BoxerConfig
from .exceptions import AdapterError, RemoteError, SchedulerFatal
from .enrichment.geocode import GeocodingAdapter
from .enrichment.vision import VisionAdapter
from .metadata.decoder import ImageDecoder
from .metadata.extract import MetadataExtractor
from .metadata.heuristics import ContentAnalyzer
from .metadata.merge import merge_metadata
from .metadata.sanitize import sanitize_metadata
from .models import FileCandidate, FileOutcome, SyncOutcome, TechnicalMetadata
from .remote.retry import RetryPolicy
from .sync import MetadataStore, MetadataSync


class ByteSource(Protocol):
    def download(self, file_id: str) -> bytes: ...


def declared_format(name: str) -> Optional[str]:
    ext = name.rsplit('.', 1)[-1].lower() if '.' in name else ''
    return {
        'jpg': 'jpeg', 'jpeg': 'jpeg', 'png': 'png', 'gif': 'gif', 'bmp': 'bmp',
        'tif': 'tiff', 'tiff': 'tiff', 'webp': 'webp', 'heic': 'heic', 'heif': 'heic',
        'avif': 'avif',
    }.get(ext)


class FilePipeline:
    """
    Runs one candidate through fetch, decode, enrich, merge and sync.

    Adapter failures become notes on the record; only a failed sync (or an
    unexpected error) makes the file an error.
    """

    def __init__(self,
                 cfg: BoxerConfig,
                 byte_source: ByteSource,
                 store: MetadataStore,
                 vision: Optional[VisionAdapter] = None,
                 geocoder: Optional[GeocodingAdapter] = None,
                 retry: Optional[RetryPolicy] = None):
        self.cfg = cfg
        self.byte_source = byte_source
        self.store = store
        self.vision = vision
        self.geocoder = geocoder
        self.retry = retry or RetryPolicy(cfg.max_retries, cfg.retry_base_delay, cfg.retry_max_delay)
        self.decoder = ImageDecoder(cfg.marker_search_limit)
        self.extractor = MetadataExtractor()
        self.analyzer = ContentAnalyzer()
        self.sync = MetadataSync(store, self.retry)
        self.stage = 'idle'

    def probe(self, candidate: FileCandidate) -> Optional[Dict[str, Any]]:
        """Current remote metadata for a candidate, or None when it has none."""
        return self.retry.call(self.store.get_metadata, candidate.file_id)

    def process(self, candidate: FileCandidate, current: Optional[Dict[str, Any]] = None) -> FileOutcome:
        self.stage = 'fetch'
        try:
            return self._process(candidate, current)
        except SchedulerFatal:
            raise
        except Exception as e:
            logging.exception(f"Unexpected error processing {candidate.file_id} ({candidate.name})")
            return FileOutcome(candidate.file_id, 'error', self.stage, str(e))

    def _process(self, candidate: FileCandidate, current: Optional[Dict[str, Any]]) -> FileOutcome:
        notes: List[str] = []
        fmt = declared_format(candidate.name)

        # 1. Fetch bytes
        data: Optional[bytes] = None
        try:
            data = self.retry.call(self.byte_source.download, candidate.file_id)
        except RemoteError as e:
            notes.append(f"Download failed: {e}")
            logging.warning(f"Could not download {candidate.file_id}: {e}")

        # 2. Decode
        self.stage = 'decode'
        technical: Optional[TechnicalMetadata] = None
        exif_found = False
        if data:
            decoded = self.decoder.decode(data, fmt)
            fmt = decoded.format if decoded.format != 'unknown' else fmt
            exif_found = decoded.has_metadata
            if decoded.has_metadata or decoded.width:
                technical = self.extractor.extract(decoded)
            if not decoded.has_metadata:
                notes.append('No EXIF data found')

        # 3. Heuristics
        self.stage = 'heuristics'
        heuristics = self.analyzer.analyze(candidate.path, candidate.name)

        # 4. Vision
        self.stage = 'vision'
        vision = None
        if self.vision is not None and data:
            try:
                vision = self.vision.analyze(data, fmt)
            except AdapterError as e:
                notes.append(f"Vision analysis skipped: {e}")
                logging.info(f"Vision skipped for {candidate.name}: {e}")

        # 5. Geocode
        self.stage = 'geocode'
        place = None
        if (self.geocoder is not None and technical is not None
                and technical.gps_latitude is not None and technical.gps_longitude is not None):
            place = self.geocoder.reverse(technical.gps_latitude, technical.gps_longitude)
            if place is None:
                notes.append('Geocoding unavailable')

        # 6. Merge + sanitize
        self.stage = 'merge'
        now = datetime.now(UTC)
        prior_stage = (current or {}).get('processingStage')
        merged = merge_metadata(
            candidate, heuristics, technical, vision, place,
            notes=notes,
            prior_stage=prior_stage,
            exif_found=exif_found,
            processing_version=self.cfg.processing_version,
            build_number=self.cfg.build_number,
            now=now,
        )
        record = sanitize_metadata(merged, self.cfg.processing_version, self.cfg.build_number, now)

        # 7. Sync
        self.stage = 'sync'
        result = self.sync.sync(candidate.file_id, record)
        if result.outcome == SyncOutcome.FAILED:
            return FileOutcome(candidate.file_id, 'error', 'sync', str(result.error), result.outcome)

        logging.info(f"{candidate.name}: {result.outcome.value} (stage {record.processing_stage})")
        return FileOutcome(candidate.file_id, 'processed', 'done', '', result.outcome)
