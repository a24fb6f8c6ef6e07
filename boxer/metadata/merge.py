"""
Merge engine: folds every source into one EnrichedMetadata record.

Sources are applied in a fixed order (base, heuristics, technical, vision,
geocode). Each layer is a partial record; a later layer's value replaces an
earlier one only when it is present (not None), so the result does not depend
on which adapter happened to finish first.
"""
import math
from dataclasses import fields, replace
from datetime import datetime, UTC
from typing import Iterable, List, Optional

from .. import config
from ..models import (
    EnrichedMetadata, FileCandidate, GeocodeResult, HeuristicAnalysis,
    TechnicalMetadata, VisionAnalysis,
)

ARTWORK_LABELS = {'sculpture', 'art', 'statue', 'artwork', 'installation', 'painting', 'drawing'}
PEOPLE_LABELS = {'person', 'people', 'human face', 'portrait', 'crowd', 'man', 'woman', 'child'}
EQUIPMENT_LABELS = {'tool', 'machine', 'equipment', 'vehicle', 'engine', 'machinery'}
BUILDING_LABELS = {'building', 'room', 'interior', 'architecture', 'house', 'office building', 'factory'}

DOCUMENT_TEXT_THRESHOLD = 50


def overlay(base: EnrichedMetadata, layer: EnrichedMetadata) -> EnrichedMetadata:
    """Returns base with every present field of layer applied on top."""
    changes = {f.name: getattr(layer, f.name) for f in fields(layer) if getattr(layer, f.name) is not None}
    return replace(base, **changes)


def stage_rank(stage: Optional[str]) -> int:
    try:
        return config.PROCESSING_STAGES.index(stage)
    except ValueError:
        return -1


def later_stage(*stages: Optional[str]) -> str:
    """The most advanced of the given stages, never below basic_extracted."""
    best = 'basic_extracted'
    for stage in stages:
        if stage_rank(stage) > stage_rank(best):
            best = stage
    return best


def aspect_ratio(width: float, height: float) -> Optional[str]:
    w, h = int(width), int(height)
    if w <= 0 or h <= 0:
        return None
    divisor = math.gcd(w, h)
    return f"{w // divisor}:{h // divisor}"


def _dedupe(words: Iterable[str]) -> List[str]:
    seen = set()
    out = []
    for word in words:
        word = word.strip().lower()
        if word and word not in seen:
            seen.add(word)
            out.append(word)
    return out


def _label_hit(labels: List[str], vocabulary) -> bool:
    for label in labels:
        if label in vocabulary or any(word in vocabulary for word in label.split()):
            return True
    return False


# --- Layers ---

def base_layer(candidate: FileCandidate, processing_version: str, build_number: str) -> EnrichedMetadata:
    ext = candidate.name.rsplit('.', 1)[-1].upper() if '.' in candidate.name else None
    return EnrichedMetadata(
        original_filename=candidate.name,
        folder_path=candidate.path or None,
        file_format=ext,
        file_size_mb=round(candidate.size / (1024 * 1024), 2) if candidate.size else None,
        date_taken=candidate.created_at,
        processing_version=processing_version,
        build_number=build_number,
    )


def heuristic_layer(analysis: HeuristicAnalysis) -> EnrichedMetadata:
    return EnrichedMetadata(
        content_type=analysis.content_type,
        facility_location=analysis.facility_location,
        department=analysis.department,
        usage_rights=analysis.usage_rights,
        importance=analysis.importance,
        needs_review=analysis.needs_review,
        subject=analysis.subject,
        manual_keywords=', '.join(analysis.keywords) if analysis.keywords else None,
        image_width=analysis.width,
        image_height=analysis.height,
    )


def technical_layer(tech: TechnicalMetadata) -> EnrichedMetadata:
    return EnrichedMetadata(
        image_width=tech.width,
        image_height=tech.height,
        camera_model=tech.camera_model,
        lens_model=tech.lens_model,
        camera_settings=tech.camera_settings,
        photographer=tech.photographer,
        date_taken=tech.date_taken,
        gps_latitude=tech.gps_latitude,
        gps_longitude=tech.gps_longitude,
        gps_altitude=tech.gps_altitude,
    )


def vision_layer(vision: VisionAnalysis, current: EnrichedMetadata) -> EnrichedMetadata:
    """
    Vision-derived fields. Labels can promote the content type; the subject
    and keyword list are replaced by vision-backed versions.
    """
    labels = [l.description.lower() for l in vision.labels]
    layer = EnrichedMetadata(
        ai_scene_description=vision.scene_description,
        ai_confidence_score=vision.confidence_score,
        extracted_text=vision.text[:config.MAX_TEXT_LENGTH] if vision.text else None,
    )
    if vision.objects:
        layer.ai_detected_objects = '; '.join(f"{o.name} ({o.confidence})" for o in vision.objects)
    if vision.colors:
        layer.dominant_colors = '; '.join(f"{c.rgb} ({c.score}, {c.pixel_fraction})" for c in vision.colors)

    if _label_hit(labels, ARTWORK_LABELS):
        layer.content_type = 'artwork'
        if current.importance != 'critical':
            layer.importance = 'high'
    elif _label_hit(labels, PEOPLE_LABELS):
        layer.content_type = 'team_portrait'
        layer.needs_review = 'yes'
    elif _label_hit(labels, EQUIPMENT_LABELS):
        layer.content_type = 'equipment'
        if current.department in (None, 'general'):
            layer.department = 'operations'
    elif _label_hit(labels, BUILDING_LABELS):
        if current.content_type != 'facility_exterior':
            layer.content_type = 'facility_interior'

    content_type = layer.content_type or current.content_type
    if vision.text and len(vision.text) > DOCUMENT_TEXT_THRESHOLD and content_type in (None, 'other'):
        layer.content_type = 'documentation'

    if vision.objects:
        layer.subject = max(vision.objects, key=lambda o: o.confidence).name
    elif vision.labels:
        layer.subject = vision.labels[0].description

    existing = current.manual_keywords.split(',') if current.manual_keywords else []
    keywords = _dedupe(
        existing
        + [l.description for l in vision.labels[:10]]
        + [o.name for o in vision.objects[:5]]
    )
    if keywords:
        layer.manual_keywords = ', '.join(keywords)
    return layer


def geocode_layer(place: GeocodeResult, current: EnrichedMetadata) -> EnrichedMetadata:
    """Place fields are only ever added, never replacing a stored value."""
    values = {
        'gps_location': place.formatted_address,
        'gps_venue': place.venue,
        'gps_neighborhood': place.neighborhood,
        'gps_city': place.city,
        'gps_region': place.region,
        'gps_country': place.country,
    }
    return EnrichedMetadata(**{k: v for k, v in values.items() if getattr(current, k) is None})


# --- Fold ---

def merge_metadata(candidate: FileCandidate,
                   heuristics: HeuristicAnalysis,
                   technical: Optional[TechnicalMetadata] = None,
                   vision: Optional[VisionAnalysis] = None,
                   place: Optional[GeocodeResult] = None,
                   notes: Optional[List[str]] = None,
                   prior_stage: Optional[str] = None,
                   exif_found: Optional[bool] = None,
                   processing_version: str = 'v3.0',
                   build_number: str = '',
                   now: Optional[datetime] = None) -> EnrichedMetadata:
    """
    Folds all sources into one record. The result still needs sanitizing.

    prior_stage is the stage already stored remotely; the returned stage is
    never lower than it. exif_found=False keeps container-only dimensions
    from counting as an EXIF extraction.
    """
    record = base_layer(candidate, processing_version, build_number)
    record = overlay(record, heuristic_layer(heuristics))
    stage = 'basic_extracted'

    if technical is not None:
        record = overlay(record, technical_layer(technical))
        if exif_found is None or exif_found:
            stage = 'exif_extracted'
    if vision is not None:
        record = overlay(record, vision_layer(vision, record))
        stage = 'ai_analyzed'
    if place is not None:
        record = overlay(record, geocode_layer(place, record))

    if record.image_width and record.image_height:
        record.aspect_ratio = aspect_ratio(record.image_width, record.image_height)
        record.megapixels = round(record.image_width * record.image_height / 1_000_000, 1)

    note_parts = list(notes or [])
    if technical is not None and technical.technical_notes:
        note_parts.append(technical.technical_notes)
    if note_parts:
        record.notes = '; '.join(note_parts)

    record.processing_stage = later_stage(stage, prior_stage)
    record.last_processed_date = now or datetime.now(UTC)
    return record
