"""
Google Cloud Vision adapter.

Sends the image inline (base64) with a fixed feature list and normalizes the
response into a VisionAnalysis. Unsupported, oversize or empty input raises
VisionError without calling the backend.
"""
import base64
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

import requests

from .. import config
from ..config import BoxerConfig
from ..exceptions import RemoteError, TransientRemoteError, VisionError
from ..models import DominantColor, VisionAnalysis, VisionLabel, VisionObject
from ..remote.box import raise_for_status
from ..remote.retry import RetryPolicy

PEOPLE_OBJECTS = {'person', 'human face', 'man', 'woman', 'child', 'baby', 'head', 'hand'}
THING_OBJECTS = {'vehicle', 'car', 'truck', 'bicycle', 'table', 'chair', 'book', 'phone', 'computer'}
ACTIVITY_HINTS = ('sport', 'game', 'art', 'music', 'dance', 'reading', 'cooking')
PLACE_OBJECTS = {'building', 'room', 'office', 'kitchen', 'bathroom', 'garden', 'park', 'street'}

CONCEPT_LABEL_HINTS = ('art', 'design', 'style', 'color', 'pattern', 'texture', 'emotion', 'mood', 'atmosphere')
ACTIVITY_LABELS = {'activity', 'event', 'celebration', 'work', 'leisure', 'sport', 'exercise'}
PLACE_LABELS = {'indoor', 'outdoor', 'landscape', 'architecture', 'interior', 'exterior', 'natural', 'urban'}

MAX_COLORS = 5


def color_name(red: int, green: int, blue: int) -> str:
    """Rough human name for an RGB triple."""
    brightness = (red + green + blue) / 3
    if brightness < 50:
        return 'Dark'
    if brightness > 200:
        return 'Light'
    if red > green and red > blue:
        return 'Red'
    if green > red and green > blue:
        return 'Green'
    if blue > red and blue > green:
        return 'Blue'
    if red > 150 and green > 150 and blue < 100:
        return 'Yellow'
    if red > 150 and blue > 150 and green < 100:
        return 'Magenta'
    if green > 150 and blue > 150 and red < 100:
        return 'Cyan'
    return 'Mixed'


def categorize(objects: List[VisionObject], labels: List[VisionLabel], face_count: int = 0) -> Dict[str, List[str]]:
    """Buckets object and label names into people/objects/activities/places/concepts."""
    buckets: Dict[str, List[str]] = {k: [] for k in ('people', 'objects', 'activities', 'places', 'concepts')}

    for obj in objects:
        name = obj.name.lower()
        if name in PEOPLE_OBJECTS:
            buckets['people'].append(obj.name)
        elif name in THING_OBJECTS:
            buckets['objects'].append(obj.name)
        elif any(hint in name for hint in ACTIVITY_HINTS):
            buckets['activities'].append(obj.name)
        elif name in PLACE_OBJECTS:
            buckets['places'].append(obj.name)
        else:
            buckets['objects'].append(obj.name)

    seen = {n.lower() for n in buckets['people'] + buckets['objects']}
    for label in labels:
        name = label.description.lower()
        if name in seen:
            continue
        if any(hint in name for hint in CONCEPT_LABEL_HINTS):
            buckets['concepts'].append(label.description)
        elif name in ACTIVITY_LABELS:
            buckets['activities'].append(label.description)
        elif name in PLACE_LABELS:
            buckets['places'].append(label.description)
        else:
            buckets['concepts'].append(label.description)

    if face_count > 0:
        buckets['people'].append('Human faces detected')
    return buckets


def describe_scene(objects: List[VisionObject], labels: List[VisionLabel], face_count: int = 0) -> Optional[str]:
    buckets = categorize(objects, labels, face_count)
    parts = []
    for key, title, limit in (('people', 'people', 2), ('objects', 'objects', 3),
                              ('activities', 'activities', 2), ('places', 'setting', 2),
                              ('concepts', 'concepts', 2)):
        if buckets[key]:
            parts.append(f"{title} ({', '.join(buckets[key][:limit])})")
    if not parts:
        if not labels:
            return None
        parts = [l.description for l in labels[:5]]
    return "Image contains: " + '; '.join(parts)


class VisionAdapter:
    def __init__(self, cfg: BoxerConfig, session: Optional[requests.Session] = None,
                 retry: Optional[RetryPolicy] = None):
        self.cfg = cfg
        self.session = session or requests.Session()
        self.retry = retry or RetryPolicy(cfg.max_retries, cfg.retry_base_delay, cfg.retry_max_delay)

    def check_input(self, data: bytes, file_format: Optional[str] = None) -> None:
        if not data:
            raise VisionError('FILE_EMPTY', 'no image bytes')
        if len(data) > self.cfg.vision_max_bytes:
            size_mb = len(data) / (1024 * 1024)
            raise VisionError('FILE_TOO_LARGE', f"{size_mb:.1f}MB exceeds vision limit")
        if file_format and file_format.lower() in config.VISION_UNSUPPORTED_FORMATS:
            raise VisionError('UNSUPPORTED_FORMAT', f"{file_format} is not supported for vision analysis")

    def analyze(self, data: bytes, file_format: Optional[str] = None) -> VisionAnalysis:
        self.check_input(data, file_format)
        body = {
            'requests': [{
                'image': {'content': base64.b64encode(data).decode('ascii')},
                'features': config.VISION_FEATURES,
            }]
        }
        try:
            payload = self.retry.call(self._post, body)
        except RemoteError as e:
            raise VisionError('HTTP_ERROR', str(e)) from e

        responses = payload.get('responses') or []
        if not responses:
            raise VisionError('EMPTY_RESPONSE', 'vision backend returned no responses')
        first = responses[0]
        if first.get('error'):
            raise VisionError('API_ERROR', first['error'].get('message', 'unknown error'))
        return self.parse_response(first)

    def _post(self, body: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = self.session.post(
                self.cfg.vision_endpoint, params={'key': self.cfg.vision_api_key},
                json=body, timeout=self.cfg.request_timeout,
            )
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
            raise TransientRemoteError(None, str(e)) from e
        raise_for_status(response)
        try:
            return response.json()
        except ValueError as e:
            raise VisionError('API_ERROR', f"unreadable response: {e}") from e

    def parse_response(self, result: Dict[str, Any]) -> VisionAnalysis:
        analysis = VisionAnalysis()
        analysis.objects = [
            VisionObject(o.get('name', ''), round(float(o.get('score', 0)), 2))
            for o in result.get('localizedObjectAnnotations') or []
        ]
        analysis.labels = [
            VisionLabel(l.get('description', ''), round(float(l.get('score', 0)), 2))
            for l in result.get('labelAnnotations') or []
        ]
        texts = result.get('textAnnotations') or []
        if texts and texts[0].get('description'):
            analysis.text = re.sub(r'\s+', ' ', texts[0]['description']).strip()

        colors = ((result.get('imagePropertiesAnnotation') or {}).get('dominantColors') or {}).get('colors') or []
        for entry in colors[:MAX_COLORS]:
            rgb = self._rgb(entry.get('color') or {})
            analysis.colors.append(DominantColor(
                rgb=f"rgb({rgb[0]}, {rgb[1]}, {rgb[2]})",
                score=round(float(entry.get('score', 0)), 2),
                pixel_fraction=round(float(entry.get('pixelFraction', 0)), 3),
                name=color_name(*rgb),
            ))

        analysis.face_count = len(result.get('faceAnnotations') or [])
        analysis.safe_search = dict(result.get('safeSearchAnnotation') or {})
        if analysis.labels:
            mean = sum(l.confidence for l in analysis.labels) / len(analysis.labels)
            analysis.confidence_score = round(mean, 2)
        analysis.scene_description = describe_scene(analysis.objects, analysis.labels, analysis.face_count)

        logging.debug(f"Vision: {len(analysis.objects)} objects, {len(analysis.labels)} labels, "
                      f"{analysis.face_count} faces")
        return analysis

    def _rgb(self, color: Dict[str, Any]) -> Tuple[int, int, int]:
        return (int(color.get('red', 0)), int(color.get('green', 0)), int(color.get('blue', 0)))
