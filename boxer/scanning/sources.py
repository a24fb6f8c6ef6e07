"""
Candidate file sources.

A source yields FileCandidate objects. The manifest source reads a
pre-aggregated JSON listing; the folder source walks Box live; the fallback
source uses the live walk when the manifest is unusable.
"""
import json
import logging
from collections import deque
from pathlib import Path, PurePosixPath
from typing import Any, Dict, Iterator, Optional, Protocol

from .. import config
from ..exceptions import RemoteError
from ..models import FileCandidate
from ..remote.box import BoxClient, folder_path_of


class CandidateSource(Protocol):
    def iter_candidates(self) -> Iterator[FileCandidate]: ...


def is_image(name: str) -> bool:
    return PurePosixPath(name).suffix.lower() in config.IMAGE_EXTS


def candidate_from_item(item: Dict[str, Any], path: Optional[str] = None) -> FileCandidate:
    return FileCandidate(
        file_id=str(item.get('id') or item.get('file_id')),
        name=item.get('name', ''),
        path=path if path is not None else (item.get('path') or folder_path_of(item)),
        size=int(item.get('size') or 0),
        created_at=item.get('created_at'),
        modified_at=item.get('modified_at'),
    )


class ManifestSource:
    """Reads a JSON manifest: a list of file objects, or {"files": [...]}."""

    def __init__(self, manifest_path: Path):
        self.manifest_path = manifest_path

    def iter_candidates(self) -> Iterator[FileCandidate]:
        with self.manifest_path.open('r', encoding='utf-8') as f:
            data = json.load(f)
        items = data.get('files', []) if isinstance(data, dict) else data
        for item in items:
            if not (item.get('id') or item.get('file_id')):
                logging.debug(f"Manifest entry without id skipped: {item}")
                continue
            if is_image(item.get('name', '')):
                yield candidate_from_item(item)


class BoxFolderSource:
    """Breadth-first walk of a Box folder tree, yielding image files."""

    def __init__(self, client: BoxClient, folder_id: str = '0', recursive: bool = True):
        self.client = client
        self.folder_id = folder_id
        self.recursive = recursive

    def iter_candidates(self) -> Iterator[FileCandidate]:
        pending = deque([self.folder_id])
        while pending:
            folder_id = pending.popleft()
            for item in self.client.list_folder(folder_id):
                kind = item.get('type')
                if kind == 'folder' and self.recursive:
                    pending.append(item['id'])
                elif kind == 'file' and is_image(item.get('name', '')):
                    yield candidate_from_item(item)


class FallbackSource:
    """Uses the primary source; falls back when it is missing, unreadable or empty."""

    def __init__(self, primary: CandidateSource, fallback: CandidateSource):
        self.primary = primary
        self.fallback = fallback

    def iter_candidates(self) -> Iterator[FileCandidate]:
        try:
            candidates = list(self.primary.iter_candidates())
        except (OSError, ValueError, RemoteError) as e:
            logging.warning(f"Primary candidate source failed ({e}); using live listing.")
            candidates = []
        if candidates:
            yield from candidates
            return
        logging.info("No candidates from primary source; querying live.")
        yield from self.fallback.iter_candidates()
