"""
Box REST client: file bytes, folder listings and metadata instances.

All HTTP status handling funnels through raise_for_status() so callers only
ever see the typed errors from boxer.exceptions.
"""
import logging
from typing import Any, Dict, Iterator, List, Optional

import requests

from .. import config
from ..config import BoxerConfig
from ..exceptions import MetadataConflict, RemoteError, TransientRemoteError

LIST_PAGE_SIZE = 1000
FILE_FIELDS = 'id,name,size,created_at,modified_at,path_collection,type'


def _retry_after(response: requests.Response) -> Optional[float]:
    value = response.headers.get('Retry-After')
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def raise_for_status(response: requests.Response) -> None:
    """Maps an HTTP response onto the Boxer error taxonomy."""
    status = response.status_code
    if status < 400:
        return
    message = response.text[:300] if response.text else response.reason or ''
    if status == 409:
        raise MetadataConflict(message)
    if status in config.RETRYABLE_STATUS:
        raise TransientRemoteError(status, message, retry_after=_retry_after(response))
    raise RemoteError(status, message)


def folder_path_of(item: Dict[str, Any]) -> str:
    """'/'-joined folder names from a file's path_collection, without the root."""
    entries = (item.get('path_collection') or {}).get('entries') or []
    return '/'.join(e.get('name', '') for e in entries[1:])


class BoxClient:
    def __init__(self, cfg: BoxerConfig, session: Optional[requests.Session] = None):
        self.cfg = cfg
        self.base_url = cfg.box_base_url.rstrip('/')
        self.session = session or requests.Session()
        if cfg.box_token:
            self.session.headers['Authorization'] = f"Bearer {cfg.box_token}"

    # --- Transport ---

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        kwargs.setdefault('timeout', self.cfg.request_timeout)
        try:
            response = self.session.request(method, url, **kwargs)
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
            raise TransientRemoteError(None, f"{type(e).__name__}: {e}") from e
        except requests.exceptions.RequestException as e:
            raise RemoteError(None, str(e)) from e
        return response

    def _metadata_url(self, file_id: str) -> str:
        return f"{self.base_url}/files/{file_id}/metadata/{self.cfg.metadata_scope}/{self.cfg.template_key}"

    # --- Files & folders ---

    def download(self, file_id: str) -> bytes:
        response = self._request('GET', f"{self.base_url}/files/{file_id}/content", allow_redirects=True)
        raise_for_status(response)
        return response.content

    def list_folder(self, folder_id: str) -> Iterator[Dict[str, Any]]:
        """Yields every item in a folder, following offset pagination."""
        offset = 0
        while True:
            response = self._request(
                'GET', f"{self.base_url}/folders/{folder_id}/items",
                params={'fields': FILE_FIELDS, 'limit': LIST_PAGE_SIZE, 'offset': offset},
            )
            raise_for_status(response)
            page = response.json()
            entries: List[Dict[str, Any]] = page.get('entries') or []
            yield from entries
            offset += len(entries)
            if not entries or offset >= int(page.get('total_count', 0)):
                break

    # --- Metadata instances ---

    def get_metadata(self, file_id: str) -> Optional[Dict[str, Any]]:
        """Current template instance, or None when the file has none."""
        response = self._request('GET', self._metadata_url(file_id))
        if response.status_code == 404:
            return None
        raise_for_status(response)
        return response.json()

    def create_metadata(self, file_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        response = self._request('POST', self._metadata_url(file_id), json=payload)
        raise_for_status(response)
        logging.debug(f"Created metadata for {file_id}")
        return response.json()

    def patch_metadata(self, file_id: str, operations: List[Dict[str, Any]]) -> Dict[str, Any]:
        response = self._request(
            'PUT', self._metadata_url(file_id), json=operations,
            headers={'Content-Type': 'application/json-patch+json'},
        )
        raise_for_status(response)
        logging.debug(f"Applied {len(operations)} metadata operations to {file_id}")
        return response.json()

    # --- Templates ---

    def get_template(self) -> Optional[Dict[str, Any]]:
        url = f"{self.base_url}/metadata_templates/{self.cfg.metadata_scope}/{self.cfg.template_key}/schema"
        response = self._request('GET', url)
        if response.status_code == 404:
            return None
        raise_for_status(response)
        return response.json()

    def create_template(self, definition: Dict[str, Any]) -> Dict[str, Any]:
        response = self._request('POST', f"{self.base_url}/metadata_templates/schema", json=definition)
        raise_for_status(response)
        return response.json()

    def ensure_template(self, definition: Dict[str, Any]) -> bool:
        """Creates the template if missing. Returns True when it was created."""
        if self.get_template() is not None:
            logging.info(f"Template '{self.cfg.template_key}' already exists.")
            return False
        self.create_template(definition)
        logging.info(f"Created template '{self.cfg.template_key}'.")
        return True
