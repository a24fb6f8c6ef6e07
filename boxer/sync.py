"""
Metadata sync protocol.

Upserts a record into the remote store with the fewest writes:

    ATTEMPT_CREATE --ok--> DONE
          | conflict
          v
    FETCH_CURRENT --> DIFF --no changes--> DONE_NOOP
                        | changes
                        v
                   APPLY_PATCH --ok--> DONE

Each remote step runs under the retry policy; running out of attempts (or a
non-retryable error) ends in FAILED. Fields that exist only remotely are
never removed.
"""
import logging
import math
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol

from . import config
from .exceptions import MetadataConflict, RemoteError, SyncFailure
from .metadata.merge import stage_rank
from .models import EnrichedMetadata, SyncOutcome, SyncResult
from .remote.retry import RetryPolicy


class MetadataStore(Protocol):
    def get_metadata(self, file_id: str) -> Optional[Dict[str, Any]]: ...
    def create_metadata(self, file_id: str, payload: Dict[str, Any]) -> Dict[str, Any]: ...
    def patch_metadata(self, file_id: str, operations: List[Dict[str, Any]]) -> Dict[str, Any]: ...


class SyncState(str, Enum):
    ATTEMPT_CREATE = 'attempt_create'
    FETCH_CURRENT = 'fetch_current'
    DIFF = 'diff'
    APPLY_PATCH = 'apply_patch'
    DONE = 'done'
    DONE_NOOP = 'done_noop'
    FAILED = 'failed'


def values_equal(a: Any, b: Any) -> bool:
    """Deep equality; numbers compare by value so 3000 equals 3000.0."""
    if isinstance(a, bool) or isinstance(b, bool):
        return type(a) is type(b) and a == b
    if isinstance(a, (int, float)) and isinstance(b, (int, float)):
        return math.isclose(a, b, rel_tol=1e-9, abs_tol=1e-12)
    if isinstance(a, dict) and isinstance(b, dict):
        return a.keys() == b.keys() and all(values_equal(a[k], b[k]) for k in a)
    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        return len(a) == len(b) and all(values_equal(x, y) for x, y in zip(a, b))
    return a == b


def diff_operations(current: Dict[str, Any], desired: Dict[str, Any]) -> List[Dict[str, Any]]:
    """
    JSON-patch operations turning `current` into a superset of `desired`.

    Returns [] when only volatile fields (e.g. lastProcessedDate) differ, and
    never lowers a stored processingStage.
    """
    ops: List[Dict[str, Any]] = []
    for key, value in desired.items():
        if key.startswith('$'):
            continue
        if key not in current:
            ops.append({'op': 'add', 'path': f"/{key}", 'value': value})
        elif not values_equal(current[key], value):
            if key == 'processingStage' and stage_rank(current[key]) > stage_rank(value):
                continue
            ops.append({'op': 'replace', 'path': f"/{key}", 'value': value})

    if all(op['path'][1:] in config.VOLATILE_FIELDS for op in ops):
        return []
    return ops


class MetadataSync:
    def __init__(self, store: MetadataStore, retry: Optional[RetryPolicy] = None):
        self.store = store
        self.retry = retry or RetryPolicy()

    def sync(self, file_id: str, record: EnrichedMetadata) -> SyncResult:
        desired = record.to_payload()
        result = SyncResult(file_id=file_id, outcome=SyncOutcome.FAILED)
        state = SyncState.ATTEMPT_CREATE
        current: Optional[Dict[str, Any]] = None
        recreate_tried = False

        def attempt(fn, *args):
            def counted():
                result.attempts += 1
                return fn(*args)
            return self.retry.call(counted)

        while state not in (SyncState.DONE, SyncState.DONE_NOOP, SyncState.FAILED):
            try:
                if state == SyncState.ATTEMPT_CREATE:
                    attempt(self.store.create_metadata, file_id, desired)
                    result.outcome = SyncOutcome.CREATED
                    state = SyncState.DONE

                elif state == SyncState.FETCH_CURRENT:
                    current = attempt(self.store.get_metadata, file_id)
                    if current is None:
                        if recreate_tried:
                            raise RemoteError(404, 'instance vanished after conflict')
                        # Deleted between our create and fetch
                        recreate_tried = True
                        state = SyncState.ATTEMPT_CREATE
                    else:
                        state = SyncState.DIFF

                elif state == SyncState.DIFF:
                    result.operations = diff_operations(current or {}, desired)
                    if result.operations:
                        state = SyncState.APPLY_PATCH
                    else:
                        result.outcome = SyncOutcome.UPDATED_NOOP
                        state = SyncState.DONE_NOOP

                elif state == SyncState.APPLY_PATCH:
                    attempt(self.store.patch_metadata, file_id, result.operations)
                    result.outcome = SyncOutcome.UPDATED
                    state = SyncState.DONE

            except MetadataConflict as e:
                if state != SyncState.ATTEMPT_CREATE:
                    result.error = SyncFailure(file_id, state.value, e)
                    state = SyncState.FAILED
                else:
                    logging.debug(f"Metadata already exists for {file_id}; diffing")
                    state = SyncState.FETCH_CURRENT
            except RemoteError as e:
                result.error = SyncFailure(file_id, state.value, e)
                state = SyncState.FAILED

        if state == SyncState.FAILED:
            result.outcome = SyncOutcome.FAILED
            logging.warning(f"Sync failed for {file_id}: {result.error}")
        else:
            logging.debug(f"Sync {file_id}: {result.outcome.value} ({len(result.operations)} ops)")
        return result
