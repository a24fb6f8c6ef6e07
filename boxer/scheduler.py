"""
Resumable, budgeted batch scheduler.

Candidates are visited in three passes over one stable ordering:

    pass 0  files with no remote metadata
    pass 1  files whose metadata is from an older version/build or stuck
    pass 2  files already current (verified and skipped)

Pass T handles every not-yet-done candidate whose tier is <= T. The
checkpoint records the pass and position, so a run stopped by the time budget
resumes exactly where it left off.
"""
import logging
import sqlite3
import time
from datetime import datetime, UTC
from typing import Any, Callable, Dict, List, Optional, Set

from tqdm import tqdm

from . import config
from .config import BoxerConfig
from .database.ops import CheckpointStore, StateOperations
from .exceptions import RemoteError, SchedulerFatal
from .models import FileCandidate, FileOutcome, ProcessingCheckpoint, RunSummary
from .pipeline import FilePipeline
from .scanning.sources import CandidateSource

TIER_NEW = 0
TIER_STALE = 1
TIER_CURRENT = 2
TIERS = (TIER_NEW, TIER_STALE, TIER_CURRENT)


class BudgetExhausted(Exception):
    """Internal signal: stop the run and persist the cursor."""
    pass


def metadata_tier(current: Optional[Dict[str, Any]], cfg: BoxerConfig) -> int:
    if not current:
        return TIER_NEW
    if (current.get('buildNumber') != cfg.build_number
            or current.get('processingVersion') != cfg.processing_version
            or current.get('processingStage') in config.RETRY_STAGES):
        return TIER_STALE
    return TIER_CURRENT


class BatchScheduler:
    def __init__(self,
                 cfg: BoxerConfig,
                 source: CandidateSource,
                 pipeline: FilePipeline,
                 checkpoints: CheckpointStore,
                 state: Optional[StateOperations] = None,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], None] = time.sleep,
                 progress: bool = True):
        self.cfg = cfg
        self.source = source
        self.pipeline = pipeline
        self.checkpoints = checkpoints
        self.state = state
        self.clock = clock
        self.sleep = sleep
        self.progress = progress
        self._current: Dict[str, Optional[Dict[str, Any]]] = {}

    # --- Ordering ---

    def order_candidates(self, candidates: List[FileCandidate]) -> List[FileCandidate]:
        priority = (self.cfg.priority_path or '').lower()

        def key(c: FileCandidate):
            in_priority = bool(priority) and priority in (c.path or '').lower()
            return (0 if in_priority else 1, c.created_at or '', c.file_id)

        return sorted(candidates, key=key)

    # --- Run ---

    def run(self) -> RunSummary:
        """
        Processes candidates until the set is exhausted, the time budget runs
        out or the per-run file cap is reached. Raises SchedulerFatal only
        when the checkpoint store fails.
        """
        started = self.clock()
        summary = RunSummary(started_at=datetime.now(UTC).isoformat())
        checkpoint = self.checkpoints.load(self.cfg.processing_version)
        checkpoint.cycle_complete = False
        self._current = {}
        logging.info(f"Resuming at pass {checkpoint.tier}, position {checkpoint.position} "
                     f"({len(checkpoint.processed_ids)} files done this cycle)")

        try:
            candidates = self._collect(started)
            self._run_passes(candidates, checkpoint, summary, started)
        except BudgetExhausted as e:
            summary.budget_exhausted = True
            logging.info(f"Stopping early: {e}")
        finally:
            # Files finished before an unexpected stop stay done
            checkpoint.last_run = summary.started_at
            self.checkpoints.save(checkpoint)

        summary.elapsed_seconds = round(self.clock() - started, 3)
        summary.cycle_complete = checkpoint.cycle_complete and not summary.budget_exhausted
        if self.state is not None:
            try:
                self.state.record_run(summary)
            except sqlite3.Error as e:
                raise SchedulerFatal(f"Cannot record run statistics: {e}") from e
        return summary

    def _over_budget(self, started: float) -> bool:
        return self.clock() - started >= self.cfg.budget_seconds

    def _collect(self, started: float) -> List[FileCandidate]:
        """Enumerates the source, checking the budget every few items."""
        candidates: List[FileCandidate] = []
        for i, candidate in enumerate(self.source.iter_candidates(), start=1):
            candidates.append(candidate)
            if i % self.cfg.budget_check_interval == 0 and self._over_budget(started):
                raise BudgetExhausted(f"time budget used while listing ({i} candidates)")
        logging.info(f"Found {len(candidates)} candidate files.")
        return self.order_candidates(candidates)

    def _run_passes(self, candidates: List[FileCandidate], checkpoint: ProcessingCheckpoint,
                    summary: RunSummary, started: float):
        tiers: Dict[str, int] = {}
        attempted: Set[str] = set()
        handled = 0
        remaining = sum(1 for c in candidates if c.file_id not in checkpoint.processed_ids)
        bar = tqdm(total=remaining, desc="Processing", disable=not self.progress)

        try:
            for tier in TIERS:
                if tier < checkpoint.tier:
                    continue
                if tier == checkpoint.tier:
                    start = self._resume_position(candidates, checkpoint)
                else:
                    start = 0
                    checkpoint.last_file_id = None
                checkpoint.tier = tier

                for position in range(start, len(candidates)):
                    candidate = candidates[position]
                    checkpoint.position = position
                    if position % self.cfg.budget_check_interval == 0 and self._over_budget(started):
                        raise BudgetExhausted(f"time budget used during pass {tier}")

                    if candidate.file_id in checkpoint.processed_ids or candidate.file_id in attempted:
                        continue
                    if candidate.file_id not in tiers:
                        tiers[candidate.file_id] = self._tier_of(candidate, summary)
                        if tiers[candidate.file_id] is None:
                            attempted.add(candidate.file_id)
                            bar.update(1)
                            continue
                    if tiers[candidate.file_id] > tier:
                        continue

                    outcome = self._handle(candidate, tiers[candidate.file_id])
                    attempted.add(candidate.file_id)
                    self._account(outcome, checkpoint, summary)
                    bar.update(1)
                    checkpoint.position = position + 1
                    checkpoint.last_file_id = candidate.file_id
                    if outcome.status == 'processed':
                        handled += 1

                    if self._over_budget(started):
                        raise BudgetExhausted(f"time budget of {self.cfg.budget_seconds}s used")
                    if handled >= self.cfg.max_files_per_run:
                        raise BudgetExhausted(f"per-run cap of {self.cfg.max_files_per_run} files reached")
                    if outcome.status == 'processed' and self.cfg.file_delay:
                        self.sleep(self.cfg.file_delay)
        finally:
            bar.close()

        # Whole candidate set visited: start a new cycle next time
        checkpoint.cycle_complete = True
        checkpoint.cycle_count += 1
        checkpoint.tier = TIER_NEW
        checkpoint.position = 0
        checkpoint.last_file_id = None
        logging.info(f"Cycle {checkpoint.cycle_count} complete.")

    def _resume_position(self, candidates: List[FileCandidate], checkpoint: ProcessingCheckpoint) -> int:
        """
        Stored position, re-anchored on last_file_id when the candidate list
        has shifted since the checkpoint was written.
        """
        position = min(checkpoint.position, len(candidates))
        last = checkpoint.last_file_id
        if not last:
            return position
        if 0 < position <= len(candidates) and candidates[position - 1].file_id == last:
            return position
        for i, c in enumerate(candidates):
            if c.file_id == last:
                return min(i + 1, position)
        return position

    def _tier_of(self, candidate: FileCandidate, summary: RunSummary) -> Optional[int]:
        try:
            current = self.pipeline.probe(candidate)
        except SchedulerFatal:
            raise
        except Exception as e:
            if isinstance(e, RemoteError):
                logging.warning(f"Probe failed for {candidate.file_id}: {e}")
            else:
                logging.exception(f"Unexpected error probing {candidate.file_id} ({candidate.name})")
            outcome = FileOutcome(candidate.file_id, 'error', 'probe', str(e))
            self._record_failure(outcome)
            summary.failed += 1
            summary.outcomes.append(outcome)
            return None
        self._current[candidate.file_id] = current
        return metadata_tier(current, self.cfg)

    def _handle(self, candidate: FileCandidate, tier: int) -> FileOutcome:
        if tier == TIER_CURRENT:
            logging.debug(f"{candidate.name} is current; skipping.")
            return FileOutcome(candidate.file_id, 'skipped', 'probe', 'already current')
        return self.pipeline.process(candidate, self._current.get(candidate.file_id))

    def _account(self, outcome: FileOutcome, checkpoint: ProcessingCheckpoint, summary: RunSummary):
        summary.outcomes.append(outcome)
        if outcome.status == 'error':
            summary.failed += 1
            self._record_failure(outcome)
            logging.warning(f"Failed {outcome.file_id} at {outcome.stage}: {outcome.message}")
            return
        checkpoint.processed_ids.add(outcome.file_id)
        checkpoint.cycle_complete = False
        if outcome.status == 'processed':
            summary.processed += 1
            self._clear_failure(outcome.file_id)
        else:
            summary.skipped += 1

    def _record_failure(self, outcome: FileOutcome):
        if self.state is None:
            return
        try:
            self.state.record_failure(outcome)
        except sqlite3.Error as e:
            raise SchedulerFatal(f"Cannot record failure for {outcome.file_id}: {e}") from e

    def _clear_failure(self, file_id: str):
        if self.state is None:
            return
        try:
            self.state.clear_failure(file_id)
        except sqlite3.Error as e:
            raise SchedulerFatal(f"Cannot clear failure for {file_id}: {e}") from e
