import logging
from typing import Any, Dict, List, Optional

from .database.ops import StateOperations
from .models import ProcessingCheckpoint, RunSummary


class ReportGenerator:
    def __init__(self, state: StateOperations):
        self.state = state

    def log_summary(self, summary: RunSummary):
        """Writes the end-of-run summary to the log, including failures worth retrying."""
        logging.info("=== Run Summary ===")
        logging.info(f"Processed: {summary.processed}")
        logging.info(f"Skipped:   {summary.skipped}")
        logging.info(f"Failed:    {summary.failed}")
        logging.info(f"Elapsed:   {summary.elapsed_seconds:.1f}s")
        if summary.budget_exhausted:
            logging.info("Stopped at the time budget; the next run resumes from the checkpoint.")
        if summary.cycle_complete:
            logging.info("All candidates visited; cycle complete.")
        for failure in summary.failures:
            logging.warning(f"  {failure.file_id} failed at {failure.stage}: {failure.message}")

    def status_lines(self, checkpoint: Optional[ProcessingCheckpoint]) -> List[str]:
        """Human-readable checkpoint, run history and outstanding failures."""
        lines: List[str] = []
        if checkpoint is None:
            lines.append("Checkpoint: none")
        else:
            lines.append(
                f"Checkpoint: version {checkpoint.version}, pass {checkpoint.tier}, "
                f"position {checkpoint.position}, {len(checkpoint.processed_ids)} files done, "
                f"cycles completed {checkpoint.cycle_count}, last run {checkpoint.last_run or 'never'}"
            )

        history = self.state.fetch_run_history()
        lines.append(f"Recent runs ({len(history)}):")
        for run in history:
            lines.append(self._format_run(run))

        failures = self.state.fetch_failures()
        lines.append(f"Outstanding failures ({len(failures)}):")
        for f in failures:
            lines.append(f"  {f['file_id']} at {f['stage']} x{f['attempts']}: {f['message']}")
        return lines

    def _format_run(self, run: Dict[str, Any]) -> str:
        flags = []
        if run['budget_exhausted']:
            flags.append('budget')
        if run['cycle_complete']:
            flags.append('cycle')
        suffix = f" [{', '.join(flags)}]" if flags else ''
        return (f"  {run['started_at']}: {run['processed']} processed, {run['skipped']} skipped, "
                f"{run['failed']} failed in {run['elapsed_seconds']:.1f}s{suffix}")
