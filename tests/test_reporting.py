import logging

from boxer.models import FileOutcome, ProcessingCheckpoint, RunSummary
from boxer.reporting import ReportGenerator


def test_log_summary_lists_failures(state_ops, caplog):
    summary = RunSummary(started_at='2024-05-01T00:00:00', elapsed_seconds=12.34, processed=3,
                         failed=1, budget_exhausted=True,
                         outcomes=[FileOutcome('f9', 'error', 'sync', 'HTTP 403: forbidden')])
    with caplog.at_level(logging.INFO):
        ReportGenerator(state_ops).log_summary(summary)

    text = caplog.text
    assert 'Processed: 3' in text
    assert 'Elapsed:   12.3s' in text
    assert 'resumes from the checkpoint' in text
    assert 'f9 failed at sync: HTTP 403: forbidden' in text


def test_status_lines(state_ops):
    state_ops.record_run(RunSummary(started_at='2024-05-01T00:00:00', elapsed_seconds=4.0,
                                    processed=2, skipped=1, cycle_complete=True))
    state_ops.record_failure(FileOutcome('f1', 'error', 'probe', 'HTTP 500'))
    checkpoint = ProcessingCheckpoint(version='v-test', tier=1, position=4, processed_ids={'a', 'b'})

    lines = ReportGenerator(state_ops).status_lines(checkpoint)

    assert lines[0].startswith('Checkpoint: version v-test, pass 1, position 4, 2 files done')
    assert lines[0].endswith('last run never')
    assert 'Recent runs (1):' in lines
    assert '  2024-05-01T00:00:00: 2 processed, 1 skipped, 0 failed in 4.0s [cycle]' in lines
    assert '  f1 at probe x1: HTTP 500' in lines


def test_status_without_checkpoint(state_ops):
    lines = ReportGenerator(state_ops).status_lines(None)
    assert lines == ['Checkpoint: none', 'Recent runs (0):', 'Outstanding failures (0):']
