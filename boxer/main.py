import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from . import config
from .config import BoxerConfig
from .database.db import DBManager
from .database.ops import CheckpointStore, StateOperations
from .enrichment.geocode import GeocodingAdapter
from .enrichment.vision import VisionAdapter
from .exceptions import BoxerError, SchedulerFatal
from .metadata.template import template_definition
from .models import ProcessingCheckpoint
from .pipeline import FilePipeline
from .remote.box import BoxClient
from .remote.retry import RetryPolicy
from .reporting import ReportGenerator
from .scanning.sources import BoxFolderSource, FallbackSource, ManifestSource
from .scheduler import BatchScheduler

def setup_logging(log_file: Optional[Path], verbose: bool):
    """Sets up logging to the console and, optionally, a file."""
    log_level = logging.DEBUG if verbose else logging.INFO

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.insert(0, logging.FileHandler(log_file, encoding='utf-8'))

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=handlers,
    )

    # Silence chatty libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("requests").setLevel(logging.WARNING)

def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Boxer: extract, enrich and sync image metadata in Box")

    p.add_argument("--folder", default=None, help="Box folder id to walk (default: BOXER_ROOT_FOLDER or 0)")
    p.add_argument("--manifest", type=Path, default=None, help="JSON manifest of candidate files; falls back to a live listing")
    p.add_argument("--budget", type=float, default=None, help="Wall-clock budget in seconds for this run")
    p.add_argument("--max-files", type=int, default=None, help="Maximum files to process this run")
    p.add_argument("--db", type=Path, default=None, help="Path for the state database (default: BOXER_STATE_DB)")
    p.add_argument("--log-file", type=Path, default=None, help="Also write the log to this file")
    p.add_argument("--no-vision", action="store_true", help="Skip vision analysis even if a key is configured")
    p.add_argument("--no-geocode", action="store_true", help="Skip reverse geocoding even if a key is configured")
    p.add_argument("--no-progress", action="store_true", help="Disable the progress bar")
    p.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    mode = p.add_mutually_exclusive_group()
    mode.add_argument("--status", action="store_true", help="Show checkpoint, run history and failures, then exit")
    mode.add_argument("--reset-checkpoint", action="store_true", help="Discard the stored checkpoint, then exit")
    mode.add_argument("--ensure-template", action="store_true", help="Create the metadata template if missing, then exit")

    return p.parse_args(argv)

def build_config(args) -> BoxerConfig:
    cfg = BoxerConfig.from_env()
    if args.folder:
        cfg.root_folder_id = args.folder
    if args.budget is not None:
        cfg.budget_seconds = args.budget
    if args.max_files is not None:
        cfg.max_files_per_run = args.max_files
    if args.db:
        cfg.state_db = args.db
    if args.no_vision:
        cfg.vision_api_key = None
    if args.no_geocode:
        cfg.geocode_api_key = None
    return cfg

def run(cfg: BoxerConfig, args) -> int:
    client = BoxClient(cfg)

    if args.ensure_template:
        client.ensure_template(template_definition(cfg.template_key, cfg.template_display_name, cfg.metadata_scope))
        return 0

    with DBManager(cfg.state_db) as conn:
        state = StateOperations(conn)
        checkpoints = CheckpointStore(state, config.CHECKPOINT_KEY)
        reporter = ReportGenerator(state)

        if args.reset_checkpoint:
            checkpoints.reset()
            logging.info("Checkpoint cleared.")
            return 0

        if args.status:
            stored = state.get_state(config.CHECKPOINT_KEY)
            checkpoint = ProcessingCheckpoint.from_dict(stored) if stored else None
            for line in reporter.status_lines(checkpoint):
                print(line)
            return 0

        retry = RetryPolicy(cfg.max_retries, cfg.retry_base_delay, cfg.retry_max_delay, jitter=0.5)
        vision = VisionAdapter(cfg, retry=retry) if cfg.vision_enabled else None
        geocoder = GeocodingAdapter(cfg, retry=retry) if cfg.geocoding_enabled else None
        pipeline = FilePipeline(cfg, client, client, vision=vision, geocoder=geocoder, retry=retry)

        live = BoxFolderSource(client, cfg.root_folder_id)
        source = FallbackSource(ManifestSource(args.manifest), live) if args.manifest else live

        scheduler = BatchScheduler(cfg, source, pipeline, checkpoints, state, progress=not args.no_progress)
        summary = scheduler.run()
        reporter.log_summary(summary)
        return 0

def main(argv=None):
    args = parse_args(argv)
    setup_logging(args.log_file, args.verbose)
    cfg = build_config(args)

    logging.info("=== Boxer Started ===")
    logging.info(f"Version {cfg.processing_version} build {cfg.build_number}; budget {cfg.budget_seconds}s")
    if not cfg.box_token and not (args.status or args.reset_checkpoint):
        logging.error("BOXER_BOX_TOKEN is not set.")
        sys.exit(1)

    try:
        sys.exit(run(cfg, args))
    except KeyboardInterrupt:
        logging.warning("Operation cancelled by user.")
        sys.exit(1)
    except SchedulerFatal:
        logging.exception("Checkpoint store failure; nothing can be safely resumed.")
        sys.exit(2)
    except BoxerError:
        logging.exception("Fatal error during run.")
        sys.exit(1)

if __name__ == "__main__":
    main()
