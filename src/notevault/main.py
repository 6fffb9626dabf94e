#!/usr/bin/env python
"""Main entry point for the note vault process."""
import argparse
import logging
import os
import signal
import sys
import threading
from pathlib import Path
from typing import Tuple

from notevault import __version__
from notevault.config import VaultConfig, config
from notevault.exceptions import ConfigurationError
from notevault.observability import configure_logging, metrics
from notevault.services.file_sync_watcher import FileSyncWatcher
from notevault.services.note_service import NoteService
from notevault.storage.frontmatter_codec import FrontmatterCodec
from notevault.storage.vault_store import VaultStore

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="NoteVault file-backed note store")
    parser.add_argument(
        "--vault-dir",
        help="Directory holding the note files",
        type=str,
        default=os.environ.get("NOTEVAULT_VAULT_DIR")
    )
    parser.add_argument(
        "--sync-interval",
        help="Seconds between reconciliation passes",
        type=float,
        default=None
    )
    parser.add_argument(
        "--log-level",
        help="Logging level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=os.environ.get("NOTEVAULT_LOG_LEVEL", "INFO").upper()
    )
    parser.add_argument(
        "--log-dir",
        help="Directory for rotating log files (console only when omitted)",
        type=str,
        default=os.environ.get("NOTEVAULT_LOG_DIR")
    )
    parser.add_argument(
        "--once",
        help="Load the vault, run a single reconciliation pass, print a summary and exit",
        action="store_true"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def update_config(args, cfg: VaultConfig = config) -> None:
    """Update the config with command line arguments.

    Raises:
        ConfigurationError: If a flag holds an unusable value.
    """
    if args.vault_dir:
        cfg.vault_dir = Path(args.vault_dir)
    if args.sync_interval is not None:
        if args.sync_interval <= 0:
            raise ConfigurationError(
                "--sync-interval must be > 0",
                config_key="sync_interval",
                value=args.sync_interval,
            )
        cfg.sync_interval = args.sync_interval
    if args.log_dir:
        cfg.log_dir = Path(args.log_dir)
    cfg.log_level = args.log_level


def build_vault(cfg: VaultConfig = config) -> Tuple[VaultStore, NoteService, FileSyncWatcher]:
    """Create the store, service and watcher for a configuration.

    The vault directory is created if missing and loaded before anything
    is returned, so callers can serve queries right away.
    """
    vault_path = cfg.get_vault_path()
    vault_path.mkdir(parents=True, exist_ok=True)

    store = VaultStore(
        vault_path,
        codec=FrontmatterCodec(extract_hashtags=cfg.extract_hashtags),
        extension=cfg.note_extension,
    )
    report = store.load()
    if report.failed:
        logger.warning(f"{len(report.failed)} note files could not be loaded")

    service = NoteService(store)
    if cfg.seed_welcome_note:
        service.ensure_welcome_note()

    watcher = FileSyncWatcher(store, interval=cfg.sync_interval)
    return store, service, watcher


def _wait_for_shutdown(stop_event: threading.Event) -> None:
    """Block until SIGINT/SIGTERM."""
    def _handle_signal(signum, frame):
        logger.info(f"Received signal {signum}, shutting down")
        stop_event.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)
    while not stop_event.wait(1.0):
        pass


def main(argv=None) -> int:
    """Run the note vault."""
    args = parse_args(argv)
    try:
        update_config(args)
    except ConfigurationError as e:
        print(f"notevault: {e}", file=sys.stderr)
        return 2

    log_level = getattr(logging, config.log_level, logging.INFO)
    try:
        log_dir = configure_logging(log_dir=config.log_dir, level=log_level, console=True)
    except OSError as e:
        # Fall back to basic console logging if file logging fails
        logging.basicConfig(level=log_level)
        logger.warning(f"Failed to configure file logging: {e}")
        log_dir = None
    if log_dir:
        logger.info(f"Persistent logging enabled: {log_dir}")

    try:
        store, service, watcher = build_vault(config)
    except OSError as e:
        logger.error(f"Failed to open vault at {config.get_vault_path()}: {e}")
        return 1

    if args.once:
        report = watcher.run_once()
        stats = service.get_stats()
        print(
            f"{stats['notes']} notes, {stats['tags']} tags "
            f"({report.added} added, {report.reloaded} reloaded, "
            f"{len(report.failed)} failed)"
        )
        return 0

    logger.info(f"Starting NoteVault {__version__} on {store.root}")
    stop_event = threading.Event()
    watcher.start()
    try:
        _wait_for_shutdown(stop_event)
    finally:
        watcher.stop()
        logger.info(f"Operation summary:\n{metrics.summary()}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
