#!/usr/bin/env python3
"""
Walk a state trie and every storage trie under it, printing and exporting
leaf depth histograms as the walk goes.

    trie-analytics --chaindata ~/.ethereum/geth/chaindata
    trie-analytics --backend nodes-json --chaindata nodes.json --path-types

SIGINT/SIGTERM stop the walk after the current node; the final report and
exports are still written and the exit status is 0.
"""

import logging
import sys

import requests

from accounts import AccountSelection
from analyzer import TrieAnalyzer
from cancellation import CancellationFlag, install_signal_handlers
from config import AnalyticsConfig, parse_args
from errors import TrieAnalyticsError
from helpers import RPCError, fetch_head_state_root
from reporting import CheckpointScheduler
from trie_store import TrieDatabase, TrieStoreError, open_node_source

logger = logging.getLogger("trie_analytics")

LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"


def configure_logging(level: str) -> None:
    logging.basicConfig(level=getattr(logging, level), format=LOG_FORMAT, stream=sys.stderr, force=True)


def resolve_state_root(config: AnalyticsConfig, db: TrieDatabase) -> bytes:
    if config.state_root is not None:
        logger.info("using given state root 0x%s", config.state_root.hex())
        return config.state_root
    if config.rpc_url:
        root = fetch_head_state_root(config.rpc_url)
        logger.info("head state root from %s: 0x%s", config.rpc_url, root.hex())
        return root
    root = db.head_state_root()
    logger.info("head state root from %s: 0x%s", config.chaindata, root.hex())
    return root


def build_analyzer(config: AnalyticsConfig, db: TrieDatabase, cancel: CancellationFlag, out=None) -> TrieAnalyzer:
    selection = AccountSelection(config.addresses) if config.addresses else None
    if selection is not None:
        logger.info("walk narrowed to %d accounts", len(selection))

    scheduler = CheckpointScheduler(config.export_dir, interval=config.report_interval, out=out)
    return TrieAnalyzer(
        db,
        scheduler,
        cancel=cancel,
        account_filter=selection,
        path_shapes=config.path_shapes,
        per_account_storage=selection is not None,
    )


def run(config: AnalyticsConfig, cancel: CancellationFlag, out=None) -> int:
    logger.info("db type: %s (%s)", config.backend, config.chaindata)
    try:
        source = open_node_source(config.backend, config.chaindata)
    except (OSError, ValueError, TrieStoreError) as e:
        logger.error("opening %s database: %s", config.backend, e)
        return 1

    db = TrieDatabase(source)
    try:
        try:
            root = resolve_state_root(config, db)
            analyzer = build_analyzer(config, db, cancel, out=out)
        except (RPCError, requests.RequestException, TrieStoreError, ValueError, OSError) as e:
            logger.error("resolving state root: %s", e)
            return 1

        try:
            state = analyzer.run(root, start_key=config.start_key)
        except TrieAnalyticsError as e:
            logger.error("%s", e)
            return 1

        if state.cancelled:
            logger.warning("walk cancelled (%s); partial results exported to %s", cancel.reason, config.export_dir)
        else:
            logger.info("walk completed; results exported to %s", config.export_dir)
        return 0
    finally:
        db.close()


def main(argv=None) -> int:
    config = parse_args(argv)
    configure_logging(config.log_level)

    cancel = CancellationFlag()
    restore_signals = install_signal_handlers(cancel)
    try:
        return run(config, cancel)
    finally:
        restore_signals()


if __name__ == "__main__":
    sys.exit(main())
