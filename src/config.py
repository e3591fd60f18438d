import argparse
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

from accounts import load_addresses, parse_address_line
from helpers import hex_to_bytes, hex_to_bytes32, read_rpc_url
from reporting import DEFAULT_REPORT_INTERVAL
from trie_store import BACKENDS

project_root = str(Path(__file__).parent.parent)

DEFAULT_BACKEND = "leveldb"
DEFAULT_EXPORT_DIR = "trie_stats"
LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


@dataclass
class AnalyticsConfig:
    chaindata: str
    backend: str = DEFAULT_BACKEND
    state_root: Optional[bytes] = None
    rpc_url: Optional[str] = None
    report_interval: float = DEFAULT_REPORT_INTERVAL
    export_dir: str = DEFAULT_EXPORT_DIR
    addresses: List[Tuple[str, Optional[str]]] = field(default_factory=list)
    path_shapes: bool = False
    start_key: Optional[bytes] = None
    log_level: str = "INFO"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Walk an Ethereum state trie and its storage tries, recording leaf depth histograms'
    )
    parser.add_argument('--chaindata', default='',
                        help='Path of the geth chaindata folder (or node dump for --backend nodes-json)')
    parser.add_argument('--backend', choices=sorted(BACKENDS), default=DEFAULT_BACKEND,
                        help='Node store backend')
    parser.add_argument('--state-root', help='State root to walk (hex); defaults to the chain head')
    parser.add_argument('--rpc-url', help='Resolve the head state root through this JSON-RPC endpoint')
    parser.add_argument('--use-rpc', action='store_true',
                        help='Resolve the head state root through the endpoint in rpc.txt')
    parser.add_argument('--report-interval', type=float, default=DEFAULT_REPORT_INTERVAL,
                        help='Seconds between checkpoint reports (default: %(default)s)')
    parser.add_argument('--export-dir', default=DEFAULT_EXPORT_DIR,
                        help='Directory for the CSV histogram snapshots (default: %(default)s)')
    parser.add_argument('--address', action='append', default=[],
                        help='Only walk this account (repeatable)')
    parser.add_argument('--address-file',
                        help='File with one address per line to walk; "#" starts a label')
    parser.add_argument('--path-types', action='store_true',
                        help='Also record the node-type path of every account leaf')
    parser.add_argument('--start-key', help='Start the state walk at this trie key (hex)')
    parser.add_argument('--log-level', choices=LOG_LEVELS, default='INFO')
    return parser


def parse_args(argv=None) -> AnalyticsConfig:
    parser = build_parser()
    args = parser.parse_args(argv)

    if len(args.chaindata) == 0:
        parser.error("--chaindata path can't be empty")
    if args.report_interval <= 0:
        parser.error("--report-interval must be positive")

    try:
        state_root = hex_to_bytes32(args.state_root) if args.state_root else None
        start_key = hex_to_bytes(args.start_key) if args.start_key else None
    except ValueError as e:
        parser.error(str(e))

    rpc_url = args.rpc_url
    if rpc_url is None and args.use_rpc:
        rpc_url = read_rpc_url(project_root)
        if rpc_url is None:
            parser.error(f"--use-rpc given but no rpc.txt found in {project_root}")

    addresses = []
    for value in args.address:
        parsed = parse_address_line(value)
        if parsed is not None:
            addresses.append(parsed)
    if args.address_file:
        try:
            addresses.extend(load_addresses(args.address_file))
        except OSError as e:
            parser.error(f"cannot read --address-file: {e}")

    return AnalyticsConfig(
        chaindata=args.chaindata,
        backend=args.backend,
        state_root=state_root,
        rpc_url=rpc_url,
        report_interval=args.report_interval,
        export_dir=args.export_dir,
        addresses=addresses,
        path_shapes=args.path_types,
        start_key=start_key,
        log_level=args.log_level,
    )
