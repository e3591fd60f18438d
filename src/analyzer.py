"""
Two-level walk over a state trie and the storage tries hanging off it.

Every state trie leaf is an account. Its depth goes into the state depth
histogram; when the account owns storage, its storage trie is opened and
walked to the end, each slot's depth going into the storage depth
histogram and the slot count into the slots-per-account histogram.

The walk polls a cancellation flag before every node and hands the run
state to a checkpoint scheduler, which prints and exports the histograms
when its interval has passed and once more when the run ends, however it
ends.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from accounts import AccountSelection, decode_account
from cancellation import CancellationFlag
from errors import TraversalFailure
from histogram import Histogram
from trie_store import TrieStoreError
from trie_walk import open_walker

logger = logging.getLogger(__name__)

STATE_DEPTHS_FILE = "state_trie_depths.csv"
STORAGE_DEPTHS_FILE = "storage_trie_depths.csv"
SLOTS_PER_ACCOUNT_FILE = "storage_slots_per_account.csv"
PATH_SHAPES_FILE = "state_trie_path_types.csv"

STATUS_RUNNING = "running"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"
STATUS_FAILED = "failed"


@dataclass
class RunState:
    """Histograms and counters of one analysis run."""

    state_depths: Histogram = field(default_factory=lambda: Histogram("State Trie - Depths"))
    storage_depths: Histogram = field(default_factory=lambda: Histogram("Storage Trie - Depths"))
    slots_per_account: Histogram = field(default_factory=lambda: Histogram("Storage Trie - Slots per Account"))
    path_shapes: Optional[Histogram] = None

    # Per selected account: (histogram, export file name)
    account_storage_depths: Dict[bytes, Tuple[Histogram, str]] = field(default_factory=dict)

    accounts: int = 0
    storage_tries: int = 0
    storage_slots: int = 0
    nodes: int = 0
    status: str = STATUS_RUNNING

    @classmethod
    def create(cls, path_shapes: bool = False) -> "RunState":
        state = cls()
        if path_shapes:
            state.path_shapes = Histogram("State Trie - Path types")
        return state

    @property
    def leaves(self) -> int:
        return self.accounts + self.storage_slots

    @property
    def cancelled(self) -> bool:
        return self.status == STATUS_CANCELLED

    def account_storage(self, key: bytes, label: str, file_tag: str) -> Histogram:
        if key not in self.account_storage_depths:
            histogram = Histogram(f"Storage Trie - Depths - {label}")
            self.account_storage_depths[key] = (histogram, f"storage_trie_depths_{file_tag}.csv")
        return self.account_storage_depths[key][0]

    def exports(self) -> List[Tuple[Histogram, str]]:
        """Every live histogram with the file it is exported to."""
        exports = [
            (self.state_depths, STATE_DEPTHS_FILE),
            (self.storage_depths, STORAGE_DEPTHS_FILE),
            (self.slots_per_account, SLOTS_PER_ACCOUNT_FILE),
        ]
        if self.path_shapes is not None:
            exports.append((self.path_shapes, PATH_SHAPES_FILE))
        exports.extend(self.account_storage_depths.values())
        return exports

    def progress_line(self) -> str:
        return (
            f"Walked {self.accounts} accounts, {self.storage_tries} storage tries, "
            f"{self.storage_slots} storage slots ({self.leaves} leaves, {self.nodes} nodes)"
        )


class TrieAnalyzer:
    """
    Drives the walk for one state root.

    Args:
        db: opens tries (`open_trie`, `open_storage_trie`), e.g. `TrieDatabase`
        scheduler: checkpoint scheduler with `check(state)` and `drain(state, final)`
        cancel: stop flag polled before every node
        account_filter: predicate over state trie keys; unselected accounts
            are skipped entirely
        path_shapes: also record each account's node-type path
        per_account_storage: keep a storage depth histogram per selected
            account (needs an AccountSelection filter)
    """

    def __init__(self, db, scheduler, cancel: Optional[CancellationFlag] = None,
                 account_filter: Optional[Callable[[bytes], bool]] = None,
                 path_shapes: bool = False, per_account_storage: bool = False):
        self.db = db
        self.scheduler = scheduler
        self.cancel = cancel if cancel is not None else CancellationFlag()
        self.account_filter = account_filter
        self.path_shapes = path_shapes
        self.per_account_storage = per_account_storage and isinstance(account_filter, AccountSelection)

    def run(self, root: bytes, start_key: Optional[bytes] = None) -> RunState:
        """Walk the tries under `root` and return the final run state.

        Raises:
            TraversalFailure: a trie could not be opened or walked
            CorruptAccountData: a state trie leaf is not an account
        """
        state = RunState.create(path_shapes=self.path_shapes)
        logger.info("walking state trie 0x%s", bytes(root).hex())
        try:
            completed = self._walk_state(state, bytes(root), start_key)
            state.status = STATUS_COMPLETED if completed else STATUS_CANCELLED
        except Exception:
            state.status = STATUS_FAILED
            raise
        finally:
            self.scheduler.drain(state, final=True)
        return state

    def _walk_state(self, state: RunState, root: bytes, start_key: Optional[bytes]) -> bool:
        try:
            trie = self.db.open_trie(root)
        except TrieStoreError as e:
            raise TraversalFailure(root, cause=e) from e

        walker = open_walker(trie, start_key)
        last_key = None
        while walker.next(True):
            if self.cancel.is_set():
                return False
            self.scheduler.check(state)
            state.nodes += 1

            if not walker.is_leaf():
                continue

            # depth is taken here, before any storage trie is touched
            leaf = walker.leaf_event()
            last_key = leaf.key
            if self.account_filter is not None and not self.account_filter(leaf.key):
                continue

            account = decode_account(leaf.key, leaf.value)
            state.accounts += 1
            state.state_depths.observe(leaf.depth)
            if state.path_shapes is not None:
                state.path_shapes.observe(walker.leaf_shape())

            if account.has_storage:
                if not self._walk_storage(state, root, leaf.key, account.storage_root):
                    return False

        if walker.err() is not None:
            raise TraversalFailure(root, key=last_key, cause=walker.err())
        return True

    def _walk_storage(self, state: RunState, root: bytes, account_key: bytes, storage_root: bytes) -> bool:
        try:
            trie = self.db.open_storage_trie(root, account_key, storage_root)
        except TrieStoreError as e:
            raise TraversalFailure(root, key=account_key, storage_root=storage_root, cause=e) from e
        state.storage_tries += 1

        account_histogram = None
        if self.per_account_storage:
            account_histogram = state.account_storage(
                account_key,
                self.account_filter.label(account_key),
                self.account_filter.address(account_key),
            )

        walker = open_walker(trie)
        slots = 0
        while walker.next(True):
            if self.cancel.is_set():
                # a partially walked account gets no slots-per-account entry
                return False
            self.scheduler.check(state)
            state.nodes += 1

            if not walker.is_leaf():
                continue

            depth = walker.leaf_depth()
            state.storage_depths.observe(depth)
            if account_histogram is not None:
                account_histogram.observe(depth)
            state.storage_slots += 1
            slots += 1

        if walker.err() is not None:
            raise TraversalFailure(root, key=account_key, storage_root=storage_root, cause=walker.err())

        state.slots_per_account.observe(slots)
        return True
