"""
Uniform leaf-oriented view over a trie node iterator.

State and storage tries are walked through the same `TrieWalker`, so the
analyzer never deals with the store's node representation. Each call is a
direct pass-through to the wrapped iterator; nothing is buffered.
"""

from collections import namedtuple
from typing import Optional

LeafEvent = namedtuple("LeafEvent", ["depth", "key", "value"])


class TrieWalker:
    """
    Wraps a node iterator exposing `next(descend)`, `leaf()`, `leaf_proof()`,
    `leaf_key()`, `leaf_blob()` and `error()`.
    """

    def __init__(self, iterator):
        self.iterator = iterator

    def next(self, descend: bool = True) -> bool:
        # descend=True visits every subtree; the walk measures the whole trie
        return self.iterator.next(descend)

    def is_leaf(self) -> bool:
        return self.iterator.leaf()

    def leaf_depth(self) -> int:
        """Authenticating path length: number of nodes in the leaf's proof."""
        return len(self.iterator.leaf_proof())

    def leaf_key(self) -> bytes:
        return self.iterator.leaf_key()

    def leaf_value(self) -> bytes:
        return self.iterator.leaf_blob()

    def leaf_shape(self) -> str:
        """Node kinds on the way to the leaf, e.g. `B.B.L`."""
        return ".".join(self.iterator.leaf_path_types())

    def leaf_event(self) -> LeafEvent:
        return LeafEvent(self.leaf_depth(), self.leaf_key(), self.leaf_value())

    def err(self) -> Optional[Exception]:
        """Failure that ended the walk; None after a normal exhaustion."""
        return self.iterator.error()


def open_walker(trie, start_key: Optional[bytes] = None) -> TrieWalker:
    return TrieWalker(trie.node_iterator(start_key))
