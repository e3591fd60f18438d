"""
Read-only access to hash-keyed Merkle-Patricia trie nodes.

A node source is anything with `get(node_hash) -> bytes | None`: a plain
dict (what `trie.HexaryTrie` writes into), a JSON node dump, or a geth
chaindata directory in the legacy hash scheme opened through plyvel.

`TrieDatabase` opens state and storage tries over such a source, and each
`Trie` hands out a `NodeIterator` walking its nodes depth first in key
order, the same way geth's `trie.NodeIterator` does. Leaf proofs follow
geth's convention: the root plus every node referenced by hash on the way
down. Nodes embedded inline in their parent are part of the path but not
of the proof.
"""

import json
import logging
from collections import namedtuple
from typing import List, Optional, Tuple

import rlp
from rlp.exceptions import RLPException
from eth_utils import decode_hex, encode_hex
from trie.constants import (
    BLANK_NODE_HASH,
    NODE_TYPE_BRANCH,
    NODE_TYPE_EXTENSION,
    NODE_TYPE_LEAF,
)
from trie.exceptions import InvalidNode
from trie.utils.nibbles import bytes_to_nibbles, nibbles_to_bytes
from trie.utils.nodes import decode_node, extract_key, get_node_type

logger = logging.getLogger(__name__)

# geth rawdb schema (hash scheme)
HEAD_BLOCK_KEY = b"LastBlock"
HEADER_NUMBER_PREFIX = b"H"
HEADER_PREFIX = b"h"
HEADER_STATE_ROOT_INDEX = 3

NODE_SHAPES = {
    NODE_TYPE_BRANCH: "B",
    NODE_TYPE_EXTENSION: "E",
    NODE_TYPE_LEAF: "L",
}


class TrieStoreError(Exception):
    """Base class for node store failures."""


def _owner_suffix(owner: Optional[bytes]) -> str:
    # storage trie nodes name the account key they belong to
    return f" in storage trie of {encode_hex(owner)}" if owner is not None else ""


class MissingTrieNode(TrieStoreError):
    def __init__(self, node_hash: bytes, owner: Optional[bytes] = None):
        self.node_hash = node_hash
        self.owner = owner
        super().__init__(f"missing trie node {encode_hex(node_hash)}{_owner_suffix(owner)}")


class InvalidTrieNode(TrieStoreError):
    def __init__(self, node_hash: Optional[bytes], reason: str, owner: Optional[bytes] = None):
        self.node_hash = node_hash
        self.owner = owner
        where = encode_hex(node_hash) if node_hash is not None else "<inline node>"
        super().__init__(f"invalid trie node {where}{_owner_suffix(owner)}: {reason}")

# =============================================================================
# NODE SOURCES
# =============================================================================

class NodeDumpSource:
    """Nodes loaded from `{"root": "0x..", "nodes": {"0x<hash>": "0x<rlp>"}}`."""

    def __init__(self, path):
        self.path = path
        with open(path, "r") as f:
            data = json.load(f)

        self.nodes = {decode_hex(k): decode_hex(v) for k, v in data.get("nodes", {}).items()}
        self.root = decode_hex(data["root"]) if data.get("root") else None

    def get(self, node_hash: bytes) -> Optional[bytes]:
        return self.nodes.get(node_hash)

    def head_state_root(self) -> bytes:
        if self.root is None:
            raise TrieStoreError(f"node dump {self.path} records no root")
        return self.root

    def close(self) -> None:
        pass


class LevelDBNodeSource:
    """geth chaindata (LevelDB, hash scheme) opened read-only through plyvel."""

    def __init__(self, path, max_open_files: int = 256):
        import plyvel

        self.path = path
        self.db = plyvel.DB(
            str(path),
            create_if_missing=False,
            error_if_exists=False,
            max_open_files=max_open_files,
        )

    def get(self, node_hash: bytes) -> Optional[bytes]:
        return self.db.get(node_hash)

    def head_state_root(self) -> bytes:
        """State root of the head block: LastBlock -> H<hash> -> h<num><hash>."""
        head_hash = self.db.get(HEAD_BLOCK_KEY)
        if not head_hash:
            raise TrieStoreError(f"no head block recorded in {self.path}")

        number = self.db.get(HEADER_NUMBER_PREFIX + head_hash)
        if not number:
            raise TrieStoreError(f"no block number for head {encode_hex(head_hash)}")

        block_number = int.from_bytes(number, "big")
        where = f"head header {block_number} ({encode_hex(head_hash)})"
        header_rlp = self.db.get(HEADER_PREFIX + number + head_hash)
        if not header_rlp:
            raise TrieStoreError(f"{where} not found")

        try:
            header = rlp.decode(header_rlp)
        except RLPException as e:
            raise TrieStoreError(f"{where} is not valid RLP: {e}") from e
        if not isinstance(header, list) or len(header) <= HEADER_STATE_ROOT_INDEX:
            raise TrieStoreError(f"{where} is not valid RLP: not a block header")
        state_root = header[HEADER_STATE_ROOT_INDEX]
        if not isinstance(state_root, bytes):
            raise TrieStoreError(f"{where} is not valid RLP: state root is not a byte string")

        logger.info("head block: %d", block_number)
        return bytes(state_root)

    def close(self) -> None:
        self.db.close()


BACKENDS = {
    "leveldb": LevelDBNodeSource,
    "nodes-json": NodeDumpSource,
}


def open_node_source(backend: str, path):
    try:
        source_cls = BACKENDS[backend]
    except KeyError:
        raise ValueError(f"unknown backend {backend!r}, expected one of {sorted(BACKENDS)}")
    return source_cls(path)


def write_node_dump(path, root: bytes, nodes) -> None:
    """Write a node mapping in the format read by `NodeDumpSource`."""
    data = {
        "root": encode_hex(root),
        "nodes": {encode_hex(k): encode_hex(v) for k, v in nodes.items()},
    }
    with open(path, "w") as f:
        json.dump(data, f, indent=2)

# =============================================================================
# TRIES
# =============================================================================

class TrieDatabase:
    """Opens state and storage tries over a node source."""

    def __init__(self, source):
        self.source = source

    def read_node(self, node_hash: bytes, owner: Optional[bytes] = None) -> bytes:
        encoded = self.source.get(node_hash)
        if not encoded:
            raise MissingTrieNode(node_hash, owner)
        return bytes(encoded)

    def open_trie(self, root: bytes) -> "Trie":
        return self._open(bytes(root))

    def open_storage_trie(self, state_root: bytes, account_key: bytes, storage_root: bytes) -> "Trie":
        return self._open(bytes(storage_root), owner=bytes(account_key))

    def _open(self, root: bytes, owner: Optional[bytes] = None) -> "Trie":
        if root != BLANK_NODE_HASH:
            self.read_node(root, owner)
        return Trie(self, root, owner)

    def head_state_root(self) -> bytes:
        head = getattr(self.source, "head_state_root", None)
        if head is None:
            raise TrieStoreError("node source does not record a chain head")
        return head()

    def close(self) -> None:
        close = getattr(self.source, "close", None)
        if close is not None:
            close()


class Trie:
    def __init__(self, db: TrieDatabase, root: bytes, owner: Optional[bytes] = None):
        self.db = db
        self.root = root
        self.owner = owner

    def is_empty(self) -> bool:
        return self.root == BLANK_NODE_HASH

    def node_iterator(self, start_key: Optional[bytes] = None) -> "NodeIterator":
        return NodeIterator(self.db, self.root, start_key, self.owner)

# =============================================================================
# NODE ITERATOR
# =============================================================================

# A child reference not yet loaded: hash bytes or an inline node list
_Pending = namedtuple("_Pending", ["ref", "path", "depth", "proof", "shape"])

# A node the iterator is positioned on
_Visit = namedtuple("_Visit", ["kind", "node", "node_hash", "path", "depth", "proof", "shape", "value"])

KIND_BRANCH = "branch"
KIND_EXTENSION = "extension"
KIND_LEAF = "leaf"
# value held in slot 16 of a branch node
KIND_VALUE = "value"

_KINDS = {
    NODE_TYPE_BRANCH: KIND_BRANCH,
    NODE_TYPE_EXTENSION: KIND_EXTENSION,
    NODE_TYPE_LEAF: KIND_LEAF,
}


class NodeIterator:
    """
    Pre-order walk over every node of a trie.

    `next(descend)` moves to the following node and returns False once the
    walk is over; with `descend=False` the children of the current node are
    skipped. A store failure ends the walk: `next` returns False and the
    failure is available from `error()`.
    """

    def __init__(self, db: TrieDatabase, root: bytes, start_key: Optional[bytes] = None,
                 owner: Optional[bytes] = None):
        self.db = db
        self.root = root
        self.owner = owner
        self._start = bytes_to_nibbles(start_key) if start_key else None
        self._current: Optional[_Visit] = None
        self._error: Optional[TrieStoreError] = None
        self._pending: List = []
        if root != BLANK_NODE_HASH:
            self._pending.append(_Pending(root, (), 0, (), ()))

    def next(self, descend: bool = True) -> bool:
        if self._error is not None:
            return False
        if self._current is not None and descend:
            self._push_children(self._current)

        while self._pending:
            item = self._pending.pop()
            if isinstance(item, _Visit):
                self._current = item
                return True
            try:
                visit = self._resolve(item)
            except TrieStoreError as e:
                self._error = e
                self._current = None
                self._pending.clear()
                return False
            if visit is not None:
                self._current = visit
                return True

        self._current = None
        return False

    def error(self) -> Optional[TrieStoreError]:
        return self._error

    def leaf(self) -> bool:
        return self._current is not None and self._current.kind in (KIND_LEAF, KIND_VALUE)

    def leaf_key(self) -> bytes:
        return nibbles_to_bytes(self._leaf().path)

    def leaf_blob(self) -> bytes:
        return self._leaf().value

    def leaf_proof(self) -> Tuple[bytes, ...]:
        return self._leaf().proof

    def leaf_path_types(self) -> Tuple[str, ...]:
        """Node kinds from the root down to the leaf: B, E or L each."""
        return self._leaf().shape

    def hash(self) -> Optional[bytes]:
        if self._current is None:
            return None
        return self._current.node_hash

    def _leaf(self) -> _Visit:
        if not self.leaf():
            raise ValueError("iterator is not positioned on a leaf")
        return self._current

    def _before_start(self, path: Tuple[int, ...]) -> bool:
        """True when no key under `path` can reach the start key."""
        if self._start is None:
            return False
        return path < self._start[:len(path)]

    def _resolve(self, pending: _Pending) -> Optional[_Visit]:
        ref = pending.ref
        if isinstance(ref, list):
            node, node_hash = ref, None
            depth, proof = pending.depth, pending.proof
        else:
            node_hash = bytes(ref)
            if len(node_hash) != 32:
                raise InvalidTrieNode(None, f"child reference of {len(node_hash)} bytes", self.owner)
            encoded = self.db.read_node(node_hash, self.owner)
            try:
                node = decode_node(encoded)
            except (InvalidNode, RLPException) as e:
                raise InvalidTrieNode(node_hash, str(e), self.owner) from e
            depth, proof = pending.depth + 1, pending.proof + (encoded,)

        if not isinstance(node, list):
            raise InvalidTrieNode(node_hash, "node is not an RLP list", self.owner)
        try:
            node_type = get_node_type(node)
        except InvalidNode as e:
            raise InvalidTrieNode(node_hash, str(e), self.owner) from e
        if node_type not in _KINDS:
            raise InvalidTrieNode(node_hash, "blank node inside a trie", self.owner)

        path = pending.path
        value = None
        if node_type == NODE_TYPE_LEAF:
            path = path + tuple(extract_key(node))
            value = node[1]
            if self._start is not None and path < self._start:
                return None

        return _Visit(
            _KINDS[node_type], node, node_hash, path, depth, proof,
            pending.shape + (NODE_SHAPES[node_type],), value,
        )

    def _push_children(self, visit: _Visit) -> None:
        node = visit.node
        if visit.kind == KIND_BRANCH:
            # slot 16 comes after the 16 children, so it is pushed first
            if node[16] != b"" and (self._start is None or visit.path >= self._start):
                self._pending.append(visit._replace(kind=KIND_VALUE, value=node[16]))
            for nibble in range(15, -1, -1):
                child = node[nibble]
                if child == b"":
                    continue
                path = visit.path + (nibble,)
                if self._before_start(path):
                    continue
                self._pending.append(_Pending(child, path, visit.depth, visit.proof, visit.shape))
        elif visit.kind == KIND_EXTENSION:
            path = visit.path + tuple(extract_key(node))
            if not self._before_start(path):
                self._pending.append(_Pending(node[1], path, visit.depth, visit.proof, visit.shape))
