import os
import sys
from pathlib import Path

import pytest
import rlp
from eth_utils import keccak
from trie import HexaryTrie

project_root = str(Path(__file__).parent.parent)
src_dir = os.path.join(project_root, "src")
sys.path.insert(0, src_dir)

from accounts import EMPTY_ROOT
from trie_store import (
    MissingTrieNode,
    NodeDumpSource,
    TrieDatabase,
    TrieStoreError,
    open_node_source,
    write_node_dump,
)
from trie_walk import TrieWalker, open_walker

from scripted_tries import (
    HEAD_HASH,
    HEAD_NUMBER,
    chain_entries,
    header_rlp,
    leveldb_source,
)
from trie_store import HEAD_BLOCK_KEY, HEADER_NUMBER_PREFIX, HEADER_PREFIX

## Auxiliary functions

# Large enough that every leaf node is stored by hash
BIG_VALUE = b"\x42" * 40


def key32(prefix_hex: str) -> bytes:
    return bytes.fromhex(prefix_hex).ljust(32, b"\x00")


def build_trie(items, db=None):
    db = {} if db is None else db
    t = HexaryTrie(db)
    for key, value in items.items():
        t[key] = value
    return t.root_hash, db


def walk_leaves(trie, start_key=None):
    walker = open_walker(trie, start_key)
    leaves = []
    while walker.next(True):
        if walker.is_leaf():
            leaves.append((walker.leaf_key(), walker.leaf_depth(), walker.leaf_shape(), walker.leaf_value()))
    assert walker.err() is None
    return leaves

## Tests


def test_empty_root_constant():
    assert EMPTY_ROOT.hex() == "56e81f171bcc55a6ff8345e692c0f86e5b48e01b996cadc001622fb5e363b421"
    assert EMPTY_ROOT == keccak(rlp.encode(b""))


def test_empty_trie_has_no_nodes():
    db = TrieDatabase({})
    trie = db.open_trie(EMPTY_ROOT)
    walker = open_walker(trie)

    assert trie.is_empty()
    assert walker.next(True) is False
    assert walker.err() is None


def test_single_leaf_trie_depth_one():
    root, nodes = build_trie({key32("10"): BIG_VALUE})
    leaves = walk_leaves(TrieDatabase(nodes).open_trie(root))

    assert leaves == [(key32("10"), 1, "L", BIG_VALUE)]


def test_branch_depths_and_key_order():
    items = {
        key32("21"): BIG_VALUE,
        key32("10"): BIG_VALUE,
        key32("20"): BIG_VALUE,
    }
    root, nodes = build_trie(items)
    leaves = walk_leaves(TrieDatabase(nodes).open_trie(root))

    assert [(key, depth, shape) for key, depth, shape, _ in leaves] == [
        (key32("10"), 2, "B.L"),
        (key32("20"), 3, "B.B.L"),
        (key32("21"), 3, "B.B.L"),
    ]


def test_extension_node_path():
    items = {key32("1234"): BIG_VALUE, key32("1235"): BIG_VALUE}
    root, nodes = build_trie(items)
    leaves = walk_leaves(TrieDatabase(nodes).open_trie(root))

    assert [(depth, shape) for _, depth, shape, _ in leaves] == [(3, "E.B.L"), (3, "E.B.L")]


def test_inline_nodes_do_not_count_towards_depth():
    # Tiny nodes are embedded in their parent, so only the root is hashed
    root, nodes = build_trie({b"\x01": b"a", b"\x02": b"b"})
    leaves = walk_leaves(TrieDatabase(nodes).open_trie(root))

    assert leaves == [(b"\x01", 1, "E.B.L", b"a"), (b"\x02", 1, "E.B.L", b"b")]


def test_leaf_proof_holds_hashed_nodes():
    items = {key32("10"): BIG_VALUE, key32("20"): BIG_VALUE}
    root, nodes = build_trie(items)
    iterator = TrieDatabase(nodes).open_trie(root).node_iterator()

    assert iterator.next(True)
    assert not iterator.leaf()
    assert iterator.hash() == root
    assert iterator.next(True)
    assert iterator.leaf()

    proof = iterator.leaf_proof()
    assert len(proof) == 2
    assert keccak(proof[0]) == root
    assert all(keccak(node) in nodes for node in proof)


def test_branch_value_is_a_leaf():
    root, nodes = build_trie({b"\x01": BIG_VALUE, b"\x01\x02": BIG_VALUE})
    leaves = walk_leaves(TrieDatabase(nodes).open_trie(root))

    assert sorted(key for key, _, _, _ in leaves) == [b"\x01", b"\x01\x02"]


def test_skip_children_without_descend():
    items = {key32("10"): BIG_VALUE, key32("20"): BIG_VALUE}
    root, nodes = build_trie(items)
    walker = TrieWalker(TrieDatabase(nodes).open_trie(root).node_iterator())

    assert walker.next(True)
    assert walker.next(False) is False
    assert walker.err() is None


def test_start_key_skips_earlier_leaves():
    items = {key32("10"): BIG_VALUE, key32("20"): BIG_VALUE, key32("21"): BIG_VALUE}
    root, nodes = build_trie(items)
    trie = TrieDatabase(nodes).open_trie(root)

    assert [key for key, _, _, _ in walk_leaves(trie, key32("20"))] == [key32("20"), key32("21")]
    assert [key for key, _, _, _ in walk_leaves(trie, key32("2001"))] == [key32("21")]
    assert walk_leaves(trie, key32("ff")) == []


def test_missing_child_node_surfaces_as_error():
    items = {key32("10"): BIG_VALUE, key32("20"): BIG_VALUE}
    root, nodes = build_trie(items)
    broken = {root: nodes[root]}

    walker = open_walker(TrieDatabase(broken).open_trie(root))
    assert walker.next(True)
    assert walker.next(True) is False
    assert isinstance(walker.err(), MissingTrieNode)
    # stays finished
    assert walker.next(True) is False


def test_open_missing_root_raises():
    with pytest.raises(MissingTrieNode):
        TrieDatabase({}).open_trie(b"\x01" * 32)


def test_open_storage_trie_records_owner():
    root, nodes = build_trie({key32("10"): BIG_VALUE})
    trie = TrieDatabase(nodes).open_storage_trie(b"\xaa" * 32, b"\xcc" * 32, root)

    assert trie.owner == b"\xcc" * 32
    assert trie.root == root


def test_corrupt_node_surfaces_as_error():
    root, nodes = build_trie({key32("10"): BIG_VALUE, key32("20"): BIG_VALUE})
    nodes = {h: (encoded if h == root else b"\xff\x00") for h, encoded in nodes.items()}

    walker = open_walker(TrieDatabase(nodes).open_trie(root))
    while walker.next(True):
        pass
    assert isinstance(walker.err(), TrieStoreError)


def test_node_dump_round_trip(tmp_path):
    root, nodes = build_trie({key32("10"): BIG_VALUE, key32("20"): BIG_VALUE})
    path = tmp_path / "nodes.json"
    write_node_dump(path, root, nodes)

    source = open_node_source("nodes-json", path)
    assert isinstance(source, NodeDumpSource)

    db = TrieDatabase(source)
    assert db.head_state_root() == root
    assert len(walk_leaves(db.open_trie(root))) == 2


def test_dict_source_has_no_head():
    with pytest.raises(TrieStoreError):
        TrieDatabase({}).head_state_root()


def test_unknown_backend():
    with pytest.raises(ValueError):
        open_node_source("pebble", "/nowhere")


def test_missing_storage_node_names_owner():
    root, nodes = build_trie({key32("10"): BIG_VALUE, key32("20"): BIG_VALUE})
    account_key = b"\xcc" * 32
    trie = TrieDatabase({root: nodes[root]}).open_storage_trie(b"\xaa" * 32, account_key, root)

    walker = open_walker(trie)
    while walker.next(True):
        pass

    assert isinstance(walker.err(), MissingTrieNode)
    assert walker.err().owner == account_key
    assert "0x" + "cc" * 32 in str(walker.err())


def test_open_missing_storage_root_names_owner():
    with pytest.raises(MissingTrieNode) as excinfo:
        TrieDatabase({}).open_storage_trie(b"\xaa" * 32, b"\xcc" * 32, b"\x01" * 32)

    assert "storage trie of 0x" + "cc" * 32 in str(excinfo.value)


def test_leveldb_head_state_root():
    state_root = b"\x5a" * 32
    source = leveldb_source(chain_entries(header_rlp(state_root)))

    db = TrieDatabase(source)
    assert db.head_state_root() == state_root

    db.close()
    assert source.db.closed


@pytest.mark.parametrize("missing_key, message", [
    (HEAD_BLOCK_KEY, "no head block"),
    (HEADER_NUMBER_PREFIX + HEAD_HASH, "no block number"),
    (HEADER_PREFIX + HEAD_NUMBER + HEAD_HASH, "not found"),
])
def test_leveldb_head_missing_pointer(missing_key, message):
    entries = chain_entries(header_rlp(b"\x5a" * 32))
    del entries[missing_key]

    with pytest.raises(TrieStoreError, match=message):
        leveldb_source(entries).head_state_root()


@pytest.mark.parametrize("header", [
    b"\xff\xff",
    rlp.encode([b"\x01" * 32, b"\x02" * 32]),
    rlp.encode(b"not a header"),
])
def test_leveldb_corrupt_head_header(header):
    with pytest.raises(TrieStoreError, match="is not valid RLP"):
        leveldb_source(chain_entries(header)).head_state_root()
