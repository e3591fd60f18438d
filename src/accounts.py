import rlp
from typing import Dict, Iterable, List, Optional, Tuple
from rlp.exceptions import RLPException
from rlp.sedes import Serializable, big_endian_int, Binary
from eth_utils import keccak, to_canonical_address, to_checksum_address
from trie.constants import BLANK_NODE_HASH

from errors import CorruptAccountData

# keccak(rlp(b'')): root hash of a trie with no entries
EMPTY_ROOT = BLANK_NODE_HASH
EMPTY_CODE_HASH = keccak(b"")

# RLP type aliases
Hash32 = Binary.fixed_length(32)
Nonce = big_endian_int
Balance = big_endian_int

# =============================================================================
# STATE TRIE LEAF
# =============================================================================

class Account(Serializable):
    """Value stored at every state trie leaf, keyed by keccak(address)."""
    fields = [
        ('nonce', Nonce),
        ('balance', Balance),
        ('storage_root', Hash32),
        ('code_hash', Hash32),
    ]

    @property
    def has_storage(self) -> bool:
        return self.storage_root != EMPTY_ROOT


def decode_account(key: bytes, blob: bytes) -> Account:
    """Decode a state trie leaf value; failures name the offending leaf key."""
    try:
        return rlp.decode(blob, sedes=Account)
    except RLPException as e:
        raise CorruptAccountData(key, e) from e


def account_trie_key(address) -> bytes:
    """State trie key of an address (the trie is keyed by its keccak hash)."""
    return keccak(to_canonical_address(address))

# =============================================================================
# ADDRESS ALLOW-LIST
# =============================================================================

def parse_address_line(line: str) -> Optional[Tuple[str, Optional[str]]]:
    """Split `0xabc... # label` (or `// label`) into (address, label)."""
    text = line.strip()
    if not text or text.startswith(("#", "//")):
        return None

    label = None
    for marker in ("#", "//"):
        if marker in text:
            text, _, comment = text.partition(marker)
            text = text.strip()
            label = comment.strip() or None
            break

    address = text.rstrip(",").strip().strip('"')
    return address, label


def load_addresses(path) -> List[Tuple[str, Optional[str]]]:
    entries = []
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            parsed = parse_address_line(line)
            if parsed is not None:
                entries.append(parsed)
    return entries


class AccountSelection:
    """
    Predicate over state trie keys narrowing a walk to a set of addresses.

    Keys are keccak(address), so the selection keeps a key -> address map
    and can name the account behind a selected key.
    """

    def __init__(self, addresses: Iterable):
        self.accounts: Dict[bytes, Tuple[str, Optional[str]]] = {}
        for entry in addresses:
            address, label = entry if isinstance(entry, tuple) else (entry, None)
            checksum = to_checksum_address(to_canonical_address(address))
            self.accounts[account_trie_key(checksum)] = (checksum, label)

    def __call__(self, key: bytes) -> bool:
        return bytes(key) in self.accounts

    def __len__(self) -> int:
        return len(self.accounts)

    def address(self, key: bytes) -> str:
        return self.accounts[bytes(key)][0]

    def label(self, key: bytes) -> str:
        address, label = self.accounts[bytes(key)]
        if label:
            return f"{address} ({label})"
        return address
