from typing import Optional


def _hex(value: Optional[bytes]) -> str:
    if value is None:
        return "<unknown>"
    return "0x" + bytes(value).hex()


class TrieAnalyticsError(Exception):
    """Base class for errors raised by the analytics pass."""


class TraversalFailure(TrieAnalyticsError):
    """The trie iterator stopped on missing/corrupt node data or store I/O."""

    def __init__(self, root: bytes, key: Optional[bytes] = None, cause: Optional[BaseException] = None,
                 storage_root: Optional[bytes] = None):
        self.root = root
        self.key = key
        self.storage_root = storage_root
        self.cause = cause

        message = f"trie traversal failed under root {_hex(root)}"
        if key is not None:
            message += f" at key {_hex(key)}"
        if storage_root is not None:
            message += f" (storage root {_hex(storage_root)})"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)


class CorruptAccountData(TrieAnalyticsError):
    """A state trie leaf could not be decoded as an account."""

    def __init__(self, key: bytes, cause: Optional[BaseException] = None):
        self.key = key
        self.cause = cause
        message = f"corrupt account data at leaf {_hex(key)}"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)


class WriteFailure(TrieAnalyticsError):
    """Exporting a histogram snapshot to disk failed."""

    def __init__(self, path, cause: Optional[BaseException] = None):
        self.path = path
        self.cause = cause
        message = f"failed to write {path}"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)
