import os
from typing import Optional

import requests


class RPCError(Exception):
    pass


def get_rpc_payload(method, params):
    return {
        "method": method,
        "params": params,
        "id": 1,
        "jsonrpc": "2.0",
    }


def fetch_block(rpc_url, block="latest", timeout=30):
    payload = get_rpc_payload("eth_getBlockByNumber", [block, False])
    response = requests.post(rpc_url, json=payload, timeout=timeout)
    response.raise_for_status()
    data = response.json()
    if "error" in data:
        raise RPCError(f"RPC Error: {data['error']}")
    if data.get("result") is None:
        raise RPCError(f"RPC Error: block {block} not found")
    return data["result"]


def fetch_head_state_root(rpc_url, block="latest") -> bytes:
    """State root of the node's head block (or of `block`)."""
    return hex_to_bytes32(fetch_block(rpc_url, block)["stateRoot"])


def read_rpc_url(project_root) -> Optional[str]:
    """First line of `rpc.txt` in `project_root`, if the file exists."""
    rpc_file = os.path.join(project_root, "rpc.txt")
    if not os.path.exists(rpc_file):
        return None
    with open(rpc_file, "r") as file:
        return file.read().strip() or None


def hex_to_bytes(hexstr: str) -> bytes:
    no_pref = hexstr[2:] if hexstr.startswith(("0x", "0X")) else hexstr
    return bytes.fromhex(no_pref)


def hex_to_bytes32(hexstr: str) -> bytes:
    """Convert a hex string like '0x...' into exactly 32 bytes (big-endian)."""
    raw = hex_to_bytes(hexstr)
    if len(raw) > 32:
        raise ValueError(f"{hexstr} is longer than 32 bytes")
    return raw.rjust(32, b"\x00")
