import os
import sys
from pathlib import Path

import pytest

project_root = str(Path(__file__).parent.parent)
src_dir = os.path.join(project_root, "src")
sys.path.insert(0, src_dir)

import config
from config import parse_args

XEN = "0x06450dee7fd2fb8e39061434babcfc05599a6fb8"


def test_defaults():
    cfg = parse_args(["--chaindata", "/data/geth/chaindata"])

    assert cfg.chaindata == "/data/geth/chaindata"
    assert cfg.backend == "leveldb"
    assert cfg.report_interval == 60.0
    assert cfg.export_dir == "trie_stats"
    assert cfg.state_root is None
    assert cfg.addresses == []
    assert not cfg.path_shapes


def test_empty_chaindata_is_rejected(capsys):
    with pytest.raises(SystemExit) as excinfo:
        parse_args([])

    assert excinfo.value.code == 2
    assert "--chaindata path can't be empty" in capsys.readouterr().err


@pytest.mark.parametrize("interval", ["0", "-5"])
def test_non_positive_interval_is_rejected(interval):
    with pytest.raises(SystemExit):
        parse_args(["--chaindata", "x", "--report-interval", interval])


def test_bad_state_root_is_rejected():
    with pytest.raises(SystemExit):
        parse_args(["--chaindata", "x", "--state-root", "0xzz"])


def test_state_root_and_start_key():
    cfg = parse_args(["--chaindata", "x", "--state-root", "0x" + "11" * 32, "--start-key", "0x80"])

    assert cfg.state_root == b"\x11" * 32
    assert cfg.start_key == b"\x80"


def test_addresses_from_flags_and_file(tmp_path):
    address_file = tmp_path / "addresses.txt"
    address_file.write_text("# watched\n0xdac17f958d2ee523a2206206994597c13d831ec7 # USDT\n")

    cfg = parse_args([
        "--chaindata", "x",
        "--address", f"{XEN} # XEN",
        "--address-file", str(address_file),
    ])

    assert cfg.addresses == [(XEN, "XEN"), ("0xdac17f958d2ee523a2206206994597c13d831ec7", "USDT")]


def test_use_rpc_reads_rpc_file(tmp_path, monkeypatch):
    monkeypatch.setattr(config, "project_root", str(tmp_path))

    with pytest.raises(SystemExit):
        parse_args(["--chaindata", "x", "--use-rpc"])

    (tmp_path / "rpc.txt").write_text("http://localhost:8545\n")
    assert parse_args(["--chaindata", "x", "--use-rpc"]).rpc_url == "http://localhost:8545"
