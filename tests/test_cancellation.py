import os
import sys
import signal
import logging
from pathlib import Path

project_root = str(Path(__file__).parent.parent)
src_dir = os.path.join(project_root, "src")
sys.path.insert(0, src_dir)

from cancellation import CancellationFlag, install_signal_handlers


def test_flag_starts_clear():
    flag = CancellationFlag()
    assert not flag.is_set()
    assert flag.reason is None


def test_first_reason_is_kept():
    flag = CancellationFlag()
    flag.cancel("SIGINT")
    flag.cancel("SIGTERM")

    assert flag.is_set()
    assert flag.reason == "SIGINT"


def test_signal_sets_flag_and_restore(caplog):
    flag = CancellationFlag()
    before = signal.getsignal(signal.SIGTERM)

    restore = install_signal_handlers(flag, signals=(signal.SIGTERM,))
    try:
        with caplog.at_level(logging.WARNING):
            signal.raise_signal(signal.SIGTERM)
            signal.raise_signal(signal.SIGTERM)
    finally:
        restore()

    assert flag.is_set()
    assert flag.reason == "SIGTERM"
    assert "SIGTERM received, stopping" in caplog.text
    assert "received again" in caplog.text
    assert signal.getsignal(signal.SIGTERM) == before
