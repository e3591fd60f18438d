"""Cooperative stop flag polled by the trie walk."""

import logging
import signal
import threading

logger = logging.getLogger(__name__)

STOP_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class CancellationFlag:
    """Externally settable, non-blocking "please stop" condition."""

    def __init__(self):
        self._event = threading.Event()
        self.reason = None

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
        self._event.set()

    def is_set(self) -> bool:
        return self._event.is_set()


def install_signal_handlers(flag: CancellationFlag, signals=STOP_SIGNALS):
    """Route OS stop signals into `flag`.

    Returns a callable restoring the previous handlers.
    """
    previous = {}

    def handle(signum, frame):
        name = signal.Signals(signum).name
        if flag.is_set():
            logger.warning("%s received again, still finishing the current leaf", name)
        else:
            logger.warning("%s received, stopping after the current leaf", name)
        flag.cancel(name)

    for signum in signals:
        previous[signum] = signal.signal(signum, handle)

    def restore():
        for signum, handler in previous.items():
            signal.signal(signum, handler)

    return restore
