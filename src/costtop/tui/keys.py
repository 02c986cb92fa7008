import os
import select
import sys
import termios
import threading
import tty
from queue import Empty, Queue

import structlog

from costtop.events import (
    KEY_BACKSPACE,
    KEY_DOWN,
    KEY_ENTER,
    KEY_ESCAPE,
    KEY_LEFT,
    KEY_RIGHT,
    KEY_UP,
)

logger = structlog.get_logger()

ESCAPE_SEQUENCES = {
    "\x1b[A": KEY_UP,
    "\x1b[B": KEY_DOWN,
    "\x1b[C": KEY_RIGHT,
    "\x1b[D": KEY_LEFT,
    "\x1bOA": KEY_UP,
    "\x1bOB": KEY_DOWN,
    "\x1bOC": KEY_RIGHT,
    "\x1bOD": KEY_LEFT,
}

SINGLE_KEYS = {
    "\r": KEY_ENTER,
    "\n": KEY_ENTER,
    "\x7f": KEY_BACKSPACE,
    "\x08": KEY_BACKSPACE,
}

# seconds select() waits before checking the stop flag
POLL_SECONDS = 0.1
READ_SIZE = 64


def parse_keys(data: "str") -> "list[str]":
    """
    splits a chunk read from the terminal into key names. Known escape
    sequences become arrow keys, a lone escape becomes KEY_ESCAPE and
    unknown sequences are dropped.
    """
    keys: "list[str]" = []
    i = 0
    while i < len(data):
        char = data[i]
        if char == "\x1b":
            sequence = data[i : i + 3]
            if sequence in ESCAPE_SEQUENCES:
                keys.append(ESCAPE_SEQUENCES[sequence])
                i += 3
                continue
            if i + 1 < len(data) and data[i + 1] in "[O":
                # skip an unsupported CSI/SS3 sequence up to its final byte
                j = i + 2
                while j < len(data) and not data[j].isalpha() and data[j] != "~":
                    j += 1
                i = j + 1
                continue
            keys.append(KEY_ESCAPE)
        elif char in SINGLE_KEYS:
            keys.append(SINGLE_KEYS[char])
        elif char.isprintable():
            keys.append(char)
        i += 1
    return keys


class KeyReader:
    """
    reads key presses from the terminal in cbreak mode on a daemon
    thread and hands them to the event loop through a queue.
    """

    def __init__(self, fd: "int | None" = None) -> "None":
        self._fd = sys.stdin.fileno() if fd is None else fd
        self._queue: "Queue[str]" = Queue()
        self._stop = threading.Event()
        self._thread: "threading.Thread | None" = None

    def __enter__(self) -> "KeyReader":
        self.start()
        return self

    def __exit__(self, *exc_info: "object") -> "None":
        self.stop()

    def start(self) -> "None":
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._listen, daemon=True)
        self._thread.start()

    def stop(self) -> "None":
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=1.0)
            self._thread = None

    def get_key(self) -> "str | None":
        """
        returns the next key without blocking.
        """
        try:
            return self._queue.get_nowait()
        except Empty:
            return None

    def _listen(self) -> "None":
        old_settings = termios.tcgetattr(self._fd)
        try:
            tty.setcbreak(self._fd)
            while not self._stop.is_set():
                if not select.select([self._fd], [], [], POLL_SECONDS)[0]:
                    continue
                data = os.read(self._fd, READ_SIZE)
                if not data:
                    break
                for key in parse_keys(data.decode("utf-8", errors="ignore")):
                    self._queue.put(key)
        except OSError:
            logger.exception("key_reader_failed")
        finally:
            termios.tcsetattr(self._fd, termios.TCSADRAIN, old_settings)
