"""Cooperative cancellation shared by workers and child processes."""
from __future__ import annotations

import logging
import subprocess
import threading
from typing import List, Optional, Sequence, Tuple

from .errors import CancellationError

POLL_INTERVAL = 0.05


class CancelToken:
    """A one-shot flag checked by workers and enforced on subprocesses."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise CancellationError("cancelled")

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._event.wait(timeout)

    def run(self, cmd: Sequence[str], stdin_bytes: Optional[bytes] = None) -> Tuple[int, str]:
        """Run *cmd* to completion unless the token fires first.

        Returns ``(returncode, output)`` with stdout and stderr merged. The
        child is killed and :class:`CancellationError` raised on cancel.
        """
        self.raise_if_cancelled()
        logging.debug("run: %s", " ".join(cmd))
        proc = subprocess.Popen(
            list(cmd),
            stdin=subprocess.PIPE if stdin_bytes is not None else subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
        )
        chunks: List[bytes] = []

        def drain():
            while True:
                chunk = proc.stdout.read(4096)
                if not chunk:
                    break
                chunks.append(chunk)

        def feed():
            try:
                proc.stdin.write(stdin_bytes)
            except (BrokenPipeError, ValueError) as e:
                # the child exited early; its output carries the reason
                logging.debug("stdin closed by %s: %s", cmd[0], e)
            finally:
                try:
                    proc.stdin.close()
                except BrokenPipeError:
                    pass

        threads = [threading.Thread(target=drain, daemon=True)]
        if stdin_bytes is not None:
            threads.append(threading.Thread(target=feed, daemon=True))
        for t in threads:
            t.start()

        while proc.poll() is None:
            if self._event.wait(POLL_INTERVAL):
                proc.kill()
                proc.wait()
                for t in threads:
                    t.join()
                output = b"".join(chunks).decode("utf8", errors="replace")
                raise CancellationError(f"cancelled: {cmd[0]}\n{output}".rstrip())
        for t in threads:
            t.join()
        return proc.returncode, b"".join(chunks).decode("utf8", errors="replace")
