"""Append-only progress log for a scale run.

Progress lines are what a build pipeline shows as the step's console
output. Every line is kept in memory so the full text can be returned with
the result, optionally echoed to a binary stream, and mirrored to the
``kube_scaler.progress`` logger.
"""

from __future__ import annotations

import io
import logging
import threading
from typing import BinaryIO, Optional

logger = logging.getLogger("kube_scaler.progress")

PREFIX = "KubeScaler "


class ProgressLog:
    """Sink for human-readable progress lines and raw command output."""

    def __init__(self, stream: Optional[BinaryIO] = None, encoding: str = "utf-8"):
        """Initialize the progress log.

        Args:
            stream: Optional binary stream that receives a copy of all output.
            encoding: Encoding used for progress lines.
        """
        self._buffer = io.BytesIO()
        self._stream = stream
        self._encoding = encoding
        self._lock = threading.Lock()

    def line(self, message: str) -> None:
        """Append one progress line."""
        logger.debug(message)
        self._append(f"{PREFIX}{message}\n".encode(self._encoding))

    def write(self, data: bytes) -> None:
        """Append raw bytes, e.g. streamed command output."""
        if data:
            self._append(data)

    def exception(self, message: str, exc: BaseException) -> None:
        """Append a line describing a recovered error."""
        logger.debug(message, exc_info=exc)
        self.line(f"{message}: {type(exc).__name__}: {exc}")

    def _append(self, data: bytes) -> None:
        with self._lock:
            self._buffer.write(data)
            if self._stream is not None:
                self._stream.write(data)
                self._stream.flush()

    @property
    def text(self) -> str:
        with self._lock:
            return self._buffer.getvalue().decode(self._encoding, errors="replace")

    def lines(self) -> list[str]:
        return self.text.splitlines()
