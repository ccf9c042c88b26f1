"""
Background readers that empty a stream into memory until end-of-stream.
"""

import os
import threading
from typing import BinaryIO, List, Optional, Union

CHUNK_SIZE = 64 * 1024


def decode_output(data: bytes) -> str:
    """Decode captured bytes, keeping undecodable input visible instead of failing."""
    return data.decode("utf-8", errors="replace")


class StreamDrain(threading.Thread):
    """
    Reads a binary stream or a raw file descriptor to end-of-stream on its own thread.

    Each captured stream gets its own drain so that a producer blocked on a full
    pipe buffer for one stream can never stall the reader of the other.
    """

    def __init__(self, source: Union[BinaryIO, int], name: str = "drain"):
        super().__init__(name=name, daemon=True)
        self.source = source
        self._chunks: List[bytes] = []
        self.error: Optional[BaseException] = None

    def _read(self) -> bytes:
        if isinstance(self.source, int):
            return os.read(self.source, CHUNK_SIZE)
        read = getattr(self.source, "read1", self.source.read)
        return read(CHUNK_SIZE)

    def run(self):
        try:
            while True:
                chunk = self._read()
                if not chunk:
                    break
                self._chunks.append(chunk)
        except (OSError, ValueError) as e:
            # The stream was closed underneath us (e.g. after a kill); keep what we have.
            self.error = e

    def data(self) -> bytes:
        return b"".join(self._chunks)

    def text(self) -> str:
        return decode_output(self.data())
