"""
binstrings.source
Input loading for a scan.
Public API
load_buffer(path)        → bytes   (whole file)
read_stream(stream)      → bytes   (whole binary stream, e.g. stdin)
load_input(path | None)  → Source
The whole input is read into memory before scanning starts; there is no
streaming mode.  Read failures are not caught here: an OSError from opening
or reading the file propagates so that no partial scan happens.
"""
from __future__ import annotations
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Optional

logger = logging.getLogger(__name__)

# Read large inputs in blocks of this size
READ_BLOCK_BYTES = 16 * 1024 * 1024  # 16 MB

# Display name used for decoration when reading standard input
STDIN_NAME = "<stdin>"

# ---------------------------------------------------------------------------
# Data containers
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class Source:
    """The loaded buffer and the name it should be reported under."""
    name: str
    data: bytes

    def __len__(self) -> int:
        return len(self.data)

# ---------------------------------------------------------------------------
# Readers
# ---------------------------------------------------------------------------
def read_stream(stream: BinaryIO) -> bytes:
    """Read *stream* to the end in :data:`READ_BLOCK_BYTES` blocks."""
    blocks: list[bytes] = []
    while True:
        block = stream.read(READ_BLOCK_BYTES)
        if not block:
            break
        blocks.append(block)
    return b"".join(blocks)

def load_buffer(path: Path | str) -> bytes:
    """
    Return the complete contents of *path*.
    Raises
    ------
    OSError
        If the file cannot be opened or read (missing, directory, permission).
    """
    path = Path(path)
    logger.info("Opening %s to search it for strings", path)
    with path.open("rb") as fh:
        data = read_stream(fh)
    logger.info("Read %d bytes from %s", len(data), path)
    return data

def load_input(path: Optional[Path | str] = None, stdin: Optional[BinaryIO] = None) -> Source:
    """
    Load the scan input from *path*, or from standard input when *path* is
    ``None`` or ``"-"``.
    """
    if path is None or str(path) == "-":
        stream = stdin if stdin is not None else sys.stdin.buffer
        data = read_stream(stream)
        logger.info("Read %d bytes from standard input", len(data))
        return Source(name=STDIN_NAME, data=data)
    return Source(name=str(path), data=load_buffer(path))
