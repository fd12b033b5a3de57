"""
binstrings.analysis
===================
Core string extraction engine.
All matching logic lives here, completely decoupled from I/O and the CLI.

How a scan works
----------------
The driver walks the buffer one position at a time and asks the run matcher
whether a *qualifying run* starts there::

    [printable bytes ...] [terminator]

A run qualifies when it is at least ``min_length`` long (bytes in ASCII mode,
characters in UTF-8 mode) and, unless ``null_bytes`` is set, its terminator
is exactly ``0x00``.  After any run, qualifying or not, the cursor jumps past
the whole run, so results never overlap and each byte is matched once.  A
position where no run starts advances the cursor by one.

With ``remove_repeats`` enabled every emitted string is fingerprinted with a
16-bit FNV-1 style hash; once the last ten fingerprints are all equal to the
current one the string is dropped.  Collisions can wrongly drop an unrelated
string.  That is accepted in exchange for speed.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Iterator, NamedTuple

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

PRINTABLE_MIN = 0x20   # space
PRINTABLE_MAX = 0x7E   # ~

# Multi-byte UTF-8 lengths, tried in this order
_UTF8_LENGTHS = (2, 3, 4)

REPEAT_CACHE_SIZE = 10

_FNV_OFFSET_BASIS = 2166136261
_FNV_PRIME        = 16777619
_HASH_MODULUS     = 65536

NO_STRINGS_HINT = (
    "Failed to find any strings. Are the strings null terminated? "
    "Try the --nullbytes flag to disable the null byte requirement. "
    "If you need UTF-8 support, use the --utf8 flag to enable utf8 support."
)


# ---------------------------------------------------------------------------
# Data containers
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ScanConfig:
    """Immutable configuration for a single scan, shared by every worker."""
    min_length:     int  = 4
    threads:        int  = 1
    null_bytes:     bool = False   # True disables the null-terminator requirement
    show_filename:  bool = False
    show_location:  bool = False
    remove_repeats: bool = False
    utf8:           bool = False
    filename:       str  = ""

    def __post_init__(self) -> None:
        if self.min_length < 1:
            raise ValueError(f"min_length must be at least 1, got {self.min_length}")
        if self.threads < 0:
            raise ValueError(f"threads must not be negative, got {self.threads}")

    @property
    def require_null(self) -> bool:
        return not self.null_bytes

    @property
    def parallel(self) -> bool:
        return self.threads != 1


class Match(NamedTuple):
    """Outcome of the run matcher at one position."""
    found:  bool
    length: int   # byte span of the run, defined even when not found


@dataclass(slots=True)
class ExtractionResult:
    """A single extracted string and where it came from."""
    value:  str
    offset: int = 0   # absolute byte offset into the full buffer
    length: int = 0   # byte span of the run (differs from len(value) for UTF-8)

    def __str__(self) -> str:
        return self.value


@dataclass
class ScanReport:
    """Everything one scan produced."""
    results:    list[ExtractionResult] = field(default_factory=list)
    suppressed: int  = 0
    chunks:     int  = 1
    hinted:     bool = False

    @property
    def count(self) -> int:
        return len(self.results)


# ---------------------------------------------------------------------------
# Byte classification
# ---------------------------------------------------------------------------

def is_printable(byte: int) -> bool:
    """Return True if *byte* is printable ASCII (space through ``~``)."""
    return PRINTABLE_MIN <= byte <= PRINTABLE_MAX


def validate_utf8(buffer: bytes | memoryview, index: int) -> tuple[bool, int]:
    """
    Check whether a single multi-byte UTF-8 character starts at *index*.

    Candidate lengths 2, 3 and 4 are tried in order and the first slice that
    decodes to exactly one character wins.  Plain ASCII never validates since
    it is representable in one byte.  Candidates that would run past the end
    of *buffer* are skipped.

    Returns ``(True, length)`` or ``(False, 0)``.
    """
    size = len(buffer)
    if index < 0 or index >= size:
        return False, 0
    if buffer[index] <= 0x7F:
        return False, 0

    for length in _UTF8_LENGTHS:
        if index + length > size:
            break
        try:
            decoded = bytes(buffer[index:index + length]).decode("utf-8")
        except UnicodeDecodeError:
            continue
        if len(decoded) == 1:
            return True, length
    return False, 0


# ---------------------------------------------------------------------------
# Run matching
# ---------------------------------------------------------------------------

def _terminated(buffer: bytes | memoryview, end: int, config: ScanConfig) -> bool:
    """Does the byte at *end* satisfy the termination policy?"""
    if end >= len(buffer):
        # End of buffer ends a run but is never a null terminator
        return not config.require_null
    if config.require_null:
        return buffer[end] == 0x00
    return True


def match_run(buffer: bytes | memoryview, start: int, config: ScanConfig) -> Match:
    """Match a printable-ASCII run starting at *start*."""
    size = len(buffer)
    i = 0
    while start + i < size and is_printable(buffer[start + i]):
        i += 1

    found = i >= config.min_length and _terminated(buffer, start + i, config)
    return Match(found, i)


def match_run_utf8(buffer: bytes | memoryview, start: int, config: ScanConfig) -> Match:
    """
    Match a run of printable ASCII and well-formed multi-byte UTF-8 characters.

    The threshold is checked against the number of characters while the
    returned length is the byte span, so the driver can skip the whole run.
    """
    size = len(buffer)
    i = 0
    chars = 0
    while start + i < size:
        byte = buffer[start + i]
        if is_printable(byte):
            i += 1
            chars += 1
            continue
        if byte < 0x80:
            break
        # Validate at the lead byte itself and consume the whole character
        ok, length = validate_utf8(buffer, start + i)
        if not ok:
            break
        i += length
        chars += 1

    found = chars >= config.min_length and _terminated(buffer, start + i, config)
    return Match(found, i)


def matcher_for(config: ScanConfig):
    """Pick the run matcher for *config*."""
    return match_run_utf8 if config.utf8 else match_run


# ---------------------------------------------------------------------------
# Decoding and fingerprints
# ---------------------------------------------------------------------------

def get_string(buffer: bytes | memoryview, start: int, end: int) -> str:
    """
    Decode ``buffer[start:end]`` as UTF-8.

    A slice that is not valid UTF-8 yields an empty string rather than
    replacement characters.
    """
    raw = bytes(buffer[start:end])
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        logger.debug("Undecodable slice at [%d, %d)", start, end)
        return ""


def fast_hash(text: str) -> int:
    """
    Fingerprint *text* with a 32-bit FNV-1 variant folded to 16 bits.

    Only used for approximate repeat detection; not collision resistant.
    """
    value = _FNV_OFFSET_BASIS
    for byte in text.encode("utf-8"):
        value = ((value ^ byte) * _FNV_PRIME) % _HASH_MODULUS
    return value


# ---------------------------------------------------------------------------
# Repeat suppression
# ---------------------------------------------------------------------------

class RepeatCache:
    """Bounded history of the most recent fingerprints, oldest evicted first."""

    def __init__(self, capacity: int = REPEAT_CACHE_SIZE) -> None:
        self.capacity = capacity
        self._entries: deque[int] = deque(maxlen=capacity)

    def __len__(self) -> int:
        return len(self._entries)

    def should_suppress(self, fingerprint: int) -> bool:
        """True once the cache is full and every entry equals *fingerprint*."""
        return (
            len(self._entries) == self.capacity
            and all(entry == fingerprint for entry in self._entries)
        )

    def push(self, fingerprint: int) -> None:
        self._entries.append(fingerprint)


# ---------------------------------------------------------------------------
# Extraction driver
# ---------------------------------------------------------------------------

def iter_strings(
    buffer: bytes | memoryview,
    config: ScanConfig,
    *,
    base_offset: int = 0,
    report: ScanReport | None = None,
) -> Iterator[ExtractionResult]:
    """
    Yield every qualifying string in *buffer*, in buffer order.

    Parameters
    ----------
    buffer:
        The bytes to scan.  Never modified.
    config:
        Scan configuration.
    base_offset:
        Added to every reported offset; used when *buffer* is a chunk of a
        larger input.
    report:
        Optional report updated with the number of suppressed repeats.
    """
    matcher = matcher_for(config)
    cache   = RepeatCache()
    size    = len(buffer)
    pos     = 0

    while pos < size:
        found, length = matcher(buffer, pos, config)
        if not found:
            # Every suffix of a rejected run shares its terminator and is shorter
            pos += max(length, 1)
            continue

        text = get_string(buffer, pos, pos + length)
        suppress = False
        if config.remove_repeats:
            fingerprint = fast_hash(text)
            suppress = cache.should_suppress(fingerprint)
            cache.push(fingerprint)
        if suppress:
            if report is not None:
                report.suppressed += 1
        else:
            yield ExtractionResult(value=text, offset=base_offset + pos, length=length)
        pos += length


def extract(
    buffer: bytes | memoryview,
    config: ScanConfig,
    *,
    base_offset: int = 0,
    in_worker: bool = False,
    report: ScanReport | None = None,
) -> list[ExtractionResult]:
    """
    Run the extraction driver over *buffer* and return the results.

    Outside a parallel worker an empty result logs the ``--nullbytes`` /
    ``--utf8`` hint.
    """
    results = list(iter_strings(buffer, config, base_offset=base_offset, report=report))
    if not results and not in_worker:
        logger.warning(NO_STRINGS_HINT)
        if report is not None:
            report.hinted = True
    logger.debug("Extracted %d strings from %d bytes at offset %d",
                 len(results), len(buffer), base_offset)
    return results


def scan(buffer: bytes | memoryview, config: ScanConfig) -> ScanReport:
    """
    Scan *buffer* sequentially or in parallel depending on ``config.threads``.

    Raises
    ------
    binstrings.parallel.PartitionError
        If parallel mode was requested on a buffer that is too small.
    """
    if config.parallel:
        # binstrings.parallel imports this module
        from binstrings.parallel import scan_parallel
        return scan_parallel(buffer, config)

    report = ScanReport()
    report.results = extract(buffer, config, report=report)
    return report
