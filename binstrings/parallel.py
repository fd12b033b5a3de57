"""
binstrings.parallel
===================
Chunked parallel scan driver.

The buffer is split into ``workers`` contiguous chunks of ``n // workers``
bytes; the remainder of the division is appended to the last chunk.  Each
chunk is scanned by its own extraction driver on a pool thread with its own
repeat cache and cursor.  Workers share one read-only ``memoryview`` of the
input, so chunks are views and never copies.

Caveats
-------
Chunk boundaries are not aligned to strings or to UTF-8 characters.  A string
that straddles a boundary is cut in two and either half may be dropped or
reported short.  Results come back chunk by chunk in completion order, so
output order across chunks does not follow the buffer; within one chunk it
does.

The matcher is pure Python, so the GIL serialises the pool threads and
parallel mode brings no throughput gain over a sequential scan.  Threads are
kept because they share the buffer without copying it into each worker.
"""

from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Iterator

from binstrings.analysis import (
    NO_STRINGS_HINT,
    ExtractionResult,
    ScanConfig,
    ScanReport,
    extract,
)

logger = logging.getLogger(__name__)

# Smallest buffer that may be split across workers
MIN_PARALLEL_BYTES = 1000

# threads=0 picks this many workers per available CPU
AUTO_WORKERS_PER_CPU = 16


class PartitionError(ValueError):
    """Parallel mode cannot be used on this buffer with this worker count."""


@dataclass(frozen=True)
class Chunk:
    """A contiguous ``[start, end)`` range of the buffer owned by one worker."""
    index: int
    start: int
    end:   int

    @property
    def size(self) -> int:
        return self.end - self.start


def resolve_workers(threads: int) -> int:
    """Translate the ``--threads`` value into a worker count."""
    if threads == 0:
        return (os.cpu_count() or 1) * AUTO_WORKERS_PER_CPU
    return threads


def partition(size: int, workers: int) -> list[Chunk]:
    """
    Split ``size`` bytes into exactly *workers* chunks.

    Raises
    ------
    PartitionError
        If *size* is below :data:`MIN_PARALLEL_BYTES` or there are more
        workers than bytes.
    """
    if size < MIN_PARALLEL_BYTES:
        raise PartitionError(
            f"Cannot use multiple threads on inputs smaller than "
            f"{MIN_PARALLEL_BYTES} bytes (got {size})."
        )
    if workers < 1:
        raise PartitionError(f"Worker count must be positive, got {workers}.")
    chunk_size = size // workers
    if chunk_size == 0:
        raise PartitionError(
            f"Cannot split {size} bytes across {workers} threads."
        )

    chunks: list[Chunk] = []
    for index in range(workers):
        start = index * chunk_size
        end   = size if index == workers - 1 else start + chunk_size
        chunks.append(Chunk(index=index, start=start, end=end))
    return chunks


def _scan_chunk(
    view: memoryview,
    chunk: Chunk,
    config: ScanConfig,
) -> tuple[list[ExtractionResult], int]:
    """Worker body: run an independent driver over one chunk."""
    local = ScanReport()
    results = extract(
        view[chunk.start:chunk.end],
        config,
        base_offset=chunk.start,
        in_worker=True,
        report=local,
    )
    return results, local.suppressed


def iter_parallel(
    buffer: bytes | memoryview,
    config: ScanConfig,
    *,
    report: ScanReport | None = None,
) -> Iterator[list[ExtractionResult]]:
    """
    Scan *buffer* in parallel and yield one batch of results per chunk.

    Batches arrive in completion order.  The partition is validated before any
    worker starts; an exception in any worker cancels the chunks that have not
    started yet and propagates to the caller.
    """
    view    = buffer if isinstance(buffer, memoryview) else memoryview(buffer)
    workers = resolve_workers(config.threads)
    chunks  = partition(len(view), workers)

    if report is not None:
        report.chunks = len(chunks)
    logger.info("Scanning %d bytes with %d threads", len(view), len(chunks))
    for chunk in chunks:
        logger.debug("Chunk %d: [%d, %d) length %d",
                     chunk.index, chunk.start, chunk.end, chunk.size)

    executor = ThreadPoolExecutor(
        max_workers=len(chunks), thread_name_prefix="binstrings"
    )
    try:
        futures = {
            executor.submit(_scan_chunk, view, chunk, config): chunk
            for chunk in chunks
        }
        for future in as_completed(futures):
            chunk = futures[future]
            results, suppressed = future.result()
            logger.debug("Chunk %d finished: %d strings", chunk.index, len(results))
            if report is not None:
                report.suppressed += suppressed
            yield results
    except BaseException:
        executor.shutdown(wait=True, cancel_futures=True)
        raise
    executor.shutdown(wait=True)


def scan_parallel(buffer: bytes | memoryview, config: ScanConfig) -> ScanReport:
    """Run :func:`iter_parallel` to completion and collect a :class:`ScanReport`."""
    report = ScanReport()
    for batch in iter_parallel(buffer, config, report=report):
        report.results.extend(batch)
    if not report.results:
        logger.warning(NO_STRINGS_HINT)
        report.hinted = True
    return report
