"""
Tests for binstrings.parallel
=============================
Run with:  pytest tests/test_parallel.py -v
"""

from __future__ import annotations

import pytest

import binstrings.parallel as parallel
from binstrings.analysis import ScanConfig, extract, scan
from binstrings.parallel import (
    AUTO_WORKERS_PER_CPU,
    MIN_PARALLEL_BYTES,
    Chunk,
    PartitionError,
    iter_parallel,
    partition,
    resolve_workers,
    scan_parallel,
)


def block(strings: list[str], size: int) -> bytes:
    """Null-separated strings padded with zeros to exactly *size* bytes."""
    raw = b"\x00" + b"".join(s.encode("utf-8") + b"\x00" for s in strings)
    assert len(raw) <= size
    return raw + b"\x00" * (size - len(raw))


def aligned_buffer(workers: int = 4, chunk: int = 500) -> bytes:
    return b"".join(
        block([f"chunk{i}-string{j}" for j in range(10)], chunk)
        for i in range(workers)
    )


def as_set(results) -> set[tuple[str, int]]:
    return {(r.value, r.offset) for r in results}


# ---------------------------------------------------------------------------
# partition
# ---------------------------------------------------------------------------

class TestPartition:
    def test_even_split(self):
        chunks = partition(2000, 4)
        assert [(c.start, c.end) for c in chunks] == [
            (0, 500), (500, 1000), (1000, 1500), (1500, 2000),
        ]

    def test_remainder_goes_to_last_chunk(self):
        chunks = partition(1003, 4)
        assert [c.size for c in chunks] == [250, 250, 250, 253]

    def test_chunks_cover_buffer_exactly(self):
        chunks = partition(12345, 7)
        assert chunks[0].start == 0
        assert chunks[-1].end == 12345
        for prev, cur in zip(chunks, chunks[1:]):
            assert prev.end == cur.start
        assert [c.index for c in chunks] == list(range(7))

    def test_too_small(self):
        with pytest.raises(PartitionError):
            partition(500, 4)

    def test_minimum_size_accepted(self):
        assert len(partition(MIN_PARALLEL_BYTES, 2)) == 2

    def test_more_workers_than_bytes(self):
        with pytest.raises(PartitionError):
            partition(1000, 2000)

    def test_is_value_error(self):
        assert issubclass(PartitionError, ValueError)

    def test_chunk_size(self):
        assert Chunk(index=0, start=10, end=35).size == 25


class TestResolveWorkers:
    def test_explicit(self):
        assert resolve_workers(6) == 6

    def test_auto(self, monkeypatch):
        monkeypatch.setattr(parallel.os, "cpu_count", lambda: 2)
        assert resolve_workers(0) == 2 * AUTO_WORKERS_PER_CPU

    def test_auto_unknown_cpu_count(self, monkeypatch):
        monkeypatch.setattr(parallel.os, "cpu_count", lambda: None)
        assert resolve_workers(0) == AUTO_WORKERS_PER_CPU


# ---------------------------------------------------------------------------
# scan_parallel
# ---------------------------------------------------------------------------

class TestScanParallel:
    def test_matches_sequential_when_aligned(self):
        data = aligned_buffer()
        sequential = extract(data, ScanConfig())
        report = scan_parallel(data, ScanConfig(threads=4))
        assert report.chunks == 4
        assert len(sequential) == 40
        assert as_set(report.results) == as_set(sequential)

    def test_scan_dispatches_to_parallel(self):
        data = aligned_buffer()
        report = scan(data, ScanConfig(threads=4))
        assert report.chunks == 4
        assert report.count == 40

    def test_order_preserved_within_chunk(self):
        data = aligned_buffer()
        for batch in iter_parallel(data, ScanConfig(threads=4)):
            offsets = [r.offset for r in batch]
            assert offsets == sorted(offsets)

    def test_offsets_are_absolute(self):
        data = aligned_buffer()
        report = scan_parallel(data, ScanConfig(threads=4))
        for r in report.results:
            assert data[r.offset:r.offset + r.length].decode() == r.value

    def test_string_across_boundary_is_cut(self):
        data = bytearray(1000)
        data[495:509] = b"boundarystring"
        data = bytes(data)
        assert [r.value for r in extract(data, ScanConfig())] == ["boundarystring"]
        report = scan_parallel(data, ScanConfig(threads=2))
        assert as_set(report.results) == {("arystring", 500)}

    def test_remainder_bytes_scanned(self):
        data = bytes(1000) + b"tail\x00"
        report = scan_parallel(data, ScanConfig(threads=4))
        assert as_set(report.results) == {("tail", 1000)}

    def test_repeat_caches_not_shared(self):
        data = b"spam\x00" * 200
        cfg = ScanConfig(remove_repeats=True, threads=4)
        assert len(extract(data, ScanConfig(remove_repeats=True))) == 10
        report = scan_parallel(data, cfg)
        assert report.count == 40
        assert report.suppressed == 160

    def test_rejects_small_buffer_before_scanning(self, monkeypatch):
        def fail(*args, **kwargs):
            raise AssertionError("worker started")

        monkeypatch.setattr(parallel, "_scan_chunk", fail)
        with pytest.raises(PartitionError):
            scan(b"x" * 500, ScanConfig(threads=4))

    def test_worker_failure_is_fatal(self, monkeypatch):
        real = parallel._scan_chunk

        def flaky(view, chunk, config):
            if chunk.index == 2:
                raise RuntimeError("worker died")
            return real(view, chunk, config)

        monkeypatch.setattr(parallel, "_scan_chunk", flaky)
        with pytest.raises(RuntimeError, match="worker died"):
            scan_parallel(aligned_buffer(), ScanConfig(threads=4))

    def test_no_strings_hint(self, caplog):
        with caplog.at_level("WARNING"):
            report = scan_parallel(bytes(2000), ScanConfig(threads=4))
        assert report.count == 0
        assert report.hinted
        assert caplog.text.count("--nullbytes") == 1

    def test_utf8_parallel(self):
        data = block(["naïve", "café", "¢¢¢¢"], 600) + block(["plain"], 600)
        cfg = ScanConfig(utf8=True)
        report = scan_parallel(data, ScanConfig(utf8=True, threads=2))
        assert as_set(report.results) == as_set(extract(data, cfg))
        assert {"café", "¢¢¢¢"} <= {r.value for r in report.results}

    def test_accepts_memoryview(self):
        data = memoryview(aligned_buffer())
        assert scan_parallel(data, ScanConfig(threads=4)).count == 40
