"""
binstrings.export
=================
Output helpers: decorated text lines plus structured JSON / CSV exports.
"""

from __future__ import annotations

import csv
import json
import logging
from typing import Iterable, TextIO

from binstrings.analysis import ExtractionResult, ScanConfig

logger = logging.getLogger(__name__)

FORMATS = ("text", "json", "csv")


def format_line(result: ExtractionResult, config: ScanConfig) -> str:
    """Render *result* as ``[filename:][offset:]string``."""
    parts: list[str] = []
    if config.show_filename:
        parts.append(config.filename)
    if config.show_location:
        parts.append(str(result.offset))
    parts.append(result.value)
    return ":".join(parts)


def write_lines(
    results: Iterable[ExtractionResult],
    stream: TextIO,
    config: ScanConfig,
) -> int:
    """Write one decorated line per result; returns the number written."""
    written = 0
    for r in results:
        stream.write(format_line(r, config))
        stream.write("\n")
        written += 1
    return written


def export_json(
    results: list[ExtractionResult],
    stream: TextIO,
    config: ScanConfig,
) -> None:
    """Write results as structured JSON."""
    payload = {
        "source": config.filename,
        "options": {
            "min_length":     config.min_length,
            "threads":        config.threads,
            "null_bytes":     config.null_bytes,
            "remove_repeats": config.remove_repeats,
            "utf8":           config.utf8,
        },
        "count": len(results),
        "results": [
            {"value": r.value, "offset": r.offset, "length": r.length}
            for r in results
        ],
    }
    json.dump(payload, stream, indent=2, ensure_ascii=False)
    stream.write("\n")
    logger.info("Exported %d results (json)", len(results))


def export_csv(
    results: list[ExtractionResult],
    stream: TextIO,
    config: ScanConfig,
) -> None:
    """Write results as CSV with value / offset / length columns."""
    writer = csv.writer(stream, lineterminator="\n")
    header = ["value", "offset", "length"]
    if config.show_filename:
        header.insert(0, "source")
    writer.writerow(header)
    for r in results:
        row: list[object] = [r.value, r.offset, r.length]
        if config.show_filename:
            row.insert(0, config.filename)
        writer.writerow(row)
    logger.info("Exported %d results (csv)", len(results))
