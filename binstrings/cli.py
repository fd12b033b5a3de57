"""
binstrings.cli
Command line front end: parse options, load the input, run the scan and
print the results.
Exit status
0   normal completion, including when no strings were found
1   the input could not be opened or read
2   bad usage or a configuration that cannot be scanned
"""
from __future__ import annotations
import argparse
import logging
import os
import sys
from typing import Optional, Sequence, TextIO
from binstrings import __version__
from binstrings.analysis import NO_STRINGS_HINT, ScanConfig, iter_strings, scan
from binstrings.export import FORMATS, export_csv, export_json, write_lines
from binstrings.parallel import PartitionError, iter_parallel
from binstrings.source import load_input

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_IO_ERROR = 1
EXIT_USAGE = 2

# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------
def _positive_int(raw: str) -> int:
    try:
        value = int(raw)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer: {raw!r}")
    if value < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {value}")
    return value

def _non_negative_int(raw: str) -> int:
    try:
        value = int(raw)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer: {raw!r}")
    if value < 0:
        raise argparse.ArgumentTypeError(f"must not be negative, got {value}")
    return value

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="binstrings",
        description="Print the runs of printable characters found in a binary file.",
    )
    parser.add_argument("file", nargs="?", default=None,
                        help="file to search (default: read standard input)")
    parser.add_argument("-b", "--bytes", type=_positive_int, default=4, metavar="N",
                        help="number of printable characters needed for a run to "
                             "qualify as a string (default: 4)")
    parser.add_argument("-t", "--threads", type=_non_negative_int, default=1, metavar="N",
                        help="number of threads; 0 picks a count from the CPUs. With "
                             "more than one thread the output order may not match "
                             "the file, and strings crossing a chunk boundary can be "
                             "cut or lost (default: 1)")
    parser.add_argument("-n", "--nullbytes", action="store_true",
                        help="disable the null byte requirement")
    parser.add_argument("-f", "--filename", action="store_true",
                        help="print the name of the file before each line")
    parser.add_argument("-l", "--location", action="store_true",
                        help="print the byte offset of each string in the input")
    parser.add_argument("-r", "--removerepeats", action="store_true",
                        help="do not print strings repeated more than 10 times in a "
                             "row. Hash collisions can occasionally hide a string")
    parser.add_argument("-u", "--utf8", action="store_true",
                        help="enable UTF-8 support")
    parser.add_argument("--format", choices=FORMATS, default="text",
                        help="output format (default: text)")
    parser.add_argument("-o", "--output", default=None, metavar="PATH",
                        help="write results to PATH instead of standard output")
    parser.add_argument("--verbose", action="store_true",
                        help="log progress messages to standard error")
    parser.add_argument("--debug", action="store_true",
                        help="log debugging details to standard error")
    parser.add_argument("-v", "--version", action="version",
                        version=f"%(prog)s {__version__}")
    return parser

def config_from_args(args: argparse.Namespace, filename: str) -> ScanConfig:
    return ScanConfig(
        min_length=args.bytes,
        threads=args.threads,
        null_bytes=args.nullbytes,
        show_filename=args.filename,
        show_location=args.location,
        remove_repeats=args.removerepeats,
        utf8=args.utf8,
        filename=filename,
    )

def _configure_logging(args: argparse.Namespace) -> None:
    level = logging.WARNING
    if args.verbose:
        level = logging.INFO
    if args.debug:
        level = logging.DEBUG
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )

# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------
def _write_text(data: bytes, config: ScanConfig, out: TextIO) -> int:
    """Stream decorated lines as they are found; returns the line count."""
    if config.parallel:
        written = 0
        for batch in iter_parallel(data, config):
            written += write_lines(batch, out, config)
    else:
        written = write_lines(iter_strings(data, config), out, config)
    if written == 0:
        logger.warning(NO_STRINGS_HINT)
    return written

def _write_structured(data: bytes, config: ScanConfig, out: TextIO, fmt: str) -> int:
    report = scan(data, config)
    if fmt == "json":
        export_json(report.results, out, config)
    else:
        export_csv(report.results, out, config)
    return report.count

def run(args: argparse.Namespace, out: TextIO) -> int:
    source = load_input(args.file)
    config = config_from_args(args, source.name)
    if args.format == "text":
        count = _write_text(source.data, config, out)
    else:
        count = _write_structured(source.data, config, out, args.format)
    logger.info("Found %d strings in %s", count, source.name)
    return count

# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------
def main(argv: Optional[Sequence[str]] = None) -> int:
    """Parse *argv*, run the scan and return the process exit status."""
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args)

    try:
        if args.output:
            with open(args.output, "w", encoding="utf-8", newline="") as out:
                run(args, out)
        else:
            run(args, sys.stdout)
            sys.stdout.flush()
    except PartitionError as exc:
        print(f"{parser.prog}: {exc}", file=sys.stderr)
        return EXIT_USAGE
    except BrokenPipeError:
        # Reader went away (e.g. piped into head); drop the rest of the output
        devnull = os.open(os.devnull, os.O_WRONLY)
        os.dup2(devnull, sys.stdout.fileno())
        return EXIT_OK
    except OSError as exc:
        name = exc.filename if exc.filename is not None else args.file
        print(f"{parser.prog}: {name}: {exc.strerror or exc}", file=sys.stderr)
        return EXIT_IO_ERROR
    return EXIT_OK

if __name__ == "__main__":
    sys.exit(main())
