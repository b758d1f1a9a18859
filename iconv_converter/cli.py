"""Command-line interface for the Iconv Converter.

WHY: The most common use of a converter is a shell one-liner: take a
file (or a pipe) in one encoding and write it out in another. The CLI
wires argument parsing, file I/O, and logging around a single Iconv
handle.

HOW: argparse accepts the source and target encodings, zero or more
input files, an optional output file, and a backend override. Each input
is read as bytes and converted as its own buffer through one handle;
the results are written in order to the output file or stdout.

RULES:
- -f/--from-code and -t/--to-code are required
- No input files, or "-", means read stdin
- Converted bytes go to stdout (binary) unless --output is given
- Status and log output go to stderr, never stdout
- Any conversion or I/O error prints "Error: ..." to stderr and exits 1
- Nothing is written to --output when any input fails
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import BinaryIO, List, Optional

from iconv_converter import __version__
from iconv_converter.config import ICONV_BACKEND, ICONV_LOG_LEVEL
from iconv_converter.converter import Iconv
from iconv_converter.errors import IconvError
from iconv_converter.primitives import PRIMITIVES

logger = logging.getLogger(__name__)


def _fail(msg: str) -> None:
    print("Error: {}".format(msg), file=sys.stderr, flush=True)
    sys.exit(1)


def _read_input(name: str, stdin: BinaryIO) -> bytes:
    """Read one input as bytes; "-" is stdin."""
    if name == "-":
        return stdin.read()
    return Path(name).read_bytes()


def _configure_logging(verbose: bool) -> None:
    """Send log records to stderr at ICONV_LOG_LEVEL (DEBUG with --verbose)."""
    level = logging.DEBUG if verbose else getattr(logging, ICONV_LOG_LEVEL, logging.WARNING)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def run(args: argparse.Namespace) -> None:
    """Convert every input named in ``args`` and write the results.

    RULES:
    - Opens exactly one Iconv handle and closes it on every path
    - Converts all inputs before writing anything
    """
    inputs: List[str] = args.inputs or ["-"]
    stdin = sys.stdin.buffer

    try:
        with Iconv(args.from_code, args.to_code, backend=args.backend) as cd:
            chunks: List[bytes] = []
            for name in inputs:
                data = _read_input(name, stdin)
                logger.info("Converting %s (%d bytes)", name, len(data))
                chunks.append(cd.convert(data))
    except (IconvError, OSError, ValueError) as e:
        _fail(str(e))

    output = b"".join(chunks)
    if args.output:
        try:
            Path(args.output).write_bytes(output)
        except OSError as e:
            _fail(str(e))
        logger.info("Wrote %d bytes to %s", len(output), args.output)
    else:
        sys.stdout.buffer.write(output)
        sys.stdout.buffer.flush()


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the CLI.

    WHY: Separating parser construction from main() makes the CLI
    testable: tests can inspect the parser without converting anything.
    """
    parser = argparse.ArgumentParser(
        prog="iconv_converter",
        description="Convert files from one character encoding to another.",
    )

    parser.add_argument(
        "inputs",
        nargs="*",
        metavar="FILE",
        help="Input files. Reads stdin when none are given or FILE is '-'.",
    )

    parser.add_argument(
        "-f",
        "--from-code",
        required=True,
        help="Encoding of the input, e.g. UTF-8, ISO-8859-1, SHIFT_JIS.",
    )

    parser.add_argument(
        "-t",
        "--to-code",
        required=True,
        help="Encoding of the output.",
    )

    parser.add_argument(
        "-o",
        "--output",
        default=None,
        help="Write the converted bytes to this file instead of stdout.",
    )

    parser.add_argument(
        "--backend",
        choices=sorted(PRIMITIVES.keys()),
        default=ICONV_BACKEND,
        help="Conversion primitive to use (default: %(default)s).",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log buffer growth and conversion details to stderr.",
    )

    parser.add_argument(
        "--version",
        action="version",
        version="%(prog)s {}".format(__version__),
    )

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for the CLI.

    RULES:
    - argv=None means use sys.argv (normal CLI invocation)
    - Explicit argv is for testing
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)
    run(args)


if __name__ == "__main__":
    main()
