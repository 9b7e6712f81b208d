"""
Copyright 2025 DNAi inc.

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at

    http://www.apache.org/licenses/LICENSE-2.0

Unless required by applicable law or agreed to in writing, software
distributed under the License is distributed on an "AS IS" BASIS,
WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
See the License for the specific language governing permissions and
limitations under the License.
"""

from __future__ import annotations

"""
Command-line interface for hexdump-zip (``hexdump-zip``).

Example usages:

    # Random-access mode: locate the central directory, then dump in file order
    python -m hexdumpzip archive.zip archive.hex

    # Streaming mode: a single forward pass, input may be a pipe
    python -m hexdumpzip --streaming archive.zip archive.hex

Exit codes: 0 on success, 1 when the archive cannot be dumped, 2 for usage
errors and files that cannot be opened.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from . import __version__, dump_zipfile
from .errors import ZipDumpError

_LOG_LEVELS = (logging.WARNING, logging.INFO, logging.DEBUG)


def _print_error(message: str, exit_code: int = 1) -> None:
    """Print an error message to stderr and exit with the given code."""
    sys.stderr.write(f"hexdump-zip: {message}\n")
    sys.exit(exit_code)


def _build_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser."""
    parser = argparse.ArgumentParser(
        prog="hexdump-zip",
        description="Write an annotated hex dump of a ZIP archive's structure.",
    )
    parser.add_argument("input", type=Path, help="Path to the ZIP/ZIP64 archive")
    parser.add_argument("output", type=Path, help="Path of the transcript to write")
    parser.add_argument(
        "--streaming",
        action="store_true",
        help="Read the archive in a single forward pass instead of starting from the central directory",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Log discovered structures to stderr (repeat for debug output)",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """
    Entry point for the hexdump-zip CLI.

    This function is invoked when running:

        python -m hexdumpzip ...

    or, via the console script:

        hexdump-zip ...
    """
    args = _build_parser().parse_args(argv)

    logging.basicConfig(
        level=_LOG_LEVELS[min(args.verbose, len(_LOG_LEVELS) - 1)],
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        with open(args.input, "rb") as input_file, open(
            args.output, "w", encoding="utf-8", newline="\n"
        ) as output:
            dump_zipfile(input_file, output, streaming=args.streaming)
    except ZipDumpError as e:
        _print_error(f"{type(e).__name__}: {e}")
    except FileNotFoundError as e:
        _print_error(f"File not found: {e.filename}", exit_code=2)
    except PermissionError as e:
        _print_error(f"Permission denied: {e.filename}", exit_code=2)
    except OSError as e:
        _print_error(str(e), exit_code=2)
    except KeyboardInterrupt:
        _print_error("Interrupted by user", exit_code=130)


if __name__ == "__main__":
    main()
