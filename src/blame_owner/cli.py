from __future__ import annotations

import argparse
import sys
from pathlib import Path

from . import __version__
from .errors import BlameOwnerError
from .run import run_blame

EPILOG = """\
examples:
    blame foo.py                  Blame a single file
    blame foo.py bar.py           Blame multiple files
    blame src/                    Blame all tracked files in a directory
    blame "**/*.py"               Blame all Python files (glob pattern)
    blame -v src/                 Show all contributors with percentages
    blame --gh src/               Show GitHub usernames (for PR reviewers)
    blame --gh --only-name src/   Print just the username (for scripts)
"""


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="blame",
        description="Find out who is responsible for a file or folder.",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("patterns", nargs="+", metavar="PATTERN", help="Files, folders, or glob patterns to analyze.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show every contributor with their share of lines.")
    parser.add_argument("--gh", action="store_true", help="Show GitHub usernames instead of git author names.")
    parser.add_argument("--only-name", action="store_true", help="Print only the name (with -v: all names, one per line).")
    parser.add_argument("--files", action="store_true", help="With -v, also show how many files each contributor touched.")
    parser.add_argument("--jobs", type=int, default=0, help="Parallel git blame processes (default: config or min(8, CPUs)).")
    parser.add_argument("--timeout", type=float, default=0, help="Seconds allowed per git blame (default: config or 60).")
    parser.add_argument("--config", type=Path, default=None, help="Path to a JSON config (default: .blame.json in the repo, then ~/.config/blame-owner/config.json).")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]
    parser = _build_parser()
    args = parser.parse_args(argv)
    if args.jobs < 0:
        parser.error("--jobs must be >= 0")
    if args.timeout < 0:
        parser.error("--timeout must be >= 0")

    try:
        return run_blame(args=args)
    except BlameOwnerError as e:
        print(f"Error: {e}", file=sys.stderr)
        return e.exit_code
    except KeyboardInterrupt:
        print("Interrupted; no result.", file=sys.stderr)
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
