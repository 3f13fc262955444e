#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
topo2graph.py
-------------
Convert topology record files into graph JSON (typed nodes and typed links).

- Reads each file in order (terms, JSON or YAML, see topo_terms.py)
- Writes one JSON array per file to stdout, files separated by a newline
- Logs events to stderr (text or JSON Lines with --json-log)

The first missing file, syntax error or unknown record stops the run with
exit code 1; arrays of files already converted stay written.

Usage (examples):
  python3 topo2graph.py topo/lab.terms
  python3 topo2graph.py --json-log --verbose topo/lab.terms topo/vhosts.yaml
  TOPO_ALIAS_FILE=aliases.yml python3 topo2graph.py --strict topo/lab.terms
"""
from __future__ import annotations

import argparse
import os
import sys
import time
from typing import Any, Dict, List, Optional

import yaml

from topo_graph import (
    DuplicateIdentifierError,
    UnknownRecordError,
    load_aliases,
    render_json,
    translate,
)
from topo_log import LogHelper, new_correlation_id
from topo_terms import FORMATS, TermSyntaxError, detect_format, load_records

# ---- Exit codes --------------------------------------------------------------
EXIT_OK = 0
EXIT_FAIL = 1


def _env_int(name: str) -> Optional[int]:
    """Integer from the environment; None when unset, ValueError when not a number."""
    v = os.getenv(name)
    if v is None or not v.strip():
        return None
    return int(v)


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="topo2graph", description="Convert topology records to graph JSON")
    ap.add_argument("files", nargs="*", metavar="topology-file", help="Topology record file(s)")
    ap.add_argument("--format", choices=("auto",) + FORMATS, default=os.getenv("TOPO_INPUT_FORMAT", "auto"),
                    help="Input encoding (default: by file extension)")
    ap.add_argument("--alias-file", default=os.getenv("TOPO_ALIAS_FILE"),
                    help="Optional YAML/JSON file of extra record tag aliases")
    ap.add_argument("--indent", type=int,
                    help="Indent the JSON fully instead of one element per line (env: TOPO_JSON_INDENT)")
    ap.add_argument("--strict", action="store_true",
                    help="Fail when a record expands to duplicate node identifiers or links")
    ap.add_argument("--json-log", action="store_true", default=os.getenv("TOPO_JSON_LOG") == "1",
                    help="Emit logs as JSON Lines")
    ap.add_argument("--verbose", action="store_true")
    return ap


def convert_file(path: str, fmt: str, aliases: Dict[str, List[str]], strict: bool,
                 indent: Optional[int], logger: LogHelper) -> str:
    t0 = time.time()
    records: List[Any] = load_records(path, fmt)
    elements = translate(records, aliases=aliases, strict=strict, logger=logger)
    logger.log_event("debug", "file.converted", "convert", "translate", "File converted",
                     path=path, format=detect_format(path, fmt), records=len(records),
                     elements=len(elements), elapsed_ms=int((time.time() - t0) * 1000))
    return render_json(elements, indent=indent)


def main(argv: List[str]) -> int:
    ap = build_parser()
    args = ap.parse_args(argv)
    logger = LogHelper(args.json_log, new_correlation_id(), verbose=args.verbose)

    if not args.files:
        sys.stderr.write(ap.format_usage())
        return EXIT_FAIL

    indent = args.indent
    if indent is None:
        try:
            indent = _env_int("TOPO_JSON_INDENT")
        except ValueError:
            logger.log_event("error", "config.invalid", "config", "indent", "TOPO_JSON_INDENT must be an integer",
                             value=os.getenv("TOPO_JSON_INDENT"))
            return EXIT_FAIL
    if args.format not in ("auto",) + FORMATS:
        logger.log_event("error", "config.invalid", "config", "format", "Unsupported input format",
                         value=args.format, formats=",".join(("auto",) + FORMATS))
        return EXIT_FAIL

    try:
        aliases = load_aliases(args.alias_file)
    except (OSError, yaml.YAMLError) as e:
        logger.log_event("error", "alias_file.invalid", "config", "alias", "Alias file could not be read",
                         alias_file=args.alias_file, error=str(e))
        return EXIT_FAIL
    if args.alias_file and not os.path.exists(args.alias_file):
        logger.log_event("warn", "alias_file.missing", "config", "alias",
                         "alias file not found; using built-ins", alias_file=args.alias_file)

    for path in args.files:
        if not os.path.isfile(path):
            sys.stderr.write(f"{path}: file not found\n")
            sys.stderr.write(ap.format_usage())
            return EXIT_FAIL
        try:
            text = convert_file(path, args.format, aliases, args.strict, indent, logger)
        except UnknownRecordError as e:
            logger.log_event("error", "record.unknown", "convert", "translate", str(e), path=path)
            return EXIT_FAIL
        except DuplicateIdentifierError as e:
            logger.log_event("error", "record.duplicate_identifier", "convert", "translate", str(e),
                             path=path, identifier=e.identifier)
            return EXIT_FAIL
        except TermSyntaxError as e:
            logger.log_event("error", "input.syntax", "convert", "parse", str(e), path=path)
            return EXIT_FAIL
        except (OSError, UnicodeDecodeError) as e:
            logger.log_event("error", "input.unreadable", "convert", "read", str(e), path=path)
            return EXIT_FAIL
        sys.stdout.write(text + "\n")
        sys.stdout.flush()

    logger.log_event("debug", "done", "main", "exit", "Conversion completed", files=len(args.files))
    return EXIT_OK


def cli() -> None:
    sys.exit(main(sys.argv[1:]))


if __name__ == "__main__":
    cli()
