#!/usr/bin/env python3
"""Validate graph JSON written by topo2graph.

Each file may hold several JSON arrays back to back (one per converted
topology file). Every element must be {identifier, metadata} or
{link, metadata} with a string metadata.type.

Usage:
  python3 scripts/validate_graph.py out/lab.json [more.json ...]

Exit codes:
  0 all files pass
  1 structural problems, unreadable file or invalid JSON
"""
from __future__ import annotations

import argparse
import json
import pathlib
import sys
from typing import Any, Iterable, List

# repo root on the import path when run from a checkout
ROOT = pathlib.Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from topo_graph import validate_elements


def iter_documents(text: str) -> Iterable[Any]:
    dec = json.JSONDecoder()
    pos = 0
    while True:
        while pos < len(text) and text[pos].isspace():
            pos += 1
        if pos >= len(text):
            return
        doc, pos = dec.raw_decode(text, pos)
        yield doc


def validate_file(path: str) -> List[str]:
    with open(path, "r", encoding="utf-8") as f:
        text = f.read()
    problems: List[str] = []
    count = 0
    for n, doc in enumerate(iter_documents(text), 1):
        count += 1
        problems.extend(f"{path}: array {n}: {p}" for p in validate_elements(doc))
    if count == 0:
        problems.append(f"{path}: no JSON array found")
    return problems


def main(argv: List[str]) -> int:
    ap = argparse.ArgumentParser(description="Validate graph JSON produced by topo2graph")
    ap.add_argument("files", nargs="+", help="Graph JSON file(s)")
    args = ap.parse_args(argv)

    failed = False
    for path in args.files:
        try:
            problems = validate_file(path)
        except OSError as e:
            print(f"ERROR: {path}: {e}")
            failed = True
            continue
        except json.JSONDecodeError as e:
            print(f"ERROR: {path}: invalid JSON at line {e.lineno}: {e.msg}")
            failed = True
            continue
        for p in problems:
            print(f"ERROR: {p}")
        if problems:
            failed = True
        else:
            print(f"OK: {path}")
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
