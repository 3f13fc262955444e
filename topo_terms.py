#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
topo_terms.py
-------------
Readers for topology record files.

Three encodings are accepted:

- terms: Erlang-style terms, one record per top-level term, each ending in '.'
    {of_switch, "s1", "00:00:01", ["1", "2"]}.
    {lm_ph, "ph1", [{"pp1", "vp1"}], ["vp2"]}.
  '%' starts a comment that runs to the end of the line.
- json / yaml: a list of records (or a mapping with a "records" list), each
  record a list whose first item is the kind tag. Pairs are 2-item lists.
    [["of_switch", "s1", "00:00:01", ["1", "2"]]]

Every reader returns plain Python values: tuples for {...}, lists for [...],
str for strings and Atom for atoms. A record is a tuple whose first item is an
Atom naming its kind.
"""
from __future__ import annotations

import json
import os
import re
from typing import Any, Iterator, List, Optional, Tuple

import yaml

FORMATS = ("terms", "json", "yaml")

_EXT_FORMATS = {
    ".json": "json",
    ".yaml": "yaml",
    ".yml": "yaml",
}

_TOKEN_RE = re.compile(r"""
    (?P<ws>\s+)
  | (?P<comment>%[^\n]*)
  | (?P<string>"(?:[^"\\]|\\.)*")
  | (?P<qatom>'(?:[^'\\]|\\.)*')
  | (?P<number>-?\d+(?:\.\d+(?:[eE][-+]?\d+)?)?)
  | (?P<atom>[a-z][A-Za-z0-9_@]*)
  | (?P<punct>[{}\[\],.])
""", re.VERBOSE | re.DOTALL)

_BARE_ATOM_RE = re.compile(r"[a-z][A-Za-z0-9_@]*\Z")

_UNESCAPES = {"n": "\n", "t": "\t", "r": "\r", "s": " ", "0": "\0"}

Token = Tuple[str, Any, int]

# records nest three deep ({kind, [{pp, vp}]}); deeper input is rejected
MAX_DEPTH = 32


class TermSyntaxError(ValueError):
    def __init__(self, message: str, line: Optional[int] = None):
        self.message = message
        self.line = line
        where = f"line {line}: " if line is not None else ""
        super().__init__(f"{where}{message}")


class Atom(str):
    """Bare or quoted atom. Kind tags are atoms; string fields are plain str."""
    __slots__ = ()

    def __repr__(self) -> str:
        return f"Atom({str.__repr__(self)})"


# ---------------- Tokenizer ----------------
def _unescape(body: str) -> str:
    return re.sub(r"\\(.)", lambda m: _UNESCAPES.get(m.group(1), m.group(1)), body, flags=re.DOTALL)


def _escape(s: str, quote: str) -> str:
    s = s.replace("\\", "\\\\").replace(quote, "\\" + quote)
    return s.replace("\n", "\\n").replace("\t", "\\t").replace("\r", "\\r")


def _tokenize(text: str) -> Iterator[Token]:
    pos = 0
    line = 1
    while pos < len(text):
        m = _TOKEN_RE.match(text, pos)
        if not m:
            raise TermSyntaxError(f"unexpected character {text[pos]!r}", line)
        kind = m.lastgroup
        raw = m.group()
        if kind == "string":
            yield kind, _unescape(raw[1:-1]), line
        elif kind == "qatom":
            yield "atom", Atom(_unescape(raw[1:-1])), line
        elif kind == "atom":
            yield kind, Atom(raw), line
        elif kind == "number":
            yield kind, (float(raw) if "." in raw else int(raw)), line
        elif kind == "punct":
            yield kind, raw, line
        line += raw.count("\n")
        pos = m.end()


def _describe(tok: Token) -> str:
    kind, value, _ = tok
    if kind == "punct":
        return repr(value)
    return f"{kind} {format_term(value)}"


# ---------------- Parser ----------------
class _TermParser:
    def __init__(self, tokens: List[Token]):
        self.tokens = tokens
        self.pos = 0
        self.depth = 0

    def _peek(self) -> Optional[Token]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _next(self, expected: str) -> Token:
        tok = self._peek()
        if tok is None:
            last = self.tokens[-1][2] if self.tokens else 1
            raise TermSyntaxError(f"unexpected end of input, expected {expected}", last)
        self.pos += 1
        return tok

    def _at(self, punct: str) -> bool:
        tok = self._peek()
        return tok is not None and tok[0] == "punct" and tok[1] == punct

    def parse_all(self) -> List[Any]:
        terms: List[Any] = []
        while self._peek() is not None:
            terms.append(self._term())
            tok = self._next("'.'")
            if tok[0] != "punct" or tok[1] != ".":
                raise TermSyntaxError(f"expected '.' after term, got {_describe(tok)}", tok[2])
        return terms

    def _term(self) -> Any:
        tok = self._next("a term")
        kind, value, line = tok
        if kind != "punct":
            return value
        if value not in ("{", "["):
            raise TermSyntaxError(f"unexpected {value!r}", line)
        self.depth += 1
        if self.depth > MAX_DEPTH:
            raise TermSyntaxError("nesting too deep", line)
        if value == "{":
            term: Any = tuple(self._sequence("}"))
        else:
            term = self._sequence("]")
        self.depth -= 1
        return term

    def _sequence(self, close: str) -> List[Any]:
        items: List[Any] = []
        if self._at(close):
            self.pos += 1
            return items
        while True:
            items.append(self._term())
            tok = self._next(f"',' or {close!r}")
            if tok[0] == "punct" and tok[1] == close:
                return items
            if tok[0] != "punct" or tok[1] != ",":
                raise TermSyntaxError(f"expected ',' or {close!r}, got {_describe(tok)}", tok[2])


def parse_terms(text: str) -> List[Any]:
    """Parse every '.'-terminated term in text, in order."""
    return _TermParser(list(_tokenize(text))).parse_all()


def format_term(term: Any) -> str:
    """Render a parsed value back to term notation (used in diagnostics)."""
    if isinstance(term, Atom):
        if _BARE_ATOM_RE.match(term):
            return str(term)
        return "'" + _escape(term, "'") + "'"
    if isinstance(term, str):
        return '"' + _escape(term, '"') + '"'
    if isinstance(term, tuple):
        return "{" + ", ".join(format_term(t) for t in term) + "}"
    if isinstance(term, list):
        return "[" + ", ".join(format_term(t) for t in term) + "]"
    if term is None or isinstance(term, (bool, dict)):
        return json.dumps(term, ensure_ascii=False, default=str)
    return repr(term)


# ---------------- JSON / YAML ----------------
def _field_from_plain(value: Any) -> Any:
    if isinstance(value, list):
        return [tuple(v) if isinstance(v, list) else v for v in value]
    return value


def _record_from_plain(item: Any) -> Any:
    if isinstance(item, list) and item and isinstance(item[0], str):
        return (Atom(item[0]),) + tuple(_field_from_plain(f) for f in item[1:])
    # left untouched; the translator rejects it as an unknown record
    return item


def _nesting_depth(doc: Any) -> int:
    deepest = 0
    stack = [(doc, 0)]
    while stack:
        value, depth = stack.pop()
        if isinstance(value, dict):
            value = list(value.values())
        if isinstance(value, (list, tuple)):
            depth += 1
            deepest = max(deepest, depth)
            if depth <= MAX_DEPTH:
                stack.extend((v, depth) for v in value)
    return deepest


def records_from_data(doc: Any) -> List[Any]:
    if isinstance(doc, dict):
        doc = doc.get("records")
    if doc is None:
        return []
    if not isinstance(doc, list):
        raise TermSyntaxError(f"expected a list of records, got {type(doc).__name__}")
    # the top-level list holds the records, so it does not count
    if _nesting_depth(doc) > MAX_DEPTH + 1:
        raise TermSyntaxError("nesting too deep")
    return [_record_from_plain(item) for item in doc]


# ---------------- Loading ----------------
def detect_format(path: str, fmt: str = "auto") -> str:
    if fmt and fmt != "auto":
        return fmt
    ext = os.path.splitext(path)[1].lower()
    return _EXT_FORMATS.get(ext, "terms")


def load_records_text(text: str, fmt: str = "terms") -> List[Any]:
    if fmt == "terms":
        return parse_terms(text)
    if fmt == "json":
        try:
            doc = json.loads(text)
        except json.JSONDecodeError as e:
            raise TermSyntaxError(e.msg, e.lineno) from e
        except RecursionError as e:
            raise TermSyntaxError("nesting too deep") from e
        return records_from_data(doc)
    if fmt == "yaml":
        try:
            doc = yaml.safe_load(text)
        except RecursionError as e:
            raise TermSyntaxError("nesting too deep") from e
        except yaml.YAMLError as e:
            mark = getattr(e, "problem_mark", None)
            raise TermSyntaxError(str(getattr(e, "problem", None) or e),
                                  mark.line + 1 if mark is not None else None) from e
        return records_from_data(doc)
    raise ValueError(f"unsupported input format: {fmt}")


def load_records(path: str, fmt: str = "auto") -> List[Any]:
    with open(path, "r", encoding="utf-8") as f:
        text = f.read()
    return load_records_text(text, detect_format(path, fmt))
