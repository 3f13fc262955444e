#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
topo_graph.py
-------------
Translate topology records into graph elements (typed nodes and typed links)
and render them as a JSON array.

Node:  {"identifier": "<id>", "metadata": {"type": "<type>", ...extras}}
Link:  {"link": ["<A>", "<B>"], "metadata": {"type": "<relationship>"}}

Nine record kinds are understood (see RECORD_SHAPES). Each record expands into
its elements in a fixed order and the output keeps input record order. Any
other record is an UnknownRecordError; there is no partial result.
"""
from __future__ import annotations

import json
import os
from collections import Counter
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import yaml

from topo_log import LogHelper
from topo_terms import Atom, format_term

ID_SEP = "/"
TABLE_SUFFIX = "-table-0"
PATCH_PANEL = "PatchP"

LINK_TYPES = ("part_of", "connected_to", "bound_to", "of_resource")

# field kinds
STR = "str"
STR_LIST = "str_list"
PAIR_LIST = "pair_list"

# kind -> ((field name, field kind), ...), fields after the tag
RECORD_SHAPES: Dict[str, Tuple[Tuple[str, str], ...]] = {
    "of_switch": (("id", STR), ("datapath_id", STR), ("ports", STR_LIST)),
    "endpoint": (("id", STR), ("ip", STR), ("switch", STR), ("port", STR)),
    "connect": (("switch1", STR), ("port1", STR), ("switch2", STR), ("port2", STR)),
    "gateway_bridge": (("id", STR), ("switch", STR), ("port", STR)),
    "gateway_mask": (("id", STR), ("ip", STR), ("netmask", STR), ("switch", STR), ("port", STR)),
    "lm_ph": (("ph_id", STR), ("port_bridges", PAIR_LIST), ("vp_suffixes", STR_LIST)),
    "lm_patchp": (("host_id", STR), ("connected_suffixes", STR_LIST)),
    "lm_vh": (("ph_id", STR), ("vh_suffix", STR), ("vp_suffixes", STR_LIST)),
    "bound_to": (("from", STR), ("to", STR)),
}

DEFAULT_ALIASES: Dict[str, List[str]] = {
    "of_switch": ["switch"],
}


# ---- Errors ------------------------------------------------------------------
class TopologyError(Exception):
    pass


class UnknownRecordError(TopologyError):
    def __init__(self, record: Any):
        self.record = record
        super().__init__(f"unknown record: {format_term(record)}")


class DuplicateIdentifierError(TopologyError):
    def __init__(self, identifier: str, record: Any):
        self.identifier = identifier
        self.record = record
        super().__init__(f"duplicate identifier {identifier!r} in record: {format_term(record)}")


# ---- Element builders --------------------------------------------------------
def join_identifier(base: str, *suffixes: str) -> str:
    """Composite identifier: join_identifier("s1", "1") == "s1/1"."""
    return ID_SEP.join((base,) + suffixes)


def node(identifier: str, type_: str, **extra: Any) -> Dict[str, Any]:
    metadata: Dict[str, Any] = {"type": type_}
    metadata.update(extra)
    return {"identifier": identifier, "metadata": metadata}


def link(a: str, b: str, type_: str) -> Dict[str, Any]:
    return {"link": [a, b], "metadata": {"type": type_}}


def is_node(element: Dict[str, Any]) -> bool:
    return "identifier" in element


# ---- Per-kind translations ---------------------------------------------------
def _of_switch(sw_id: str, datapath_id: str, ports: List[str]) -> List[Dict[str, Any]]:
    table_id = sw_id + TABLE_SUFFIX
    out = [
        node(sw_id, "of_switch", datapath_id=datapath_id),
        node(table_id, "of_flow_table", table_no="0"),
        link(sw_id, table_id, "of_resource"),
    ]
    for port in ports:
        port_id = join_identifier(sw_id, port)
        out.append(node(port_id, "of_port"))
        out.append(link(sw_id, port_id, "part_of"))
    return out


def _endpoint(ep_id: str, ip: str, switch: str, port: str) -> List[Dict[str, Any]]:
    return [
        node(ep_id, "endpoint", ip=ip),
        link(ep_id, join_identifier(switch, port), "connected_to"),
    ]


def _connect(switch1: str, port1: str, switch2: str, port2: str) -> List[Dict[str, Any]]:
    return [link(join_identifier(switch1, port1), join_identifier(switch2, port2), "connected_to")]


def _gateway_bridge(gw_id: str, switch: str, port: str) -> List[Dict[str, Any]]:
    return [
        node(gw_id, "endpoint", ip="255.255.255.255", netmask="0.0.0.0", use_bridge_rules="true"),
        link(gw_id, join_identifier(switch, port), "connected_to"),
    ]


def _gateway_mask(gw_id: str, ip: str, netmask: str, switch: str, port: str) -> List[Dict[str, Any]]:
    return [
        node(gw_id, "endpoint", ip=ip, netmask=netmask, use_bridge_rules="false"),
        link(gw_id, join_identifier(switch, port), "connected_to"),
    ]


def _lm_ph(ph_id: str, port_bridges: List[Tuple[str, str]], vp_suffixes: List[str]) -> List[Dict[str, Any]]:
    out = [node(ph_id, "lm_ph")]
    for pp_suffix, vp_suffix in port_bridges:
        pp_id = join_identifier(ph_id, pp_suffix)
        vp_id = join_identifier(ph_id, vp_suffix)
        out.append(node(pp_id, "lm_pp"))
        out.append(link(pp_id, ph_id, "part_of"))
        out.append(node(vp_id, "lm_vp"))
        out.append(link(pp_id, vp_id, "part_of"))
    for vp_suffix in vp_suffixes:
        out.append(node(join_identifier(ph_id, vp_suffix), "lm_vp"))
    return out


def _lm_patchp(host_id: str, connected_suffixes: List[str]) -> List[Dict[str, Any]]:
    patch_id = join_identifier(host_id, PATCH_PANEL)
    wires = {join_identifier(host_id, s): None for s in connected_suffixes}
    out = [node(patch_id, "lm_patchp", wires=wires)]
    for suffix in connected_suffixes:
        out.append(link(patch_id, join_identifier(host_id, suffix), "part_of"))
    return out


def _lm_vh(ph_id: str, vh_suffix: str, vp_suffixes: List[str]) -> List[Dict[str, Any]]:
    vh_id = join_identifier(ph_id, vh_suffix)
    out = [node(vh_id, "lm_vh")]
    for vp_suffix in vp_suffixes:
        vp_id = join_identifier(vh_id, vp_suffix)
        out.append(node(vp_id, "lm_vp"))
        out.append(link(vp_id, vh_id, "part_of"))
    return out


def _bound_to(src: str, dst: str) -> List[Dict[str, Any]]:
    return [link(src, dst, "bound_to")]


TRANSLATORS: Dict[str, Callable[..., List[Dict[str, Any]]]] = {
    "of_switch": _of_switch,
    "endpoint": _endpoint,
    "connect": _connect,
    "gateway_bridge": _gateway_bridge,
    "gateway_mask": _gateway_mask,
    "lm_ph": _lm_ph,
    "lm_patchp": _lm_patchp,
    "lm_vh": _lm_vh,
    "bound_to": _bound_to,
}


# ---- Shape matching ----------------------------------------------------------
def _is_str(value: Any) -> bool:
    return isinstance(value, str) and not isinstance(value, Atom)


def _match_field(kind: str, value: Any) -> bool:
    if kind == STR:
        return _is_str(value)
    if not isinstance(value, list):
        return False
    if kind == STR_LIST:
        return all(_is_str(v) for v in value)
    if kind == PAIR_LIST:
        return all(isinstance(v, tuple) and len(v) == 2 and _is_str(v[0]) and _is_str(v[1]) for v in value)
    return False


def build_tag_index(aliases: Optional[Dict[str, List[str]]] = None) -> Dict[str, str]:
    """Map every accepted tag (kind names and their aliases) to its kind."""
    index = {kind: kind for kind in RECORD_SHAPES}
    merged: Dict[str, List[str]] = {k: list(v) for k, v in DEFAULT_ALIASES.items()}
    for kind, tags in (aliases or {}).items():
        merged.setdefault(kind, []).extend(tags)
    for kind, tags in merged.items():
        if kind not in RECORD_SHAPES:
            continue
        for tag in tags:
            index.setdefault(tag, kind)
    return index


def load_aliases(path: Optional[str]) -> Dict[str, List[str]]:
    """Read extra tag aliases from a YAML (or JSON) file: {kind: [tag, ...]}.

    A missing path yields no extras. Entries for unknown kinds and non-list
    values are ignored; a malformed file raises yaml.YAMLError.
    """
    m: Dict[str, List[str]] = {}
    if not path or not os.path.exists(path):
        return m
    with open(path, "r", encoding="utf-8") as f:
        y = yaml.safe_load(f)
    if not isinstance(y, dict):
        return m
    for kind, tags in y.items():
        if kind in RECORD_SHAPES and isinstance(tags, list):
            m[kind] = [str(t) for t in tags]
    return m


def match_record(record: Any, tag_index: Optional[Dict[str, str]] = None) -> Tuple[str, Tuple[Any, ...]]:
    """Return (kind, fields) for a known record shape, else raise UnknownRecordError."""
    if tag_index is None:
        tag_index = build_tag_index()
    if not isinstance(record, tuple) or not record or not isinstance(record[0], Atom):
        raise UnknownRecordError(record)
    kind = tag_index.get(str(record[0]))
    if kind is None:
        raise UnknownRecordError(record)
    shape = RECORD_SHAPES[kind]
    fields = record[1:]
    if len(fields) != len(shape):
        raise UnknownRecordError(record)
    for (_, field_kind), value in zip(shape, fields):
        if not _match_field(field_kind, value):
            raise UnknownRecordError(record)
    return kind, fields


# ---- Translation -------------------------------------------------------------
def _element_key(element: Dict[str, Any]) -> str:
    if is_node(element):
        return element["identifier"]
    a, b = element["link"]
    return f"{a} -> {b}"


def _duplicate_identifiers(elements: Iterable[Dict[str, Any]]) -> List[str]:
    """Node identifiers, or "A -> B" link pairs, that occur more than once."""
    counts = Counter(_element_key(e) for e in elements)
    return [ident for ident, n in counts.items() if n > 1]


def translate_record(record: Any,
                     tag_index: Optional[Dict[str, str]] = None,
                     strict: bool = False,
                     logger: LogHelper | None = None) -> List[Dict[str, Any]]:
    kind, fields = match_record(record, tag_index)
    elements = TRANSLATORS[kind](*fields)
    dups = _duplicate_identifiers(elements)
    if dups:
        if strict:
            raise DuplicateIdentifierError(dups[0], record)
        if logger:
            logger.log_event("warn", "record.duplicate_identifier", "translate", kind,
                             "Record expands to duplicate node identifiers; kept as-is",
                             identifiers=",".join(dups))
    return elements


def translate(records: Iterable[Any],
              aliases: Optional[Dict[str, List[str]]] = None,
              strict: bool = False,
              logger: LogHelper | None = None) -> List[Dict[str, Any]]:
    """Translate records in order; the first unknown record aborts the whole call."""
    tag_index = build_tag_index(aliases)
    out: List[Dict[str, Any]] = []
    for record in records:
        out.extend(translate_record(record, tag_index, strict=strict, logger=logger))
    return out


def render_json(elements: Sequence[Dict[str, Any]], indent: Optional[int] = None) -> str:
    """JSON array text; one element per line unless indent is given."""
    if indent is not None:
        return json.dumps(list(elements), ensure_ascii=False, indent=indent)
    if not elements:
        return "[]"
    body = ",\n".join(json.dumps(e, ensure_ascii=False) for e in elements)
    return "[\n" + body + "\n]"


# ---- Output validation -------------------------------------------------------
def validate_elements(doc: Any) -> List[str]:
    """Check a parsed graph document; returns a list of problems (empty when valid)."""
    if not isinstance(doc, list):
        return [f"graph must be an array, got {type(doc).__name__}"]
    errors: List[str] = []
    for i, el in enumerate(doc):
        if not isinstance(el, dict):
            errors.append(f"[{i}] element must be an object")
            continue
        keys = set(el.keys())
        if keys == {"identifier", "metadata"}:
            if not isinstance(el["identifier"], str):
                errors.append(f"[{i}] identifier must be a string")
        elif keys == {"link", "metadata"}:
            lk = el["link"]
            if not (isinstance(lk, list) and len(lk) == 2 and all(isinstance(x, str) for x in lk)):
                errors.append(f"[{i}] link must be an array of two strings")
        else:
            errors.append(f"[{i}] unexpected keys: {sorted(keys)}")
            continue
        meta = el["metadata"]
        if not isinstance(meta, dict):
            errors.append(f"[{i}] metadata must be an object")
        elif not isinstance(meta.get("type"), str):
            errors.append(f"[{i}] metadata.type must be a string")
    return errors
