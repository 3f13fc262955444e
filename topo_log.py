#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# topo_log.py - structured event logger shared by the CLI and the HTTP service.
# stdout is reserved for graph JSON, so every event goes to stderr.

from __future__ import annotations

import json
import sys
import uuid
from datetime import datetime, timezone
from typing import IO, Optional


def iso_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def new_correlation_id() -> str:
    return uuid.uuid4().hex[:12]


class LogHelper:
    def __init__(self, json_mode: bool, correlation_id: str, verbose: bool = False,
                 stream: Optional[IO[str]] = None):
        self.json_mode = json_mode
        self.correlation_id = correlation_id
        self.verbose = verbose
        self.stream = stream

    def log_event(self, level: str, event: str, component: str, step: str, msg: str, **kwargs):
        if level == "debug" and not self.verbose:
            return
        payload = {
            "ts": iso_now(),
            "level": level,
            "component": component,
            "step": step,
            "msg": msg,
            "event": event,
            "cid": self.correlation_id,
        }
        payload.update(kwargs)
        out = self.stream or sys.stderr
        if self.json_mode:
            out.write(json.dumps(payload, ensure_ascii=False, default=str) + "\n")
            return
        kvs = " ".join(f"{k}={v}" for k, v in payload.items() if k not in ("ts", "level", "component", "step", "msg"))
        out.write(f"[{level}] {payload['ts']} {component} {step} {msg} {kvs}".rstrip() + "\n")
