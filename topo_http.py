import os
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from topo_graph import (
    DEFAULT_ALIASES,
    RECORD_SHAPES,
    DuplicateIdentifierError,
    UnknownRecordError,
    load_aliases,
    translate,
)
from topo_log import LogHelper, new_correlation_id
from topo_terms import FORMATS, TermSyntaxError, format_term, load_records_text

# -------- Config --------
REQUIRE_AUTH = os.getenv("TOPO_REQUIRE_AUTH", "0") == "1"
TOPO_TOKEN = os.getenv("TOPO_TOKEN", "")
ALIAS_FILE = os.getenv("TOPO_ALIAS_FILE")
SERVER_VERSION = os.getenv("TOPO_SERVER_VERSION", "v1")

ALIASES = load_aliases(ALIAS_FILE)
LOGGER = LogHelper(os.getenv("TOPO_JSON_LOG") == "1", new_correlation_id())

APP = FastAPI(title="topo2graph", version="0.1.0")
app = APP  # uvicorn topo_http:app


# -------- Models --------
class TranslateRequest(BaseModel):
    text: str
    format: str = "terms"
    strict: bool = False
    id: Optional[str] = None


def _err_payload(code: str, message: str, details: Optional[Dict[str, Any]] = None,
                 status: int = 400, rid: Optional[str] = None) -> JSONResponse:
    body: Dict[str, Any] = {"ok": False, "error": {"code": code, "message": message}}
    if details:
        body["error"]["details"] = details
    if rid:
        body["id"] = rid
    return JSONResponse(body, status_code=status)


def _auth(request: Request):
    if not REQUIRE_AUTH:
        return True, None
    got = request.headers.get("authorization", "")
    if not got.startswith("Bearer "):
        return False, _err_payload("unauthorized", "missing bearer token", status=401)
    token = got.split(" ", 1)[1].strip()
    if not TOPO_TOKEN or token != TOPO_TOKEN:
        return False, _err_payload("unauthorized", "invalid token", status=401)
    return True, None


def _kind_aliases(kind: str) -> list:
    return DEFAULT_ALIASES.get(kind, []) + ALIASES.get(kind, [])


@APP.get("/health")
def health():
    return {
        "ok": True,
        "server_version": SERVER_VERSION,
        "require_auth": REQUIRE_AUTH,
        "kinds": len(RECORD_SHAPES),
    }


@APP.get("/record-kinds")
def record_kinds(request: Request):
    ok, resp = _auth(request)
    if not ok:
        return resp
    kinds = [
        {
            "name": kind,
            "fields": [{"name": name, "kind": fk} for name, fk in shape],
            "aliases": _kind_aliases(kind),
        }
        for kind, shape in RECORD_SHAPES.items()
    ]
    return {"ok": True, "result": {"kinds": kinds, "count": len(kinds)}}


@APP.post("/translate")
def translate_records(req: TranslateRequest, request: Request):
    ok, resp = _auth(request)
    if not ok:
        return resp
    rid = req.id or request.headers.get("X-Request-Id")
    if req.format not in FORMATS:
        return _err_payload("bad_format", f"unsupported input format: {req.format}",
                            details={"formats": list(FORMATS)}, rid=rid)
    try:
        records = load_records_text(req.text, req.format)
        elements = translate(records, aliases=ALIASES, strict=req.strict, logger=LOGGER)
    except TermSyntaxError as e:
        LOGGER.log_event("warn", "input.syntax", "http", "translate", str(e), rid=rid)
        return _err_payload("syntax_error", e.message, details={"line": e.line}, rid=rid)
    except UnknownRecordError as e:
        LOGGER.log_event("warn", "record.unknown", "http", "translate", str(e), rid=rid)
        return _err_payload("unknown_record", str(e), details={"record": format_term(e.record)}, rid=rid)
    except DuplicateIdentifierError as e:
        LOGGER.log_event("warn", "record.duplicate_identifier", "http", "translate", str(e), rid=rid)
        return _err_payload("duplicate_identifier", str(e), details={"identifier": e.identifier}, rid=rid)
    LOGGER.log_event("debug", "translate.ok", "http", "translate", "Records translated",
                     rid=rid, records=len(records), elements=len(elements))
    return JSONResponse({"ok": True, "id": rid, "result": {"elements": elements, "count": len(elements)}})
