import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from fastapi.testclient import TestClient

import topo_http as mod

client = TestClient(mod.app)


def test_health():
    r = client.get("/health")
    assert r.status_code == 200
    body = r.json()
    assert body["ok"] is True
    assert body["kinds"] == 9


def test_record_kinds_lists_shapes_and_aliases():
    r = client.get("/record-kinds")
    assert r.status_code == 200
    kinds = {k["name"]: k for k in r.json()["result"]["kinds"]}
    assert len(kinds) == 9
    assert "switch" in kinds["of_switch"]["aliases"]
    assert [f["name"] for f in kinds["lm_ph"]["fields"]] == ["ph_id", "port_bridges", "vp_suffixes"]


def test_translate_terms():
    r = client.post("/translate", json={"text": '{endpoint, "h1", "10.0.0.1", "s1", "1"}.', "id": "req-1"})
    assert r.status_code == 200
    body = r.json()
    assert body["ok"] is True and body["id"] == "req-1"
    assert body["result"]["count"] == 2
    assert body["result"]["elements"][1] == {"link": ["h1", "s1/1"], "metadata": {"type": "connected_to"}}


def test_translate_json_format_keeps_null_wires():
    r = client.post("/translate", json={"text": '[["lm_patchp", "h1", ["p1"]]]', "format": "json"})
    assert r.status_code == 200
    first = r.json()["result"]["elements"][0]
    assert first["metadata"]["wires"] == {"h1/p1": None}


def test_translate_unknown_record():
    r = client.post("/translate", json={"text": '{router, "r1"}.'})
    assert r.status_code == 400
    err = r.json()["error"]
    assert err["code"] == "unknown_record"
    assert err["details"]["record"] == '{router, "r1"}'


def test_translate_syntax_error():
    r = client.post("/translate", json={"text": '{bound_to, "a", "b"}'})
    assert r.status_code == 400
    err = r.json()["error"]
    assert err["code"] == "syntax_error"
    assert err["details"]["line"] == 1


def test_translate_bad_format():
    r = client.post("/translate", json={"text": "[]", "format": "xml"})
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "bad_format"


def test_translate_strict_duplicate():
    text = '{lm_ph, "ph1", [{"pp1", "vp1"}], ["vp1"]}.'
    assert client.post("/translate", json={"text": text}).status_code == 200
    r = client.post("/translate", json={"text": text, "strict": True})
    assert r.status_code == 400
    err = r.json()["error"]
    assert err["code"] == "duplicate_identifier"
    assert err["details"]["identifier"] == "ph1/vp1"


def test_auth_required(monkeypatch):
    monkeypatch.setattr(mod, "REQUIRE_AUTH", True)
    monkeypatch.setattr(mod, "TOPO_TOKEN", "t0k")
    payload = {"text": '{bound_to, "a", "b"}.'}
    r = client.post("/translate", json=payload)
    assert r.status_code == 401
    assert r.json()["error"]["message"] == "missing bearer token"
    r = client.post("/translate", json=payload, headers={"Authorization": "Bearer wrong"})
    assert r.status_code == 401
    r = client.post("/translate", json=payload, headers={"Authorization": "Bearer t0k"})
    assert r.status_code == 200
    assert client.get("/record-kinds").status_code == 401
    assert client.get("/health").status_code == 200


def test_translate_yaml_format():
    r = client.post("/translate", json={"text": "- [bound_to, a, b]\n", "format": "yaml"})
    assert r.status_code == 200
    result = r.json()["result"]
    assert result["count"] == 1
    assert result["elements"] == [{"link": ["a", "b"], "metadata": {"type": "bound_to"}}]


def test_translate_deep_nesting_is_syntax_error():
    r = client.post("/translate", json={"text": "[" * 5000 + "]" * 5000 + "."})
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "syntax_error"
