import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "scripts"))

import validate_graph as vg
from topo_graph import render_json, translate, validate_elements
from topo_terms import parse_terms


def test_converted_output_passes(tmp_path, capsys):
    a = render_json(translate(parse_terms('{of_switch, "s1", "dp", ["1"]}.\n{lm_patchp, "h1", ["p1"]}.')))
    b = render_json(translate(parse_terms('{bound_to, "a", "b"}.')))
    p = tmp_path / "graph.json"
    p.write_text(a + "\n" + b + "\n", encoding="utf-8")
    assert len(list(vg.iter_documents(p.read_text()))) == 2
    assert vg.main([str(p)]) == 0
    assert f"OK: {p}" in capsys.readouterr().out


def test_bad_elements_are_reported(tmp_path, capsys):
    p = tmp_path / "bad.json"
    p.write_text('[{"identifier": "a"}, {"link": ["a", "b", "c"], "metadata": {"type": "part_of"}},'
                 ' {"identifier": "x", "metadata": {"type": 3}}]', encoding="utf-8")
    assert vg.main([str(p)]) == 1
    out = capsys.readouterr().out
    assert "[0] unexpected keys" in out
    assert "[1] link must be an array of two strings" in out
    assert "[2] metadata.type must be a string" in out


def test_invalid_json_and_empty_file(tmp_path, capsys):
    broken = tmp_path / "broken.json"
    broken.write_text("[{", encoding="utf-8")
    empty = tmp_path / "empty.json"
    empty.write_text("\n", encoding="utf-8")
    assert vg.main([str(broken), str(empty)]) == 1
    out = capsys.readouterr().out
    assert "invalid JSON" in out
    assert "no JSON array found" in out


def test_validate_elements_non_array():
    assert validate_elements({"identifier": "a"}) == ["graph must be an array, got dict"]
    assert validate_elements([]) == []
