# tests/test_api.py
"""
REST API tests (FastAPI TestClient, python engine).
"""

import pytest
from fastapi.testclient import TestClient

from api.main import app

client = TestClient(app)

SQUARE = {
    "segments": [
        {"start": [0, 0, 0], "end": [1, 0, 0]},
        {"start": [1, 0, 0], "end": [1, 1, 0]},
        {"start": [1, 1, 0], "end": [0, 1, 0]},
        {"start": [0, 1, 0], "end": [0, 0, 0]},
    ],
    "anchors": [[0, 0, 0], [1, 1, 0]],
    "edge_tolerance": 0.01,
    "anchor_tolerance": 0.01,
}


def test_health():
    r = client.get("/")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


class TestNetwork:
    def test_square(self):
        body = client.post("/api/network", json=SQUARE).json()
        assert body["success"] and body["valid"]
        assert body["free_nodes"] == [0, 1]
        assert body["fixed_nodes"] == [2, 3]
        assert len(body["edges"]) == 4

    def test_bad_anchors_report_message(self):
        req = dict(SQUARE, anchors=[[0, 0, 0]])
        body = client.post("/api/network", json=req).json()
        assert not body["success"]
        assert body["messages"] == ["For stability, define at least 2 anchor points."]

    def test_grid(self):
        req = {"grid": {"nx": 4, "ny": 4, "anchor_layout": "corners"}, "edge_tolerance": 0.01}
        body = client.post("/api/network", json=req).json()
        assert body["valid"]
        assert body["metrics"]["n_nodes"] == 25
        assert body["metrics"]["n_edges"] == 40

    def test_no_geometry(self):
        body = client.post("/api/network", json={}).json()
        assert not body["success"]
        assert "segments" in body["error"]


class TestSolve:
    def test_square_solve(self):
        req = {"network": SQUARE, "q": [10.0], "loads": [[0, 0, 0]], "engine": "python"}
        body = client.post("/api/solve", json=req).json()
        assert body["success"]
        free = [n for n in body["nodes"] if not n["anchor"]]
        for n in free:
            assert n["x"] == pytest.approx(0.5)
            assert n["y"] == pytest.approx(0.5)
        assert body["reactions"][0] == pytest.approx([-10.0, -10.0, 0.0])
        assert body["metrics"]["converged"]

    def test_mechanism_reported(self):
        req = {"network": SQUARE, "q": [0.0], "engine": "python"}
        body = client.post("/api/solve", json=req).json()
        assert not body["success"]
        assert "unstable" in body["error"]

    def test_export_csv(self):
        req = {"network": SQUARE, "engine": "python"}
        r = client.post("/api/export/csv", json=req)
        assert r.status_code == 200
        lines = r.text.strip().splitlines()
        assert lines[0].startswith("edge,start,end")
        assert len(lines) == 5

    def test_export_json(self):
        req = {"network": SQUARE, "engine": "python"}
        model = client.post("/api/export/json", json=req).json()
        assert model["type"] == "cable_net"
        assert len(model["geometry"]["edges"]) == 4

    def test_export_invalid_is_400(self):
        req = {"network": dict(SQUARE, anchors=[[0, 0, 0]]), "engine": "python"}
        r = client.post("/api/export/csv", json=req)
        assert r.status_code == 400
