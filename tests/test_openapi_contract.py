import json
from pathlib import Path

from stockpos.main import app


def test_openapi_paths_snapshot():
    snapshot_path = Path(__file__).parent / "snapshots" / "openapi_paths_snapshot.json"
    expected_paths = json.loads(snapshot_path.read_text(encoding="utf-8"))
    actual_paths = sorted(app.openapi()["paths"].keys())
    assert actual_paths == expected_paths


def test_error_responses_use_envelope_schema():
    schema = app.openapi()
    void_responses = schema["paths"]["/sales/{sale_id}/void"]["post"]["responses"]
    for status_code in ("400", "401", "403", "404"):
        example = void_responses[status_code]["content"]["application/json"]["example"]
        assert example["success"] is False
        assert "error" in example
