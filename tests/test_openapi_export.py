import importlib.util
import json
from pathlib import Path

import pytest

SCRIPT = Path(__file__).parent.parent / "scripts" / "export_openapi_schema.py"


def load_script():
    spec = importlib.util.spec_from_file_location("export_openapi_schema", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.mark.unit
def test_exports_key_routes(tmp_path):
    output_path = tmp_path / "openapi.json"

    load_script().export_openapi_schema(output_path)

    schema = json.loads(output_path.read_text())
    assert schema["info"]["title"] == "Keygate"
    for path in (
        "/api/keys",
        "/api/keys/live",
        "/api/keys/check/{token}",
        "/api/keys/search",
        "/api/keys/cleanup",
        "/api/validate",
        "/api/validate/{token}",
        "/api/generate",
        "/api/config",
        "/health",
    ):
        assert path in schema["paths"]
    # Legacy alias stays out of the schema
    assert "/api/keys/file" not in schema["paths"]
