#!/usr/bin/env python3
"""
Export the Keygate OpenAPI schema without running the server.

Imports the FastAPI app and writes ``app.openapi()`` to disk, so client code
generation can run in CI.

Usage:
    python scripts/export_openapi_schema.py [output_path]

Output:
    openapi.json in the repository root unless a path is given
"""

import json
import sys
from pathlib import Path

from loguru import logger


def export_openapi_schema(output_path: Path) -> dict:
    """Write the OpenAPI schema to ``output_path`` and return it."""
    # Importing the app sets up logging but does not open the key store
    from keygate.main import app

    schema = app.openapi()
    output_path.write_text(json.dumps(schema, indent=2) + "\n")

    paths = schema.get("paths", {})
    logger.success(f"OpenAPI schema exported to {output_path}")
    logger.info(f"API: {schema['info']['title']} {schema['info']['version']}")
    logger.info(f"Endpoints: {len(paths)}")
    for path in sorted(paths):
        logger.info(f"  {', '.join(m.upper() for m in paths[path])} {path}")
    return schema


def main() -> int:
    repo_root = Path(__file__).parent.parent
    output_path = Path(sys.argv[1]) if len(sys.argv) > 1 else repo_root / "openapi.json"

    try:
        export_openapi_schema(output_path)
    except ImportError as e:
        logger.error(f"Failed to import keygate.main: {e}")
        logger.error("Install the project first: pip install -e .")
        return 1
    except OSError as e:
        logger.error(f"Could not write {output_path}: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
