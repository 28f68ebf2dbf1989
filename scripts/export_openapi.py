"""
Export the OpenAPI document of the asset loan API to docs/openapi.json.

Usage:
    python scripts/export_openapi.py
"""

import json
import os
import sys

# Ensure the assetdesk package is importable
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from assetdesk.main import app  # noqa: E402

OUTPUT_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "docs")
OUTPUT_FILE = os.path.join(OUTPUT_DIR, "openapi.json")


def main():
    os.makedirs(OUTPUT_DIR, exist_ok=True)

    spec = app.openapi()
    with open(OUTPUT_FILE, "w") as f:
        json.dump(spec, f, indent=2, default=str)

    print(f"OpenAPI document written to {OUTPUT_FILE}")
    print(f"    Title   : {spec['info']['title']}")
    print(f"    Version : {spec['info']['version']}")
    print(f"    Paths   : {len(spec.get('paths', {}))}")


if __name__ == "__main__":
    main()
