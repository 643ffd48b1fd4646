from __future__ import annotations

import json
import sys
from pathlib import Path

from fastapi import FastAPI
from src.api.main import create_app


def export_openapi(app: FastAPI, destination: Path) -> None:
    """Write the workflow API's OpenAPI schema to ``destination``."""
    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_text(json.dumps(app.openapi(), indent=2, sort_keys=True))


def main(argv: list[str] | None = None) -> None:
    args = sys.argv[1:] if argv is None else argv
    output = Path(args[0]) if args else Path("docs/api/openapi.json")
    export_openapi(create_app(), output)
    print(f"OpenAPI schema written to {output}")


if __name__ == "__main__":
    main()
