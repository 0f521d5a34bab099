"""On-disk JSON documents for persisted sessions and checkpoints."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any
from uuid import uuid4


def write_document(path: Path, document: dict[str, Any]) -> None:
    """Replace ``path`` with ``document`` so readers never see a partial file.

    The temporary name is unique per call, which keeps the auto-save loop and a
    manual checkpoint from clobbering each other's temporary files.
    """

    path.parent.mkdir(parents=True, exist_ok=True)
    staging = path.parent / f".{path.stem}.{uuid4().hex[:8]}.partial"
    encoded = json.dumps(document, ensure_ascii=False, indent=2, sort_keys=True)
    try:
        staging.write_text(encoded, encoding="utf-8")
        os.replace(staging, path)
    finally:
        staging.unlink(missing_ok=True)


def read_document(path: Path) -> dict[str, Any]:
    document = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(document, dict):
        raise TypeError(f"{path} does not hold a JSON object")
    return document
