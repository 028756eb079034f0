from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Union


def write_json(path: Union[str, Path], payload: Any) -> None:
    """Write ``payload`` as JSON, replacing the file only once fully written."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = target.with_name(target.name + ".tmp")
    tmp_path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
    tmp_path.replace(target)


def read_json(path: Union[str, Path]) -> Any:
    return json.loads(Path(path).read_text(encoding="utf-8"))
