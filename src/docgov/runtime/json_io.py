from __future__ import annotations

import json
from pathlib import Path
from typing import Mapping


def canonicalize_json(value: object) -> object:
    if isinstance(value, Mapping):
        # Lexical mapping-key order defines the canonical shape.
        ordered_items = sorted(
            ((str(key), canonicalize_json(item_value)) for key, item_value in value.items()),
            key=lambda item: item[0],
        )
        return {key: item_value for key, item_value in ordered_items}
    if isinstance(value, (list, tuple)):
        return [canonicalize_json(item) for item in value]
    return value


def dump_json_pretty(payload: object) -> str:
    return json.dumps(canonicalize_json(payload), indent=2, sort_keys=False)


def write_json_pretty(path: Path, payload: object) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(dump_json_pretty(payload) + "\n", encoding="utf-8")
