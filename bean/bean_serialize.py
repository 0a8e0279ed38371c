from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional

import yaml


# --------------------------
# Helpers
# --------------------------

def _norm_text(data: bytes | bytearray | str, *, encoding: Optional[str] = None) -> str:
    if isinstance(data, (bytes, bytearray)):
        return data.decode(encoding or 'utf-8', errors='replace')
    return data


def detect_format(path: Optional[str] = None, data_hint: Optional[str] = None) -> Optional[str]:
    """
    Returns 'json' or 'yaml'.
    Uses the file suffix first; falls back to simple data sniffing if provided.
    """
    suffix = Path(path).suffix.lower() if path else ""
    if suffix == '.json':
        return 'json'
    if suffix in ('.yaml', '.yml'):
        return 'yaml'

    if data_hint is not None:
        s = data_hint.lstrip()
        if s.startswith('{') or s.startswith('['):
            return 'json'
        # YAML is a superset of JSON, so anything else is tried as YAML
        return 'yaml'
    return None


# --------------------------
# Public API
# --------------------------

def deserialize(data: bytes | bytearray | str, *, fmt: Optional[str] = None) -> Any:
    """
    Convert an AST document (bytes/string) into plain dicts and lists.
    Supported fmt: 'json', 'yaml'. If fmt is None, the data is sniffed.
    Raises ValueError when the document cannot be decoded.
    """
    text = _norm_text(data)
    f = fmt or detect_format(data_hint=text)
    if f == 'json':
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON document: {e}") from e
    if f == 'yaml':
        try:
            return yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML document: {e}") from e
    raise ValueError(f"Unsupported document format: {fmt!r}")


def read_document(path: str | Path) -> Any:
    """Read and decode an AST document file, choosing the format from its suffix."""
    p = Path(path)
    text = p.read_text(encoding="utf-8")
    return deserialize(text, fmt=detect_format(str(p), text))


__all__ = [
    "deserialize",
    "detect_format",
    "read_document",
]
