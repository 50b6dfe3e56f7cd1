"""
Packaged JSON tunables.

Each file under interest_finder/configs/ holds the defaults of one
component. Components describe their tunables as a dataclass and build it
with `build_tunables`; explicit constructor arguments win over the file,
and keys the dataclass does not know are logged and ignored.
"""
import dataclasses
import json
import logging
from pathlib import Path
from typing import Any, Dict, Type, TypeVar

logger = logging.getLogger(__name__)

CONFIG_DIR = Path(__file__).resolve().parent.parent / "configs"

T = TypeVar("T")

# path -> parsed file; read once per process
_cache: Dict[Path, Dict[str, Any]] = {}


def read_tunables(name: str, *, fresh: bool = False) -> Dict[str, Any]:
    """
    Returns the contents of configs/<name>.json as a dict.

    A missing, unparsable or non-object file yields {} and a warning.
    """
    path = CONFIG_DIR / f"{name}.json"
    if not fresh and path in _cache:
        return dict(_cache[path])

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        logger.warning(f"[config] {path.name} not found, using built-in defaults")
        data = {}
    except json.JSONDecodeError as exc:
        logger.warning(f"[config] {path.name} is not valid JSON ({exc}), using built-in defaults")
        data = {}

    if not isinstance(data, dict):
        logger.warning(f"[config] {path.name} must hold a JSON object, using built-in defaults")
        data = {}

    _cache[path] = data
    return dict(data)


def build_tunables(cls: Type[T], name: str, **overrides: Any) -> T:
    """
    Instantiates the dataclass `cls` from configs/<name>.json.

    Overrides that are not None replace the file values.
    """
    known = {f.name for f in dataclasses.fields(cls)}
    raw = read_tunables(name)

    unknown = sorted(set(raw) - known)
    if unknown:
        logger.warning(f"[config] Ignoring unknown keys in {name}.json: {', '.join(unknown)}")

    values = {key: value for key, value in raw.items() if key in known}
    values.update({key: value for key, value in overrides.items() if value is not None})
    return cls(**values)


def clear_cache() -> None:
    _cache.clear()
