"""Architecture profile loading from YAML files and plain mappings.

Accepted document shape::

    name: web-service
    layers:
      - name: presentation
        allowed_dependencies: [domain]
      - name: domain
        allowed_dependencies: []

``layers`` may also be given as a mapping of layer name to dependency list.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from os import PathLike
from pathlib import Path
from typing import cast

import yaml

from compliance_workflow.domain.errors import LayerCycleError, ProfileError
from compliance_workflow.domain.models import ArchitectureProfile, Layer

logger = logging.getLogger(__name__)

PROFILE_SUFFIXES: tuple[str, ...] = (".yaml", ".yml")


def profile_from_mapping(data: object, *, source: str = "profile") -> ArchitectureProfile:
    """Build a validated profile; every structural problem surfaces as ``ProfileError``."""
    if not isinstance(data, Mapping):
        raise ProfileError(f"{source}: expected mapping, got {type(data).__name__}")
    unknown = sorted(str(key) for key in data if key not in {"name", "layers"})
    if unknown:
        raise ProfileError(f"{source}: unexpected fields: {unknown}")
    if "name" not in data or "layers" not in data:
        raise ProfileError(f"{source}: profile requires 'name' and 'layers'")

    layers = _parse_layers(data["layers"], source=source)
    try:
        return ArchitectureProfile(name=cast("str", data["name"]), layers=layers)
    except LayerCycleError:
        raise
    except ValueError as exc:
        raise ProfileError(f"{source}: {exc}") from exc


def load_profile(path: str | PathLike[str]) -> ArchitectureProfile:
    profile_path = Path(path).expanduser()
    try:
        with profile_path.open("r", encoding="utf-8") as handle:
            loaded = cast("object", yaml.safe_load(handle))
    except FileNotFoundError as exc:
        raise ProfileError(f"profile file does not exist: {profile_path}") from exc
    except OSError as exc:
        raise ProfileError(f"unable to read profile file {profile_path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ProfileError(f"{profile_path}: invalid YAML ({exc})") from exc

    profile = profile_from_mapping(loaded, source=profile_path.name)
    logger.debug(
        "architecture profile loaded",
        extra={"profile": profile.name, "layers": list(profile.layer_names)},
    )
    return profile


def dump_profile(profile: ArchitectureProfile) -> str:
    """Render ``profile`` back into the YAML document shape ``load_profile`` reads."""
    record = {
        "name": profile.name,
        "layers": [
            {"name": layer.name, "allowed_dependencies": list(layer.allowed_dependencies)}
            for layer in profile.layers
        ],
    }
    return yaml.safe_dump(record, sort_keys=False, allow_unicode=True)


class ProfileDirectory:
    """Named profiles stored as ``<name>.yaml`` files under one directory."""

    __slots__ = ("_root", "_cache")

    def __init__(self, root: str | PathLike[str]) -> None:
        self._root = Path(root).expanduser()
        self._cache: dict[str, ArchitectureProfile] = {}

    @property
    def root(self) -> Path:
        return self._root

    def names(self) -> tuple[str, ...]:
        if not self._root.is_dir():
            return ()
        return tuple(
            sorted(
                {path.stem for path in self._root.iterdir() if path.suffix in PROFILE_SUFFIXES}
            )
        )

    def get(self, name: str) -> ArchitectureProfile:
        cached = self._cache.get(name)
        if cached is not None:
            return cached
        for suffix in PROFILE_SUFFIXES:
            candidate = self._root / f"{name}{suffix}"
            if candidate.is_file():
                profile = load_profile(candidate)
                self._cache[name] = profile
                return profile
        raise ProfileError(f"no architecture profile named {name!r} under {self._root}")

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name in self.names()


def _parse_layers(raw: object, *, source: str) -> tuple[Layer, ...]:
    entries: list[tuple[object, object]] = []
    if isinstance(raw, Mapping):
        entries = [(name, deps if deps is not None else []) for name, deps in raw.items()]
    elif isinstance(raw, Sequence) and not isinstance(raw, (str, bytes, bytearray)):
        for index, item in enumerate(raw):
            if not isinstance(item, Mapping):
                raise ProfileError(f"{source}: layers[{index}] must be a mapping")
            extra = sorted(str(key) for key in item if key not in {"name", "allowed_dependencies"})
            if extra:
                raise ProfileError(f"{source}: layers[{index}] unexpected fields: {extra}")
            entries.append((item.get("name"), item.get("allowed_dependencies") or []))
    else:
        raise ProfileError(f"{source}: 'layers' must be a list or mapping")

    layers: list[Layer] = []
    for index, (name, deps) in enumerate(entries):
        if isinstance(deps, (str, bytes)) or not isinstance(deps, Sequence):
            raise ProfileError(f"{source}: layers[{index}].allowed_dependencies must be a list")
        try:
            layers.append(
                Layer(name=cast("str", name), allowed_dependencies=cast("tuple[str, ...]", tuple(deps)))
            )
        except ValueError as exc:
            raise ProfileError(f"{source}: layers[{index}]: {exc}") from exc
    return tuple(layers)


__all__ = [
    "PROFILE_SUFFIXES",
    "ProfileDirectory",
    "dump_profile",
    "load_profile",
    "profile_from_mapping",
]
