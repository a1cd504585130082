from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from .config import get_config_dir
from .errors import PersistenceError
from .filters import render_shorthand, translate
from .models import FilterSpec

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SavedFilter:
    """A named filter preset, remembered across sessions."""

    name: str
    spec: FilterSpec
    group: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {
            "group": self.group,
            "start": self.spec.start,
            "end": self.spec.end,
            "query": render_shorthand(self.spec),
        }

    @classmethod
    def from_dict(cls, name: str, raw: Dict[str, Any]) -> "SavedFilter":
        pattern = translate(str(raw.get("query", "")))
        spec = FilterSpec(
            start=str(raw.get("start", "")),
            end=str(raw.get("end", "")),
            raw_pattern=pattern.raw_pattern,
            field_terms=pattern.field_terms,
        )
        return cls(name=name, spec=spec, group=str(raw.get("group", "")))


class SavedFilterStore:
    """JSON backed storage for filter presets.

    The file holds one object mapping preset name to its fields. Every
    mutation re-reads the file, applies the change and replaces the file
    atomically, so a crash never leaves a half-written store behind.
    """

    FILE_NAME = "filters.json"

    def __init__(self, path: Optional[Path] = None) -> None:
        if path is None:
            path = get_config_dir() / self.FILE_NAME
        self._path = path
        self._presets: Dict[str, SavedFilter] = {}

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> list[str]:
        """Read the file into memory. Raises PersistenceError if it is corrupt."""
        self._presets = self._read()
        return self.list()

    def list(self) -> list[str]:
        return list(self._presets)

    def presets(self) -> list[SavedFilter]:
        return list(self._presets.values())

    def get(self, name: str) -> FilterSpec:
        return self.get_preset(name).spec

    def get_preset(self, name: str) -> SavedFilter:
        return self._presets[name]

    def __contains__(self, name: object) -> bool:
        return name in self._presets

    def save(self, name: str, spec: FilterSpec, group: str = "") -> SavedFilter:
        preset = SavedFilter(name=name, spec=spec, group=group)
        presets = self._read_for_update()
        presets[name] = preset
        self._presets = presets
        self._write(presets)
        return preset

    def delete(self, name: str) -> None:
        presets = self._read_for_update()
        if name not in presets:
            raise KeyError(name)
        del presets[name]
        self._presets = presets
        self._write(presets)

    def _read_for_update(self) -> Dict[str, SavedFilter]:
        try:
            on_disk = self._read()
        except PersistenceError as exc:
            logger.warning("Ignoring unreadable filter store during update: %s", exc)
            return dict(self._presets)
        # Names only known in memory survive an earlier failed write
        for name, preset in self._presets.items():
            on_disk.setdefault(name, preset)
        return on_disk

    def _read(self) -> Dict[str, SavedFilter]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise PersistenceError(f"Cannot read saved filters: {exc}", path=self._path) from exc
        if not isinstance(data, dict):
            raise PersistenceError("Saved filters file is not a JSON object.", path=self._path)
        presets: Dict[str, SavedFilter] = {}
        for name, raw in data.items():
            if not isinstance(raw, dict):
                raise PersistenceError(f"Saved filter '{name}' is malformed.", path=self._path)
            presets[name] = SavedFilter.from_dict(name, raw)
        return presets

    def _write(self, presets: Dict[str, SavedFilter]) -> None:
        payload = {name: preset.to_dict() for name, preset in presets.items()}
        serialized = json.dumps(payload, indent=2)
        tmp_name: Optional[str] = None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self._path.parent,
                prefix=f".{self._path.name}.",
                suffix=".tmp",
                delete=False,
            ) as handle:
                tmp_name = handle.name
                handle.write(serialized)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, self._path)
        except OSError as exc:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass
            raise PersistenceError(f"Cannot write saved filters: {exc}", path=self._path) from exc
