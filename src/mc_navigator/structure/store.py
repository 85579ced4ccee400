"""JSON side-file persistence for structure descriptors, keyed by agent identity."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import ValidationError

from mc_navigator.structure.descriptor import StructureDescriptor


class StructureStore:
    """Reads and writes ``<root>/<agent_id>/house.json``."""

    FILE_NAME = "house.json"

    def __init__(self, root: str | Path, *, logger: logging.Logger | None = None) -> None:
        self._root = Path(root)
        self._logger = logger or logging.getLogger("mc_navigator.structure.store")

    def path_for(self, agent_id: str) -> Path:
        return self._root / agent_id / self.FILE_NAME

    def load(self, agent_id: str) -> StructureDescriptor | None:
        path = self.path_for(agent_id)
        if not path.exists():
            return None

        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
            return StructureDescriptor.model_validate(payload)
        except (json.JSONDecodeError, ValidationError) as exc:
            self._logger.warning("structure_load_failed", extra={"path": str(path), "error": str(exc)})
            return None

    def save(self, agent_id: str, descriptor: StructureDescriptor) -> Path:
        path = self.path_for(agent_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(descriptor.to_json() + "\n", encoding="utf-8")
        self._logger.info("structure_saved", extra={"path": str(path)})
        return path
