"""
arenasettle/repository/file.py

JSON-file match repository for single-host deployments and the CLI.

The whole document is rewritten on every mutation: written to a temp file
beside the target, fsynced, then renamed over it. A crash leaves either
the old or the new document, never a torn one. A failed write leaves the
in-memory records as they were and the error propagates.

File shape:
    {"matches": [ <MatchRecord camelCase dict>, ... ]}
"""

import json
import os
from pathlib import Path
from typing import Dict, List

from arenasettle.core.exceptions import ConfigError
from arenasettle.core.log import get_logger
from arenasettle.core.models import MatchRecord
from arenasettle.repository.memory import InMemoryMatchRepository

logger = get_logger(__name__)


class JsonFileMatchRepository(InMemoryMatchRepository):

    def __init__(self, path: Path):
        self.path = Path(path)
        super().__init__(self._load())

    def _load(self) -> List[MatchRecord]:
        if not self.path.exists():
            return []
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                document = json.load(f)
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Match repository {self.path} is not valid JSON: {exc}") from exc
        try:
            records = [MatchRecord.from_dict(d) for d in document.get("matches", [])]
        except (KeyError, ValueError, TypeError) as exc:
            raise ConfigError(f"Invalid match record in {self.path}: {exc}") from exc
        logger.debug("Loaded %d match records from %s", len(records), self.path)
        return records

    def _persist(self, records: Dict[str, MatchRecord]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        document = {"matches": [r.to_dict() for r in records.values()]}
        try:
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(document, f, ensure_ascii=False, indent=2)
                f.write("\n")
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, self.path)
        except OSError:
            if temp_path.exists():
                temp_path.unlink()
            raise

    def __repr__(self) -> str:
        return f"JsonFileMatchRepository(path={str(self.path)!r}, records={len(self)})"
