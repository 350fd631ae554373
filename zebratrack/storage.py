from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Any

from .errors import InvalidOperation

logger = logging.getLogger(__name__)


class JsonFileStorage:
    """One JSON document on disk, replaced atomically on every write."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def read(self, default: Any = None) -> Any:
        try:
            content = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return default
        if not content.strip():
            return default
        try:
            return json.loads(content)
        except json.JSONDecodeError as exc:
            raise InvalidOperation(f"Corrupt data file {self.path}: {exc}") from exc

    def write(self, data: Any) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        content = json.dumps(data, indent=2, ensure_ascii=False) + "\n"
        tmp_file = None
        try:
            with NamedTemporaryFile("w", encoding="utf-8", delete=False, dir=str(self.path.parent)) as tmp:
                tmp_file = tmp.name
                tmp.write(content)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_file, self.path)
        except OSError:
            if tmp_file and os.path.exists(tmp_file):
                os.unlink(tmp_file)
            raise
        logger.debug("Wrote %s", self.path)

    def delete(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass


__all__ = ["JsonFileStorage"]
