"""
Flat JSON file transport.

The whole snapshot lives in one JSON document on disk (the layout the
tracker's Express server used for data/db.json). A missing file reads as
an empty document. Writes go to a temporary file in the same directory and
are moved into place with os.replace, so a crash mid-write never leaves a
truncated document behind.
"""

import asyncio
import json
import os
import tempfile
from pathlib import Path
from typing import Any, Union

import structlog

from fintrack.services.sync.interface import (
    MalformedSnapshotError,
    SyncFailure,
    SyncTransport,
)


logger = structlog.get_logger("fintrack.sync.file")


class JsonFileTransport(SyncTransport):
    """Full-document store backed by a single JSON file."""

    name = "file"

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    async def pull(self) -> dict[str, Any]:
        # File I/O runs off the event loop
        return await asyncio.to_thread(self._read)

    async def push(self, document: dict[str, Any]) -> None:
        await asyncio.to_thread(self._write, document)

    def _read(self) -> dict[str, Any]:
        try:
            with open(self._path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            logger.info("data_file_missing", path=str(self._path))
            return {}
        except json.JSONDecodeError as e:
            raise MalformedSnapshotError(f"Data file {self._path} is not valid JSON: {e}")
        except OSError as e:
            raise SyncFailure(f"Could not read data file {self._path}: {e}")

        if not isinstance(data, dict):
            raise MalformedSnapshotError(
                f"Data file {self._path} holds a {type(data).__name__}, expected an object"
            )
        return data

    def _write(self, document: dict[str, Any]) -> None:
        directory = self._path.parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=".db_", suffix=".json", dir=directory)
        except OSError as e:
            raise SyncFailure(f"Could not prepare data file {self._path}: {e}")

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self._path)
        except (OSError, TypeError, ValueError) as e:
            raise SyncFailure(f"Could not write data file {self._path}: {e}")
        finally:
            if os.path.exists(tmp_path):
                try:
                    os.remove(tmp_path)
                except OSError:
                    logger.exception("temp_file_cleanup_failed", path=tmp_path)
