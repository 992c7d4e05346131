from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Optional

import aiofiles

from ..domain.errors import StorageCorrupt


class JsonFileKeyValueStore:
    """
    Key-value store persisted as one JSON object on disk.

    Every write rewrites the whole document through a temporary file and an
    atomic rename.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            data = await self._load()
        return data.get(key)

    async def set(self, key: str, value: str) -> None:
        async with self._lock:
            data = await self._load()
            data[key] = value
            await self._save(data)

    async def delete(self, key: str) -> None:
        async with self._lock:
            data = await self._load()
            if data.pop(key, None) is not None:
                await self._save(data)

    async def _load(self) -> dict[str, str]:
        try:
            async with aiofiles.open(self._path, "r", encoding="utf-8") as f:
                raw = await f.read()
        except FileNotFoundError:
            return {}
        if not raw.strip():
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise StorageCorrupt(f"{self._path} is not valid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise StorageCorrupt(f"{self._path} does not hold a JSON object")
        return {str(k): str(v) for k, v in data.items()}

    async def _save(self, data: dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
            await f.write(json.dumps(data, ensure_ascii=False, sort_keys=True))
        await asyncio.to_thread(tmp_path.replace, self._path)
