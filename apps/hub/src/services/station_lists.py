from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Iterable, Tuple

from config import settings

logger = logging.getLogger("hidromonitor.hub.station_lists")

WHITELIST_FILE = "whitelist.json"
BLACKLIST_FILE = "blacklist.json"


def _normalize_codes(raw: object) -> set[str]:
    if not isinstance(raw, list):
        return set()
    codes: set[str] = set()
    for item in raw:
        if item is None or isinstance(item, (dict, list, bool)):
            continue
        code = str(item).strip()
        if code:
            codes.add(code)
    return codes


class StationLists:
    """Whitelist / blacklist of station codes persisted as JSON arrays."""

    def __init__(self, directory: str | Path) -> None:
        self._dir = Path(directory)

    @property
    def whitelist_path(self) -> Path:
        return self._dir / WHITELIST_FILE

    @property
    def blacklist_path(self) -> Path:
        return self._dir / BLACKLIST_FILE

    def _ensure_files(self) -> None:
        self._dir.mkdir(parents=True, exist_ok=True)
        for path in (self.blacklist_path, self.whitelist_path):
            if not path.exists():
                path.write_text("[]", encoding="utf-8")

    def _read(self, path: Path) -> set[str]:
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            logger.warning("Failed to read station list %s: %s", path, exc)
            return set()
        return _normalize_codes(raw)

    def _load_sync(self) -> Tuple[set[str], set[str]]:
        self._ensure_files()
        return self._read(self.blacklist_path), self._read(self.whitelist_path)

    async def load(self) -> Tuple[set[str], set[str]]:
        """Return ``(blacklist, whitelist)``, creating empty files when missing."""

        return await asyncio.to_thread(self._load_sync)

    def _save_sync(self, black: set[str], white: set[str]) -> None:
        self._dir.mkdir(parents=True, exist_ok=True)
        self.blacklist_path.write_text(json.dumps(sorted(black), indent=2), encoding="utf-8")
        self.whitelist_path.write_text(json.dumps(sorted(white), indent=2), encoding="utf-8")

    async def save(self, black: Iterable[object], white: Iterable[object]) -> Tuple[set[str], set[str]]:
        black_codes = _normalize_codes(list(black))
        white_codes = _normalize_codes(list(white))
        await asyncio.to_thread(self._save_sync, black_codes, white_codes)
        logger.info("Saved station lists: %d whitelisted, %d blacklisted", len(white_codes), len(black_codes))
        return black_codes, white_codes


station_lists = StationLists(settings.ana_station_lists_dir)

__all__ = ["StationLists", "station_lists"]
