"""Sound library backed by per-category directories."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from pathlib import Path
import re
import time

from services.common.structured_logging import get_logger

from .domain import SOUND_CATEGORIES, SoundCategory, SoundFile
from .errors import SoundNotFoundError


logger = get_logger(__name__, service_name="soundboard")

_SEPARATORS = re.compile(r"[-_]+")
_SLUG_INVALID = re.compile(r"[^a-z0-9]+")
_SUFFIX = re.compile(r"\.[a-z0-9]{1,8}")


def humanize(filename: str) -> str:
    """``epic-battle_theme.mp3`` -> ``Epic Battle Theme``."""
    stem = Path(filename).stem
    words = _SEPARATORS.sub(" ", stem).split()
    return " ".join(word[:1].upper() + word[1:] for word in words)


def slugify(text: str) -> str:
    """``My Song (Live)!`` -> ``my-song-live``."""
    return _SLUG_INVALID.sub("-", text.lower()).strip("-")


class SoundLibrary:
    """Resolves sound ids and names to files on disk."""

    def __init__(self, music_dir: str | Path, effects_dir: str | Path) -> None:
        self._dirs: dict[SoundCategory, Path] = {
            "music": Path(music_dir),
            "effects": Path(effects_dir),
        }

    def directory(self, category: SoundCategory) -> Path:
        if category not in self._dirs:
            raise ValueError(f"Unknown sound category '{category}'")
        return self._dirs[category]

    def ensure_directories(self) -> None:
        for category in SOUND_CATEGORIES:
            self._dirs[category].mkdir(parents=True, exist_ok=True)

    async def list(self, category: SoundCategory) -> list[SoundFile]:
        """All files of ``category``, newest first."""
        return await asyncio.to_thread(self._list_sync, category)

    async def get_file(self, category: SoundCategory, sound_id: str) -> SoundFile:
        return await asyncio.to_thread(self._get_file_sync, category, sound_id)

    async def resolve(self, category: SoundCategory, id_or_name: str) -> SoundFile:
        """Exact id first; else case-insensitive id match or name substring.

        Raises:
            SoundNotFoundError: nothing in ``category`` matches
        """
        return await asyncio.to_thread(self._resolve_sync, category, id_or_name)

    async def save(self, category: SoundCategory, filename: str, data: bytes) -> SoundFile:
        """Store an uploaded file under a fresh id derived from its name.

        The id is the slugified stem plus a millisecond timestamp, so uploads
        with the same name never overwrite each other.
        """
        return await asyncio.to_thread(self._save_sync, category, filename, data)

    async def remove(self, category: SoundCategory, sound_id: str) -> SoundFile:
        """Delete the file with id ``sound_id``.

        Raises:
            SoundNotFoundError: no file in ``category`` has that id
        """
        return await asyncio.to_thread(self._remove_sync, category, sound_id)

    def _list_sync(self, category: SoundCategory) -> list[SoundFile]:
        base = self.directory(category)
        if not base.is_dir():
            return []
        results = []
        for path in base.iterdir():
            if not path.is_file() or path.name.startswith("."):
                continue
            try:
                results.append(self._describe(category, path))
            except FileNotFoundError:
                logger.warning("catalog.file_vanished", path=str(path))
        results.sort(key=lambda item: item.created_at, reverse=True)
        return results

    def _get_file_sync(self, category: SoundCategory, sound_id: str) -> SoundFile:
        base = self.directory(category)
        # ids never contain path separators; reject anything that could escape base
        if not sound_id or "/" in sound_id or "\\" in sound_id or sound_id.startswith("."):
            raise SoundNotFoundError(category, sound_id)
        if base.is_dir():
            for path in sorted(base.iterdir()):
                if path.is_file() and path.stem == sound_id:
                    return self._describe(category, path)
        raise SoundNotFoundError(category, sound_id)

    def _save_sync(self, category: SoundCategory, filename: str, data: bytes) -> SoundFile:
        base = self.directory(category)
        base.mkdir(parents=True, exist_ok=True)
        original = Path(filename or "").name
        suffix = Path(original).suffix.lower()
        if not _SUFFIX.fullmatch(suffix):
            suffix = ".mp3"
        stem = slugify(Path(original).stem) or "sound"
        target = base / f"{stem}-{time.time_ns() // 1_000_000}{suffix}"
        target.write_bytes(data)
        logger.info(
            "catalog.saved",
            category=category,
            filename=target.name,
            size=len(data),
        )
        return self._describe(category, target)

    def _remove_sync(self, category: SoundCategory, sound_id: str) -> SoundFile:
        item = self._get_file_sync(category, sound_id)
        try:
            item.path.unlink()
        except FileNotFoundError as exc:
            raise SoundNotFoundError(category, sound_id) from exc
        logger.info(
            "catalog.removed",
            category=category,
            sound_id=sound_id,
            filename=item.filename,
        )
        return item

    def _resolve_sync(self, category: SoundCategory, id_or_name: str) -> SoundFile:
        try:
            return self._get_file_sync(category, id_or_name)
        except SoundNotFoundError:
            pass
        needle = id_or_name.strip().lower()
        if not needle:
            raise SoundNotFoundError(category, id_or_name)
        for item in self._list_sync(category):
            if item.id.lower() == needle or needle in item.name.lower():
                logger.debug(
                    "catalog.resolved_by_name",
                    category=category,
                    query=id_or_name,
                    sound_id=item.id,
                )
                return item
        raise SoundNotFoundError(category, id_or_name)

    @staticmethod
    def _describe(category: SoundCategory, path: Path) -> SoundFile:
        stats = path.stat()
        return SoundFile(
            id=path.stem,
            name=humanize(path.name),
            filename=path.name,
            category=category,
            size=stats.st_size,
            created_at=datetime.fromtimestamp(stats.st_mtime, UTC).isoformat(),
            path=path,
        )


__all__ = ["SoundLibrary", "humanize", "slugify"]
