from __future__ import annotations

import hashlib
import json
import re
import shutil
import time
from pathlib import Path
from typing import Iterable, Optional

ENTRY_FILE = "entry.json"
UNSAFE_KEY_RE = re.compile(r"[^\w.-]+")


def hash_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def hash_text(text: str) -> str:
    return hash_bytes(text.encode("utf-8"))


def hash_file(path: Path) -> str:
    return hash_bytes(path.read_bytes())


def make_cache_key(prefix: str, lock_file: Path) -> str:
    """``prefix`` plus the lock file hash; a missing lock file hashes to nothing."""
    if lock_file.is_file():
        return f"{prefix}{hash_file(lock_file)}"
    return prefix


def saved_at(info: dict) -> float:
    value = info.get("saved_at")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    return float(value)


def _copy_path(src: Path, dest: Path) -> None:
    if dest.is_dir():
        shutil.rmtree(dest)
    elif dest.exists():
        dest.unlink()
    dest.parent.mkdir(parents=True, exist_ok=True)
    if src.is_dir():
        shutil.copytree(src, dest)
    else:
        shutil.copy2(src, dest)


class BlobCache:
    """Directory-backed cache of build dependencies keyed by lock file hash.

    Each entry snapshots ``paths`` under ``cache_dir/<key>/data/<n>``.
    Entries are written once and never overwritten.
    """

    def __init__(self, cache_dir: Path, paths: Iterable[Path]):
        self.cache_dir = Path(cache_dir)
        self.paths = [Path(path) for path in paths]

    @property
    def enabled(self) -> bool:
        return bool(self.paths)

    def entry_dir(self, key: str) -> Path:
        return self.cache_dir / (UNSAFE_KEY_RE.sub("_", key) or "_")

    def entries(self) -> list[dict]:
        if not self.cache_dir.is_dir():
            return []
        found = []
        for entry in sorted(self.cache_dir.iterdir()):
            info_path = entry / ENTRY_FILE
            if entry.name.startswith(".") or not info_path.is_file():
                continue
            try:
                info = json.loads(info_path.read_text(encoding="utf-8"))
            except (OSError, ValueError):
                continue
            if isinstance(info, dict) and isinstance(info.get("key"), str):
                info["dir"] = entry
                info["saved_at"] = saved_at(info)
                found.append(info)
        return found

    def lookup(self, key: str, restore_prefixes: Iterable[str] = ()) -> Optional[dict]:
        entries = self.entries()
        for entry in entries:
            if entry["key"] == key:
                return entry
        for prefix in restore_prefixes:
            matches = [entry for entry in entries if entry["key"].startswith(prefix)]
            if matches:
                return max(matches, key=lambda e: (e["saved_at"], e["key"]))
        return None

    def restore(self, key: str, restore_prefixes: Iterable[str] = ()) -> Optional[str]:
        """Copy the best matching entry into place and return its key."""
        entry = self.lookup(key, restore_prefixes)
        if entry is None:
            return None
        for index, target in enumerate(self.paths):
            src = entry["dir"] / "data" / str(index)
            if src.exists():
                _copy_path(src, target)
        return entry["key"]

    def save(self, key: str) -> bool:
        final = self.entry_dir(key)
        if final.exists():
            return False
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        staging = self.cache_dir / f".tmp-{final.name}-{time.time_ns()}"
        try:
            for index, source in enumerate(self.paths):
                if source.exists():
                    _copy_path(source, staging / "data" / str(index))
            staging.mkdir(parents=True, exist_ok=True)
            info = {"key": key, "saved_at": time.time(), "paths": [p.as_posix() for p in self.paths]}
            (staging / ENTRY_FILE).write_text(json.dumps(info, indent=2), encoding="utf-8")
            staging.rename(final)
        except OSError:
            shutil.rmtree(staging, ignore_errors=True)
            if final.exists():
                return False
            raise
        return True
