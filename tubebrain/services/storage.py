"""
Durable state for the comment brain.

Three independent artifacts:
- transition map (JSON object, canonical keys)
- harvested video ids (sorted JSON list)
- raw corpus log (JSON Lines, append-only, one record per harvested video)

The legacy single-document layout ``{"map": ..., "harvestedYoutubeIDs": [...]}``
is read when no split map file exists, and written when the layout is "legacy".
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from .markov import TransitionMap

logger = logging.getLogger(__name__)

LEGACY_IDS_FIELD = "harvestedYoutubeIDs"


class StorageError(RuntimeError):
    """A write to durable storage failed; newly learned data may be lost."""


class HarvestedIds:
    """Set of processed video ids with a canonical sorted serialization."""

    def __init__(self, ids: Iterable[str] = ()):
        self._ids = set(ids)

    def add(self, item_id: str):
        self._ids.add(item_id)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._ids))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, HarvestedIds):
            return NotImplemented
        return self._ids == other._ids

    def to_list(self) -> List[str]:
        return sorted(self._ids)

    @classmethod
    def from_list(cls, raw: Any) -> "HarvestedIds":
        if not isinstance(raw, list):
            raise ValueError("harvested id index must be a JSON list")
        return cls(str(i) for i in raw)


@dataclass
class CorpusRecord:
    """One harvested video's raw comments, as appended to the corpus log."""
    item_id: str
    snippets: List[str]
    fetched_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    def to_dict(self) -> Dict[str, Any]:
        return {"item_id": self.item_id, "fetched_at": self.fetched_at, "snippets": self.snippets}

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "CorpusRecord":
        return cls(
            item_id=str(raw["item_id"]),
            snippets=[str(s) for s in raw.get("snippets") or []],
            fetched_at=str(raw.get("fetched_at") or ""),
        )


class FileStorage:
    """
    Read/write/append capability over the local filesystem.

    Parent directories are created on first write. Write failures are
    raised as StorageError; read failures propagate unchanged so the
    caller can decide whether they are fatal.
    """

    def read_json(self, path: Path) -> Any:
        return json.loads(Path(path).read_text(encoding="utf-8"))

    def write_json(self, path: Path, data: Any):
        path = Path(path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(
                json.dumps(data, sort_keys=True, ensure_ascii=False), encoding="utf-8"
            )
        except (OSError, TypeError, ValueError) as e:
            raise StorageError(f"failed to write {path}: {e}") from e

    def append_jsonl(self, path: Path, records: Iterable[Dict[str, Any]]):
        path = Path(path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("a", encoding="utf-8") as f:
                for record in records:
                    f.write(json.dumps(record, ensure_ascii=False) + "\n")
        except (OSError, TypeError, ValueError) as e:
            raise StorageError(f"failed to append to {path}: {e}") from e

    def read_jsonl(self, path: Path) -> Iterator[Dict[str, Any]]:
        # Undecodable bytes become U+FFFD and the line is parsed or skipped like any other.
        with Path(path).open("r", encoding="utf-8", errors="replace") as f:
            for line_no, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    yield json.loads(line)
                except json.JSONDecodeError:
                    # Torn write at the tail of the log.
                    logger.warning(f"[Storage] Skipping malformed line {line_no} in {path}")

    def exists(self, path: Path) -> bool:
        return Path(path).exists()

    def size(self, path: Path) -> int:
        path = Path(path)
        return path.stat().st_size if path.exists() else 0


@dataclass
class StoragePaths:
    map_path: Path
    ids_path: Path
    corpus_log_path: Path
    legacy_path: Optional[Path] = None


class ModelStore:
    """
    Persists the transition map, harvested ids and corpus log.

    Args:
        paths: Artifact locations
        backend: Read/write/append capability (FileStorage by default)
        layout: "split" writes three files; "legacy" writes map and ids
            into the single legacy document
    """

    def __init__(
        self,
        paths: StoragePaths,
        backend: Optional[FileStorage] = None,
        layout: str = "split",
    ):
        if layout not in ("split", "legacy"):
            raise ValueError(f"unknown storage layout: {layout}")
        if layout == "legacy" and paths.legacy_path is None:
            raise ValueError("legacy layout requires a legacy_path")
        self.paths = paths
        self.backend = backend or FileStorage()
        self.layout = layout

    # --- map + ids ---
    def load(self, chain_length: int) -> Tuple[TransitionMap, Optional[HarvestedIds]]:
        """
        Load the persisted map and, when available, the harvested ids.

        Raises:
            FileNotFoundError: no map document in either layout
            ValueError: malformed document (includes JSON and chain-length errors)
        """
        if self.layout == "split" and self.backend.exists(self.paths.map_path):
            return self._load_split(chain_length)
        legacy = self.paths.legacy_path
        if legacy is not None and self.backend.exists(legacy):
            return self._load_legacy(chain_length)
        if self.layout == "legacy":
            raise FileNotFoundError(str(legacy))
        raise FileNotFoundError(str(self.paths.map_path))

    def _load_split(self, chain_length: int) -> Tuple[TransitionMap, Optional[HarvestedIds]]:
        raw = self.backend.read_json(self.paths.map_path)
        tmap = TransitionMap.from_dict(raw, chain_length)
        ids = None
        if self.backend.exists(self.paths.ids_path):
            try:
                ids = HarvestedIds.from_list(self.backend.read_json(self.paths.ids_path))
            except ValueError as e:
                logger.warning(f"[Storage] Harvested id index unreadable: {e}")
        return tmap, ids

    def _load_legacy(self, chain_length: int) -> Tuple[TransitionMap, Optional[HarvestedIds]]:
        raw = self.backend.read_json(self.paths.legacy_path)
        if not isinstance(raw, dict) or "map" not in raw:
            raise ValueError("legacy document has no 'map' field")
        tmap = TransitionMap.from_dict(raw["map"], chain_length, legacy=True)
        ids = HarvestedIds.from_list(raw.get(LEGACY_IDS_FIELD) or [])
        logger.info(f"[Storage] Loaded legacy document {self.paths.legacy_path}")
        return tmap, ids

    def save(self, tmap: TransitionMap, ids: HarvestedIds):
        if self.layout == "legacy":
            self.backend.write_json(
                self.paths.legacy_path,
                {"map": tmap.to_dict(), LEGACY_IDS_FIELD: ids.to_list()},
            )
            return
        self.backend.write_json(self.paths.map_path, tmap.to_dict())
        self.backend.write_json(self.paths.ids_path, ids.to_list())

    def map_size(self) -> int:
        path = self.paths.legacy_path if self.layout == "legacy" else self.paths.map_path
        return self.backend.size(path)

    # --- corpus log ---
    def append_corpus(self, record: CorpusRecord):
        self.backend.append_jsonl(self.paths.corpus_log_path, [record.to_dict()])

    def has_corpus(self) -> bool:
        return self.backend.exists(self.paths.corpus_log_path)

    def iter_corpus(self) -> Iterator[CorpusRecord]:
        for raw in self.backend.read_jsonl(self.paths.corpus_log_path):
            try:
                yield CorpusRecord.from_dict(raw)
            except (KeyError, TypeError, AttributeError):
                logger.warning(f"[Storage] Skipping corpus record without item_id: {raw!r:.80}")
