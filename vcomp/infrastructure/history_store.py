"""History sinks. The job engine only ever calls `add_item`."""

import threading
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

import yaml
from pydantic import BaseModel

from vcomp.domain.models import HistoryEntry


class HistorySink(Protocol):
    def add_item(self, entry: HistoryEntry) -> None: ...


def _record(entry: HistoryEntry) -> Dict[str, Any]:
    record = entry.model_dump(mode="json")
    record["id"] = uuid.uuid4().hex
    record["timestamp"] = datetime.now().isoformat(timespec="seconds")
    return record


class HistoryStatistics(BaseModel):
    """Totals across stored history; sizes and ratio cover successful jobs only."""

    total_jobs: int = 0
    successful_jobs: int = 0
    failed_jobs: int = 0
    total_original_size: int = 0
    total_compressed_size: int = 0
    average_compression_ratio: float = 0.0

    @property
    def bytes_saved(self) -> int:
        return self.total_original_size - self.total_compressed_size


def summarize(items: List[Dict[str, Any]]) -> HistoryStatistics:
    successful = [item for item in items if item.get("success")]
    stats = HistoryStatistics(
        total_jobs=len(items),
        successful_jobs=len(successful),
        failed_jobs=len(items) - len(successful),
        total_original_size=sum(int(item.get("original_size", 0)) for item in successful),
        total_compressed_size=sum(int(item.get("compressed_size", 0)) for item in successful),
    )
    if successful:
        stats.average_compression_ratio = (
            sum(float(item.get("compression_ratio", 0.0)) for item in successful) / len(successful)
        )
    return stats


class InMemoryHistory:
    def __init__(self):
        self.items: List[HistoryEntry] = []
        self._lock = threading.Lock()

    def add_item(self, entry: HistoryEntry):
        with self._lock:
            self.items.append(entry)


class YamlHistoryStore:
    """Append-only YAML history, newest first, capped at `max_items`."""

    def __init__(self, path: Path, max_items: int = 100):
        self.path = Path(path)
        self.max_items = max_items
        self._lock = threading.Lock()

    def _load(self) -> List[Dict[str, Any]]:
        if not self.path.exists():
            return []
        with open(self.path, "r") as f:
            data = yaml.safe_load(f) or []
        return data if isinstance(data, list) else []

    def _save(self, items: List[Dict[str, Any]]):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w") as f:
            yaml.safe_dump(items, f, sort_keys=False, allow_unicode=True)
        tmp_path.replace(self.path)

    def add_item(self, entry: HistoryEntry):
        with self._lock:
            items = self._load()
            items.insert(0, _record(entry))
            del items[self.max_items:]
            self._save(items)

    def get_history(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        with self._lock:
            items = self._load()
        if limit and limit > 0:
            return items[:limit]
        return items

    def clear(self):
        with self._lock:
            self._save([])

    def get_statistics(self) -> HistoryStatistics:
        with self._lock:
            items = self._load()
        return summarize(items)

    def recent_presets(self, limit: int = 5) -> List[str]:
        """Distinct presets of the newest successful jobs, most recent first."""
        presets: List[str] = []
        for item in self.get_history():
            preset = item.get("preset")
            if item.get("success") and preset and preset not in presets:
                presets.append(preset)
                if len(presets) >= limit:
                    break
        return presets
