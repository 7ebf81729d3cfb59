from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Mapping

from ..utils.time import format_ts, utcnow


class SnapshotWriter:
    """Appends graph snapshots to ``<base>/<YYYY>/<MM>/<DD>/snapshots.jsonl``."""

    def __init__(self, base_dir: str) -> None:
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _path_for_now(self) -> Path:
        now = utcnow()
        path = self.base_dir / f"{now:%Y}" / f"{now:%m}" / f"{now:%d}"
        path.mkdir(parents=True, exist_ok=True)
        return path / "snapshots.jsonl"

    def write_snapshot(self, snapshot: Mapping[str, Any], source: str | None = None) -> Path:
        nodes = list(snapshot.get("nodes") or [])
        links = list(snapshot.get("links") or [])
        record: Dict[str, Any] = {
            "written_at": format_ts(),
            "source": source,
            "node_count": len(nodes),
            "link_count": len(links),
            "nodes": nodes,
            "links": links,
        }
        path = self._path_for_now()
        with path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(record, default=str) + "\n")
        return path


__all__ = ["SnapshotWriter"]
