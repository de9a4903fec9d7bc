import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..interfaces import StorageRepository


COMPARISONS_TABLE = "comparisons"


class JsonlStorage(StorageRepository):
    """Append-only JSONL tables under `root_dir`, optionally one file per partition."""

    def __init__(self, root_dir: str) -> None:
        self.root = Path(root_dir)
        self.logger = logging.getLogger(__name__)

    def table_path(self, table: str, partition: Optional[str] = None) -> Path:
        if partition:
            return self.root / table / f"{partition}.jsonl"
        return self.root / f"{table}.jsonl"

    def save_rows(self, rows: List[Dict[str, Any]], table: str, partition: Optional[str] = None) -> None:
        path = self.table_path(table, partition)
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as f:
            for row in rows:
                f.write(json.dumps(row, ensure_ascii=False) + "\n")
        self.logger.info("rows_appended table=%s partition=%s rows=%s path=%s", table, partition, len(rows), path)

    def load_rows(self, table: str, partition: Optional[str] = None) -> List[Dict[str, Any]]:
        path = self.table_path(table, partition)
        if not path.exists():
            self.logger.info("table_missing table=%s partition=%s", table, partition)
            return []
        with path.open("r", encoding="utf-8") as f:
            rows = [json.loads(line) for line in f if line.strip()]
        self.logger.info("rows_loaded table=%s partition=%s rows=%s", table, partition, len(rows))
        return rows

    def exists(self, table: str, partition: Optional[str] = None) -> bool:
        return self.table_path(table, partition).exists()


class ComparisonHistory:
    """Finished comparison runs, stored as their snapshots."""

    def __init__(self, storage: StorageRepository, table: str = COMPARISONS_TABLE) -> None:
        self.storage = storage
        self.table = table

    def record(self, snapshot: Dict[str, Any]) -> None:
        if not snapshot.get("complete"):
            raise ValueError(f"run {snapshot.get('id')} is still in progress")
        self.storage.save_rows([snapshot], self.table)

    def runs(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Stored runs, oldest first; `limit` keeps only the most recent ones."""
        rows = self.storage.load_rows(self.table)
        if limit is not None and limit >= 0:
            rows = rows[-limit:] if limit else []
        return rows

    def get(self, run_id: str) -> Dict[str, Any]:
        # Later rows win so a re-recorded run (e.g. after a winner change) supersedes the first.
        for row in reversed(self.storage.load_rows(self.table)):
            if row.get("id") == run_id:
                return row
        raise KeyError(run_id)
