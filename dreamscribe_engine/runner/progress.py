import json
import logging
import threading
from dataclasses import dataclass, asdict, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..domain import VariantEvent


logger = logging.getLogger(__name__)


@dataclass
class ComparisonProgress:
    """
    Lightweight on-disk view of a single comparison run.

    Stored as JSON so that a frontend can poll it for live progress.
    """

    run_id: str
    created_at: str
    updated_at: str
    status: str  # "pending", "running", "completed"
    total_variants: int = 0
    # counts[status] = number of variants currently in that status
    counts: Dict[str, int] = field(default_factory=dict)
    # per_provider[provider_id] = {"total": int, "succeeded": int, "failed": int}
    per_provider: Dict[str, Dict[str, int]] = field(default_factory=dict)
    winner_id: Optional[str] = None
    variants: List[Dict[str, Any]] = field(default_factory=list)


class ComparisonProgressTracker:
    """
    Persists the latest snapshot of a comparison run to a JSON file.

    Every update rewrites the whole file through a temp file and an atomic
    replace, so readers never see a half-written snapshot. Register
    `on_event` as a run listener to keep the file current.
    """

    def __init__(self, root_dir: str, run_id: str) -> None:
        self.root_dir = root_dir
        self.run_id = run_id
        self.path = Path(root_dir) / "logs" / f"compare_{run_id}.json"
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        logger.debug("ComparisonProgressTracker initialized root_dir=%s run_id=%s path=%s", root_dir, run_id, self.path)

    # --- internal helpers -------------------------------------------------

    def _now_iso(self) -> str:
        return datetime.now(timezone.utc).isoformat()

    def _save(self, progress: ComparisonProgress) -> None:
        progress.updated_at = self._now_iso()
        tmp_path = self.path.with_suffix(".tmp")
        # Listener threads and the caller may record the same run concurrently.
        with self._lock:
            with tmp_path.open("w", encoding="utf-8") as f:
                json.dump(asdict(progress), f, ensure_ascii=False, indent=2)
            tmp_path.replace(self.path)
        logger.debug(
            "ComparisonProgressTracker saved run_id=%s status=%s counts=%s",
            progress.run_id,
            progress.status,
            progress.counts,
        )

    # --- public API -------------------------------------------------------

    def load(self) -> Optional[ComparisonProgress]:
        if not self.path.exists():
            return None
        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
            return ComparisonProgress(**data)
        except (OSError, ValueError, TypeError) as e:
            logger.warning("ComparisonProgressTracker load_error run_id=%s path=%s error=%s", self.run_id, self.path, e)
            return None

    def record(self, snapshot: Dict[str, Any]) -> ComparisonProgress:
        """Write a run snapshot (as produced by `ComparisonRun.snapshot()`)."""
        variants = snapshot.get("variants") or []
        counts: Dict[str, int] = {}
        per_provider: Dict[str, Dict[str, int]] = {}
        for v in variants:
            status = v["status"]
            counts[status] = counts.get(status, 0) + 1
            tally = per_provider.setdefault(v.get("provider_id", ""), {"total": 0, "succeeded": 0, "failed": 0})
            tally["total"] += 1
            if status == "success":
                tally["succeeded"] += 1
            elif status == "error":
                tally["failed"] += 1
        progress = ComparisonProgress(
            run_id=self.run_id,
            created_at=snapshot.get("created_at") or self._now_iso(),
            updated_at=self._now_iso(),
            status="completed" if snapshot.get("complete") else "running",
            total_variants=len(variants),
            counts=counts,
            per_provider=per_provider,
            winner_id=snapshot.get("winner_id"),
            variants=variants,
        )
        self._save(progress)
        return progress

    def on_event(self, run: Any, event: VariantEvent) -> None:
        self.record(run.snapshot())
