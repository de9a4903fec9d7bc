from typing import Any, Dict, List
import pandas as pd
import logging


logger = logging.getLogger(__name__)

SUMMARY_COLUMNS = [
    "provider_id",
    "variants",
    "successes",
    "failures",
    "success_rate",
    "mean_duration_ms",
    "total_cost_estimate",
    "wins",
]


def variants_frame(runs: List[Dict[str, Any]]) -> pd.DataFrame:
    """One row per variant across the given stored comparison runs."""
    rows = []
    for run in runs:
        winner_id = run.get("winner_id")
        for v in run.get("variants") or []:
            rows.append({
                "run_id": run.get("id", ""),
                "variant_id": v.get("id", ""),
                "provider_id": v.get("provider_id", ""),
                "model": v.get("model", ""),
                "status": v.get("status", ""),
                "cost_estimate": v.get("cost_estimate") or 0.0,
                "duration_ms": v.get("duration_ms"),
                "tokens_used": v.get("tokens_used"),
                "is_winner": bool(winner_id) and v.get("id") == winner_id,
            })
    return pd.DataFrame(rows)


def summarize_runs(runs: List[Dict[str, Any]]) -> pd.DataFrame:
    df = variants_frame(runs)
    if df.empty:
        logger.info("report_no_rows")
        return pd.DataFrame(columns=SUMMARY_COLUMNS)
    logger.info("report_dataframe rows=%s runs=%s", len(df), len(runs))
    df["is_success"] = df["status"] == "success"
    df["is_failure"] = df["status"] == "error"
    df["duration_ms"] = pd.to_numeric(df["duration_ms"], errors="coerce")
    summary = df.groupby("provider_id").agg(
        variants=("variant_id", "count"),
        successes=("is_success", "sum"),
        failures=("is_failure", "sum"),
        mean_duration_ms=("duration_ms", "mean"),
        total_cost_estimate=("cost_estimate", "sum"),
        wins=("is_winner", "sum"),
    ).reset_index()
    summary["success_rate"] = (summary["successes"] / summary["variants"]).round(3)
    summary["total_cost_estimate"] = summary["total_cost_estimate"].round(3)
    return summary[SUMMARY_COLUMNS].sort_values("provider_id").reset_index(drop=True)
