"""Sync report formatting functions.

Provides human-readable and machine-readable output for full sync runs:

- ``format_sync_report`` -- full post-sync summary.
- ``report_to_json`` -- structured dict for ``--json`` output.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import SyncReport

from .models import SyncAction

# ------------------------------------------------------------------
# Human-readable report
# ------------------------------------------------------------------


def format_sync_report(report: SyncReport) -> str:
    """Format a complete sync report as human-readable text.

    Sections are only included when they contain at least one result.
    Skipped paths are summarised by count only to avoid excessive output.

    Args:
        report: The completed sync report.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []

    lines.append(f"Sync report for '{report.name}'")
    lines.append(f"Started: {report.started_at}")
    if report.completed_at:
        lines.append(f"Completed: {report.completed_at}")
    lines.append("")

    lines.append(
        f"Processed {len(report.results)} paths: "
        f"{len(report.created)} created, {len(report.updated)} updated, "
        f"{len(report.trashed)} trashed, {len(report.errors)} errors"
    )
    lines.append("")

    sections = [
        ("Created:", report.created),
        ("Updated:", report.updated),
        ("Moved to trash:", report.trashed),
    ]
    for title, results in sections:
        if not results:
            continue
        lines.append(title)
        for r in results:
            lines.append(f"  {r.path or '/'}")
        lines.append("")

    renamed = [
        r
        for r in report.results
        if r.success
        and r.action in (SyncAction.RENAME_EXTERNAL, SyncAction.DELETE_EXTERNAL)
    ]
    if renamed:
        lines.append("External changes:")
        for r in renamed:
            label = r.action.value.replace("_", " ")
            lines.append(f"  [{label}] {r.path}")
        lines.append("")

    if report.errors:
        lines.append("Errors:")
        for r in report.errors:
            lines.append(f"  {r.path or '/'}: {r.error}")
        lines.append("")

    if report.skipped:
        lines.append(f"Skipped: {len(report.skipped)} paths")
        lines.append("")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def report_to_json(report: SyncReport) -> dict:
    """Convert a sync report to a structured dict for JSON serialisation.

    Args:
        report: The sync report.

    Returns:
        Dict with run info, counts, and per-result details.
    """
    results_list = []
    for r in report.results:
        entry: dict = {
            "path": r.path,
            "action": r.action.value,
            "success": r.success,
        }
        if r.error:
            entry["error"] = r.error
        results_list.append(entry)

    return {
        "name": report.name,
        "started_at": report.started_at,
        "completed_at": report.completed_at,
        "counts": {
            "total": len(report.results),
            "created": len(report.created),
            "updated": len(report.updated),
            "trashed": len(report.trashed),
            "errors": len(report.errors),
            "skipped": len(report.skipped),
            "writes": report.writes,
        },
        "results": results_list,
    }
