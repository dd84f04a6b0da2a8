from __future__ import annotations

from ..models.import_progress import ImportProgress

"""SUMMARY line rendering for an import run.

Format:
    SUMMARY state={state} total={total} processed={processed}
    successful={successful} updated={updated} skipped={skipped} failed={failed}
"""

__all__ = [
    "render_summary_line",
]


def render_summary_line(progress: ImportProgress) -> str:
    """Render one SUMMARY line from the final progress record.

    Examples:
        >>> from contact_importer.models.import_progress import ImportProgress, ImportState
        >>> p = ImportProgress(total=3, processed=3, successful=2, skipped=1,
        ...                    state=ImportState.COMPLETED)
        >>> render_summary_line(p)
        'SUMMARY state=completed total=3 processed=3 successful=2 updated=0 skipped=1 failed=0'
    """
    return (
        f"SUMMARY state={progress.state.value} "
        f"total={progress.total} "
        f"processed={progress.processed} "
        f"successful={progress.successful} "
        f"updated={progress.updated} "
        f"skipped={progress.skipped} "
        f"failed={progress.failed}"
    )
