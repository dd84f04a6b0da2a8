from __future__ import annotations

import sys
from typing import Any

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

from ..models.import_progress import ImportProgress

"""Import progress display with tqdm (TTY only).

The bar is an observer: pass ``bar.observe`` as the importer's
``on_progress`` callback. It only reads the snapshots it is given.
In non-TTY environments (CI, redirected output) no bar is created.
"""

__all__ = [
    "ImportProgressBar",
    "is_tty_enabled",
]


def is_tty_enabled() -> bool:
    return sys.stdout.isatty()


class ImportProgressBar:
    """Single tqdm bar tracking processed rows of one import run."""

    def __init__(self, total_rows: int, *, description: str = "Importing contacts") -> None:
        self.total_rows = total_rows
        self.description = description
        self.last_processed = 0

        self.enabled = is_tty_enabled()
        self.pbar: TqdmType[Any] | None
        if self.enabled:
            self.pbar = tqdm(
                total=total_rows,
                desc=description,
                unit="row",
                disable=False,
                leave=True,
                position=0,
                ncols=80,
                ascii=True,
            )
        else:
            self.pbar = None

    def observe(self, snapshot: ImportProgress) -> None:
        """Advance the bar to ``snapshot.processed`` and show batch/counts."""
        delta = snapshot.processed - self.last_processed
        self.last_processed = snapshot.processed
        if not self.enabled or self.pbar is None:
            return
        if delta > 0:
            self.pbar.update(delta)
        if snapshot.total_batches:
            self.pbar.set_description(
                f"{self.description} (batch {snapshot.current_batch}/{snapshot.total_batches})"
            )
        self.set_postfix(
            ok=snapshot.successful,
            upd=snapshot.updated,
            skip=snapshot.skipped,
            fail=snapshot.failed,
        )

    def set_postfix(self, **kwargs: Any) -> None:
        if self.enabled and self.pbar is not None:
            self.pbar.set_postfix(**kwargs)

    def close(self) -> None:
        if self.enabled and self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> ImportProgressBar:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
