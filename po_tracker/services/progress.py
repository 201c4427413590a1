"""PO folder progress — derived on every read, never persisted."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable


@dataclass(frozen=True)
class FolderProgress:
    total_steps: int
    done_steps: int

    @property
    def is_all_done(self) -> bool:
        return self.total_steps > 0 and self.done_steps == self.total_steps

    def to_dict(self) -> dict:
        return {
            "total_steps": self.total_steps,
            "done_steps": self.done_steps,
            "is_all_done": self.is_all_done,
        }


def summarize(steps: Iterable) -> FolderProgress:
    """Aggregate the cached ``is_done`` of a folder's step records.

    Accepts model instances or dicts with an ``is_done`` key.
    """
    total = 0
    done = 0
    for step in steps:
        total += 1
        is_done = step.get("is_done") if isinstance(step, dict) else step.is_done
        if is_done:
            done += 1
    return FolderProgress(total_steps=total, done_steps=done)
