# flowgrid/errors.py
"""
Exception taxonomy for the import flow.

Row rejections and card type warnings are NOT exceptions: they travel as
data on the merge plan so a bad row never aborts the whole upload.
"""
from __future__ import annotations

from typing import Sequence


class FlowGridError(Exception):
    """Base class for all Flow Grid errors."""


class CsvFormatError(FlowGridError):
    """The uploaded file cannot be read as a session CSV at all."""


class SheetAccessError(FlowGridError):
    """A Google Sheet URL is malformed, private, or could not be fetched."""


class InvalidDecision(FlowGridError):
    """A human decision is not one of update / create / skip, or targets nothing."""


class DecisionIncomplete(FlowGridError):
    """Apply was attempted while some changed/suggested entries lack a decision."""

    def __init__(self, pending: Sequence[str]) -> None:
        self.pending = list(pending)
        super().__init__(
            f"{len(self.pending)} entries still need a decision: {', '.join(self.pending)}"
        )


class WriteFailure(FlowGridError):
    """A store write failed mid-batch. Earlier writes in the batch are kept."""

    def __init__(
        self,
        *,
        completed: int,
        total: int,
        operation: str,
        cause: BaseException | None = None,
    ) -> None:
        self.completed = completed
        self.total = total
        self.operation = operation
        self.cause = cause
        super().__init__(
            f"{completed} of {total} operations completed; failed at {operation}: {cause!r}"
        )
