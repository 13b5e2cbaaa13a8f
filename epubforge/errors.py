"""Domain exceptions for pipeline and CLI diagnostics."""

from __future__ import annotations


class PipelineStageError(RuntimeError):
    """Raised when a specific pipeline stage fails.

    Attributes:
        stage: Pipeline stage identifier (`extract`, `submit`, `finalize`, ...).
        detail: User-facing failure description.
        hint: Optional actionable follow-up for the user.
        category: Failure category used for resume/retry guidance.
        retriable: Whether an immediate user-triggered retry is expected to help.
    """

    def __init__(
        self,
        *,
        stage: str,
        detail: str,
        hint: str | None = None,
        category: str = "unclassified",
        retriable: bool = False,
    ) -> None:
        """Initialize a stage-scoped pipeline error."""

        super().__init__(detail)
        self.stage = stage
        self.detail = detail
        self.hint = hint
        self.category = category
        self.retriable = retriable
