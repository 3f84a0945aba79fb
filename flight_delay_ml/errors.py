"""
Named error conditions raised by the flight delay pipeline.
"""

from typing import Iterable, Optional


class PipelineError(Exception):
    """Base class for every failure the pipeline reports by name."""


class SchemaMismatchError(PipelineError):
    """A table is missing columns a stage needs (or carries ones it must not)."""

    def __init__(self, stage: str, missing: Iterable[str] = (), unexpected: Iterable[str] = ()):
        self.stage = stage
        self.missing = sorted(missing)
        self.unexpected = sorted(unexpected)
        parts = []
        if self.missing:
            parts.append(f"missing columns {self.missing}")
        if self.unexpected:
            parts.append(f"unexpected columns {self.unexpected}")
        super().__init__(f"Schema mismatch at '{stage}': " + "; ".join(parts))


class MissingValuePolicyError(PipelineError):
    """Columns still hold missing values and no policy was assigned to them."""

    def __init__(self, table: str, columns: Iterable[str]):
        self.table = table
        self.columns = sorted(columns)
        super().__init__(
            f"Table '{table}' has missing values in columns with no policy: {self.columns}"
        )


class ExcessiveMissingnessError(PipelineError):
    """Row deletion would throw away more of the table than is tolerated."""

    def __init__(self, table: str, lost_fraction: float, max_fraction: float):
        self.table = table
        self.lost_fraction = lost_fraction
        self.max_fraction = max_fraction
        super().__init__(
            f"Dropping incomplete rows of '{table}' would lose {lost_fraction:.2%} "
            f"of the table (tolerated: {max_fraction:.2%})"
        )


class InvalidPackedTimeError(PipelineError, ValueError):
    """A packed HMM/HHMM integer cannot be read as a time of day."""

    def __init__(self, value, reason: str):
        self.value = value
        super().__init__(f"Invalid packed time {value!r}: {reason}")


class DegenerateTrainingFoldError(PipelineError):
    """The training data holds fewer than two target levels."""

    def __init__(self, levels: Iterable, context: Optional[str] = None):
        self.levels = list(levels)
        where = f" ({context})" if context else ""
        super().__init__(f"Degenerate training fold{where}: target levels {self.levels}")


class StageError(PipelineError):
    """Wraps any failure with the name of the pipeline stage that raised it."""

    def __init__(self, stage: str, cause: BaseException):
        self.stage = stage
        self.cause = cause
        super().__init__(f"Stage '{stage}' failed: {type(cause).__name__}: {cause}")
