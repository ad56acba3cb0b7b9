"""Exceptions raised by the phenoTrend pipeline."""


class FetchError(RuntimeError):
    """The phenology data service rejected the request."""


class EmptyDataError(ValueError):
    """A pipeline stage produced (or received) an empty table."""

    def __init__(self, stage: str, detail: str = ""):
        self.stage = stage
        msg = f"No observations remain after {stage}."
        if detail:
            msg += f" {detail}"
        super().__init__(msg)


class InsufficientDataError(ValueError):
    """There is not enough usable data to fit or test a model."""
