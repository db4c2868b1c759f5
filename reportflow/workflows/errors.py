"""Workflow error types."""


class WorkflowInputError(ValueError):
    """A required workflow input (file, subject, tenant) is missing."""


class ProcessingFailedError(RuntimeError):
    """The document processor reported the job as failed."""


class ProcessingTimeoutError(TimeoutError):
    """The document processor did not finish within the maximum wait."""


class InvalidTransitionError(RuntimeError):
    """A status change would break step ordering or monotonicity."""
