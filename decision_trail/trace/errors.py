"""Exception types raised by the trace library."""


class TraceError(Exception):
    """Base class for decision trail errors."""
    pass


class ExecutionCompletedError(TraceError):
    """Raised when an execution is mutated after its terminal transition."""

    def __init__(self, execution_id: str, message: str = "execution already completed"):
        self.execution_id = execution_id
        super().__init__(f"{message}: {execution_id}")


class StepAlreadyRecordedError(TraceError):
    """Raised when a step builder is used after record()."""

    def __init__(self, step_name: str):
        self.step_name = step_name
        super().__init__(f"Step already recorded: {step_name}")


class StorageError(TraceError):
    """A storage adapter failed to read or write an execution."""
    pass


class MalformedDocumentError(StorageError):
    """A stored document could not be parsed back into an Execution."""

    def __init__(self, execution_id: str, reason: str):
        self.execution_id = execution_id
        super().__init__(f"Malformed execution document {execution_id}: {reason}")


class ReadOnlyRecorderError(TraceError):
    """Raised when a recorder loaded for analysis is asked to record or save."""

    def __init__(self, execution_id: str):
        self.execution_id = execution_id
        super().__init__(f"Recorder for {execution_id} was loaded read-only")
