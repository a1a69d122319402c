class StrategyPipelineError(Exception):
    """Base exception for the strategy pipeline engine."""

    pass


class GenerationError(StrategyPipelineError):
    """Raised by a generation client when a call does not yield JSON."""

    pass


class TransportError(GenerationError):
    """Raised when the generative-text service cannot be reached."""

    pass


class ServiceError(GenerationError):
    """Raised when the service answers with an error or an empty response."""

    pass


class MalformedResponseError(GenerationError):
    """Raised when the response text is not valid JSON."""

    def __init__(self, message: str, raw_text: str = ""):
        self.raw_text = raw_text
        super().__init__(message)


class SchemaValidationError(StrategyPipelineError):
    """Raised when a stage output does not match the stage's output shape."""

    def __init__(self, stage_id: str, problems: list[str]):
        self.stage_id = stage_id
        self.problems = problems
        super().__init__(f"Output of stage '{stage_id}' failed validation: {'; '.join(problems)}")


class EmptyResultError(StrategyPipelineError):
    """Raised when a stage that must yield at least one item yields none."""

    def __init__(self, stage_id: str, field: str):
        self.stage_id = stage_id
        self.field = field
        super().__init__(f"Stage '{stage_id}' returned no items in '{field}'")


class PipelineDefinitionError(StrategyPipelineError):
    """Raised when a stage sequence is empty or malformed (programming error)."""

    pass


class InputValidationError(StrategyPipelineError):
    """Raised when caller input does not fit the pipeline's input form."""

    pass
