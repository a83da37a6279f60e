"""Exceptions raised while submitting, running and observing async operations.

Runner-side failures fall into two families. ``RunnerInfrastructureFailure``
means the work was never reached and is recorded as ``RUNNER_FAILED``.
``TargetLogicFailure`` means the work itself failed and is recorded as
``TASK_FAILED``.
"""


class AsyncOperationError(Exception):
    pass


class NotFound(AsyncOperationError):
    pass


class AlreadyExists(AsyncOperationError):
    pass


class TerminalStateError(AsyncOperationError):
    """The record already left RUNNING; terminal records are never rewritten."""


class SubmissionError(AsyncOperationError):
    pass


class LaunchError(AsyncOperationError):
    pass


class ContextConfigError(AsyncOperationError):
    pass


class WaitTimeout(AsyncOperationError):
    pass


class RunnerInfrastructureFailure(AsyncOperationError):
    pass


class PayloadFetchError(RunnerInfrastructureFailure):
    def __init__(self, uri: str, reason: str):
        self.uri = uri
        self.reason = reason
        super().__init__(f"Failed to fetch {uri}: {reason}")


class FunctionNotFound(RunnerInfrastructureFailure):
    def __init__(self, function_id: str):
        self.function_id = function_id
        super().__init__(f"Function not found: {function_id}")


class FunctionLookupError(RunnerInfrastructureFailure):
    def __init__(self, function_id: str, reason: str):
        self.function_id = function_id
        self.reason = reason
        super().__init__(f"Failed to resolve function {function_id}: {reason}")


class TargetLogicFailure(AsyncOperationError):
    pass


class PayloadParseError(TargetLogicFailure):
    def __init__(self, reason: str):
        super().__init__(f"Unable to parse payload: {reason}")


class TargetFunctionError(TargetLogicFailure):
    pass
