class PolyplexError(Exception):
    """Base exception for the orchestration engine."""


class ProviderError(PolyplexError):
    def __init__(self, provider: str, detail: str):
        self.provider = provider
        self.detail = detail
        super().__init__(f"Provider error ({provider}): {detail}")


class MalformedOutputError(PolyplexError):
    def __init__(self, role: str, detail: str):
        self.role = role
        super().__init__(f"Malformed {role} output: {detail}")


class GateIneligibleError(PolyplexError):
    def __init__(self, failed_checks: list[str]):
        self.failed_checks = failed_checks
        super().__init__(f"Quality gate not met: {', '.join(failed_checks)}")


class StoreError(PolyplexError):
    pass


class TaskNotFoundError(PolyplexError):
    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task not found: {task_id}")


class StreamEntryNotFoundError(PolyplexError):
    def __init__(self, entry_id: str):
        self.entry_id = entry_id
        super().__init__(f"Stream entry not found: {entry_id}")


class InvalidTransitionError(PolyplexError):
    def __init__(self, task_id: str, current: str, target: str):
        self.task_id = task_id
        self.current = current
        self.target = target
        super().__init__(f"Task {task_id} cannot move from '{current}' to '{target}'")
