from __future__ import annotations


class CharforgeError(RuntimeError):
    pass


class GenerationError(CharforgeError):
    pass


class MalformedResponseError(GenerationError):
    pass


class InvalidRecordError(CharforgeError, ValueError):
    pass


class StorageError(CharforgeError):
    pass


class ProjectNotFoundError(CharforgeError, KeyError):
    def __init__(self, project_id: str) -> None:
        super().__init__(f"Unknown project: {project_id}")
        self.project_id = project_id

    def __str__(self) -> str:
        return str(self.args[0])
