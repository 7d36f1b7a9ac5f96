"""llm-caller errors - every failure the engine can raise."""


class LLMCallerError(Exception):
    """Base class. Messages are meant to be printed to the user as-is."""


class MalformedTemplate(LLMCallerError):
    pass


class InvalidTemplate(LLMCallerError):
    def __init__(self, field: str):
        self.field = field
        super().__init__(f"template validation failed: {field} is required in template")


class TemplateNotFound(LLMCallerError):
    def __init__(self, name: str, searched: list[str]):
        self.name = name
        self.searched = searched
        tried = ", ".join(searched) if searched else "(no paths)"
        super().__init__(f"template '{name}' not found, tried paths: {tried}")


class MalformedVariableSpec(LLMCallerError):
    def __init__(self, spec: str, reason: str):
        self.spec = spec
        super().__init__(f"{reason}: {spec}")


class UnsupportedVariableKind(LLMCallerError):
    def __init__(self, kind: str, name: str):
        self.kind = kind
        self.name = name
        super().__init__(
            f"unsupported variable type '{kind}' for variable {name}, "
            "supported types: text, file",
        )


class VariableSourceError(LLMCallerError):
    def __init__(self, name: str, message: str):
        self.name = name
        super().__init__(message)


class NetworkError(LLMCallerError):
    pass


class APIError(LLMCallerError):
    def __init__(self, status: int, body: str):
        self.status = status
        self.body = body
        super().__init__(f"API request failed with status {status}: {body}")


class ResponseParseError(LLMCallerError):
    pass


class PathError(LLMCallerError):
    """Response path navigation failure.

    Carries the path walked so far and a size-capped dump of the whole
    response so the message alone is enough to fix the template's path.
    """

    def __init__(self, message: str, path_so_far: str, dump: str):
        self.path_so_far = path_so_far
        self.dump = dump
        where = f" (at '{path_so_far}')" if path_so_far else ""
        structure = f"\nResponse structure:\n{dump}" if dump else ""
        super().__init__(f"{message}{where}{structure}")


class FieldNotFound(PathError):
    def __init__(self, name: str, path_so_far: str, dump: str):
        self.name = name
        super().__init__(f"field '{name}' not found in response", path_so_far, dump)


class NotAnArray(PathError):
    def __init__(self, name: str, actual_type: str, path_so_far: str, dump: str):
        self.name = name
        self.actual_type = actual_type
        super().__init__(
            f"expected array but got {actual_type} for field '{name}'",
            path_so_far,
            dump,
        )


class IndexOutOfBounds(PathError):
    def __init__(self, index: int, length: int, path_so_far: str, dump: str):
        self.index = index
        self.length = length
        super().__init__(
            f"array index {index} out of bounds in response (length {length})",
            path_so_far,
            dump,
        )


class InvalidPathSegment(PathError):
    def __init__(self, segment: str, path_so_far: str, dump: str = ""):
        self.segment = segment
        super().__init__(f"invalid array index in response path segment '{segment}'", path_so_far, dump)
