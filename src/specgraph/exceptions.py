"""Exceptions raised by the document graph store."""


class SpecGraphError(Exception):
    """Base class for document graph store errors."""

    pass


class ConfigurationError(SpecGraphError):
    """Raised when configuration is invalid or cannot be loaded."""

    pass


class DocumentNotFoundError(SpecGraphError):
    """Raised when a capability or enabler cannot be located by id."""

    def __init__(self, doc_id: str, kind: str = "document"):
        self.doc_id = doc_id
        self.kind = kind
        super().__init__(f"{kind} not found: {doc_id}")


class TemplateMissingError(SpecGraphError):
    """Raised when the plan document or its template markers are absent."""

    pass


class StaleDocumentError(SpecGraphError):
    """Raised when a document changed on disk between read and write."""

    def __init__(self, path, expected: str, actual: str | None):
        self.path = path
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Document changed since it was read: {path} "
            f"(expected {expected[:12]}, found {actual[:12] if actual else 'missing'})"
        )


class AccessDeniedError(SpecGraphError):
    """Raised when a path resolves outside every configured content root."""

    pass
