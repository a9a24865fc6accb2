"""
Application errors.

SemanticLayerUnavailableError is fatal: the compiled knowledge base is missing or
malformed and the process cannot serve requests. QueryRejectedError is raised by the
read-only query guard and converted to a structured tool result before it reaches the agent.
"""


class SemanticLayerUnavailableError(Exception):
    """Raised when the compiled semantic artifacts are missing, unparsable or invalid."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class QueryRejectedError(Exception):
    """Raised when an ad-hoc query fails read-only validation."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)
