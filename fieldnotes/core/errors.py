"""
Exception types for the note retrieval engine.

ParseFailure is surfaced to callers. DependencyUnavailable is downgraded to a
degraded result wherever a fallback exists.
"""


class FieldNotesError(Exception):
    """Base exception for fieldnotes."""
    pass


class ParseFailure(FieldNotesError):
    """A query or a note could not be turned into structured data."""
    pass


class DependencyUnavailable(FieldNotesError):
    """A storage or provider call failed."""

    AUTHENTICATION = "authentication"
    RATE_LIMIT = "rate_limit"
    NETWORK = "network"
    INVALID_RESPONSE = "invalid_response"
    UNKNOWN = "unknown"

    def __init__(self, message: str, kind: str = UNKNOWN):
        self.kind = kind
        super().__init__(message)


class ConstraintRace(FieldNotesError):
    """Storage rejected a tag insert on the (normalized_name, type) uniqueness constraint."""

    def __init__(self, normalized_name: str, tag_type: str):
        self.normalized_name = normalized_name
        self.tag_type = tag_type
        super().__init__(f"Tag already exists: {normalized_name} ({tag_type})")


class NotFound(FieldNotesError):
    def __init__(self, kind: str, identifier):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} not found: {identifier}")


class ConfigError(FieldNotesError):
    pass
