"""
Common exceptions for the panel mapper.
"""


class PanelMapperError(Exception):
    """Base exception for all panel mapper errors."""
    pass


class NotFoundError(PanelMapperError):
    """Raised when a referenced floor plan, panel, circuit or other record is absent."""

    def __init__(self, kind: str, ident):
        self.kind = kind
        self.ident = ident
        super().__init__(f"{kind} not found")


class InvalidInputError(PanelMapperError):
    """Raised when input is rejected before any computation or write."""
    pass


class ConflictError(PanelMapperError):
    """Raised when a write would break a uniqueness rule."""
    pass


class PersistenceError(PanelMapperError):
    """Raised when a transactional write fails and has been rolled back."""
    pass
