# =============================================================================
# Exceptions for the RosterPro schedule engine
# =============================================================================

class RosterError(Exception):
    """Base exception class for RosterPro."""
    pass

class DateError(RosterError, ValueError):
    """Raised when a date value cannot be normalized."""

    def __init__(self, reason, value=None):
        self.reason = reason
        self.value = value
        super().__init__(reason)

    def describe(self):
        if self.value is None:
            return self.reason
        return f"{self.reason}: {self.value}"

class ValidationError(RosterError):
    """Raised when operation parameters are invalid."""
    pass

class SourceRangeEmptyError(ValidationError):
    """Raised when a pattern source range holds no shifts."""
    pass

class DuplicateShiftError(RosterError):
    """Raised when a (date, role) slot is already occupied."""

    def __init__(self, shift_date, role):
        self.shift_date = shift_date
        self.role = role
        role_name = getattr(role, 'value', role)
        super().__init__(f"A {role_name.lower()} shift already exists for {shift_date}")

class NotFoundError(RosterError):
    """Raised when a repository lookup misses."""
    pass

class EventDecodeError(RosterError):
    """Raised when a change event payload fails schema validation."""
    pass
