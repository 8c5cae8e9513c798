"""
Error types raised before any change record is processed.
"""


class ChangelogConfigurationError(ValueError):
    """Raised when a requested column does not exist in the changelog schema"""


class ChangelogValidationError(ValueError):
    """Raised when a requested snapshot range or table is invalid"""
