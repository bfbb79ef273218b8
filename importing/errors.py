"""Errors raised while importing generated content."""
from typing import List


class ValidationError(Exception):
    """A record failed schema or invariant checks and is skipped."""

    def __init__(self, errors: List[str]):
        super().__init__("; ".join(errors))
        self.errors = errors


class RecordImportError(Exception):
    """A record's write failed after all retries."""
    pass


class VerificationWarning(UserWarning):
    """Post-import row count differs from the expected count."""
    pass
