"""
Template Translator Errors

Every failure is fatal: a translation either produces complete output or
raises one of these.
"""

from typing import List


class TranslationError(Exception):
    """Base exception for translation errors"""
    pass


class ParseError(TranslationError):
    """Source construct that is malformed or has no IR mapping"""
    pass


class RenderError(TranslationError):
    """IR construct with no equivalent in the target grammar"""
    pass


class ValidationError(TranslationError):
    """Invalid translate() arguments, all violations reported together"""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("\n".join(self.errors))
