"""
Exceptions raised while decoding STABS debugging information.
"""

from typing import Optional


class StabsError(ValueError):
    """
    Base class for every decoding failure.
    """


class BadStabError(StabsError):
    """
    A record's text does not follow the STABS grammar.

    `text` holds the remainder of the record string starting where the
    malformed construct began.
    """

    def __init__(self, message: str, text: Optional[str] = None):
        self.text = text
        if text is not None:
            message = f"{message}: {text!r}"
        super().__init__(message)


class StabsStructureError(StabsError):
    """
    Records are well formed but inconsistent with each other, such as an
    unbalanced block close or a type file number out of range.
    """


class DemangleError(StabsError):
    """
    A mangled physical name could not be demangled.

    Only the method variant being demangled is affected.
    """
