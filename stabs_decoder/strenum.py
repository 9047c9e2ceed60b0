"""
String-valued enumeration base used by the descriptor variants.
"""

from enum import Enum


class StrEnum(str, Enum):
    """
    Enum whose members are also plain strings.

    `str(member)` yields the member's value, so members can be compared
    against and printed as the single characters they stand for.
    """

    def __str__(self) -> str:
        return str(self.value)
