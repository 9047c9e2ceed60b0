"""
Error and warning helpers shared by the STABS text parsers.

Every helper takes `orig`, the offset where the construct being parsed
started, so reports show the offending text from that point on.
"""

from io import TextIOBase

from loguru import logger

from stabs_decoder.errors import BadStabError
from stabs_decoder.io_util import peek, peeking, read_c_number, skip


def _text_from(src: TextIOBase, orig: int) -> str:
    with peeking(src):
        src.seek(orig)
        return src.read()


def bad_stab(src: TextIOBase, orig: int, message: str = "bad stab") -> BadStabError:
    """
    Build the error for a malformed construct which started at offset `orig`.
    """
    err = BadStabError(message, _text_from(src, orig))
    logger.error(str(err))
    return err


def warn_stab(src: TextIOBase, orig: int, message: str):
    logger.warning(f"{message}: {_text_from(src, orig)!r}")


def expect(src: TextIOBase, char: str, orig: int):
    """
    Consume `char`, which must be the next character.
    """
    if peek(src) != char:
        raise bad_stab(src, orig, f"expected {char!r}")
    skip(src)


def read_number(src: TextIOBase, orig: int) -> int:
    """
    Read a number, warning (and using 0) if it overflows.
    """
    value, overflow = read_c_number(src)
    if overflow:
        warn_stab(src, orig, "numeric overflow")
    return value
