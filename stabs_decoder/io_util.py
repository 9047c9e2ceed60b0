"""
Utility functions for walking STABS and mangled-name text with a stream cursor.
"""

import re
from contextlib import contextmanager
from io import TextIOBase
from typing import Iterator, Optional

# strtoul(..., 0) accepts an optional sign, then hex, octal or decimal digits.
_C_NUMBER = re.compile(r"\s*([+-]?)(0[xX][0-9a-fA-F]+|0[0-7]*|[1-9][0-9]*)")
_C_INT = re.compile(r"\s*[+-]?[0-9]+")
_C_FLOAT = re.compile(r"\s*[+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?")

_U64 = 1 << 64


def read_exact(src: TextIOBase, size: int) -> str:
    """
    Read exactly `size` chars from `src`, or raise a ValueError
    """
    value = src.read(size)
    if len(value) != size:
        raise ValueError(f"Unable to read {size} chars; got {value!r}")
    return value


@contextmanager
def peeking(src: TextIOBase, offset: int = 0) -> Iterator[None]:
    """
    Store the current offset in `src`,
    and restore it at the end of the context.
    An optional offset can be added to start peeking further ahead from the current
    location.
    """
    ptr = src.tell()
    if offset:
        src.seek(ptr + offset)

    try:
        yield
    finally:
        src.seek(ptr)


def peek(src: TextIOBase, n: int = 1, offset: int = 0) -> str:
    """
    Read up to `n` chars from `src` without advancing the offset.
    Returns "" at the end of the buffer.
    """
    with peeking(src, offset=offset):
        return src.read(n)


def rest(src: TextIOBase) -> str:
    """
    Everything left in `src`, without advancing the offset.
    """
    with peeking(src):
        return src.read()


def skip(src: TextIOBase, n: int = 1):
    """
    Advance `src` by `n` chars, stopping at the end of the buffer.
    """
    src.seek(src.tell() + min(n, bytes_left(src)))


def bytes_left(src: TextIOBase, offset: int = 0) -> int:
    """
    Retrieve the number of chars left in `src`.
    An optional offset can be added.
    """
    start: int = src.tell() + offset
    with peeking(src):
        src.seek(0, 2)
        end: int = src.tell()

    return end - start


def lookahead_for(src: TextIOBase, chars: str) -> Optional[int]:
    """
    Look ahead in the buffer for any of the given characters.

    If one is found, return the number of chars that need to be read from the current
    offset in order to reach it. Returns None at the end of the buffer.
    """
    remaining = rest(src)
    found = [idx for idx in (remaining.find(c) for c in chars) if idx != -1]
    return min(found) if found else None


def lookahead_for_substring(src: TextIOBase, string: str, base_offset: int = 0) -> Optional[int]:
    """
    Look ahead in the buffer for a given substring, starting `base_offset` chars
    past the current location.

    Returns the distance from [current location + base offset] to the start of the
    substring, or None if it does not occur.
    """
    idx = rest(src).find(string, base_offset)
    return None if idx == -1 else idx - base_offset


def lookahead_while(src: TextIOBase, chars: str, base_offset: int = 0) -> int:
    """
    Look ahead in the buffer as long as the buffer contains characters in the given set.
    Return the number of subsequent characters found.
    """
    num_chars: int = 0
    with peeking(src, offset=base_offset):
        char = src.read(1)
        while char and char in chars:
            num_chars += 1
            char = src.read(1)

    return num_chars


def read_until(src: TextIOBase, char: str) -> Optional[str]:
    """
    Read up to the next `char`, consume it, and return the text before it.

    If `char` does not occur, nothing is consumed and None is returned.
    """
    offset = lookahead_for(src, char)
    if offset is None:
        return None
    text = read_exact(src, offset)
    read_exact(src, 1)
    return text


def read_c_number(src: TextIOBase) -> tuple[int, bool]:
    """
    Read an integer the way `strtoul(..., 0)` does and return `(value, overflowed)`.

    The value is interpreted as a 64-bit two's complement quantity, so
    "-1" and "01777777777777777777777" both give -1. Values that do not fit in
    64 bits set the overflow flag and give 0. If no number is present, nothing is
    consumed and 0 is returned.
    """
    match = _C_NUMBER.match(rest(src))
    if not match:
        return 0, False
    read_exact(src, match.end())

    sign, digits = match.groups()
    if digits[:2] in ("0x", "0X"):
        value = int(digits[2:], 16)
    elif digits.startswith("0"):
        value = int(digits, 8)
    else:
        value = int(digits)

    if value >= _U64:
        return 0, True
    if sign == "-":
        value = -value % _U64
    if value >= _U64 >> 1:
        value -= _U64
    return value, False


def read_count(src: TextIOBase) -> int:
    """
    Read subsequent decimal digits as a count. Returns 0 if there are none.
    """
    num_digits = lookahead_while(src, "0123456789")
    if not num_digits:
        return 0
    return int(read_exact(src, num_digits))


def leading_int(text: str) -> int:
    """
    Parse the integer prefix of `text` like C `atoi`; 0 if there is none.
    """
    match = _C_INT.match(text)
    return int(match.group()) if match else 0


def leading_float(text: str) -> float:
    """
    Parse the floating point prefix of `text` like C `atof`; 0.0 if there is none.
    """
    match = _C_FLOAT.match(text)
    return float(match.group()) if match else 0.0
