"""
STABS record kinds, the record tuple fed to the decoder, and a reader for
`objdump --stabs` listings.
"""

import re
from dataclasses import dataclass
from enum import IntEnum
from typing import Iterable, Iterator, Mapping, Optional, Union

from loguru import logger


class StabKind(IntEnum):
    N_UNDF = 0x00
    N_FN_SEQ = 0x0C
    N_WARNING = 0x1E
    N_FN = 0x1F
    N_GSYM = 0x20
    N_FNAME = 0x22
    N_FUN = 0x24
    N_STSYM = 0x26
    N_LCSYM = 0x28
    N_MAIN = 0x2A
    N_ROSYM = 0x2C
    N_PC = 0x30
    N_NSYMS = 0x32
    N_NOMAP = 0x34
    N_OBJ = 0x38
    N_OPT = 0x3C
    N_RSYM = 0x40
    N_M2C = 0x42
    N_SLINE = 0x44
    N_DSLINE = 0x46
    N_BSLINE = 0x48
    N_DEFD = 0x4A
    N_FLINE = 0x4C
    N_EHDECL = 0x50
    N_CATCH = 0x54
    N_SSYM = 0x60
    N_ENDM = 0x62
    N_SO = 0x64
    N_LSYM = 0x80
    N_BINCL = 0x82
    N_SOL = 0x84
    N_PSYM = 0xA0
    N_EINCL = 0xA2
    N_ENTRY = 0xA4
    N_LBRAC = 0xC0
    N_EXCL = 0xC2
    N_SCOPE = 0xC4
    N_RBRAC = 0xE0
    N_BCOMM = 0xE2
    N_ECOMM = 0xE4
    N_ECOML = 0xE8
    N_NBTEXT = 0xF0
    N_NBDATA = 0xF2
    N_NBBSS = 0xF4
    N_NBSTS = 0xF6
    N_NBLCS = 0xF8
    N_LENG = 0xFE


@dataclass(frozen=True)
class StabRecord:
    """
    One symbol-table entry: kind (`n_type`), descriptor (`n_desc`), value
    (`n_value`) and string.
    """

    kind: Union[StabKind, int]
    desc: int
    value: int
    text: str = ""

    def __str__(self) -> str:
        try:
            kind = StabKind(self.kind).name
        except ValueError:
            kind = f"0x{self.kind:02x}"
        return f"{kind} desc={self.desc} value=0x{self.value:x} {self.text!r}"


class SymbolTable:
    """
    Name to address lookup for global variables whose stab value is not
    authoritative.

    `leading_char` is the object format's symbol prefix (such as `_`), which
    is stripped from the table's names before matching. The first symbol of
    a given name wins.
    """

    def __init__(
        self,
        symbols: Union[Mapping[str, int], Iterable[tuple[str, int]]] = (),
        leading_char: str = "",
    ):
        if isinstance(symbols, Mapping):
            symbols = symbols.items()
        self._values: dict[str, int] = {}
        for name, value in symbols:
            if leading_char and name.startswith(leading_char):
                name = name[len(leading_char):]
            self._values.setdefault(name, value)

    def __call__(self, name: str) -> Optional[int]:
        return self._values.get(name)

    def __len__(self) -> int:
        return len(self._values)


_OBJDUMP_LINE = re.compile(
    r"^\s*(-?\d+)\s+(\S+)\s+(\d+)\s+(\d+)\s+([0-9a-fA-F]+)\s+(\d+)(.*)$"
)


def parse_kind(name: str) -> int:
    """
    Map an objdump stab type column (`FUN`, `LSYM`, or a number) to a kind.
    """
    if name.isdecimal():
        return int(name)
    try:
        return StabKind[f"N_{name}"]
    except KeyError:
        raise ValueError(f"Unknown stab type {name!r}") from None


def read_objdump_stabs(lines: Iterable[str]) -> Iterator[StabRecord]:
    """
    Yield the records of an `objdump -G` (`--stabs`) listing.

    Lines which are not stab entries (section headers, column titles, blank
    lines) are skipped, as is the per-object `HdrSym` header entry. Example:

        Symnum n_type n_othr n_desc n_value  n_strx String
        0      SO     0      0      0000000000000000 1      point.c
        1      LSYM   0      0      0000000000000000 9      int:t1=r1;-2147483648;2147483647;
    """
    for line in lines:
        match = _OBJDUMP_LINE.match(line.rstrip("\n"))
        if not match:
            continue
        _, kind_name, _, desc, value, strx, tail = match.groups()
        if kind_name == "HdrSym":
            continue
        try:
            kind = parse_kind(kind_name)
        except ValueError as e:
            logger.warning(f"{e}, skipping line {line.strip()!r}")
            continue
        # the string column follows strx left-justified to six places and a blank
        text = tail[max(0, 6 - len(strx)) + 1 :]
        yield StabRecord(kind, int(desc), int(value, 16), text)
