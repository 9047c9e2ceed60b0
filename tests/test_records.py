"""
Tests for records and the objdump listing reader.
"""

import pytest

from stabs_decoder import StabKind, StabRecord, SymbolTable, read_objdump_stabs
from stabs_decoder.records import parse_kind


def listing_line(index: int, kind: str, desc: int, value: int, strx: int, text: str) -> str:
    return f"{index:<6} {kind:<6} {0:<6} {desc:<6} {value:016x} {strx:<6} {text}\n"


LISTING = [
    "\n",
    "point.o:     file format elf32-i386\n",
    "\n",
    "Contents of .stab section:\n",
    "\n",
    "Symnum n_type n_othr n_desc n_value  n_strx String\n",
    "\n",
    listing_line(-1, "HdrSym", 0, 0x1F, 1, ""),
    listing_line(0, "SO", 0, 0, 1, "/src/"),
    listing_line(1, "SO", 0, 0, 7, "point.c"),
    listing_line(2, "LSYM", 0, 0, 15, "int:t1=r1;-2147483648;2147483647;"),
    listing_line(3, "FUN", 0, 0x80, 1234567, "main:F1"),
    listing_line(4, "SLINE", 12, 0x4, 0, ""),
    listing_line(5, "250", 0, 0, 0, ""),
]


def test_read_listing():
    records = list(read_objdump_stabs(LISTING))

    assert records == [
        StabRecord(StabKind.N_SO, 0, 0, "/src/"),
        StabRecord(StabKind.N_SO, 0, 0, "point.c"),
        StabRecord(StabKind.N_LSYM, 0, 0, "int:t1=r1;-2147483648;2147483647;"),
        StabRecord(StabKind.N_FUN, 0, 0x80, "main:F1"),
        StabRecord(StabKind.N_SLINE, 12, 4, ""),
        StabRecord(250, 0, 0, ""),
    ]


def test_unknown_kind_is_skipped(log_warnings: list[str]):
    records = list(read_objdump_stabs([listing_line(0, "BOGUS", 0, 0, 1, "x")]))
    assert records == []
    assert any("Unknown stab type 'BOGUS'" in message for message in log_warnings)


def test_leading_blanks_are_kept():
    (record,) = read_objdump_stabs([listing_line(0, "LSYM", 0, 0, 42, " :t2=*1")])
    assert record.text == " :t2=*1"


def test_parse_kind():
    assert parse_kind("FUN") == StabKind.N_FUN
    assert parse_kind("100") == 100
    with pytest.raises(ValueError):
        parse_kind("BOGUS")


def test_record_str():
    assert str(StabRecord(StabKind.N_FUN, 0, 0x80, "main:F1")) == "N_FUN desc=0 value=0x80 'main:F1'"
    assert str(StabRecord(0xFA, 1, 0, "")) == "0xfa desc=1 value=0x0 ''"


def test_symbol_table():
    table = SymbolTable([("_count", 0x10), ("_count", 0x20), ("other", 0x30)], leading_char="_")
    assert table("count") == 0x10
    assert table("other") == 0x30
    assert table("missing") is None
    assert len(table) == 2

    assert SymbolTable({"x": 1})("x") == 1
