"""
Tests for the command line entry point.
"""

import sys

import pytest
from loguru import logger

from stabs_decoder import cli

LISTING = """\

point.o:     file format elf32-i386

Contents of .stab section:

Symnum n_type n_othr n_desc n_value  n_strx String

-1     HdrSym 0      11     0000000000000120 1
0      SO     0      0      0000000000000000 1      /src/
1      SO     0      0      0000000000000000 7      point.c
2      LSYM   0      0      0000000000000000 15     int:t1=r1;-2147483648;2147483647;
3      LSYM   0      0      0000000000000000 48     Point:T2=s8x:1,0,32;y:1,32,32;;
4      FUN    0      0      0000000000000000 80     main:F1
5      SLINE  0      3      0000000000000004 0
6      FUN    0      0      0000000000000010 0
7      GSYM   0      0      0000000000000000 88     count:G1
8      SO     0      0      0000000000000020 0
"""


@pytest.fixture
def restore_logger():
    yield
    logger.remove()
    logger.add(sys.stderr)


def test_main(tmp_path, monkeypatch, capsys, restore_logger):
    listing = tmp_path / "point.stabs"
    listing.write_text(LISTING)
    monkeypatch.setattr(sys, "argv", ["stabs-decode", str(listing)])

    cli.main()

    lines = capsys.readouterr().out.splitlines()
    assert lines[0] == "/src/point.c:"
    assert lines[1].split() == ["sources:", "/src/point.c"]
    assert lines[2].split() == ["functions:", "main"]
    assert lines[3].split() == ["variables:", "count"]
    assert lines[4].split() == ["types:", "int"]
    assert lines[5].split() == ["tags:", "Point"]


def test_arguments():
    args = cli.parser.parse_args(["a.stabs", "--no-sections", "--no-ansi", "-v"])
    assert args.listing == "a.stabs"
    assert not args.sections
    assert not args.ansi
    assert args.verbose

    defaults = cli.parser.parse_args(["a.stabs"])
    assert defaults.sections and defaults.ansi and not defaults.verbose
