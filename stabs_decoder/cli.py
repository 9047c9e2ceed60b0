"""
CLI for the decoder.
"""

import argparse
import sys

from loguru import logger

from stabs_decoder.builder import DebugInfoBuilder
from stabs_decoder.config import DecoderConfig
from stabs_decoder.decoder import decode_stabs
from stabs_decoder.records import read_objdump_stabs

parser = argparse.ArgumentParser(
    "stabs-decode", description="Decode the STABS debugging information of an objdump listing."
)
parser.add_argument("listing", help="Output of `objdump -G` (`--stabs`).", type=str)
parser.add_argument(
    "--sections",
    help="Records come from a .stab section, so addresses are function relative (default).",
    action=argparse.BooleanOptionalAction,
    default=True,
)
parser.add_argument(
    "--no-ansi",
    help="Leave const and volatile out of demangled template names.",
    dest="ansi",
    action="store_false",
)
parser.add_argument("--verbose", "-v", help="Log debug messages.", action="store_true")


def summarize(builder: DebugInfoBuilder) -> str:
    lines = []
    for unit in builder.units:
        lines.append(f"{unit.name}:")
        lines.append(f"  sources:   {', '.join(unit.sources)}")
        lines.append(f"  functions: {', '.join(f.name for f in unit.functions)}")
        lines.append(f"  variables: {', '.join(v.name for v in unit.variables if v.name)}")
        lines.append(f"  types:     {', '.join(sorted(unit.named_types))}")
        lines.append(f"  tags:      {', '.join(sorted(unit.tagged_types))}")
    return "\n".join(lines)


def main():
    args = parser.parse_args()  # noqa
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if args.verbose else "WARNING")

    config = DecoderConfig(demangle_ansi=args.ansi)
    with open(args.listing, encoding="utf-8", errors="replace") as listing:
        builder = decode_stabs(
            read_objdump_stabs(listing),
            DebugInfoBuilder(),
            sections=args.sections,
            config=config,
        )
    print(summarize(builder))


if __name__ == "__main__":
    main()
