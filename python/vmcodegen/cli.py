# python/vmcodegen/cli.py
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import List, Tuple

from vmreader.ast import Instruction
from vmreader.parser import parse_file

from .codegen import CodegenOptions, translate_units
from .labels import check_labels

TAG = "[vmtranslate]"


def collect_sources(inp: Path) -> List[Path]:
    if inp.is_dir():
        return sorted(inp.glob("*.vm"))
    return [inp]


def default_output(inp: Path) -> Path:
    if inp.is_dir():
        return inp / f"{inp.resolve().name}.asm"
    return inp.with_suffix(".asm")


def read_units(sources: List[Path]) -> Tuple[List[Tuple[str, List[Instruction]]], List[str]]:
    """Parses every file; returns (units, error messages)."""
    units: List[Tuple[str, List[Instruction]]] = []
    errors: List[str] = []
    for src in sources:
        res = parse_file(src)
        if res.errors:
            for e in res.errors:
                errors.append(f"{src}:{e.line}:{e.column}: {e.message}")
            continue
        units.append((src.stem, res.instructions))
    return units, errors


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(prog="vmtranslate", description="VM code -> Hack assembly")
    p.add_argument("input", help="Input .vm file or directory of .vm files")
    p.add_argument("-o", "--output", help="Output .asm file (default: next to input)")
    p.add_argument("--entry", default="Sys.init", help="Function called by the bootstrap code")
    p.add_argument("--no-bootstrap", action="store_true", help="Do not emit SP init + entry call")
    p.add_argument("--no-comments", action="store_true", help="Do not annotate fragments with VM commands")
    p.add_argument("--check", action="store_true", help="Check the result for duplicate/undefined labels")
    args = p.parse_args(argv)

    inp = Path(args.input)
    if not inp.exists():
        print(f"{TAG} ERROR: input not found: {inp}", file=sys.stderr)
        return 2

    sources = collect_sources(inp)
    if not sources:
        print(f"{TAG} ERROR: no .vm files in {inp}", file=sys.stderr)
        return 2

    units, errors = read_units(sources)
    if errors:
        for msg in errors:
            print(f"{TAG} {msg}", file=sys.stderr)
        print(f"{TAG} ERROR: {len(errors)} error(s), no output written", file=sys.stderr)
        return 2

    options = CodegenOptions(
        entry=args.entry,
        bootstrap=not args.no_bootstrap,
        comments=not args.no_comments,
    )
    prog = translate_units(units, options)

    if args.check:
        report = check_labels(prog.lines)
        for name in report.duplicates:
            print(f"{TAG} WARNING: label declared more than once: {name}", file=sys.stderr)
        for name in report.undefined:
            print(f"{TAG} WARNING: jump to undeclared label: {name}", file=sys.stderr)

    out_path = Path(args.output) if args.output else default_output(inp)
    try:
        out_path.parent.mkdir(parents=True, exist_ok=True)
        prog.save(out_path)
    except OSError as e:
        print(f"{TAG} ERROR: cannot write {out_path}: {e}", file=sys.stderr)
        return 3

    print(f"{TAG} OK. units={len(units)} lines={len(prog.lines)} asm_written={out_path.resolve()}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
