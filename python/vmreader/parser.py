from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import List, Optional
from lark import Lark, Transformer, v_args, exceptions

from .ast import *

# every index ends up in an A-instruction, which holds 15 bits
MAX_ADDRESS = 32767

# pointer 0/1 -> THIS/THAT, temp 0..7 -> RAM[5..12]
SEGMENT_LIMITS = {
    Segment.POINTER: 1,
    Segment.TEMP: 7,
}

# call emits @(n_args + 5) when it repositions ARG
CALL_FRAME_WORDS = 5


@dataclass
class ParseResult:
    instructions: List[Instruction] = field(default_factory=list)
    errors: List[ParseError] = field(default_factory=list)


def _pos(meta) -> dict:
    # empty meta (no tokens under the node) carries no position
    return {"line": getattr(meta, "line", 0), "column": getattr(meta, "column", 0)}


@v_args(meta=True)
class InstructionBuilder(Transformer):
    def start(self, meta, items):
        return [it for it in items if isinstance(it, Instruction)]

    # --- memory access ---
    def push(self, meta, items):
        return Push(Segment(str(items[0])), int(items[1]), **_pos(meta))

    def pop(self, meta, items):
        return Pop(Segment(str(items[0])), int(items[1]), **_pos(meta))

    def arithmetic(self, meta, items):
        return Arithmetic(ArithOp(str(items[0])), **_pos(meta))

    # --- program flow ---
    def label(self, meta, items):
        return Label(str(items[0]), **_pos(meta))

    def goto(self, meta, items):
        return Goto(str(items[0]), **_pos(meta))

    def if_goto(self, meta, items):
        return IfGoto(str(items[0]), **_pos(meta))

    # --- functions ---
    def function(self, meta, items):
        return Function(str(items[0]), int(items[1]), **_pos(meta))

    def call(self, meta, items):
        return Call(str(items[0]), int(items[1]), **_pos(meta))

    def ret(self, meta, items):
        return Return(**_pos(meta))


def make_parser() -> Lark:
    grammar = (Path(__file__).parent / "vm.lark").read_text(encoding="utf-8")
    return Lark(grammar, start="start", parser="lalr", propagate_positions=True)


_PARSER: Optional[Lark] = None


def validate(instructions: List[Instruction]) -> List[ParseError]:
    """Checks the operand rules the grammar cannot express.

    The code writer trusts its input, so anything it cannot translate
    correctly (``pop constant``, ``pointer 2``, an index or count that does
    not fit an A-instruction) has to be rejected here.
    """
    errors: List[ParseError] = []

    def err(ins: Instruction, message: str) -> None:
        errors.append(ParseError(message, ins.line, ins.column))

    for ins in instructions:
        if isinstance(ins, Pop) and ins.segment is Segment.CONSTANT:
            err(ins, "cannot pop to the constant segment")
            continue
        if isinstance(ins, (Push, Pop)):
            limit = SEGMENT_LIMITS.get(ins.segment, MAX_ADDRESS)
            if ins.index > limit:
                err(ins, f"{ins.segment.value} index {ins.index} out of range (max {limit})")
        elif isinstance(ins, Function) and ins.n_locals > MAX_ADDRESS:
            err(ins, f"function {ins.name}: {ins.n_locals} locals out of range (max {MAX_ADDRESS})")
        elif isinstance(ins, Call) and ins.n_args + CALL_FRAME_WORDS > MAX_ADDRESS:
            err(ins, f"call {ins.name}: {ins.n_args} arguments out of range "
                     f"(max {MAX_ADDRESS - CALL_FRAME_WORDS})")
    return errors


def scope_labels(instructions: List[Instruction], unit: Optional[str] = None) -> List[Instruction]:
    """Rewrites label/goto/if-goto names to ``<function>$<name>``.

    Labels are local to the function that declares them. Outside any
    function they are qualified with ``unit`` instead, so two files of one
    program can both use ``label LOOP``; without a unit the name is kept.
    """
    out: List[Instruction] = []
    current: Optional[str] = unit
    for ins in instructions:
        if isinstance(ins, Function):
            current = ins.name
        elif current is not None and isinstance(ins, (Label, Goto, IfGoto)):
            ins = replace(ins, name=f"{current}${ins.name}")
        out.append(ins)
    return out


def parse_text(text: str, *, scope: bool = True, unit: Optional[str] = None) -> ParseResult:
    global _PARSER
    if _PARSER is None:
        _PARSER = make_parser()
    try:
        tree = _PARSER.parse(text)
    except exceptions.UnexpectedInput as e:
        return ParseResult(
            errors=[ParseError(
                message=(str(e).splitlines() or [type(e).__name__])[0],
                line=e.line,
                column=e.column,
            )]
        )

    instructions = InstructionBuilder().transform(tree)
    errors = validate(instructions)
    if errors:
        return ParseResult(errors=errors)
    if scope:
        instructions = scope_labels(instructions, unit)
    return ParseResult(instructions=instructions)


def parse_file(path: str | Path, *, scope: bool = True) -> ParseResult:
    path = Path(path)
    text = path.read_text(encoding="utf-8")
    return parse_text(text, scope=scope, unit=path.stem)
