# python/vmcodegen/codegen.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from vmreader.ast import (
    Instruction, Segment, ArithOp,
    Push, Pop, Arithmetic, Label, Goto, IfGoto, Function, Call, Return,
)

from .emit_hack import AsmProgram, push_d, pop_d, load_const, load_reg, store_d, jump

STACK_BASE = 256
FRAME_SIZE = 5  # return address, LCL, ARG, THIS, THAT

# scratch registers
ADDR_TMP = "R13"   # pop: resolved target address
END_FRAME = "R13"  # return: captured LCL
RET_ADDR = "R14"   # return: caller's resume address
CMP_RIGHT = "R13"  # gt/lt: right operand

BASE_REGISTERS: Dict[Segment, str] = {
    Segment.ARGUMENT: "ARG",
    Segment.LOCAL: "LCL",
    Segment.THIS: "THIS",
    Segment.THAT: "THAT",
}

BASE_ADDRESSES: Dict[Segment, int] = {
    Segment.POINTER: 3,
    Segment.TEMP: 5,
}

# D = right operand, M = left operand
BINARY_OPS: Dict[ArithOp, str] = {
    ArithOp.ADD: "M=D+M",
    ArithOp.SUB: "M=M-D",
    ArithOp.AND: "M=D&M",
    ArithOp.OR: "M=D|M",
}

UNARY_OPS: Dict[ArithOp, str] = {
    ArithOp.NEG: "M=-M",
    ArithOp.NOT: "M=!M",
}

# jump taken on (left - right)
COMPARE_JUMPS: Dict[ArithOp, str] = {
    ArithOp.EQ: "JEQ",
    ArithOp.GT: "JGT",
    ArithOp.LT: "JLT",
}

# restore order matters: every read goes through END_FRAME, never LCL
RESTORE_ORDER: Tuple[Tuple[int, str], ...] = (
    (1, "THAT"),
    (2, "THIS"),
    (3, "ARG"),
    (4, "LCL"),
)

SAVED_REGISTERS: Tuple[str, ...] = ("LCL", "ARG", "THIS", "THAT")


@dataclass
class CodegenOptions:
    stack_base: int = STACK_BASE
    entry: str = "Sys.init"
    bootstrap: bool = True
    comments: bool = True


class CodeWriter:
    """Translates VM instructions into Hack assembly, one fragment each.

    The writer owns the ordinal counter used for generated labels. It is
    advanced once per translated instruction, including the push/pop pairs
    synthesized for function locals, and is never reset, so a single writer
    shared by every unit of a program cannot emit the same label twice.
    """

    def __init__(
        self,
        out: Optional[AsmProgram] = None,
        options: Optional[CodegenOptions] = None,
        unit: str = "Bootstrap",
    ) -> None:
        self.out = out if out is not None else AsmProgram()
        self.options = options if options is not None else CodegenOptions()
        self.unit = unit
        self._ordinal = 0
        self._initialized = False

    # ---- bookkeeping ----

    def set_unit(self, name: str) -> None:
        """Starts a new compilation unit (static cells become ``name.i``)."""
        self.unit = name

    def _tick(self) -> int:
        n = self._ordinal
        self._ordinal += 1
        return n

    def _label(self, kind: str, n: int) -> str:
        return f"{self.unit}.{kind}.{n}"

    def _static(self, index: int) -> str:
        return f"{self.unit}.{index}"

    # ---- public API ----

    def write_init(self) -> List[str]:
        """Emits ``SP = stack_base; call entry 0``. Only valid before any other output."""
        if self._initialized or self.out.lines:
            raise RuntimeError("bootstrap must be the first code of the program")
        self._initialized = True
        frag = load_const(self.options.stack_base) + store_d("SP")
        frag += self._fragment(Call(self.options.entry, 0))
        self.out.extend(frag)
        return frag

    def translate(self, ins: Instruction) -> List[str]:
        frag = self._fragment(ins)
        self.out.extend(frag)
        return frag

    def translate_all(self, instructions: Iterable[Instruction]) -> None:
        for ins in instructions:
            self.translate(ins)

    # ---- dispatch ----

    def _fragment(self, ins: Instruction) -> List[str]:
        n = self._tick()

        if isinstance(ins, Push):
            body = self._push(ins.segment, ins.index)
        elif isinstance(ins, Pop):
            body = self._pop(ins.segment, ins.index)
        elif isinstance(ins, Arithmetic):
            body = self._arithmetic(ins.op, n)
        elif isinstance(ins, Label):
            body = [f"({ins.name})"]
        elif isinstance(ins, Goto):
            body = jump(ins.name)
        elif isinstance(ins, IfGoto):
            # VM true is -1: branch on non-zero, not on positive
            body = pop_d() + [f"@{ins.name}", "D;JNE"]
        elif isinstance(ins, Function):
            body = self._function(ins.name, ins.n_locals)
        elif isinstance(ins, Call):
            body = self._call(ins.name, ins.n_args, n)
        elif isinstance(ins, Return):
            body = self._return()
        else:
            raise TypeError(f"unsupported VM instruction: {ins!r}")

        if self.options.comments:
            return [f"// {ins}"] + body
        return body

    # ---- memory access ----

    def _resolve(self, segment: Segment, index: int) -> List[str]:
        """Leaves the address of ``segment[index]`` in D."""
        if segment in BASE_REGISTERS:
            return [f"@{BASE_REGISTERS[segment]}", "D=M", f"@{index}", "D=D+A"]
        if segment in BASE_ADDRESSES:
            return [f"@{BASE_ADDRESSES[segment]}", "D=A", f"@{index}", "D=D+A"]
        raise ValueError(f"segment {segment.value} has no address")

    def _push(self, segment: Segment, index: int) -> List[str]:
        if segment is Segment.CONSTANT:
            body = load_const(index)
        elif segment is Segment.STATIC:
            body = load_reg(self._static(index))
        else:
            body = self._resolve(segment, index) + ["A=D", "D=M"]
        return body + push_d()

    def _pop(self, segment: Segment, index: int) -> List[str]:
        if segment is Segment.STATIC:
            return pop_d() + store_d(self._static(index))
        # resolve before SP moves, keep the address in a scratch register
        return (
            self._resolve(segment, index)
            + store_d(ADDR_TMP)
            + pop_d()
            + [f"@{ADDR_TMP}", "A=M", "M=D"]
        )

    # ---- arithmetic ----

    def _arithmetic(self, op: ArithOp, n: int) -> List[str]:
        if op in BINARY_OPS:
            return ["@SP", "AM=M-1", "D=M", "A=A-1", BINARY_OPS[op]]
        if op in UNARY_OPS:
            return ["@SP", "A=M-1", UNARY_OPS[op]]
        if op in COMPARE_JUMPS:
            return self._compare(op, n)
        raise ValueError(f"unknown arithmetic op: {op!r}")

    def _compare(self, op: ArithOp, n: int) -> List[str]:
        kind = op.value.upper()
        on_true = self._label(f"{kind}_TRUE", n)
        end = self._label(f"{kind}_END", n)
        if op is ArithOp.EQ:
            # left - right is zero exactly when they are equal, overflow or not
            test = ["@SP", "AM=M-1", "D=M", "A=A-1", "D=M-D"]
        else:
            test = self._ordered_difference(kind, n)
        return [
            *test,
            f"@{on_true}", f"D;{COMPARE_JUMPS[op]}",
            "@SP", "A=M-1", "M=0",
            *jump(end),
            f"({on_true})",
            "@SP", "A=M-1", "M=-1",
            f"({end})",
        ]

    def _ordered_difference(self, kind: str, n: int) -> List[str]:
        """Pops right and leaves in D a value with the sign of left - right.

        left - right only overflows when the operands have different signs.
        In that case the sign of left decides, so D becomes ``left | 1``
        (never zero, same sign as left).
        """
        left_neg = self._label(f"{kind}_LNEG", n)
        mixed = self._label(f"{kind}_MIXED", n)
        same = self._label(f"{kind}_SAME", n)
        ready = self._label(f"{kind}_READY", n)
        return [
            *pop_d(), *store_d(CMP_RIGHT),
            "@SP", "A=M-1", "D=M",
            f"@{left_neg}", "D;JLT",
            *load_reg(CMP_RIGHT),
            f"@{mixed}", "D;JLT",
            *jump(same),
            f"({left_neg})",
            *load_reg(CMP_RIGHT),
            f"@{mixed}", "D;JGE",
            f"({same})",
            *load_reg(CMP_RIGHT),
            "@SP", "A=M-1", "D=M-D",
            *jump(ready),
            f"({mixed})",
            "@SP", "A=M-1", "D=M", "@1", "D=D|A",
            f"({ready})",
        ]

    # ---- functions ----

    def _function(self, name: str, n_locals: int) -> List[str]:
        body = [f"({name})"]
        # on entry SP == LCL, so after "pop local i" SP is back on slot i
        for i in range(n_locals):
            body += self._fragment(Push(Segment.CONSTANT, 0))
            body += self._fragment(Pop(Segment.LOCAL, i))
            body += ["@SP", "M=M+1"]
        return body

    def _call(self, name: str, n_args: int, n: int) -> List[str]:
        ret = self._label("RET", n)
        body = [f"@{ret}", "D=A"] + push_d()
        for reg in SAVED_REGISTERS:
            body += load_reg(reg) + push_d()
        body += ["@SP", "D=M", f"@{n_args + FRAME_SIZE}", "D=D-A"] + store_d("ARG")
        body += load_reg("SP") + store_d("LCL")
        body += jump(name)
        body.append(f"({ret})")
        return body

    def _return(self) -> List[str]:
        body = load_reg("LCL") + store_d(END_FRAME)
        # the return address may sit in ARG[0], read it before the result lands there
        body += [f"@{FRAME_SIZE}", "A=D-A", "D=M"] + store_d(RET_ADDR)
        body += pop_d() + ["@ARG", "A=M", "M=D"]
        body += ["@ARG", "D=M+1"] + store_d("SP")
        for offset, reg in RESTORE_ORDER:
            body += [f"@{END_FRAME}", "D=M", f"@{offset}", "A=D-A", "D=M"] + store_d(reg)
        body += [f"@{RET_ADDR}", "A=M", "0;JMP"]
        return body


def translate_units(
    units: Iterable[Tuple[str, List[Instruction]]],
    options: Optional[CodegenOptions] = None,
) -> AsmProgram:
    """Translates ``(unit_name, instructions)`` pairs into one program.

    Bootstrap code (when enabled) comes first, then every unit in order.
    One writer is shared so generated labels stay unique program-wide.
    """
    writer = CodeWriter(options=options)
    if writer.options.bootstrap:
        writer.write_init()
    for name, instructions in units:
        writer.set_unit(name)
        writer.translate_all(instructions)
    return writer.out
