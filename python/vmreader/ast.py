from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum


@dataclass
class ParseError:
    message: str
    line: int
    column: int


class Segment(Enum):
    ARGUMENT = "argument"
    LOCAL = "local"
    THIS = "this"
    THAT = "that"
    CONSTANT = "constant"
    STATIC = "static"
    POINTER = "pointer"
    TEMP = "temp"


class ArithOp(Enum):
    ADD = "add"
    SUB = "sub"
    NEG = "neg"
    EQ = "eq"
    GT = "gt"
    LT = "lt"
    AND = "and"
    OR = "or"
    NOT = "not"


# ---- Instructions ----
# line/column = source position (1-based), 0 for instructions the engine synthesizes
@dataclass(frozen=True)
class Instruction:
    pass


@dataclass(frozen=True)
class Push(Instruction):
    segment: Segment
    index: int
    line: int = 0
    column: int = field(default=0, compare=False)

    def __str__(self) -> str:
        return f"push {self.segment.value} {self.index}"


@dataclass(frozen=True)
class Pop(Instruction):
    segment: Segment
    index: int
    line: int = 0
    column: int = field(default=0, compare=False)

    def __str__(self) -> str:
        return f"pop {self.segment.value} {self.index}"


@dataclass(frozen=True)
class Arithmetic(Instruction):
    op: ArithOp
    line: int = 0
    column: int = field(default=0, compare=False)

    def __str__(self) -> str:
        return self.op.value


@dataclass(frozen=True)
class Label(Instruction):
    name: str
    line: int = 0
    column: int = field(default=0, compare=False)

    def __str__(self) -> str:
        return f"label {self.name}"


@dataclass(frozen=True)
class Goto(Instruction):
    name: str
    line: int = 0
    column: int = field(default=0, compare=False)

    def __str__(self) -> str:
        return f"goto {self.name}"


@dataclass(frozen=True)
class IfGoto(Instruction):
    name: str
    line: int = 0
    column: int = field(default=0, compare=False)

    def __str__(self) -> str:
        return f"if-goto {self.name}"


@dataclass(frozen=True)
class Function(Instruction):
    name: str
    n_locals: int
    line: int = 0
    column: int = field(default=0, compare=False)

    def __str__(self) -> str:
        return f"function {self.name} {self.n_locals}"


@dataclass(frozen=True)
class Call(Instruction):
    name: str
    n_args: int
    line: int = 0
    column: int = field(default=0, compare=False)

    def __str__(self) -> str:
        return f"call {self.name} {self.n_args}"


@dataclass(frozen=True)
class Return(Instruction):
    line: int = 0
    column: int = field(default=0, compare=False)

    def __str__(self) -> str:
        return "return"
