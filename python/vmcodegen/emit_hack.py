# python/vmcodegen/emit_hack.py
from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List


@dataclass
class AsmProgram:
    lines: List[str] = field(default_factory=list)

    def extend(self, fragment: Iterable[str]) -> None:
        self.lines.extend(fragment)

    def text(self) -> str:
        return "\n".join(self.lines) + "\n"

    def save(self, path: str | Path) -> None:
        with open(path, "w", encoding="utf-8") as f:
            f.write(self.text())


# ----------------- stack helpers -----------------
# D holds the value / receives the value

def push_d() -> List[str]:
    return ["@SP", "A=M", "M=D", "@SP", "M=M+1"]


def pop_d() -> List[str]:
    return ["@SP", "AM=M-1", "D=M"]


def load_const(value: int) -> List[str]:
    return [f"@{value}", "D=A"]


def load_reg(name: str) -> List[str]:
    return [f"@{name}", "D=M"]


def store_d(name: str) -> List[str]:
    return [f"@{name}", "M=D"]


def jump(target: str) -> List[str]:
    return [f"@{target}", "0;JMP"]
