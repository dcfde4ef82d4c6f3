from __future__ import annotations
from dataclasses import dataclass, field
import re
from typing import Dict, Iterable, List

# label declaration: (Main.EQ_TRUE.3)
LBL_DEF = re.compile(r"^\(([A-Za-z_.$:][\w.$:]*)\)$")
# symbolic A-instruction: @Main.EQ_END.3
SYM_REF = re.compile(r"^@([A-Za-z_.$:][\w.$:]*)$")
# C-instruction with a jump field: D;JNE, 0;JMP
JUMP = re.compile(r";\s*J(GT|EQ|GE|LT|NE|LE|MP)$")

PREDEFINED = {"SP", "LCL", "ARG", "THIS", "THAT", "SCREEN", "KBD"} | {f"R{i}" for i in range(16)}


@dataclass
class LabelReport:
    duplicates: List[str] = field(default_factory=list)
    undefined: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.duplicates and not self.undefined


def _code_lines(lines: Iterable[str]) -> List[str]:
    out = []
    for ln in lines:
        s = ln.split("//", 1)[0].strip()
        if s:
            out.append(s)
    return out


def check_labels(lines: Iterable[str]) -> LabelReport:
    """Finds labels declared twice and jump targets never declared.

    Only ``@sym`` lines directly followed by a jumping C-instruction count
    as jump targets; other symbols may be variables.
    """
    code = _code_lines(lines)

    seen: Dict[str, int] = {}
    for s in code:
        m = LBL_DEF.match(s)
        if m:
            seen[m.group(1)] = seen.get(m.group(1), 0) + 1

    targets = []
    for cur, nxt in zip(code, code[1:]):
        m = SYM_REF.match(cur)
        if m and JUMP.search(nxt):
            targets.append(m.group(1))

    report = LabelReport()
    report.duplicates = sorted(name for name, count in seen.items() if count > 1)
    report.undefined = sorted({t for t in targets if t not in seen and t not in PREDEFINED})
    return report
