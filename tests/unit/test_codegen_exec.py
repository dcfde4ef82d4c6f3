import pytest
from vmreader.parser import parse_text
from vmcodegen.codegen import CodegenOptions, translate_units
from hack_machine import HackMachine

# SP, LCL, ARG, THIS, THAT for code run without bootstrap
FRAME = {0: 256, 1: 300, 2: 400, 3: 3000, 4: 3010}


def _translate(*sources, bootstrap=False):
    units = []
    for name, src in sources:
        res = parse_text(src)
        assert not res.errors, res.errors
        units.append((name, res.instructions))
    return translate_units(units, CodegenOptions(bootstrap=bootstrap))


def _run(src, ram=None):
    regs = dict(FRAME)
    regs.update(ram or {})
    m = HackMachine(_translate(("Test", src)).lines, ram=regs)
    m.run()
    return m


def _run_program(*sources, ram=None):
    m = HackMachine(_translate(*sources, bootstrap=True).lines, ram=ram)
    m.run(stop_at="Sys.init$HALT")
    return m


# --- memory access ---

@pytest.mark.parametrize("value", [0, 1, 17, 32767])
@pytest.mark.parametrize("index", [0, 3])
def test_constant_roundtrip_through_local(value, index):
    m = _run(f"push constant {value}\npop local {index}\npush local {index}\n")
    assert m.word(300 + index) == value
    assert m.stack() == [value]


@pytest.mark.parametrize("segment, base_reg", [("argument", 2), ("this", 3), ("that", 4)])
def test_base_register_segments(segment, base_reg):
    m = _run(f"push constant 42\npop {segment} 2\npush {segment} 2\n")
    assert m.word(FRAME[base_reg] + 2) == 42
    assert m.stack() == [42]


def test_temp_and_pointer_are_fixed_addresses():
    m = _run("push constant 11\npop temp 3\npush constant 5000\npop pointer 1\n")
    assert m.word(8) == 11
    assert m.word(4) == 5000
    assert m.sp == 256


def test_temp_and_pointer_push_back():
    src = """
    push constant 11
    pop temp 3
    push constant 5000
    pop pointer 1
    push constant 77
    pop that 2
    push temp 3
    push pointer 1
    push that 2
    """
    m = _run(src)
    assert m.word(5002) == 77
    assert m.stack() == [11, 5000, 77]
    assert m.top() == 77


def test_push_pointer_then_pop_pointer_is_noop():
    m = HackMachine(_translate(("Test", "push pointer 0\npop pointer 0\n")).lines, ram=FRAME)
    before = list(m.ram)
    m.run()
    assert m.word(3) == 3000
    assert m.sp == 256
    # R13-R15 are scratch, cells at or above SP are free stack
    for addr in list(range(0, 13)) + list(range(16, 256)):
        assert m.ram[addr] == before[addr], addr


def test_static_cells_are_per_unit():
    prog = _translate(
        ("A", "push constant 5\npop static 0\n"),
        ("B", "push constant 9\npop static 0\npush constant 1\npop static 1\n"),
        ("A2", "push static 0\n"),
        ("A", "push static 0\n"),
        ("B", "push static 1\npush static 0\n"),
    )
    m = HackMachine(prog.lines, ram=FRAME)
    m.run()
    assert m.sym("A.0") == 5
    assert m.sym("B.0") == 9
    assert m.sym("B.1") == 1
    # A2.0 was never written; RAM starts zeroed
    assert m.stack() == [0, 5, 1, 9]


# --- arithmetic ---

@pytest.mark.parametrize("a, b, op, expected", [
    (7, 8, "add", 15),
    (32767, 1, "add", -32768),
    (3, 5, "sub", -2),
    (10, 3, "sub", 7),
    (12, 10, "and", 8),
    (12, 10, "or", 14),
])
def test_binary_ops(a, b, op, expected):
    m = _run(f"push constant {a}\npush constant {b}\n{op}\n")
    assert m.stack() == [expected]


def test_unary_ops():
    m = _run("push constant 5\nneg\npush constant 0\nnot\npush constant 21845\nnot\n")
    assert m.stack() == [-5, -1, -21846]


@pytest.mark.parametrize("a, b, op, expected", [
    (5, 5, "eq", -1),
    (5, 3, "eq", 0),
    (5, 3, "gt", -1),
    (3, 5, "gt", 0),
    (5, 5, "gt", 0),
    (3, 5, "lt", -1),
    (5, 3, "lt", 0),
    (5, 5, "lt", 0),
])
def test_comparisons_yield_all_ones_or_zero(a, b, op, expected):
    m = _run(f"push constant 99\npush constant {a}\npush constant {b}\n{op}\n")
    assert m.stack() == [99, expected]


# left - right overflows 16 bits for these operands
@pytest.mark.parametrize("a, b, op, expected", [
    (32767, -2, "gt", -1),
    (32767, -2, "lt", 0),
    (-2, 32767, "gt", 0),
    (-2, 32767, "lt", -1),
    (0, -1, "gt", -1),
    (-1, 0, "lt", -1),
    (-32767, 32767, "eq", 0),
    (-3, -5, "gt", -1),
    (-5, -3, "lt", -1),
])
def test_ordered_comparisons_survive_overflow(a, b, op, expected):
    def push(v):
        return f"push constant {abs(v)}\n" + ("neg\n" if v < 0 else "")

    m = _run(push(a) + push(b) + f"{op}\n")
    assert m.stack() == [expected]
    assert m.top() == expected


def test_many_comparisons_in_one_unit():
    src = "".join(f"push constant {i}\npush constant 4\nlt\n" for i in range(8))
    m = _run(src)
    assert m.stack() == [-1, -1, -1, -1, 0, 0, 0, 0]


# --- branching ---

def test_if_goto_takes_true_encoding():
    src = """
    push constant 0
    not
    if-goto TAKEN
    push constant 1
    goto END
    label TAKEN
    push constant 2
    label END
    """
    m = _run(src)
    assert m.stack() == [2]


def test_if_goto_falls_through_on_false():
    src = """
    push constant 3
    push constant 4
    gt
    if-goto TAKEN
    push constant 1
    goto END
    label TAKEN
    push constant 2
    label END
    """
    m = _run(src)
    assert m.stack() == [1]


def test_loop_sums_to_ten():
    src = """
    push constant 0
    pop local 0
    push constant 4
    pop local 1
    label LOOP
    push local 0
    push local 1
    add
    pop local 0
    push local 1
    push constant 1
    sub
    pop local 1
    push local 1
    if-goto LOOP
    push local 0
    """
    m = _run(src)
    assert m.stack() == [10]


# --- functions ---

SYS_CALLS_F = """
function Sys.init 0
push constant 3000
pop pointer 0
push constant 4000
pop pointer 1
push constant 100
call Main.f 0
label HALT
goto HALT
"""

MAIN_F = """
function Main.f 2
push constant 5000
pop pointer 0
push constant 6000
pop pointer 1
push constant 7
return
"""


def test_call_return_roundtrip():
    m = _run_program(("Sys", SYS_CALLS_F), ("Main", MAIN_F))
    # bootstrap frame: ARG=256, LCL=261
    assert m.word(1) == 261
    assert m.word(2) == 256
    assert m.word(3) == 3000
    assert m.word(4) == 4000
    assert m.stack(base=261) == [100, 7]


def test_call_passes_arguments():
    sys_src = """
    function Sys.init 0
    push constant 3
    push constant 4
    call Main.add2 2
    label HALT
    goto HALT
    """
    main_src = """
    function Main.add2 0
    push argument 0
    push argument 1
    add
    return
    """
    m = _run_program(("Sys", sys_src), ("Main", main_src))
    assert m.stack(base=261) == [7]


def test_locals_zeroed_and_reserved():
    sys_src = """
    function Sys.init 0
    call Main.g 0
    call Main.z 0
    label HALT
    goto HALT
    """
    main_src = """
    function Main.g 2
    push constant 11
    pop local 0
    push constant 22
    push constant 33
    add
    push local 0
    add
    return
    function Main.z 3
    push local 0
    push local 1
    or
    push local 2
    or
    return
    """
    dirty = {addr: 999 for addr in range(256, 400)}
    m = _run_program(("Sys", sys_src), ("Main", main_src), ram=dirty)
    assert m.stack(base=261) == [66, 0]


def test_recursive_fibonacci():
    sys_src = """
    function Sys.init 0
    push constant 10
    call Main.fib 1
    label HALT
    goto HALT
    """
    main_src = """
    function Main.fib 0
    push argument 0
    push constant 2
    lt
    if-goto BASE
    push argument 0
    push constant 1
    sub
    call Main.fib 1
    push argument 0
    push constant 2
    sub
    call Main.fib 1
    add
    return
    label BASE
    push argument 0
    return
    """
    m = _run_program(("Sys", sys_src), ("Main", main_src))
    assert m.stack(base=261) == [55]
