from __future__ import annotations
from dataclasses import dataclass
from typing import ClassVar, Dict, List, Tuple, Type

from memory import IntcodeFault, Memory


POSITION = 0
IMMEDIATE = 1
RELATIVE = 2

MODE_NAMES = {POSITION: "position", IMMEDIATE: "immediate", RELATIVE: "relative"}


class IntcodeDecodeError(IntcodeFault):
    """Raised when the cell at pc is not a valid instruction."""


@dataclass
class Parameter:
    mode: int
    value: int

    def __str__(self) -> str:
        if self.mode == IMMEDIATE:
            return str(self.value)
        if self.mode == RELATIVE:
            sign = "-" if self.value < 0 else "+"
            return f"[rb{sign}{abs(self.value)}]"
        return f"[{self.value}]"


@dataclass
class Instruction:
    pc: int
    raw: int

    opcode: ClassVar[int] = 0
    name: ClassVar[str] = ""
    size: ClassVar[int] = 1

    @property
    def parameters(self) -> Tuple[Parameter, ...]:
        return ()

    def __str__(self) -> str:
        params = " ".join(str(p) for p in self.parameters)
        return f"{self.name} {params}" if params else self.name


@dataclass
class BinaryInstruction(Instruction):
    a: Parameter
    b: Parameter
    c: Parameter

    size: ClassVar[int] = 4

    @property
    def parameters(self) -> Tuple[Parameter, ...]:
        return (self.a, self.b, self.c)


@dataclass
class Add(BinaryInstruction):
    opcode: ClassVar[int] = 1
    name: ClassVar[str] = "ADD"


@dataclass
class Multiply(BinaryInstruction):
    opcode: ClassVar[int] = 2
    name: ClassVar[str] = "MUL"


@dataclass
class LessThan(BinaryInstruction):
    opcode: ClassVar[int] = 7
    name: ClassVar[str] = "LT"


@dataclass
class Equals(BinaryInstruction):
    opcode: ClassVar[int] = 8
    name: ClassVar[str] = "EQ"


@dataclass
class UnaryInstruction(Instruction):
    a: Parameter

    size: ClassVar[int] = 2

    @property
    def parameters(self) -> Tuple[Parameter, ...]:
        return (self.a,)


@dataclass
class Input(UnaryInstruction):
    opcode: ClassVar[int] = 3
    name: ClassVar[str] = "IN"


@dataclass
class Output(UnaryInstruction):
    opcode: ClassVar[int] = 4
    name: ClassVar[str] = "OUT"


@dataclass
class AdjustRelativeBase(UnaryInstruction):
    opcode: ClassVar[int] = 9
    name: ClassVar[str] = "ARB"


@dataclass
class JumpInstruction(Instruction):
    a: Parameter
    b: Parameter

    size: ClassVar[int] = 3

    @property
    def parameters(self) -> Tuple[Parameter, ...]:
        return (self.a, self.b)


@dataclass
class JumpIfTrue(JumpInstruction):
    opcode: ClassVar[int] = 5
    name: ClassVar[str] = "JNZ"


@dataclass
class JumpIfFalse(JumpInstruction):
    opcode: ClassVar[int] = 6
    name: ClassVar[str] = "JZ"


@dataclass
class Halt(Instruction):
    opcode: ClassVar[int] = 99
    name: ClassVar[str] = "HALT"
    size: ClassVar[int] = 0


OPCODES: Dict[int, Tuple[Type[Instruction], int]] = {
    Add.opcode: (Add, 3),
    Multiply.opcode: (Multiply, 3),
    Input.opcode: (Input, 1),
    Output.opcode: (Output, 1),
    JumpIfTrue.opcode: (JumpIfTrue, 2),
    JumpIfFalse.opcode: (JumpIfFalse, 2),
    LessThan.opcode: (LessThan, 3),
    Equals.opcode: (Equals, 3),
    AdjustRelativeBase.opcode: (AdjustRelativeBase, 1),
    Halt.opcode: (Halt, 0),
}


def decode(memory: Memory, pc: int) -> Instruction:
    raw = memory.load(pc)
    opcode = raw % 100 if raw >= 0 else raw
    try:
        cls, arity = OPCODES[opcode]
    except KeyError:
        raise IntcodeDecodeError(f"invalid opcode {opcode} at pc={pc}", pc=pc, raw=raw, rule="DECODE")

    modes = raw // 100
    params: List[Parameter] = []
    for i in range(arity):
        mode = modes % 10
        modes //= 10
        if mode not in MODE_NAMES:
            raise IntcodeDecodeError(
                f"invalid parameter mode {mode} for operand {i + 1} at pc={pc}",
                pc=pc,
                raw=raw,
                rule=cls.name,
            )
        params.append(Parameter(mode, memory.load(pc + 1 + i)))
    return cls(pc, raw, *params)


def disassemble(cells: List[int]) -> List[str]:
    """Best-effort listing; cells that do not decode are shown as data."""
    memory = Memory(cells, max_address=None)
    lines: List[str] = []
    pc = 0
    while pc < len(cells):
        try:
            instruction = decode(memory, pc)
        except IntcodeDecodeError:
            lines.append(f"{pc:5d}: DATA {cells[pc]}")
            pc += 1
            continue
        lines.append(f"{pc:5d}: {instruction}")
        pc += max(instruction.size, 1)
    return lines
