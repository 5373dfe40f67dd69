import pytest

from decoder import (
    IMMEDIATE,
    POSITION,
    RELATIVE,
    Add,
    AdjustRelativeBase,
    Equals,
    Halt,
    Input,
    IntcodeDecodeError,
    JumpIfFalse,
    JumpIfTrue,
    LessThan,
    Multiply,
    Output,
    Parameter,
    decode,
    disassemble,
)
from memory import Memory


@pytest.mark.parametrize(
    "cells, cls, size",
    [
        ([1, 0, 0, 0], Add, 4),
        ([2, 0, 0, 0], Multiply, 4),
        ([3, 0], Input, 2),
        ([4, 0], Output, 2),
        ([5, 0, 0], JumpIfTrue, 3),
        ([6, 0, 0], JumpIfFalse, 3),
        ([7, 0, 0, 0], LessThan, 4),
        ([8, 0, 0, 0], Equals, 4),
        ([9, 0], AdjustRelativeBase, 2),
        ([99], Halt, 0),
    ],
)
def test_every_opcode_decodes(cells, cls, size):
    instruction = decode(Memory(cells), 0)
    assert type(instruction) is cls
    assert instruction.size == size
    assert len(instruction.parameters) == max(size - 1, 0)


def test_modes_are_read_operand_by_operand():
    instruction = decode(Memory([1002, 4, 3, 4, 33]), 0)
    assert isinstance(instruction, Multiply)
    assert instruction.a == Parameter(POSITION, 4)
    assert instruction.b == Parameter(IMMEDIATE, 3)
    assert instruction.c == Parameter(POSITION, 4)


def test_relative_mode_on_third_operand():
    instruction = decode(Memory([21101, 1, 2, -3]), 0)
    assert instruction.a.mode == IMMEDIATE
    assert instruction.b.mode == IMMEDIATE
    assert instruction.c == Parameter(RELATIVE, -3)


def test_operands_past_extent_read_as_zero():
    instruction = decode(Memory([1]), 0)
    assert [p.value for p in instruction.parameters] == [0, 0, 0]


def test_decode_at_offset():
    instruction = decode(Memory([99, 104, 7]), 1)
    assert isinstance(instruction, Output)
    assert instruction.pc == 1
    assert instruction.a == Parameter(IMMEDIATE, 7)


def test_invalid_opcode():
    with pytest.raises(IntcodeDecodeError) as info:
        decode(Memory([1, 0, 0, 0, 42]), 4)
    assert info.value.pc == 4
    assert info.value.raw == 42
    assert "invalid opcode 42 at pc=4" in str(info.value)


def test_negative_cell_is_invalid_opcode():
    # -1 % 100 would otherwise look like a halt.
    with pytest.raises(IntcodeDecodeError):
        decode(Memory([-1]), 0)


def test_invalid_mode_digit():
    with pytest.raises(IntcodeDecodeError) as info:
        decode(Memory([301, 0, 0, 0]), 0)
    assert info.value.raw == 301


def test_unused_mode_digits_are_ignored():
    instruction = decode(Memory([10004, 5]), 0)
    assert isinstance(instruction, Output)
    assert instruction.a.mode == POSITION


def test_rendering():
    instruction = decode(Memory([21001, 5, 6, -2]), 0)
    assert str(instruction) == "ADD [5] 6 [rb-2]"
    assert str(decode(Memory([99]), 0)) == "HALT"


def test_disassemble_lists_data_cells():
    lines = disassemble([1101, 1, 2, 5, 99, 0, 77])
    assert lines == [
        "    0: ADD 1 2 [5]",
        "    4: HALT",
        "    5: DATA 0",
        "    6: DATA 77",
    ]
