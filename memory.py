from __future__ import annotations
from typing import Iterable, List, Optional

import numpy as np

from loader import WORD_MAX, WORD_MIN, IntcodeError


# Writes past this address are treated as a runaway program.
DEFAULT_MAX_ADDRESS = 128 * 1024

_MIN_CAPACITY = 64


class IntcodeFault(IntcodeError):
    """Raised for execution-time faults."""

    def __init__(
        self,
        message: str,
        *,
        pc: Optional[int] = None,
        raw: Optional[int] = None,
        rule: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.pc = pc
        self.raw = raw
        self.rule = rule
        self.step_index: Optional[int] = None


class IntcodeAddressError(IntcodeFault):
    pass


class IntcodeOverflowError(IntcodeFault):
    pass


class Memory:
    """Flat word memory. Reads past the extent yield 0, writes past it grow it."""

    def __init__(self, cells: Iterable[int] = (), *, max_address: Optional[int] = DEFAULT_MAX_ADDRESS) -> None:
        values = list(cells)
        for value in values:
            check_word(value)
        self.max_address = max_address
        self._size = len(values)
        self._data = np.zeros(max(self._size, _MIN_CAPACITY), dtype=np.int64)
        if values:
            self._data[: self._size] = np.array(values, dtype=np.int64)

    def __len__(self) -> int:
        return self._size

    def __getitem__(self, address: int) -> int:
        return self.load(address)

    def __setitem__(self, address: int, value: int) -> None:
        self.store(address, value)

    def load(self, address: int) -> int:
        if address < 0:
            raise IntcodeAddressError(f"Invalid address: {address}", rule="LOAD")
        if address >= self._size:
            return 0
        return int(self._data[address])

    def store(self, address: int, value: int) -> None:
        if address < 0:
            raise IntcodeAddressError(f"Invalid address: {address}", rule="STORE")
        if self.max_address is not None and address > self.max_address:
            raise IntcodeAddressError(
                f"Address {address} exceeds memory ceiling {self.max_address}", rule="STORE"
            )
        check_word(value)
        if address >= self._size:
            self._grow(address + 1)
        self._data[address] = value

    def _grow(self, size: int) -> None:
        capacity = len(self._data)
        if size > capacity:
            new_capacity = max(size, capacity * 2)
            try:
                data = np.zeros(new_capacity, dtype=np.int64)
            except (ValueError, OverflowError, MemoryError) as exc:
                raise IntcodeAddressError(
                    f"Cannot grow memory to {size} cells: {exc}", rule="STORE"
                ) from exc
            data[: self._size] = self._data[: self._size]
            self._data = data
        # Cells between the old extent and the new one are already zero.
        self._size = size

    def tolist(self) -> List[int]:
        return self._data[: self._size].tolist()

    def copy(self) -> "Memory":
        clone = Memory.__new__(Memory)
        clone.max_address = self.max_address
        clone._size = self._size
        clone._data = self._data.copy()
        return clone


def check_word(value: int, rule: str = "STORE") -> None:
    if not WORD_MIN <= value <= WORD_MAX:
        raise IntcodeOverflowError(f"Value {value} does not fit in a 64-bit word", rule=rule)
