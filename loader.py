from __future__ import annotations
from dataclasses import dataclass
from typing import List


WORD_MIN = -(1 << 63)
WORD_MAX = (1 << 63) - 1


class IntcodeError(Exception):
    """Base class for interpreter errors."""


class IntcodeLoadError(IntcodeError):
    """Raised when program text cannot be turned into memory cells."""

    def __init__(self, message: str, *, filename: str = "<string>", token: str = "", column: int = 0) -> None:
        super().__init__(message)
        self.message = message
        self.filename = filename
        self.token = token
        self.column = column


@dataclass
class Token:
    value: int
    text: str
    column: int


class Loader:
    def __init__(self, text: str, filename: str) -> None:
        self.text = text.strip()
        self.filename = filename
        self.index = 0

    def tokenize(self) -> List[Token]:
        tokens: List[Token] = []
        tokens_append = tokens.append
        text = self.text
        n = len(text)
        if n == 0:
            return tokens

        while True:
            start = self.index
            end = text.find(",", start)
            if end == -1:
                end = n
            tokens_append(self._consume_number(text[start:end], start))
            if end == n:
                break
            self.index = end + 1
        return tokens

    def _consume_number(self, chunk: str, offset: int) -> Token:
        stripped = chunk.strip()
        # Column points at the first non-blank character of the token.
        column = offset + (len(chunk) - len(chunk.lstrip())) + 1
        if stripped == "":
            raise IntcodeLoadError(
                f"Empty value at {self.filename}:{column}",
                filename=self.filename,
                token=chunk,
                column=column,
            )
        body = stripped[1:] if stripped[0] in "+-" else stripped
        if not body.isdigit() or not body.isascii():
            raise IntcodeLoadError(
                f"Invalid integer '{stripped}' at {self.filename}:{column}",
                filename=self.filename,
                token=stripped,
                column=column,
            )
        value = int(stripped, 10)
        if not WORD_MIN <= value <= WORD_MAX:
            raise IntcodeLoadError(
                f"Value '{stripped}' at {self.filename}:{column} does not fit in a 64-bit word",
                filename=self.filename,
                token=stripped,
                column=column,
            )
        return Token(value, stripped, column)


def parse_program(text: str, filename: str = "<string>") -> List[int]:
    return [token.value for token in Loader(text, filename).tokenize()]


def read_program(path: str) -> List[int]:
    try:
        with open(path, "r", encoding="utf-8") as handle:
            text = handle.read()
    except OSError as exc:
        raise IntcodeLoadError(f"Failed to read {path}: {exc}", filename=path) from exc
    return parse_program(text, path)
