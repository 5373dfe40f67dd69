"""Intcode entry point and interactive host wiring."""

from __future__ import annotations
import argparse
import re
import sys
from typing import Callable, List, Optional, Tuple

from decoder import disassemble
from interpreter import Computer, FaultFormatter, State
from loader import IntcodeLoadError, parse_program, read_program
from memory import DEFAULT_MAX_ADDRESS, IntcodeFault


DEFAULT_MAX_STEPS = 100_000_000

_SEPARATORS = re.compile(r"[\s,]+")


def _parse_patch(text: str) -> Tuple[int, int]:
    address, sep, value = text.partition("=")
    if not sep:
        raise argparse.ArgumentTypeError(f"expected ADDR=VALUE, got '{text}'")
    try:
        return int(address), int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected integers in '{text}'")


def _parse_input_line(line: str) -> List[int]:
    return [int(part) for part in _SEPARATORS.split(line.strip()) if part]


def _emit_output(value: int, ascii_mode: bool, write: Callable[[str], None]) -> None:
    if ascii_mode and 0 <= value < 128:
        write(chr(value))
    else:
        write(f"{value}\n")


def drive(
    computer: Computer,
    *,
    ascii_mode: bool,
    interactive: bool,
    write: Callable[[str], None],
    read_line: Callable[[], str],
) -> int:
    """Runs the machine to completion, feeding stdin on demand when interactive."""
    while True:
        state = computer.run()
        if state is State.BLOCKED_ON_OUTPUT:
            _emit_output(computer.take_output(), ascii_mode, write)
            continue
        if state is State.FINISHED:
            return 0
        if not interactive:
            print(f"Program is blocked on input at pc={computer.pc}", file=sys.stderr)
            return 1
        try:
            line = read_line()
        except EOFError:
            print(f"Input closed while program is blocked at pc={computer.pc}", file=sys.stderr)
            return 1
        if ascii_mode:
            computer.append_ascii(line + "\n")
            continue
        try:
            computer.append_input(*_parse_input_line(line))
        except ValueError:
            print(f"Expected integers, got '{line}'", file=sys.stderr)


def run_cli(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Intcode virtual machine")
    parser.add_argument("program", help="Program file path or literal program text with -source")
    parser.add_argument("-source", "--source", dest="source_mode", action="store_true", help="Treat program argument as literal program text")
    parser.add_argument("-i", "--input", dest="inputs", type=int, nargs="*", default=[], help="Integer input values queued before running")
    parser.add_argument("--ascii-input", dest="ascii_inputs", action="append", default=[], help="Text line queued as ASCII input (newline appended)")
    parser.add_argument("--ascii", action="store_true", help="Render outputs in 0..127 as text")
    parser.add_argument("--interactive", action="store_true", help="Prompt on stdin when the program needs input")
    parser.add_argument("--patch", type=_parse_patch, action="append", default=[], metavar="ADDR=VALUE", help="Overwrite a memory cell before running")
    parser.add_argument("--max-steps", type=int, default=DEFAULT_MAX_STEPS, help="Fault after this many instructions (0 disables)")
    parser.add_argument("--max-address", type=int, default=DEFAULT_MAX_ADDRESS, help="Fault on writes past this address (0 disables)")
    parser.add_argument("--trace", action="store_true", help="Write every executed instruction to stderr")
    parser.add_argument("-verbose", "--verbose", dest="verbose", action="store_true", help="Emit machine state in fault tracebacks")
    parser.add_argument("--traceback-json", action="store_true", help="Also emit JSON traceback")
    parser.add_argument("--disassemble", action="store_true", help="Print a listing of the program and exit")
    args = parser.parse_args(argv)

    try:
        if args.source_mode:
            cells = parse_program(args.program)
        else:
            cells = read_program(args.program)
    except IntcodeLoadError as error:
        print(f"LoadError: {error}", file=sys.stderr)
        return 1

    if args.disassemble:
        for line in disassemble(cells):
            print(line)
        return 0

    computer = Computer(
        cells,
        max_steps=args.max_steps or None,
        max_address=args.max_address or None,
        trace=args.trace,
    )
    try:
        for address, value in args.patch:
            computer.poke(address, value)
        computer.append_input(*args.inputs)
        for text in args.ascii_inputs:
            computer.append_ascii(text + "\n")
        return drive(
            computer,
            ascii_mode=args.ascii,
            interactive=args.interactive,
            write=lambda text: print(text, end=""),
            read_line=input,
        )
    except IntcodeFault as error:
        sys.stdout.flush()
        formatter = FaultFormatter(computer)
        print(formatter.format_text(error, verbose=args.verbose), file=sys.stderr)
        if args.traceback_json:
            print(formatter.to_json(error), file=sys.stderr)
        return 1


def main() -> None:
    raise SystemExit(run_cli())


if __name__ == "__main__":
    main()
