from __future__ import annotations
import copy
import json
import sys
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional, Tuple

from decoder import (
    Add,
    AdjustRelativeBase,
    Equals,
    Halt,
    IMMEDIATE,
    Input,
    Instruction,
    JumpIfTrue,
    JumpInstruction,
    LessThan,
    Multiply,
    Output,
    Parameter,
    RELATIVE,
    decode,
)
from hooks import HookRegistry, StepContext
from loader import parse_program, read_program
from memory import DEFAULT_MAX_ADDRESS, IntcodeAddressError, IntcodeFault, Memory, check_word


class State(Enum):
    RUNNING = "running"
    BLOCKED_ON_INPUT = "blocked-on-input"
    BLOCKED_ON_OUTPUT = "blocked-on-output"
    FINISHED = "finished"


class IntcodeProtocolError(IntcodeFault):
    """Raised when the host drives a machine in a way it cannot honour."""


class IntcodeStepLimitError(IntcodeFault):
    pass


@dataclass
class StateEntry:
    step_index: int
    state_id: str
    pc: int
    relative_base: int
    instruction: str
    state: Optional[State] = None
    effects: List[str] = field(default_factory=list)


class StateLogger:
    def __init__(self, history: int, trace_sink: Optional[Callable[[str], None]] = None) -> None:
        # Only the most recent steps are kept so long-running programs stay bounded.
        self.entries: Deque[StateEntry] = deque(maxlen=history)
        self.next_state_index = 0
        self.trace_sink = trace_sink

    def record(self, *, pc: int, relative_base: int, instruction: Instruction) -> StateEntry:
        step_index = self.next_state_index
        entry = StateEntry(
            step_index=step_index,
            state_id=f"s_{step_index:06d}",
            pc=pc,
            relative_base=relative_base,
            instruction=str(instruction),
        )
        self.entries.append(entry)
        self.next_state_index += 1
        if self.trace_sink is not None:
            self.trace_sink(f"step {step_index}: pc={pc} rb={relative_base} {entry.instruction}")
        return entry

    def note(self, entry: StateEntry, effect: str) -> None:
        entry.effects.append(effect)
        if self.trace_sink is not None:
            self.trace_sink(f"    {effect}")

    def finish(self, entry: StateEntry, state: State) -> None:
        entry.state = state
        if self.trace_sink is not None and state is not State.RUNNING:
            self.trace_sink(f"  -> {state.value}")

    def copy(self) -> "StateLogger":
        clone = StateLogger(self.entries.maxlen or 0, self.trace_sink)
        clone.entries.extend(copy.deepcopy(list(self.entries)))
        clone.next_state_index = self.next_state_index
        return clone


def _stderr_sink(text: str) -> None:
    print(text, file=sys.stderr)


class Computer:
    def __init__(
        self,
        cells: Iterable[int],
        *,
        max_steps: Optional[int] = None,
        max_address: Optional[int] = DEFAULT_MAX_ADDRESS,
        trace: bool = False,
        history: int = 64,
        hooks: Optional[HookRegistry] = None,
        trace_sink: Optional[Callable[[str], None]] = None,
    ) -> None:
        if max_steps is not None and max_steps < 0:
            raise ValueError("max_steps must be non-negative")
        self._memory = Memory(cells, max_address=max_address)
        self._pc = 0
        self._relative_base = 0
        self._input: Deque[int] = deque()
        self._output: Optional[int] = None
        self._finished = False
        self.max_steps = max_steps
        self.trace = trace
        self.hook_registry = hooks if hooks is not None else HookRegistry()
        self.logger = StateLogger(history, (trace_sink or _stderr_sink) if trace else None)

    @classmethod
    def parse(cls, text: str, filename: str = "<string>", **options: Any) -> "Computer":
        return cls(parse_program(text, filename), **options)

    @classmethod
    def from_file(cls, path: str, **options: Any) -> "Computer":
        return cls(read_program(path), **options)

    # ---- state ----

    @property
    def pc(self) -> int:
        return self._pc

    @property
    def relative_base(self) -> int:
        return self._relative_base

    @property
    def finished(self) -> bool:
        return self._finished

    @property
    def steps(self) -> int:
        return self.logger.next_state_index

    @property
    def memory(self) -> Memory:
        return self._memory

    @property
    def pending_input(self) -> Tuple[int, ...]:
        return tuple(self._input)

    @property
    def pending_output(self) -> Optional[int]:
        return self._output

    def peek(self, address: int) -> int:
        return self._memory.load(address)

    def poke(self, address: int, value: int) -> None:
        self._memory.store(address, value)

    def clone(self) -> "Computer":
        clone = copy.copy(self)
        clone._memory = self._memory.copy()
        clone._input = deque(self._input)
        clone.logger = self.logger.copy()
        return clone

    # ---- host I/O ----

    def append_input(self, *values: int) -> None:
        self._input.extend(values)

    def append_ascii(self, text: str) -> None:
        self._input.extend(ord(ch) for ch in text)

    def take_output(self) -> int:
        if self._output is None:
            raise IntcodeProtocolError("no output is buffered", pc=self._pc, rule="TAKE_OUTPUT")
        value, self._output = self._output, None
        return value

    def read_ascii(self) -> str:
        """
        Runs until the machine finishes, starves for input or produces a
        value outside 0..127, returning the text collected on the way. The
        out-of-range value is left buffered for the caller.
        """
        chars: List[str] = []
        while not self._finished:
            state = self.run()
            if state is not State.BLOCKED_ON_OUTPUT or not 0 <= self._output < 128:
                break
            chars.append(chr(self.take_output()))
        return "".join(chars)

    def collect_outputs(self, *inputs: int) -> List[int]:
        self.append_input(*inputs)
        outputs: List[int] = []
        while True:
            state = self.run()
            if state is State.BLOCKED_ON_OUTPUT:
                outputs.append(self.take_output())
            elif state is State.FINISHED:
                return outputs
            else:
                raise IntcodeProtocolError("input exhausted", pc=self._pc, raw=self._memory.load(self._pc), rule="IN")

    # ---- execution ----

    def run(self) -> State:
        step = self.step
        while True:
            state = step()
            if state is not State.RUNNING:
                return state

    def step(self) -> State:
        if self._finished:
            raise IntcodeProtocolError("cannot step a finished machine", pc=self._pc, rule="STEP")
        if self._output is not None:
            return State.BLOCKED_ON_OUTPUT

        step_index = self.logger.next_state_index
        try:
            instruction = decode(self._memory, self._pc)
            if isinstance(instruction, Input) and not self._input:
                return State.BLOCKED_ON_INPUT
            if self.max_steps is not None and step_index >= self.max_steps:
                raise IntcodeStepLimitError(
                    f"Too many steps (limit {self.max_steps})", pc=self._pc, raw=instruction.raw, rule="STEP"
                )
            entry = self.logger.record(pc=self._pc, relative_base=self._relative_base, instruction=instruction)
            state = self._execute(instruction, entry)
            self.logger.finish(entry, state)
            if self.hook_registry.has_step_rules:
                self._after_step(StepContext(step_index=step_index, pc=instruction.pc, rule=instruction.name, state=state))
        except IntcodeFault as error:
            if error.pc is None:
                error.pc = self._pc
                error.raw = self._memory.load(self._pc)
            if error.step_index is None:
                error.step_index = step_index
            try:
                self._emit_event("on_error", self, error)
            except IntcodeFault as hook_error:
                # on_error handlers never replace the fault being reported.
                raise error from hook_error
            raise
        return state

    def _execute(self, instruction: Instruction, entry: StateEntry) -> State:
        load = self._load
        if isinstance(instruction, Add):
            self._store(instruction.c, load(instruction.a, entry) + load(instruction.b, entry), entry)
        elif isinstance(instruction, Multiply):
            self._store(instruction.c, load(instruction.a, entry) * load(instruction.b, entry), entry)
        elif isinstance(instruction, LessThan):
            self._store(instruction.c, 1 if load(instruction.a, entry) < load(instruction.b, entry) else 0, entry)
        elif isinstance(instruction, Equals):
            self._store(instruction.c, 1 if load(instruction.a, entry) == load(instruction.b, entry) else 0, entry)
        elif isinstance(instruction, Input):
            value = self._input.popleft()
            address = self._store(instruction.a, value, entry)
            self._emit_event("input", self, address, value)
        elif isinstance(instruction, Output):
            value = load(instruction.a, entry)
            self._output = value
            self._pc += instruction.size
            self._emit_event("output", self, value)
            return State.BLOCKED_ON_OUTPUT
        elif isinstance(instruction, JumpInstruction):
            value = load(instruction.a, entry)
            taken = value != 0 if isinstance(instruction, JumpIfTrue) else value == 0
            if taken:
                target = load(instruction.b, entry)
                if target < 0:
                    raise IntcodeAddressError(f"Jump to negative address {target}", rule=instruction.name)
                self._pc = target
                return State.RUNNING
        elif isinstance(instruction, AdjustRelativeBase):
            relative_base = self._relative_base + load(instruction.a, entry)
            check_word(relative_base, rule=instruction.name)
            self._relative_base = relative_base
            if self.trace:
                self.logger.note(entry, f"relative base <- {self._relative_base}")
        elif isinstance(instruction, Halt):
            self._finished = True
            self._emit_event("halt", self)
            return State.FINISHED
        self._pc += instruction.size
        return State.RUNNING

    def _load(self, param: Parameter, entry: StateEntry) -> int:
        if param.mode == IMMEDIATE:
            return param.value
        address = self._relative_base + param.value if param.mode == RELATIVE else param.value
        value = self._memory.load(address)
        if self.trace:
            self.logger.note(entry, f"mem[{address}] -> {value}")
        return value

    def _store(self, param: Parameter, value: int, entry: StateEntry) -> int:
        if param.mode == IMMEDIATE:
            raise IntcodeAddressError("cannot store to immediate parameter", rule="STORE")
        address = self._relative_base + param.value if param.mode == RELATIVE else param.value
        self._memory.store(address, value)
        if self.trace:
            self.logger.note(entry, f"mem[{address}] <- {value}")
        return address

    def _emit_event(self, event: str, *args: Any) -> None:
        try:
            self.hook_registry.emit(event, *args)
        except IntcodeFault:
            raise
        except Exception as exc:
            raise IntcodeFault(f"Hook '{event}' failed: {exc}", rule="HOOK") from exc

    def _after_step(self, ctx: StepContext) -> None:
        try:
            self.hook_registry.after_step(self, ctx)
        except IntcodeFault:
            raise
        except Exception as exc:
            raise IntcodeFault(f"Step rule failed: {exc}", pc=ctx.pc, rule="HOOK") from exc


class FaultFormatter:
    def __init__(self, computer: Computer) -> None:
        self.computer = computer

    def format_text(self, error: IntcodeFault, verbose: bool = False) -> str:
        lines = ["Traceback (most recent step last):"]
        entries = list(self.computer.logger.entries)
        if not entries:
            lines.append("  <no steps executed>")
        for entry in entries:
            lines.append(f"  Step {entry.step_index} ({entry.state_id}), pc={entry.pc}: {entry.instruction}")
            if verbose:
                outcome = entry.state.value if entry.state else "fault"
                lines.append(f"    Relative base: {entry.relative_base}  Outcome: {outcome}")
                for effect in entry.effects:
                    lines.append(f"    {effect}")
        if verbose:
            computer = self.computer
            lines.append(
                f"  Machine: pc={computer.pc} relative_base={computer.relative_base} "
                f"pending_input={list(computer.pending_input)} pending_output={computer.pending_output}"
            )
        rule = error.rule or "runtime"
        lines.append(f"{error.__class__.__name__}: {error.message} (pc={error.pc}, raw={error.raw}, rule: {rule})")
        return "\n".join(lines)

    def to_json(self, error: IntcodeFault) -> str:
        steps_json: List[Dict[str, Any]] = []
        for entry in self.computer.logger.entries:
            steps_json.append(
                {
                    "step_index": entry.step_index,
                    "state_id": entry.state_id,
                    "pc": entry.pc,
                    "relative_base": entry.relative_base,
                    "instruction": entry.instruction,
                    "state": entry.state.value if entry.state else None,
                    "effects": list(entry.effects),
                }
            )
        data = {
            "error": {
                "type": error.__class__.__name__,
                "message": error.message,
                "pc": error.pc,
                "raw": error.raw,
                "rule": error.rule,
                "failing_step_index": error.step_index,
            },
            "history": steps_json,
        }
        return json.dumps(data, indent=2)
