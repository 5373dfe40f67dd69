from __future__ import annotations
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Tuple

from loader import IntcodeError

if TYPE_CHECKING:
    from interpreter import State


# Event name -> arguments passed to its handlers.
EVENTS: Dict[str, Tuple[str, ...]] = {
    "input": ("computer", "address", "value"),
    "output": ("computer", "value"),
    "halt": ("computer",),
    "on_error": ("computer", "error"),
}


class IntcodeHookError(IntcodeError):
    pass


@dataclass(frozen=True)
class StepContext:
    step_index: int
    pc: int
    rule: str
    state: "State"


StepRule = Callable[[Any, StepContext], None]


@dataclass
class HookRegistry:
    """Host observers for one or more Computers."""

    # event -> list[(priority, handler)]
    _events: Dict[str, List[Tuple[int, Callable[..., None]]]] = field(default_factory=dict)
    # list[(every_n, handler)]
    _step_rules: List[Tuple[int, StepRule]] = field(default_factory=list)

    def on_event(self, event: str, handler: Optional[Callable[..., None]] = None, *, priority: int = 0):
        if event not in EVENTS:
            raise IntcodeHookError(f"Unknown event '{event}', expected one of {', '.join(EVENTS)}")
        if handler is None:
            def deco(fn: Callable[..., None]) -> Callable[..., None]:
                self._add_handler(event, fn, priority)
                return fn
            return deco
        self._add_handler(event, handler, priority)
        return handler

    def _add_handler(self, event: str, handler: Callable[..., None], priority: int) -> None:
        handlers = self._events.setdefault(event, [])
        handlers.append((priority, handler))
        handlers.sort(key=lambda t: t[0], reverse=True)

    def on_input(self, handler: Optional[Callable[[Any, int, int], None]] = None, *, priority: int = 0):
        return self.on_event("input", handler, priority=priority)

    def on_output(self, handler: Optional[Callable[[Any, int], None]] = None, *, priority: int = 0):
        return self.on_event("output", handler, priority=priority)

    def on_halt(self, handler: Optional[Callable[[Any], None]] = None, *, priority: int = 0):
        return self.on_event("halt", handler, priority=priority)

    def on_error(self, handler: Optional[Callable[[Any, IntcodeError], None]] = None, *, priority: int = 0):
        return self.on_event("on_error", handler, priority=priority)

    def every_n_steps(self, every_n: int, handler: Optional[StepRule] = None):
        if every_n <= 0:
            raise IntcodeHookError("every_n_steps must be >= 1")
        if handler is None:
            def deco(fn: StepRule) -> StepRule:
                self._step_rules.append((every_n, fn))
                return fn
            return deco
        self._step_rules.append((every_n, handler))
        return handler

    def emit(self, event: str, *args: Any) -> None:
        for _priority, handler in self._events.get(event, []):
            handler(*args)

    @property
    def has_step_rules(self) -> bool:
        return bool(self._step_rules)

    def after_step(self, computer: Any, ctx: StepContext) -> None:
        for every_n, handler in self._step_rules:
            if ctx.step_index % every_n == 0:
                handler(computer, ctx)

