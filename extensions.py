from __future__ import annotations

import importlib.util
import os
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from lexer import MiniPyError


EXTENSION_API_VERSION = 1

# Events the interpreter emits, with the positional arguments handlers receive.
#   unit_start(interpreter, program)
#   before_statement(interpreter, statement, env)
#   after_statement(interpreter, statement, env, signal)
#   after_evaluate(interpreter, expression, value)
#   on_error(interpreter, error)
#   unit_end(interpreter)
EVENTS = (
    "unit_start",
    "before_statement",
    "after_statement",
    "after_evaluate",
    "on_error",
    "unit_end",
)

EventHandler = Callable[..., None]


class MiniPyExtensionError(MiniPyError):
    kind = "ExtensionError"


@dataclass(frozen=True)
class ExtensionMetadata:
    name: str
    version: str = "0.0.0"


@dataclass(frozen=True)
class StepContext:
    step_index: int
    rule: str
    location: Any  # SourceLocation | None
    extra: Optional[Dict[str, Any]]


StepHandler = Callable[[Any, StepContext], None]


@dataclass
class HookRegistry:
    """Event handlers ordered by descending priority, plus periodic step rules."""

    handlers: Dict[str, List[Tuple[int, EventHandler]]] = field(default_factory=dict)
    step_rules: List[Tuple[int, StepHandler]] = field(default_factory=list)

    def on_event(self, event: str, handler: EventHandler, *, priority: int = 0) -> None:
        if event not in EVENTS:
            raise MiniPyExtensionError(f"Unknown event '{event}'; expected one of {', '.join(EVENTS)}")
        bucket = self.handlers.setdefault(event, [])
        bucket.append((priority, handler))
        # Stable sort keeps registration order among equal priorities.
        bucket.sort(key=lambda item: item[0], reverse=True)

    def has_handlers(self, event: str) -> bool:
        return bool(self.handlers.get(event))

    def emit(self, event: str, *args: Any) -> None:
        for _priority, handler in self.handlers.get(event, ()):
            handler(*args)

    def add_step_rule(self, every_n: int, handler: StepHandler) -> None:
        if every_n <= 0:
            raise MiniPyExtensionError("every_n_steps must be >= 1")
        self.step_rules.append((every_n, handler))

    def after_step(self, interpreter: Any, ctx: StepContext) -> None:
        for every_n, handler in self.step_rules:
            if ctx.step_index % every_n == 0:
                handler(interpreter, ctx)


@dataclass
class RuntimeServices:
    metadata: List[ExtensionMetadata] = field(default_factory=list)
    hook_registry: HookRegistry = field(default_factory=HookRegistry)


class ExtensionAPI:
    """What ``minipy_register(ext)`` receives.

    ``on_event``, ``on_evaluate`` and ``every_n_steps`` work both as
    decorators and as plain calls.
    """

    def __init__(self, services: RuntimeServices, name: str) -> None:
        self.services = services
        self.name = name

    def metadata(self, *, version: str = "0.0.0") -> None:
        self.services.metadata.append(ExtensionMetadata(name=self.name, version=version))

    def on_event(self, event: str, handler: Optional[EventHandler] = None, *, priority: int = 0):
        registry = self.services.hook_registry
        if handler is None:
            def deco(fn: EventHandler) -> EventHandler:
                registry.on_event(event, fn, priority=priority)
                return fn
            return deco
        registry.on_event(event, handler, priority=priority)
        return handler

    def on_evaluate(self, handler: Optional[EventHandler] = None, *, priority: int = 0):
        """Observe every evaluated expression as ``handler(interpreter, expression, value)``."""
        return self.on_event("after_evaluate", handler, priority=priority)

    def every_n_steps(self, every_n: int, handler: Optional[StepHandler] = None):
        registry = self.services.hook_registry
        if handler is None:
            def deco(fn: StepHandler) -> StepHandler:
                registry.add_step_rule(every_n, fn)
                return fn
            return deco
        registry.add_step_rule(every_n, handler)
        return handler


def _load_module(path: str, index: int) -> Any:
    if not os.path.isfile(path):
        raise MiniPyExtensionError(f"Extension not found: {path}")
    stem = os.path.splitext(os.path.basename(path))[0]
    spec = importlib.util.spec_from_file_location(f"minipy_ext_{index}_{stem}", path)
    if spec is None or spec.loader is None:
        raise MiniPyExtensionError(f"Failed to load extension module: {path}")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def build_default_services() -> RuntimeServices:
    return RuntimeServices()


def load_runtime_services(paths: Sequence[str]) -> RuntimeServices:
    """Import each extension file and let it register hooks on a shared registry.

    An extension module defines ``minipy_register(ext)`` and may set
    ``MINIPY_EXTENSION_NAME`` and ``MINIPY_EXTENSION_API_VERSION``.
    """
    services = build_default_services()
    for index, path in enumerate(os.path.abspath(p) for p in paths):
        module = _load_module(path, index)
        api_version = getattr(module, "MINIPY_EXTENSION_API_VERSION", EXTENSION_API_VERSION)
        if api_version != EXTENSION_API_VERSION:
            raise MiniPyExtensionError(
                f"Extension {path} requires API {api_version}, host supports {EXTENSION_API_VERSION}"
            )
        register = getattr(module, "minipy_register", None)
        if not callable(register):
            raise MiniPyExtensionError(f"Extension {path} must define callable minipy_register(ext)")
        name = getattr(module, "MINIPY_EXTENSION_NAME", os.path.splitext(os.path.basename(path))[0])
        register(ExtensionAPI(services, str(name)))
    return services
