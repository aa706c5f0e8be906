# accounting/write_barrier.py

from contextlib import contextmanager
import threading

from django.conf import settings


_state = threading.local()


def _context_stack() -> list[str]:
    stack = getattr(_state, "write_context_stack", None)
    if stack is None:
        stack = []
        _state.write_context_stack = stack
    return stack


def current_write_context() -> str | None:
    stack = _context_stack()
    return stack[-1] if stack else None


def write_context_allowed(allowed_contexts: set[str]) -> bool:
    ctx = current_write_context()
    if ctx is None:
        return False
    return ctx in allowed_contexts


def guard_ledger_write(model_name: str, allowed_contexts: set[str]) -> None:
    """Raise unless the current write context may touch ``model_name``."""
    if write_context_allowed(allowed_contexts) or getattr(settings, "TESTING", False):
        return
    raise RuntimeError(
        f"{model_name} is a command-owned ledger model. "
        "Direct writes are only allowed within command_writes_allowed()."
    )


@contextmanager
def _push_write_context(name: str):
    stack = _context_stack()
    stack.append(name)
    try:
        yield
    finally:
        stack.pop()


@contextmanager
def command_writes_allowed():
    with _push_write_context("command"):
        yield


@contextmanager
def migration_writes_allowed():
    with _push_write_context("migration"):
        yield


@contextmanager
def bootstrap_writes_allowed():
    with _push_write_context("bootstrap"):
        yield
