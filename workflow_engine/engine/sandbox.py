"""
Sandbox for user scripts of the code/function nodes.

Each run happens in a freshly spawned child process. The script is compiled
with RestrictedPython, so underscore attributes, imports and unguarded
writes are rejected. Helper modules are exposed as narrow facades, never
as the modules themselves. The child runs under an address-space limit, and
the parent enforces a wall-clock timeout by killing it.

The script body is wrapped in a function, so `return` yields the result.
Results cross the process boundary as JSON-compatible values.
"""

from __future__ import annotations

import asyncio
import json
import logging
import math
import multiprocessing
import operator
import re
import sys
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from RestrictedPython import compile_restricted
from RestrictedPython.Eval import default_guarded_getitem, default_guarded_getiter
from RestrictedPython.Guards import (
    full_write_guard,
    guarded_iter_unpack_sequence,
    guarded_unpack_sequence,
    safe_builtins,
    safer_getattr,
)

from ..core.exceptions import CodeExecutionError

logger = logging.getLogger(__name__)

SAFE_BUILTINS: dict[str, Any] = {
    **safe_builtins,
    "list": list,
    "dict": dict,
    "set": set,
    "enumerate": enumerate,
    "map": map,
    "filter": filter,
    "reversed": reversed,
    "sum": sum,
    "min": min,
    "max": max,
    "any": any,
    "all": all,
}

_INPLACE_OPERATORS = {
    "+=": operator.iadd,
    "-=": operator.isub,
    "*=": operator.imul,
    "/=": operator.itruediv,
    "//=": operator.ifloordiv,
    "%=": operator.imod,
    "**=": operator.ipow,
}


class _Facade:
    """Base for module stand-ins: only names defined on the class resolve."""

    label = "module"

    def __getattr__(self, name: str) -> Any:
        raise AttributeError(f"'{self.label}.{name}' is not available in scripts")


class _Json(_Facade):
    label = "json"

    @staticmethod
    def loads(text: str | bytes) -> Any:
        return json.loads(text)

    @staticmethod
    def dumps(value: Any, indent: int | None = None, sort_keys: bool = False) -> str:
        return json.dumps(value, indent=indent, sort_keys=sort_keys, default=str)


class _Regex(_Facade):
    label = "re"

    IGNORECASE = re.IGNORECASE
    MULTILINE = re.MULTILINE
    DOTALL = re.DOTALL

    @staticmethod
    def search(pattern: str, string: str, flags: int = 0) -> re.Match[str] | None:
        return re.search(pattern, string, flags)

    @staticmethod
    def match(pattern: str, string: str, flags: int = 0) -> re.Match[str] | None:
        return re.match(pattern, string, flags)

    @staticmethod
    def fullmatch(pattern: str, string: str, flags: int = 0) -> re.Match[str] | None:
        return re.fullmatch(pattern, string, flags)

    @staticmethod
    def findall(pattern: str, string: str, flags: int = 0) -> list[Any]:
        return re.findall(pattern, string, flags)

    @staticmethod
    def sub(pattern: str, repl: str, string: str, count: int = 0, flags: int = 0) -> str:
        return re.sub(pattern, repl, string, count=count, flags=flags)

    @staticmethod
    def split(pattern: str, string: str, maxsplit: int = 0, flags: int = 0) -> list[str]:
        return re.split(pattern, string, maxsplit=maxsplit, flags=flags)


class _Math(_Facade):
    label = "math"

    pi = math.pi
    e = math.e
    inf = math.inf
    ceil = staticmethod(math.ceil)
    floor = staticmethod(math.floor)
    sqrt = staticmethod(math.sqrt)
    pow = staticmethod(math.pow)
    log = staticmethod(math.log)
    log10 = staticmethod(math.log10)
    fabs = staticmethod(math.fabs)
    isclose = staticmethod(math.isclose)


class _Datetime(_Facade):
    label = "datetime"

    @staticmethod
    def now() -> datetime:
        return datetime.now(timezone.utc)

    @staticmethod
    def fromisoformat(text: str) -> datetime:
        return datetime.fromisoformat(text)

    @staticmethod
    def strptime(text: str, fmt: str) -> datetime:
        return datetime.strptime(text, fmt)

    @staticmethod
    def fromtimestamp(seconds: float) -> datetime:
        return datetime.fromtimestamp(seconds, timezone.utc)


def _timedelta(
    days: float = 0, seconds: float = 0, minutes: float = 0, hours: float = 0, weeks: float = 0
) -> timedelta:
    return timedelta(days=days, seconds=seconds, minutes=minutes, hours=hours, weeks=weeks)


def _inplacevar(op: str, target: Any, value: Any) -> Any:
    return _INPLACE_OPERATORS[op](target, value)


def _apply(func: Any, *args: Any, **kwargs: Any) -> Any:
    return func(*args, **kwargs)


class _LogPrinter:
    """Routes `print(...)` in scripts to the captured log lines."""

    def __init__(self, log: Any) -> None:
        self._log = log

    def __call__(self, _getattr_: Any = None) -> _LogPrinter:
        return self

    def _call_print(self, *args: Any, **kwargs: Any) -> None:
        self._log(*args)


_spawn_context = multiprocessing.get_context("spawn")


@dataclass
class SandboxResult:
    """Value returned by a script plus its captured log lines."""

    result: Any = None
    logs: list[str] = field(default_factory=list)


def _wrap(code: str) -> str:
    """Indent the script into a function body so `return` works."""
    indented = "\n".join(("    " + line) if line.strip() else "" for line in code.split("\n"))
    return f"def user_code():\n    pass\n{indented}\n\nresult = user_code()\n"


def _to_json_safe(value: Any) -> Any:
    return json.loads(json.dumps(value, default=str))


def _limit_memory(memory_limit_mb: int | None) -> None:
    if not memory_limit_mb or sys.platform == "win32":
        return
    import resource

    limit = memory_limit_mb * 1024 * 1024
    resource.setrlimit(resource.RLIMIT_AS, (limit, limit))


def _restricted_globals(variables: dict[str, Any], log: Any) -> dict[str, Any]:
    return {
        "__builtins__": SAFE_BUILTINS,
        "_getattr_": safer_getattr,
        "_getitem_": default_guarded_getitem,
        "_getiter_": default_guarded_getiter,
        "_iter_unpack_sequence_": guarded_iter_unpack_sequence,
        "_unpack_sequence_": guarded_unpack_sequence,
        "_write_": full_write_guard,
        "_inplacevar_": _inplacevar,
        "_apply_": _apply,
        "_print_": _LogPrinter(log),
        "json": _Json(),
        "re": _Regex(),
        "math": _Math(),
        "datetime": _Datetime(),
        "timedelta": _timedelta,
        **variables,
        "log": log,
    }


def _child_main(conn: Any, code: str, variables: dict[str, Any], memory_limit_mb: int | None) -> None:
    """Entry point of the sandbox process."""
    logs: list[str] = []

    def log(*args: Any) -> None:
        logs.append(" ".join(a if isinstance(a, str) else json.dumps(a, default=str) for a in args))

    try:
        _limit_memory(memory_limit_mb)
        byte_code = compile_restricted(_wrap(code), "<code>", "exec")
        exec_locals: dict[str, Any] = {}
        exec(byte_code, _restricted_globals(variables, log), exec_locals)
        conn.send(("ok", _to_json_safe(exec_locals.get("result")), logs))
    except MemoryError:
        conn.send(("error", "Memory limit exceeded", logs))
    except Exception as e:
        conn.send(("error", f"{type(e).__name__}: {e}", logs))
    finally:
        conn.close()


def _run_blocking(
    code: str,
    variables: dict[str, Any],
    timeout: float,
    memory_limit_mb: int | None,
) -> SandboxResult:
    parent_conn, child_conn = _spawn_context.Pipe(duplex=False)
    process = _spawn_context.Process(
        target=_child_main,
        args=(child_conn, code, variables, memory_limit_mb),
        daemon=True,
    )
    process.start()
    child_conn.close()

    try:
        if not parent_conn.poll(timeout):
            raise CodeExecutionError(f"Code execution timed out ({timeout:g} second limit)")
        try:
            status, payload, logs = parent_conn.recv()
        except EOFError as e:
            raise CodeExecutionError(
                f"Code execution process exited unexpectedly (exit code {process.exitcode})"
            ) from e
    finally:
        if process.is_alive():
            process.kill()
        process.join(1)
        parent_conn.close()

    if status != "ok":
        raise CodeExecutionError(f"Code execution failed: {payload}", details={"logs": logs})
    return SandboxResult(result=payload, logs=logs)


async def run_script(
    code: str,
    variables: dict[str, Any],
    timeout: float,
    memory_limit_mb: int | None = None,
) -> SandboxResult:
    """
    Run a script in a sandbox process without blocking the event loop.

    Args:
        code: Script body; `return <value>` produces the result
        variables: Globals exposed to the script (must be picklable)
        timeout: Wall-clock limit in seconds
        memory_limit_mb: Address-space limit of the child process

    Raises:
        CodeExecutionError: script raised, timed out or the process died
    """
    logger.debug("Running sandboxed script (%d chars, timeout %ss)", len(code), timeout)
    return await asyncio.to_thread(_run_blocking, code, variables, timeout, memory_limit_mb)
