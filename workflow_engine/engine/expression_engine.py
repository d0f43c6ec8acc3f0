"""
Expression engine for resolving {{ }} template expressions.

Supported forms (dispatched on the trimmed inner text):
    $node.<idOrAlias>.<path>   output of an already executed node
    $prev.<path>               output of the immediate predecessor
    $input.<path>              original invocation payload
    $item.<path>               current array element (per-item resolution only)
    $now, $timestamp, $uuid, $random(min,max)

Unresolvable expressions are left in place as their original text.
Condition expressions (switch "expression" mode) are evaluated with
simpleeval, never eval() or exec().
"""

from __future__ import annotations

import json
import logging
import random
import re
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from simpleeval import DEFAULT_FUNCTIONS, DEFAULT_OPERATORS, SimpleEval

from .types import NodeOutput

if TYPE_CHECKING:
    from .types import ExecutionContext

logger = logging.getLogger(__name__)

EXPRESSION_PATTERN = re.compile(r"\{\{(.*?)\}\}", re.DOTALL)
_PATH_SEGMENT = re.compile(r"([^.\[\]]+)|\[\s*(-?\d+)\s*\]")
_ALIAS_PATTERN = re.compile(r"^(.+)_(\d+)$")
_RANDOM_PATTERN = re.compile(r"^\$random\(\s*(-?\d+)\s*,\s*(-?\d+)\s*\)$")


class _Unresolved:
    """Marker for an expression that could not be resolved."""

    def __repr__(self) -> str:
        return "UNRESOLVED"


UNRESOLVED = _Unresolved()
_NO_ITEM = object()


@dataclass
class ExpressionContext:
    """Snapshot of the live execution state an expression is resolved against."""

    node_outputs: dict[str, NodeOutput]
    node_types: dict[str, str]  # executed node id -> type, traversal order
    input_data: Any
    prev_output: NodeOutput | None = None
    item: Any = field(default=_NO_ITEM)

    @property
    def has_item(self) -> bool:
        return self.item is not _NO_ITEM


def parse_path(path: str) -> list[str | int]:
    """Split `a.b[0].c` into ["a", "b", 0, "c"]."""
    segments: list[str | int] = []
    for match in _PATH_SEGMENT.finditer(path):
        key, index = match.groups()
        if index is not None:
            segments.append(int(index))
        elif key.strip():
            segments.append(key.strip())
    return segments


def get_path(obj: Any, path: str | list[str | int]) -> Any:
    """Walk a path into nested dicts/lists. Returns UNRESOLVED when a segment is missing."""
    segments = parse_path(path) if isinstance(path, str) else path
    current = obj
    for segment in segments:
        if isinstance(segment, int):
            if isinstance(current, list) and -len(current) <= segment < len(current):
                current = current[segment]
                continue
            return UNRESOLVED
        if isinstance(current, dict):
            if segment not in current:
                return UNRESOLVED
            current = current[segment]
        elif isinstance(current, list) and segment.lstrip("-").isdigit():
            index = int(segment)
            if not -len(current) <= index < len(current):
                return UNRESOLVED
            current = current[index]
        else:
            return UNRESOLVED
    return current


class ExpressionEngine:
    """Resolves {{ }} placeholders against an ExpressionContext. Never raises."""

    def __init__(self) -> None:
        self._setup_evaluator()

    def _setup_evaluator(self) -> None:
        """Set up the safe evaluator used for condition expressions."""
        self.evaluator = SimpleEval()
        self.evaluator.operators = DEFAULT_OPERATORS.copy()
        self.evaluator.functions = {
            **DEFAULT_FUNCTIONS,
            "str": str,
            "int": int,
            "float": float,
            "bool": bool,
            "len": len,
            "lower": lambda s: str(s).lower(),
            "upper": lambda s: str(s).upper(),
            "trim": lambda s: str(s).strip(),
            "includes": lambda s, search: search in s if isinstance(s, (list, dict)) else str(search) in str(s),
            "startswith": lambda s, prefix: str(s).startswith(prefix),
            "endswith": lambda s, suffix: str(s).endswith(suffix),
            "abs": abs,
            "min": min,
            "max": max,
            "round": round,
            "get": lambda d, key, default=None: d.get(key, default) if isinstance(d, dict) else default,
        }

    def resolve(self, value: Any, context: ExpressionContext) -> Any:
        """
        Resolve all {{ }} expressions in a value.

        Handles strings, mappings and sequences recursively; other values
        pass through unchanged.
        """
        if isinstance(value, str):
            return self._resolve_string(value, context)

        if isinstance(value, list):
            return [self.resolve(item, context) for item in value]

        if isinstance(value, dict):
            return {key: self.resolve(val, context) for key, val in value.items()}

        return value

    def resolve_for_item(self, value: Any, context: ExpressionContext, item: Any) -> Any:
        """Resolve with `$item` bound to one element of an array input."""
        item_context = ExpressionContext(
            node_outputs=context.node_outputs,
            node_types=context.node_types,
            input_data=context.input_data,
            prev_output=context.prev_output,
            item=item,
        )
        return self.resolve(value, item_context)

    def _resolve_string(self, string: str, context: ExpressionContext) -> Any:
        matches = list(EXPRESSION_PATTERN.finditer(string))
        if not matches:
            return string

        # A lone expression keeps the type of its value
        stripped = string.strip()
        if len(matches) == 1 and matches[0].group(0) == stripped:
            result = self._evaluate(matches[0].group(1), context)
            return string if result is UNRESOLVED else result

        def replacer(match: re.Match[str]) -> str:
            result = self._evaluate(match.group(1), context)
            if result is UNRESOLVED:
                return match.group(0)
            return self._stringify(result)

        return EXPRESSION_PATTERN.sub(replacer, string)

    def _evaluate(self, expression: str, context: ExpressionContext) -> Any:
        expr = expression.strip()
        try:
            if expr == "$now":
                return datetime.now(timezone.utc).isoformat()
            if expr == "$timestamp":
                return int(time.time() * 1000)
            if expr == "$uuid":
                return str(uuid.uuid4())
            random_match = _RANDOM_PATTERN.match(expr)
            if random_match:
                low, high = sorted(int(v) for v in random_match.groups())
                return random.randint(low, high)

            root, _, path = self._split_root(expr)
            if root == "$node":
                return self._resolve_node(path, context)
            if root == "$prev":
                return self._resolve_prev(path, context)
            if root == "$input":
                return get_path(context.input_data, path)
            if root == "$item":
                if not context.has_item:
                    return UNRESOLVED
                return get_path(context.item, path)
        except Exception as e:
            logger.debug("Expression resolution failed: %s (expression: %s)", e, expr)
        return UNRESOLVED

    def _split_root(self, expr: str) -> tuple[str, str, str]:
        """Split `$prev.data.x` into ("$prev", ".", "data.x")."""
        match = re.match(r"^(\$[A-Za-z_]+)(?:(\.|(?=\[))(.*))?$", expr, re.DOTALL)
        if not match:
            return "", "", ""
        return match.group(1), match.group(2) or "", match.group(3) or ""

    def _resolve_node(self, path: str, context: ExpressionContext) -> Any:
        match = re.match(r"^([^.\[]+)(.*)$", path)
        if not match:
            return UNRESOLVED
        ref, remainder = match.group(1), match.group(2).lstrip(".")

        node_id = ref if ref in context.node_outputs else self._resolve_alias(ref, context)
        if node_id is None:
            return UNRESOLVED

        output = context.node_outputs[node_id]
        segments = parse_path(remainder)
        if not segments:
            return output.to_dict()
        if segments[0] in ("data", "metadata"):
            return get_path(output.to_dict(), segments)
        return get_path(output.data, segments)

    def _resolve_alias(self, ref: str, context: ExpressionContext) -> str | None:
        """Map `code_1` to the id of the first executed node of type `code`."""
        match = _ALIAS_PATTERN.match(ref)
        if not match:
            return None
        node_type, position = match.group(1), int(match.group(2))
        if position < 1:
            return None
        same_type = [
            node_id
            for node_id, executed_type in context.node_types.items()
            if executed_type == node_type and node_id in context.node_outputs
        ]
        if position > len(same_type):
            return None
        return same_type[position - 1]

    def _resolve_prev(self, path: str, context: ExpressionContext) -> Any:
        if context.prev_output is None:
            return UNRESOLVED
        data = context.prev_output.data
        segments = parse_path(path)
        if not segments:
            return data
        if segments[0] == "data":
            result = get_path(data, segments[1:])
            if result is not UNRESOLVED:
                return result
        return get_path(data, segments)

    def evaluate_condition(self, expression: str, names: dict[str, Any]) -> Any:
        """Evaluate a safe Python-like expression (no eval/exec) over `names`."""
        self.evaluator.names = names
        return self.evaluator.eval(expression)

    def _stringify(self, value: Any) -> str:
        """Convert value to string for interpolation."""
        if value is None:
            return ""
        if isinstance(value, (dict, list)):
            return json.dumps(value, default=str)
        return str(value)

    @staticmethod
    def create_context(context: ExecutionContext) -> ExpressionContext:
        """Create expression context from the live traversal state."""
        prev_output: NodeOutput | None = None
        if context.current_node_id is not None:
            for conn in context.workflow.incoming(context.current_node_id):
                if conn.source in context.node_outputs:
                    prev_output = context.node_outputs[conn.source]
                    break

        return ExpressionContext(
            node_outputs=context.node_outputs,
            node_types={node_id: trace.node_type for node_id, trace in context.run_data.items()},
            input_data=context.input_data,
            prev_output=prev_output,
        )


def contains_expression(value: Any) -> bool:
    """True when a string value holds at least one {{ }} placeholder."""
    return isinstance(value, str) and EXPRESSION_PATTERN.search(value) is not None


# Singleton instance
expression_engine = ExpressionEngine()
