"""
Condition Evaluator — small boolean expressions over entity attributes.

Grammar (flat, no parentheses, left to right):

    Expr     := AndGroup ("AND" AndGroup)*
    AndGroup := OrTerm ("OR" OrTerm)*
    OrTerm   := Value CompOp Value
    CompOp   := ">=" | "<=" | ">" | "<" | "==" | "!="

Every AND group must hold; within a group the first satisfied term wins.
A trailing ``for N ticks`` is reported as ``requires_sustained`` but the
evaluator keeps no state between calls. Tracking consecutive passes belongs
to the caller.

Values: numbers, ``true``/``false``, quoted strings, ``tick``, or a dotted
path whose longest existing prefix is an entity id and whose remainder is an
attribute path into that entity.
"""

import logging
import operator
import re
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Tuple, Union

from wsc_kernel.errors import EvaluationError
from wsc_kernel.models.conditions import EvaluationResult
from wsc_kernel.models.entity import Entity
from wsc_kernel.models.world import WorldState

logger = logging.getLogger(__name__)

SUSTAIN_PATTERN = re.compile(r"\s+for\s+(\d+)\s+ticks?\s*$", re.IGNORECASE)
# Quoted literals match first so a keyword inside quotes never splits
AND_SPLIT = re.compile(r"('[^']*'|\"[^\"]*\")|\s+AND\s+")
OR_SPLIT = re.compile(r"('[^']*'|\"[^\"]*\")|\s+OR\s+")
TERM_PATTERN = re.compile(r"^\s*(\S.*?)\s*(>=|<=|==|!=|>|<)\s*(\S.*?)\s*$")
NUMBER_PATTERN = re.compile(r"^[-+]?(\d+(\.\d*)?|\.\d+)([eE][-+]?\d+)?$")
TOP_LEVEL_FIELDS = ("id", "type", "name", "tags")

ORDERING: Dict[str, Callable[[float, float], bool]] = {
    ">=": operator.ge,
    "<=": operator.le,
    ">": operator.gt,
    "<": operator.lt,
    "==": operator.eq,
    "!=": operator.ne,
}

_MISSING = object()


class EntityReader(Protocol):
    def get(self, entity_id: str) -> Optional[Entity]: ...


def split_sustained(expression: str) -> Tuple[str, Optional[int]]:
    """Strip a trailing ``for N ticks`` and return (body, N)."""
    match = SUSTAIN_PATTERN.search(expression)
    if not match:
        return expression.strip(), None
    return expression[: match.start()].strip(), int(match.group(1))


def split_keyword(text: str, pattern: re.Pattern) -> List[str]:
    """Split on ``pattern`` matches that fall outside quoted literals."""
    parts: List[str] = []
    start = 0
    for match in pattern.finditer(text):
        if match.group(1) is not None:
            continue
        parts.append(text[start : match.start()])
        start = match.end()
    parts.append(text[start:])
    return parts


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str) and NUMBER_PATTERN.match(value.strip()):
        return float(value)
    return None


def _as_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def compare(left: Any, op: str, right: Any) -> bool:
    """Numeric comparison when both sides coerce; string equality otherwise."""
    left_num, right_num = _as_number(left), _as_number(right)
    if left_num is not None and right_num is not None:
        return ORDERING[op](left_num, right_num)
    if op == "==":
        return _as_text(left) == _as_text(right)
    if op == "!=":
        return _as_text(left) != _as_text(right)
    raise EvaluationError(f"Cannot order non-numeric values {left!r} {op} {right!r}")


class ConditionEvaluator:
    """Stateless evaluator bound to an entity store."""

    def __init__(self, store: EntityReader):
        self.store = store

    def evaluate(
        self, expression: str, world_state: Union[WorldState, Mapping[str, Any]]
    ) -> EvaluationResult:
        body, sustained = split_sustained(expression or "")
        trace: Dict[str, Any] = {
            "expression": expression,
            "values": {},
            "terms": [],
            "unresolved": [],
            "errors": [],
        }
        if sustained is not None:
            trace["requires_sustained"] = sustained

        if not body:
            trace["errors"].append("Empty expression")
            return EvaluationResult(result=False, trace=trace, requires_sustained=sustained)

        tick = self._tick(world_state)
        result = True
        for group in split_keyword(body, AND_SPLIT):
            group_holds = False
            for term in split_keyword(group, OR_SPLIT):
                if self._evaluate_term(term, tick, trace):
                    group_holds = True
                    break
            if not group_holds:
                result = False

        logger.debug("Evaluated %r -> %s", expression, result)
        return EvaluationResult(result=result, trace=trace, requires_sustained=sustained)

    def _tick(self, world_state: Union[WorldState, Mapping[str, Any]]) -> Any:
        if isinstance(world_state, Mapping):
            return world_state.get("tick")
        return getattr(world_state, "tick", None)

    def _evaluate_term(self, term: str, tick: Any, trace: Dict[str, Any]) -> bool:
        entry: Dict[str, Any] = {"term": term.strip(), "result": False}
        trace["terms"].append(entry)

        match = TERM_PATTERN.match(term)
        if not match:
            error = EvaluationError(f"Unparsable term: {term.strip()!r}")
            trace["errors"].append(str(error))
            entry["error"] = str(error)
            return False

        left_token, op, right_token = match.groups()
        left = self._resolve(left_token, tick, trace)
        right = self._resolve(right_token, tick, trace)
        entry.update(left=left, op=op, right=right)
        if left is None or right is None:
            return False

        try:
            entry["result"] = compare(left, op, right)
        except EvaluationError as e:
            trace["errors"].append(str(e))
            entry["error"] = str(e)
            return False
        return entry["result"]

    def _resolve(self, token: str, tick: Any, trace: Dict[str, Any]) -> Any:
        token = token.strip()
        if len(token) >= 2 and token[0] == token[-1] and token[0] in ("'", '"'):
            return token[1:-1]
        if NUMBER_PATTERN.match(token):
            return float(token)
        if token.lower() in ("true", "false"):
            return token.lower() == "true"
        if token == "tick":
            trace["values"]["tick"] = tick
            if tick is None and "tick" not in trace["unresolved"]:
                trace["unresolved"].append("tick")
            return tick

        value = self.resolve_path(token)
        if value is None:
            if token not in trace["unresolved"]:
                trace["unresolved"].append(token)
            return None
        trace["values"][token] = value
        return value

    def resolve_path(self, path: str) -> Any:
        """Longest entity-id prefix first; remainder is an attribute path."""
        segments = path.split(".")
        for split in range(len(segments) - 1, 0, -1):
            entity = self.store.get(".".join(segments[:split]))
            if entity is not None:
                return self._read(entity, segments[split:])
        return None

    def _read(self, entity: Entity, suffix: List[str]) -> Any:
        value: Any = entity.attrs.to_dict()
        for segment in suffix:
            if isinstance(value, dict) and segment in value:
                value = value[segment]
            else:
                value = _MISSING
                break
        if value is not _MISSING:
            return value

        if len(suffix) == 1 and suffix[0] in TOP_LEVEL_FIELDS:
            return entity.to_record().get(suffix[0])
        return None


def evaluate(
    expression: str,
    store: EntityReader,
    world_state: Union[WorldState, Mapping[str, Any]],
) -> EvaluationResult:
    """Evaluate ``expression`` against ``store`` and the world tick."""
    return ConditionEvaluator(store).evaluate(expression, world_state)
