import re
from collections.abc import Mapping, Sequence
from typing import Any, Dict, List, Optional, Tuple

from .models import BindError

# Quoted string literals are matched first so placeholders inside them are kept.
_NAMED_PLACEHOLDER = re.compile(
    r"('(?:[^']|'')*')|(?<![:\w]):([A-Za-z_][A-Za-z0-9_]*)"
)

Params = Optional[Any]


def format_binds(params: Params) -> Optional[List[Any]]:
    """
    Convert caller parameters into a positional bind list.

    A mapping contributes its values in iteration order, which must match the
    ``:1``, ``:2``... placeholders already written in the SQL text. A sequence
    is passed through unchanged and ``None`` means no binds.

    Raises:
        BindError: If params is neither a mapping nor a sequence
    """
    if params is None:
        return None
    if isinstance(params, Mapping):
        return list(params.values())
    if isinstance(params, Sequence) and not isinstance(params, (str, bytes)):
        return list(params)
    raise BindError(f"Unsupported query parameters: {params!r}")


def has_named_placeholders(sql: str) -> bool:
    return any(match.group(2) for match in _NAMED_PLACEHOLDER.finditer(sql))


def bind_named(sql: str, params: Mapping) -> Tuple[str, List[Any]]:
    """
    Rewrite ``:name`` placeholders into positional ones.

    Positions are assigned in order of first appearance; a name used twice
    reuses its position.

    Example:
        >>> bind_named("SELECT * FROM t WHERE a = :a AND b = :b OR a2 = :a", {"b": 2, "a": 1})
        ('SELECT * FROM t WHERE a = :1 AND b = :2 OR a2 = :1', [1, 2])
    """
    positions: Dict[str, int] = {}
    binds: List[Any] = []

    def _replace(match: "re.Match[str]") -> str:
        if match.group(1) is not None:
            return match.group(1)
        name = match.group(2)
        if name not in positions:
            if name not in params:
                raise BindError(f"Missing value for placeholder :{name}")
            binds.append(params[name])
            positions[name] = len(binds)
        return f":{positions[name]}"

    return _NAMED_PLACEHOLDER.sub(_replace, sql), binds


def translate_params(sql: str, params: Params) -> Tuple[str, Optional[List[Any]]]:
    """Produce the statement text and positional binds to submit."""
    if isinstance(params, Mapping) and has_named_placeholders(sql):
        return bind_named(sql, params)
    return sql, format_binds(params)
