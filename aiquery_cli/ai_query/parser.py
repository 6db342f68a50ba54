"""Turn an LLM's free-text answer into a validated QueryResult."""

from __future__ import annotations

import json
import re
from typing import Any, Mapping

from aiquery_cli.shared.config import QuerySettings
from aiquery_cli.shared.exceptions import ResponseParseError
from aiquery_cli.shared.logging import Logger, get_logger

from .types import QueryResult

QUERY_FIELDS = ("sql", "generated_query", "query")

FENCE_RE = re.compile(r"```(?:json)?[ \t]*\r?\n?(.*?)```", re.IGNORECASE | re.DOTALL)
LIMIT_RE = re.compile(r"\blimit\s+\d+|\bfetch\s+(?:first|next)\b", re.IGNORECASE)
FIRST_TOKEN_RE = re.compile(r"[A-Za-z_]+")
# Opening delimiter -> closing delimiter for SQL string literals and quoted identifiers.
_QUOTE_CLOSERS = {"'": "'", '"': '"', "`": "`", "[": "]"}
SYSTEM_CATALOG_RE = re.compile(
    r"\b(?:information_schema|pg_catalog)\s*\.|\bsqlite_(?:master|schema)\b",
    re.IGNORECASE,
)

SYSTEM_CATALOG_WARNING = "This query reads system catalog tables; results describe database metadata, not user data."

ERROR_PHRASES = (
    "cannot generate",
    "can't generate",
    "could not generate",
    "unable to",
    "not possible to",
    "cannot be answered",
    "does not exist",
    "doesn't exist",
    "no such table",
    "not enough information",
    "error:",
)

_VISUALIZATION_ALIASES = {
    "table": "table",
    "grid": "table",
    "bar": "bar",
    "bars": "bar",
    "column": "bar",
    "histogram": "bar",
    "line": "line",
    "time_series": "line",
    "timeseries": "line",
    "pie": "pie",
    "donut": "pie",
}


def extract_json_payload(raw: str) -> str:
    """Return the JSON text inside a fenced block, or from the first ``{`` onward."""
    match = FENCE_RE.search(raw)
    if match:
        candidate = match.group(1).strip()
        if candidate and _decodes(candidate):
            return candidate
    start = raw.find("{")
    if start == -1:
        raise ResponseParseError("Invalid response format: no JSON object found in the model answer.")
    return raw[start:]


def _decodes(payload: str) -> bool:
    try:
        json.JSONDecoder().raw_decode(payload)
    except json.JSONDecodeError:
        return False
    return True


def decode_json_object(payload: str) -> Mapping[str, Any]:
    """Decode the leading JSON value of ``payload``; trailing prose is ignored."""
    try:
        data, _ = json.JSONDecoder().raw_decode(payload.strip())
    except json.JSONDecodeError as exc:
        raise ResponseParseError(f"Invalid response format: JSON parse error: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ResponseParseError("Invalid response format: expected a JSON object.")
    return data


def strip_leading_comments(sql: str) -> str:
    """Drop leading whitespace, ``--`` line comments and ``/* */`` block comments."""
    pos = 0
    length = len(sql)
    while pos < length:
        if sql[pos].isspace():
            pos += 1
        elif sql.startswith("--", pos):
            newline = sql.find("\n", pos)
            if newline == -1:
                return ""
            pos = newline + 1
        elif sql.startswith("/*", pos):
            end = sql.find("*/", pos + 2)
            if end == -1:
                return ""
            pos = end + 2
        else:
            break
    return sql[pos:]


def first_keyword(sql: str) -> str:
    match = FIRST_TOKEN_RE.match(strip_leading_comments(sql))
    return match.group(0).lower() if match else ""


def is_read_only(sql: str) -> bool:
    """True when the first keyword, ignoring comments, is exactly SELECT."""
    return first_keyword(sql) == "select"


def mask_literals(sql: str) -> str:
    """Blank out comments and the inside of quoted literals, keeping offsets.

    Quote delimiters stay in place so the masked text still shows where a
    literal ends. Newlines are preserved.
    """
    chars = list(sql)
    length = len(sql)
    pos = 0
    while pos < length:
        char = sql[pos]
        if sql.startswith("--", pos):
            start = pos
            end = sql.find("\n", pos)
            end = length if end == -1 else end
            resume = end
        elif sql.startswith("/*", pos):
            start = pos
            end = sql.find("*/", pos + 2)
            end = length if end == -1 else end + 2
            resume = end
        elif char in _QUOTE_CLOSERS:
            start = pos + 1
            end = _closing_quote(sql, start, _QUOTE_CLOSERS[char])
            resume = end + 1
        else:
            pos += 1
            continue
        for index in range(start, end):
            if chars[index] != "\n":
                chars[index] = " "
        pos = resume
    return "".join(chars)


def _closing_quote(sql: str, start: int, closer: str) -> int:
    """Index of the closing delimiter (doubled quotes are escapes), or ``len(sql)``."""
    pos = start
    while True:
        found = sql.find(closer, pos)
        if found == -1:
            return len(sql)
        if closer != "]" and sql.startswith(closer * 2, found):
            pos = found + 2
            continue
        return found


def _top_level(masked: str) -> str:
    out: list[str] = []
    depth = 0
    for char in masked:
        if char == "(":
            depth += 1
            out.append(" ")
        elif char == ")":
            depth = max(depth - 1, 0)
            out.append(" ")
        elif depth and char != "\n":
            out.append(" ")
        else:
            out.append(char)
    return "".join(out)


def has_limit(sql: str) -> bool:
    """True when the outer statement itself carries ``LIMIT n`` or ``FETCH FIRST``."""
    return bool(LIMIT_RE.search(_top_level(mask_literals(sql))))


def apply_row_limit(sql: str, limit: int) -> tuple[str, bool]:
    """Insert ``LIMIT <limit>`` into an unlimited SELECT.

    The limit goes after the last code token and before any terminating
    semicolon; trailing comments are kept after it. Returns the possibly
    rewritten SQL and whether a limit was injected. Non-SELECT statements and
    statements that already limit are untouched.
    """
    if not is_read_only(sql) or has_limit(sql):
        return sql, False
    masked = mask_literals(sql)
    cut = len(masked.rstrip())
    terminated = False
    while cut and masked[cut - 1] == ";":
        terminated = True
        cut = len(masked[: cut - 1].rstrip())

    head, tail = sql[:cut], sql[cut:]
    if terminated:
        semicolon = masked.index(";", cut) - cut
        lead, rest = tail[:semicolon], tail[semicolon:].rstrip()
        if not lead.strip():
            lead = ""
    else:
        lead, rest = tail.rstrip(), ""
    return f"{head} LIMIT {limit}{lead}{rest}", True


def touches_system_catalog(sql: str) -> bool:
    return bool(SYSTEM_CATALOG_RE.search(sql))


def indicates_failure(result: QueryResult) -> bool:
    """True when the explanation or warnings read like an error report."""
    text = " ".join((result.explanation, *result.warnings)).lower()
    return any(phrase in text for phrase in ERROR_PHRASES)


def normalize_visualization(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    lowered = value.strip().lower().replace("-", "_").replace(" ", "_")
    for suffix in ("_chart", "_graph", "_plot"):
        if lowered.endswith(suffix):
            lowered = lowered[: -len(suffix)]
            break
    return _VISUALIZATION_ALIASES.get(lowered, "")


def _normalize_warnings(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        items: list[Any] = [value]
    elif isinstance(value, (list, tuple)):
        items = list(value)
    else:
        items = [value]
    return tuple(str(item).strip() for item in items if item is not None and str(item).strip())


class ResponseParser:
    """Map raw model output onto a QueryResult, enforcing row-limit policy."""

    def __init__(self, query_settings: QuerySettings, logger: Logger | None = None) -> None:
        self._settings = query_settings
        self._logger = logger or get_logger()

    def parse(self, raw: str) -> QueryResult:
        """Return a QueryResult; malformed answers become structured failures."""
        try:
            data = decode_json_object(extract_json_payload(raw or ""))
            return self._map_result(data)
        except ResponseParseError as exc:
            preview = (raw or "")[:500].strip()
            self._logger.debug(f"Unparseable model answer (first 500 chars): {preview or '<empty response>'}")
            return QueryResult.failure(str(exc))

    def _map_result(self, data: Mapping[str, Any]) -> QueryResult:
        field_name = next((name for name in QUERY_FIELDS if name in data), None)
        if field_name is None:
            raise ResponseParseError(
                f"Invalid response format: missing query field (expected one of {', '.join(QUERY_FIELDS)})."
            )
        raw_sql = data.get(field_name)
        if raw_sql is not None and not isinstance(raw_sql, str):
            raise ResponseParseError(f"Invalid response format: '{field_name}' must be a string.")
        sql = (raw_sql or "").strip()

        explanation = data.get("explanation") or ""
        warnings = list(_normalize_warnings(data.get("warnings")))

        limit_applied = False
        if sql and self._settings.enforce_limit:
            sql, limit_applied = apply_row_limit(sql, self._settings.default_limit)
            if limit_applied:
                self._logger.debug(f"Injected LIMIT {self._settings.default_limit} into generated query.")
        if not limit_applied and bool(data.get("row_limit_applied")):
            limit_applied = is_read_only(sql) and has_limit(sql)

        if sql and touches_system_catalog(sql) and SYSTEM_CATALOG_WARNING not in warnings:
            warnings.append(SYSTEM_CATALOG_WARNING)

        return QueryResult(
            generated_query=sql,
            explanation=str(explanation).strip(),
            warnings=tuple(warnings),
            row_limit_applied=limit_applied,
            suggested_visualization=normalize_visualization(data.get("suggested_visualization")),
            success=True,
        )
