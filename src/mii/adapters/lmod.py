"""Static analysis of Lmod (Lua) modulefiles."""

from __future__ import annotations

import bisect
import logging
import os
import re
import sys
from pathlib import Path

from mii.adapters.base import AnalysisError, AnalysisResult, split_path_list, unique_in_order
from mii.adapters.pathscan import scan_path_list

logger = logging.getLogger(__name__)

STATEMENT_PATTERN = re.compile(
    r"\b(?:local\s+(?P<local>[A-Za-z_][A-Za-z0-9_]*)\s*="
    r"|(?P<call>prepend_path|append_path|setenv|pushenv)\s*\()"
)
TOKEN_PATTERN = re.compile(
    r"""\s*(?:
        (?P<string>"(?:[^"\\\n]|\\.)*"|'(?:[^'\\\n]|\\.)*')
       |(?P<long>\[\[.*?\]\])
       |(?P<concat>\.\.)
       |(?P<number>\d+(?:\.\d+)?)
       |(?P<name>[A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z_][A-Za-z0-9_]*)*)
       |(?P<punct>[(),])
    )""",
    re.VERBOSE | re.DOTALL,
)
INERT_PATTERN = re.compile(
    r"""(?P<string>"(?:[^"\\\n]|\\.)*"|'(?:[^'\\\n]|\\.)*')
       |(?P<long>\[(?P<level>=*)\[.*?\](?P=level)\])
       |(?P<comment>--(?:\[(?P<comment_level>=*)\[.*?\](?P=comment_level)\]|[^\n]*))""",
    re.VERBOSE | re.DOTALL,
)
_ESCAPES = {"n": "\n", "t": "\t", "\\": "\\", '"': '"', "'": "'"}


class _Unresolved(Exception):
    """Raised when an expression depends on something only a real Lua run knows."""


class LmodAnalyzer:
    """Evaluate the literal subset of Lmod used to extend PATH and MODULEPATH."""

    name = "lmod"

    def __init__(self, expand_environment: bool = True) -> None:
        self._expand_environment = expand_environment
        self._closed = False

    def close(self) -> None:
        """Mark the analyzer unusable."""
        self._closed = True

    def analyze(self, path: str) -> AnalysisResult:
        """Collect executables on PATH and directories added to MODULEPATH."""
        if self._closed:
            raise AnalysisError(path, "analyzer is closed")
        try:
            text = Path(path).read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            raise AnalysisError(path, f"couldn't open for reading : {exc.strerror or exc}") from exc
        return self.analyze_text(text, origin=path)

    def analyze_text(self, text: str, origin: str = "<string>") -> AnalysisResult:
        """Analyze modulefile source already held in memory."""
        state = _LmodState(expand_environment=self._expand_environment)
        inert = inert_spans(text)
        for match in STATEMENT_PATTERN.finditer(text):
            if _inside(inert, match.start()):
                continue
            reader = _ExpressionReader(text, match.end(), state)
            try:
                if match.group("local") is not None:
                    state.locals[match.group("local")] = reader.expression()
                    continue
                arguments = reader.arguments()
            except _Unresolved as exc:
                if match.group("local") is not None:
                    state.locals[match.group("local")] = None
                logger.debug(
                    "%s: skipping unresolved statement at %d (%s)", origin, match.start(), exc
                )
                continue
            state.apply(match.group("call"), arguments)

        commands: list[str] = []
        for value in state.path_values:
            commands.extend(scan_path_list(value))
        return AnalysisResult(
            commands=unique_in_order(commands),
            discovered_paths=unique_in_order(state.module_paths),
        )


class _LmodState:
    def __init__(self, expand_environment: bool) -> None:
        self.expand_environment = expand_environment
        self.locals: dict[str, str | None] = {}
        self.environment: dict[str, str] = {}
        self.path_values: list[str] = []
        self.module_paths: list[str] = []

    def getenv(self, name: str) -> str:
        if name in self.environment:
            return self.environment[name]
        if self.expand_environment and name in os.environ:
            return os.environ[name]
        raise _Unresolved(f"environment variable {name} is not set")

    def apply(self, call: str, arguments: list[str]) -> None:
        if len(arguments) < 2:
            return
        variable, value = arguments[0], arguments[1]
        if call in {"setenv", "pushenv"}:
            self.environment[variable] = value
            return
        delimiter = arguments[2] if len(arguments) > 2 and arguments[2] else ":"
        parts = [part for part in value.split(delimiter) if part]
        if variable == "PATH":
            self.path_values.extend(parts)
        elif variable == "MODULEPATH":
            for part in parts:
                self.module_paths.extend(split_path_list(part))


class _ExpressionReader:
    """Recursive-descent reader over the literal subset of Lua expressions."""

    def __init__(self, text: str, position: int, state: _LmodState) -> None:
        self._text = text
        self._position = position
        self._state = state

    def arguments(self) -> list[str]:
        output: list[str] = []
        if self._peek() == ("punct", ")"):
            self._next()
            return output
        while True:
            output.append(self.expression())
            kind, value = self._next()
            if (kind, value) == ("punct", ")"):
                return output
            if (kind, value) != ("punct", ","):
                raise _Unresolved(f"unexpected {value!r} in argument list")

    def expression(self) -> str:
        value = self._term()
        while self._peek()[0] == "concat":
            self._next()
            value += self._term()
        return value

    def _term(self) -> str:
        kind, value = self._next()
        if kind == "string":
            return _unquote(value)
        if kind == "long":
            return value[2:-2]
        if kind == "number":
            return value
        if kind != "name":
            raise _Unresolved(f"unexpected {value!r}")
        if self._peek() == ("punct", "("):
            self._next()
            return self._call(value, self.arguments())
        if value not in self._state.locals:
            raise _Unresolved(f"unknown name {value}")
        resolved = self._state.locals[value]
        if resolved is None:
            raise _Unresolved(f"local {value} is unresolved")
        return resolved

    def _call(self, function: str, arguments: list[str]) -> str:
        if function == "pathJoin":
            return _path_join(arguments)
        if function == "os.getenv" and len(arguments) == 1:
            return self._state.getenv(arguments[0])
        raise _Unresolved(f"unsupported call {function}()")

    def _peek(self) -> tuple[str, str]:
        saved = self._position
        try:
            return self._next()
        except _Unresolved:
            return ("end", "")
        finally:
            self._position = saved

    def _next(self) -> tuple[str, str]:
        match = TOKEN_PATTERN.match(self._text, self._position)
        if match is None or match.lastgroup is None:
            raise _Unresolved("unrecognised token")
        self._position = match.end()
        return match.lastgroup, match.group(match.lastgroup)


def _unquote(literal: str) -> str:
    body = literal[1:-1]
    output: list[str] = []
    index = 0
    while index < len(body):
        char = body[index]
        if char == "\\" and index + 1 < len(body):
            output.append(_ESCAPES.get(body[index + 1], body[index + 1]))
            index += 2
            continue
        output.append(char)
        index += 1
    return "".join(output)


def _path_join(parts: list[str]) -> str:
    joined = "/".join(part for part in parts if part)
    while "//" in joined:
        joined = joined.replace("//", "/")
    return joined


def inert_spans(text: str) -> list[tuple[int, int]]:
    """Return sorted ``(start, end)`` ranges of comments and string literals.

    Covers ``--`` line comments, ``--[[ ]]`` block comments of any level and
    quoted or long-bracket strings, so a ``--`` inside a string is not a
    comment and a statement inside a comment or string is never analyzed.
    """
    return [match.span() for match in INERT_PATTERN.finditer(text)]


def _inside(spans: list[tuple[int, int]], position: int) -> bool:
    index = bisect.bisect_right(spans, (position, sys.maxsize)) - 1
    return index >= 0 and spans[index][0] <= position < spans[index][1]
