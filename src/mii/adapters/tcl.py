"""Line-oriented analysis of Tcl modulefiles."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path

from mii.adapters.base import AnalysisError, AnalysisResult, split_path_list, unique_in_order
from mii.adapters.pathscan import scan_path_list

logger = logging.getLogger(__name__)

VARIABLE_PATTERN = re.compile(
    r"\$(?:\{(?P<braced>[^}]+)\}"
    r"|(?:::)?env\((?P<env>[^)]+)\)"
    r"|(?P<name>(?:::)?[A-Za-z0-9_]+))"
)
PATH_COMMANDS = {"prepend-path", "append-path"}
_DELIMITER_OPTIONS = {"-d", "--delim"}


class _Unresolved(Exception):
    """Raised when a word needs Tcl command substitution or an unknown variable."""


@dataclass(slots=True, frozen=True)
class TclWord:
    """One word of a Tcl command line."""

    text: str
    braced: bool = False


@dataclass(slots=True)
class _TclState:
    expand_environment: bool
    variables: dict[str, str] = field(default_factory=dict)
    environment: dict[str, str] = field(default_factory=dict)
    path_values: list[str] = field(default_factory=list)
    module_paths: list[str] = field(default_factory=list)


class TclAnalyzer:
    """Interpret the declarative subset of Tcl modulefiles."""

    name = "tcl"

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
        state = _TclState(expand_environment=self._expand_environment)
        for line_number, line in logical_lines(text):
            for words in split_commands(line):
                try:
                    _apply(state, words)
                except _Unresolved as exc:
                    logger.debug("%s:%d: skipping command (%s)", origin, line_number, exc)

        commands: list[str] = []
        for value in state.path_values:
            commands.extend(scan_path_list(value))
        return AnalysisResult(
            commands=unique_in_order(commands),
            discovered_paths=unique_in_order(state.module_paths),
        )


def logical_lines(text: str) -> list[tuple[int, str]]:
    """Join backslash continued lines, keeping the first line number."""
    output: list[tuple[int, str]] = []
    pending: list[str] = []
    start = 0
    for number, raw_line in enumerate(text.splitlines(), start=1):
        if not pending:
            start = number
        if raw_line.endswith("\\"):
            pending.append(raw_line[:-1])
            continue
        pending.append(raw_line)
        output.append((start, " ".join(pending).strip()))
        pending = []
    if pending:
        output.append((start, " ".join(pending).strip()))
    return output


def split_commands(line: str) -> list[list[TclWord]]:
    """Split a logical line into commands, each a list of words.

    Commands end at an unquoted, unbraced ``;``. A ``#`` where a command
    would start comments out the rest of the line. Quotes and nested braces
    group words.
    """
    commands: list[list[TclWord]] = []
    words: list[TclWord] = []
    index = 0
    length = len(line)
    while index < length:
        char = line[index]
        if char == ";":
            if words:
                commands.append(words)
                words = []
            index += 1
            continue
        if char in " \t":
            index += 1
            continue
        if char == "#" and not words:
            break
        if char == "{":
            depth = 1
            end = index + 1
            while end < length and depth:
                if line[end] == "{":
                    depth += 1
                elif line[end] == "}":
                    depth -= 1
                end += 1
            words.append(TclWord(text=line[index + 1 : end - 1], braced=True))
            index = end
            continue
        if char == '"':
            end = index + 1
            while end < length and line[end] != '"':
                end += 2 if line[end] == "\\" else 1
            words.append(TclWord(text=line[index + 1 : end]))
            index = end + 1
            continue
        end = index
        while end < length and line[end] not in " \t;":
            end += 1
        words.append(TclWord(text=line[index:end]))
        index = end
    if words:
        commands.append(words)
    return commands


def _apply(state: _TclState, words: list[TclWord]) -> None:
    command = words[0].text
    if command == "set" and len(words) >= 3:
        state.variables[words[1].text.lstrip(":")] = _substitute(state, words[2])
    elif command == "setenv" and len(words) >= 3:
        state.environment[words[1].text] = _substitute(state, words[2])
    elif command in PATH_COMMANDS:
        variable, values, delimiter = _path_arguments(words[1:])
        if variable not in {"PATH", "MODULEPATH"}:
            return
        parts: list[str] = []
        for value in values:
            parts.extend(part for part in _substitute(state, value).split(delimiter) if part)
        if variable == "PATH":
            state.path_values.extend(parts)
        else:
            state.module_paths.extend(parts)
    elif command == "module" and len(words) >= 2 and words[1].text == "use":
        for word in words[2:]:
            if word.text.startswith("-"):
                continue
            state.module_paths.extend(split_path_list(_substitute(state, word)))


def _path_arguments(words: list[TclWord]) -> tuple[str, list[TclWord], str]:
    delimiter = ":"
    index = 0
    while index < len(words) and words[index].text.startswith("-"):
        option = words[index].text
        if option in _DELIMITER_OPTIONS and index + 1 < len(words):
            delimiter = words[index + 1].text or ":"
            index += 2
            continue
        if option.startswith("--delim="):
            delimiter = option.split("=", 1)[1] or ":"
        index += 1
    if index >= len(words):
        return "", [], delimiter
    return words[index].text, words[index + 1 :], delimiter


def _substitute(state: _TclState, word: TclWord) -> str:
    if word.braced:
        return word.text
    if "[" in word.text:
        raise _Unresolved(f"command substitution in {word.text!r}")

    def replace(match: re.Match[str]) -> str:
        env_name = match.group("env")
        if env_name is not None:
            return _lookup_environment(state, env_name)
        name = (match.group("braced") or match.group("name") or "").lstrip(":")
        if name in state.variables:
            return state.variables[name]
        return _lookup_environment(state, name)

    return VARIABLE_PATTERN.sub(replace, word.text)


def _lookup_environment(state: _TclState, name: str) -> str:
    if name in state.environment:
        return state.environment[name]
    if state.expand_environment and name in os.environ:
        return os.environ[name]
    raise _Unresolved(f"variable {name} is not set")
