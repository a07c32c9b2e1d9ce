"""Exact, fuzzy and info queries over module records."""

from __future__ import annotations

import string
from collections.abc import Iterable

from mii.index.models import ModuleInfo, ModuleRecord, SearchHit

DEFAULT_DISTANCE_THRESHOLD = 4

_ASCII_FOLD = str.maketrans(string.ascii_uppercase, string.ascii_lowercase)


def edit_distance(a: str, b: str) -> int:
    """Return the case-insensitive Damerau-Levenshtein distance of two strings.

    Uses the optimal string alignment table: insertion, deletion, substitution
    and transposition of adjacent characters each cost 1. Only ASCII letters
    are case folded.
    """
    a = a.translate(_ASCII_FOLD)
    b = b.translate(_ASCII_FOLD)
    a_len = len(a)
    b_len = len(b)
    table = [[0] * (b_len + 1) for _ in range(a_len + 1)]
    for i in range(1, a_len + 1):
        table[i][0] = i
    for j in range(1, b_len + 1):
        table[0][j] = j

    for i in range(1, a_len + 1):
        for j in range(1, b_len + 1):
            cost = 0 if a[i - 1] == b[j - 1] else 1
            best = min(
                table[i - 1][j] + 1,
                table[i][j - 1] + 1,
                table[i - 1][j - 1] + cost,
            )
            if i > 1 and j > 1 and a[i - 1] == b[j - 2] and a[i - 2] == b[j - 1]:
                best = min(best, table[i - 2][j - 2] + 1)
            table[i][j] = best
    return table[a_len][b_len]


def search_exact(records: Iterable[ModuleRecord], query: str) -> list[SearchHit]:
    """Return every command equal to ``query``, case-sensitively, in discovery order."""
    hits: list[SearchHit] = []
    for record in records:
        for command in record.commands:
            if command == query:
                hits.append(
                    SearchHit(command=command, module_code=record.code, module_path=record.path)
                )
    return hits


def search_fuzzy(
    records: Iterable[ModuleRecord],
    query: str,
    threshold: int = DEFAULT_DISTANCE_THRESHOLD,
) -> list[SearchHit]:
    """Return commands within ``threshold`` edits of ``query``, closest first."""
    hits: list[SearchHit] = []
    query_len = len(query)
    for record in records:
        for command in record.commands:
            # distance is at least the length difference
            if abs(len(command) - query_len) > threshold:
                continue
            distance = edit_distance(query, command)
            if distance > threshold:
                continue
            hits.append(
                SearchHit(
                    command=command,
                    module_code=record.code,
                    module_path=record.path,
                    distance=distance,
                )
            )
    hits.sort(key=lambda hit: hit.distance)
    return hits


def search_info(records: Iterable[ModuleRecord], code: str) -> list[ModuleInfo]:
    """Return the command listing of every module whose code equals ``code``."""
    return [
        ModuleInfo(
            code=record.code,
            path=record.path,
            commands=tuple(record.commands),
            analyzed=record.analyzed,
        )
        for record in records
        if record.code == code
    ]
