from __future__ import annotations

from mii.adapters import Dialect
from mii.index import ModuleIndex, ModuleRecord, SearchHit


def _index() -> ModuleIndex:
    index = ModuleIndex()
    index.replace_contents(
        [
            ModuleRecord(
                path="/m/gcc/9.lua",
                code="gcc/9",
                dialect=Dialect.LMOD,
                mtime_ns=1,
                commands=["gcc9", "gcc", "completely-unrelated-name"],
                analyzed=True,
            ),
            ModuleRecord(
                path="/m/upper/1.0",
                code="upper/1.0",
                dialect=Dialect.TCL,
                mtime_ns=1,
                commands=["GCC"],
                analyzed=True,
            ),
            ModuleRecord(
                path="/m/gcc/10.lua",
                code="gcc/10",
                dialect=Dialect.LMOD,
                mtime_ns=1,
                commands=["gcc", "python3"],
                analyzed=True,
            ),
            ModuleRecord(
                path="/m/pending.lua",
                code="pending",
                dialect=Dialect.LMOD,
                mtime_ns=1,
            ),
        ],
        ("/m",),
    )
    return index


def test_exact_search_is_case_sensitive_in_discovery_order() -> None:
    hits = _index().search_exact("gcc")

    assert hits == [
        SearchHit(command="gcc", module_code="gcc/9", module_path="/m/gcc/9.lua"),
        SearchHit(command="gcc", module_code="gcc/10", module_path="/m/gcc/10.lua"),
    ]


def test_fuzzy_search_orders_by_distance_then_discovery() -> None:
    hits = _index().search_fuzzy("gcc", threshold=4)

    assert [(hit.command, hit.module_code, hit.distance) for hit in hits] == [
        ("gcc", "gcc/9", 0),
        ("GCC", "upper/1.0", 0),
        ("gcc", "gcc/10", 0),
        ("gcc9", "gcc/9", 1),
    ]


def test_fuzzy_search_respects_threshold() -> None:
    index = _index()

    assert [hit.command for hit in index.search_fuzzy("pyhton3", threshold=1)] == ["python3"]
    assert index.search_fuzzy("pyhton3", threshold=0) == []
    assert index.search_fuzzy("zzzzzzzzzzzz") == []


def test_info_returns_commands_and_path_for_exact_code() -> None:
    index = _index()

    [info] = index.search_info("gcc/10")
    assert info.path == "/m/gcc/10.lua"
    assert info.commands == ("gcc", "python3")
    assert info.analyzed is True
    assert index.search_info("gcc") == []
    assert index.search_info("GCC/10") == []
