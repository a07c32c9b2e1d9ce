from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from mii.adapters import AnalysisError, AnalysisResult, Dialect
from mii.adapters.runtime import build_analyzer_registry
from mii.config import AnalysisConfig, IndexConfig, MiiConfig
from mii.index import ModuleIndex


@dataclass(slots=True)
class FakeAnalyzer:
    results: dict[str, AnalysisResult] = field(default_factory=dict)
    failures: set[str] = field(default_factory=set)
    calls: list[str] = field(default_factory=list)

    def analyze(self, path: str, dialect: Dialect) -> AnalysisResult:
        _ = dialect
        self.calls.append(path)
        if path in self.failures:
            raise AnalysisError(path, "cannot parse")
        return self.results.get(path, AnalysisResult(commands=(), discovered_paths=()))


def _module(directory: Path, name: str) -> str:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{name}.lua"
    path.write_text("-- module\n", encoding="utf-8")
    return str(path)


def test_discovered_directory_is_crawled_with_parent_link(tmp_path: Path) -> None:
    a = _module(tmp_path / "core", "a")
    b = _module(tmp_path / "hier", "b")
    analyzer = FakeAnalyzer(
        results={
            a: AnalysisResult(commands=("acmd",), discovered_paths=(str(tmp_path / "hier"),)),
            b: AnalysisResult(commands=("bcmd",), discovered_paths=()),
        }
    )
    index = ModuleIndex()
    index.build(str(tmp_path / "core"))
    assert len(index) == 1

    analyzed = index.analyze(analyzer)

    assert analyzed == 2
    assert len(index) == 2
    assert index.pending_count == 0
    record_b = index.get(b)
    assert record_b is not None
    assert record_b.parent == 0
    assert record_b.commands == ["bcmd"]
    assert [record.code for record in index.lineage(record_b)] == ["a", "b"]


def test_diamond_discovery_creates_one_record_for_first_discoverer(tmp_path: Path) -> None:
    a = _module(tmp_path / "core", "a")
    c = _module(tmp_path / "core", "c")
    b = _module(tmp_path / "shared", "b")
    shared = (str(tmp_path / "shared"),)
    analyzer = FakeAnalyzer(
        results={
            a: AnalysisResult(commands=(), discovered_paths=shared),
            c: AnalysisResult(commands=(), discovered_paths=shared),
        }
    )
    index = ModuleIndex()
    index.build(str(tmp_path / "core"))

    assert index.analyze(analyzer) == 3
    assert [record.path for record in index] == [a, c, b]
    record_b = index.get(b)
    assert record_b is not None
    assert record_b.parent == 0
    assert analyzer.calls.count(b) == 1


def test_rediscovering_a_root_terminates(tmp_path: Path) -> None:
    a = _module(tmp_path / "core", "a")
    b = _module(tmp_path / "hier", "b")
    analyzer = FakeAnalyzer(
        results={
            a: AnalysisResult(commands=(), discovered_paths=(str(tmp_path / "hier"),)),
            b: AnalysisResult(commands=(), discovered_paths=(str(tmp_path / "core"),)),
        }
    )
    index = ModuleIndex()
    index.build(str(tmp_path / "core"))

    assert index.analyze(analyzer) == 2
    assert index.pending_count == 0


def test_one_failing_module_does_not_block_the_rest(
    tmp_path: Path, caplog: logging.LogCaptureFixture
) -> None:
    paths = [_module(tmp_path, f"m{number}") for number in range(10)]
    broken = paths[4]
    analyzer = FakeAnalyzer(
        results={
            path: AnalysisResult(commands=(f"cmd{number}",), discovered_paths=())
            for number, path in enumerate(paths)
        },
        failures={broken},
    )
    index = ModuleIndex()
    index.build(str(tmp_path))

    with caplog.at_level(logging.WARNING, logger="mii"):
        assert index.analyze(analyzer) == 10

    assert index.pending_count == 0
    assert all(record.analyzed for record in index)
    with_commands = [record for record in index if record.commands]
    assert len(with_commands) == 9
    failed = index.get(broken)
    assert failed is not None
    assert failed.commands == []
    assert any(broken in message for message in caplog.messages)


def test_modulefile_removed_before_analysis_is_marked_analyzed(tmp_path: Path) -> None:
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    tool = bin_dir / "tool"
    tool.write_text("#!/bin/sh\n", encoding="utf-8")
    tool.chmod(0o755)
    modules = tmp_path / "modules"
    modules.mkdir()
    for number in range(10):
        (modules / f"m{number}.lua").write_text(
            f'prepend_path("PATH", "{bin_dir}")\n', encoding="utf-8"
        )
    index = ModuleIndex()
    index.build(str(modules))
    (modules / "m3.lua").unlink()
    config = MiiConfig(
        data_dir=tmp_path / "data",
        index=IndexConfig(modulepath=str(modules), exclude_globs=(), fuzzy_threshold=4),
        analysis=AnalysisConfig(expand_environment=False),
    )

    with build_analyzer_registry(config) as analyzer:
        assert index.analyze(analyzer) == 10

    assert sum(1 for record in index if record.commands == ["tool"]) == 9
    missing = index.get(str(modules / "m3.lua"))
    assert missing is not None
    assert missing.analyzed is True
    assert missing.commands == []


def test_pending_count_tracks_unanalyzed_records(tmp_path: Path) -> None:
    for name in ("a", "b", "c"):
        _module(tmp_path, name)
    index = ModuleIndex()
    index.build(str(tmp_path))

    assert index.pending_count == 3
    assert index.pending_count == sum(1 for record in index if not record.analyzed)
    index.analyze(FakeAnalyzer())
    assert index.pending_count == 0
    assert index.analyze(FakeAnalyzer()) == 0
