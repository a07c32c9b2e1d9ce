from __future__ import annotations

from pathlib import Path

import pytest

from mii.adapters import AnalysisError, LmodAnalyzer


def _bin_dir(root: Path, *names: str) -> Path:
    root.mkdir(parents=True, exist_ok=True)
    for name in names:
        path = root / name
        path.write_text("#!/bin/sh\n", encoding="utf-8")
        path.chmod(0o755)
    return root


def test_literal_path_and_modulepath_are_collected(tmp_path: Path) -> None:
    bin_dir = _bin_dir(tmp_path / "gcc" / "bin", "gcc", "g++")
    modulefile = tmp_path / "9.2.0.lua"
    modulefile.write_text(
        "\n".join(
            [
                'help([[GNU compilers]])',
                f'prepend_path("PATH", "{bin_dir}")',
                f'prepend_path("MODULEPATH", "{tmp_path}/hier/gcc9")',
                'setenv("CC", "gcc")',
            ]
        ),
        encoding="utf-8",
    )

    result = LmodAnalyzer().analyze(str(modulefile))

    assert result.commands == ("g++", "gcc")
    assert result.discovered_paths == (f"{tmp_path}/hier/gcc9",)


def test_locals_path_join_and_concatenation_are_resolved(tmp_path: Path) -> None:
    _bin_dir(tmp_path / "pkg" / "bin", "tool")
    _bin_dir(tmp_path / "pkg" / "sbin", "daemon")
    text = "\n".join(
        [
            f'local base = "{tmp_path}"',
            'local root = pathJoin(base, "pkg")',
            'prepend_path("PATH", pathJoin(root, "bin"))',
            "append_path('PATH', root .. '/sbin')",
        ]
    )

    result = LmodAnalyzer().analyze_text(text)

    assert result.commands == ("tool", "daemon")
    assert result.discovered_paths == ()


def test_getenv_uses_module_setenv_then_process_environment(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    _bin_dir(tmp_path / "from-env" / "bin", "envtool")
    _bin_dir(tmp_path / "from-setenv" / "bin", "settool")
    monkeypatch.setenv("MII_TEST_ROOT", str(tmp_path / "from-env"))
    text = "\n".join(
        [
            'prepend_path("PATH", pathJoin(os.getenv("MII_TEST_ROOT"), "bin"))',
            f'setenv("PKG_ROOT", "{tmp_path}/from-setenv")',
            'prepend_path("PATH", os.getenv("PKG_ROOT") .. "/bin")',
        ]
    )

    result = LmodAnalyzer().analyze_text(text)
    isolated = LmodAnalyzer(expand_environment=False).analyze_text(text)

    assert result.commands == ("envtool", "settool")
    assert isolated.commands == ("settool",)


def test_unresolvable_and_commented_statements_are_skipped(tmp_path: Path) -> None:
    bin_dir = _bin_dir(tmp_path / "bin", "real")
    _bin_dir(tmp_path / "commented", "ghost")
    text = "\n".join(
        [
            'prepend_path("PATH", pathJoin(myModuleVersion(), "bin"))',
            'prepend_path("PATH", unknown_local)',
            f'-- prepend_path("PATH", "{tmp_path}/commented")',
            f'prepend_path("PATH", "{bin_dir}")',
        ]
    )

    result = LmodAnalyzer().analyze_text(text)

    assert result.commands == ("real",)


def test_custom_delimiter_splits_values(tmp_path: Path) -> None:
    first = _bin_dir(tmp_path / "one", "a")
    second = _bin_dir(tmp_path / "two", "b")
    text = f'prepend_path("PATH", "{first};{second}", ";")'

    assert LmodAnalyzer().analyze_text(text).commands == ("a", "b")


def test_missing_modulefile_raises_analysis_error(tmp_path: Path) -> None:
    with pytest.raises(AnalysisError):
        LmodAnalyzer().analyze(str(tmp_path / "absent.lua"))


def test_closed_analyzer_rejects_work(tmp_path: Path) -> None:
    modulefile = tmp_path / "m.lua"
    modulefile.write_text("\n", encoding="utf-8")
    analyzer = LmodAnalyzer()
    analyzer.close()

    with pytest.raises(AnalysisError, match="closed"):
        analyzer.analyze(str(modulefile))


def test_block_and_line_comments_hide_statements(tmp_path: Path) -> None:
    bin_dir = _bin_dir(tmp_path / "bin", "tool")
    hidden = _bin_dir(tmp_path / "hidden", "stray")
    text = "\n".join(
        [
            "--[[",
            f'prepend_path("PATH", "{hidden}")',
            f'prepend_path("MODULEPATH", "{tmp_path}/old")',
            "]]",
            "--[==[",
            f'append_path("PATH", "{hidden}")',
            "]==]",
            f'-- prepend_path("PATH", "{hidden}")',
            f'help([[prepend_path("PATH", "{hidden}")]])',
            f'prepend_path("PATH", "{bin_dir}")',
        ]
    )

    result = LmodAnalyzer().analyze_text(text)

    assert result.commands == ("tool",)
    assert result.discovered_paths == ()


def test_double_dash_inside_string_is_not_a_comment(tmp_path: Path) -> None:
    bin_dir = _bin_dir(tmp_path / "bin", "tool")
    text = f'setenv("FLAGS", "--fast"); prepend_path("PATH", "{bin_dir}")\n'

    assert LmodAnalyzer().analyze_text(text).commands == ("tool",)
