from __future__ import annotations

from pathlib import Path

import pytest

from mii.adapters import AnalysisError, TclAnalyzer
from mii.adapters.tcl import logical_lines, split_commands


def _bin_dir(root: Path, *names: str) -> Path:
    root.mkdir(parents=True, exist_ok=True)
    for name in names:
        path = root / name
        path.write_text("#!/bin/sh\n", encoding="utf-8")
        path.chmod(0o755)
    return root


def test_set_variables_feed_path_and_module_use(tmp_path: Path) -> None:
    _bin_dir(tmp_path / "openmpi" / "bin", "mpicc", "mpirun")
    modulefile = tmp_path / "4.0"
    modulefile.write_text(
        "\n".join(
            [
                "#%Module1.0",
                "## comment",
                "proc ModulesHelp { } {",
                '    puts stderr "Open MPI"',
                "}",
                f"set root {tmp_path}/openmpi",
                "prepend-path PATH $root/bin",
                "prepend-path MANPATH $root/share/man",
                "module use --append ${root}/modules",
                f"prepend-path MODULEPATH {tmp_path}/extra",
            ]
        ),
        encoding="utf-8",
    )

    result = TclAnalyzer().analyze(str(modulefile))

    assert result.commands == ("mpicc", "mpirun")
    assert result.discovered_paths == (f"{tmp_path}/openmpi/modules", f"{tmp_path}/extra")


def test_env_array_and_process_environment(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    _bin_dir(tmp_path / "apps" / "bin", "app")
    monkeypatch.setenv("MII_APPS", str(tmp_path / "apps"))
    text = "\n".join(
        [
            "#%Module",
            "append-path PATH $env(MII_APPS)/bin",
        ]
    )

    assert TclAnalyzer().analyze_text(text).commands == ("app",)
    assert TclAnalyzer(expand_environment=False).analyze_text(text).commands == ()


def test_command_substitution_is_skipped(tmp_path: Path) -> None:
    bin_dir = _bin_dir(tmp_path / "bin", "kept")
    text = "\n".join(
        [
            "#%Module",
            "set root [file dirname [info script]]",
            "prepend-path PATH $root/bin",
            f"prepend-path PATH {bin_dir}",
        ]
    )

    assert TclAnalyzer().analyze_text(text).commands == ("kept",)


def test_delimiter_option_and_multiple_values(tmp_path: Path) -> None:
    one = _bin_dir(tmp_path / "one", "a")
    two = _bin_dir(tmp_path / "two", "b")
    three = _bin_dir(tmp_path / "three", "c")
    text = "\n".join(
        [
            "#%Module",
            f"append-path --delim=, PATH {one},{two}",
            f"prepend-path -d : PATH {three}",
        ]
    )

    assert TclAnalyzer().analyze_text(text).commands == ("a", "b", "c")


def test_setenv_values_are_visible_to_env_lookups(tmp_path: Path) -> None:
    _bin_dir(tmp_path / "tool" / "bin", "tool")
    text = "\n".join(
        [
            "#%Module",
            f"setenv TOOL_HOME {tmp_path}/tool",
            'prepend-path PATH "$env(TOOL_HOME)/bin"',
        ]
    )

    assert TclAnalyzer(expand_environment=False).analyze_text(text).commands == ("tool",)


def test_word_splitting_handles_braces_quotes_and_continuations() -> None:
    commands = split_commands('set x {a {b c}} "d; e"; puts $x ;# trailing; note')

    assert [[word.text for word in words] for words in commands] == [
        ["set", "x", "a {b c}", "d; e"],
        ["puts", "$x"],
    ]
    assert split_commands("  # whole line") == []
    assert logical_lines("one \\\n  two\nthree") == [(1, "one    two"), (3, "three")]


def test_unreadable_modulefile_raises_analysis_error(tmp_path: Path) -> None:
    with pytest.raises(AnalysisError):
        TclAnalyzer().analyze(str(tmp_path))


def test_semicolon_separates_commands_on_one_line(tmp_path: Path) -> None:
    _bin_dir(tmp_path / "app" / "bin", "tool")
    text = f"#%Module\nset root {tmp_path}/app; prepend-path PATH $root/bin\n"

    assert TclAnalyzer().analyze_text(text).commands == ("tool",)


def test_inline_comment_after_semicolon_is_ignored(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    bin_dir = _bin_dir(tmp_path / "app" / "bin", "tool")
    _bin_dir(tmp_path / "note", "stray")
    monkeypatch.chdir(tmp_path)
    text = f"#%Module\nprepend-path PATH {bin_dir} ;# note\n"

    result = TclAnalyzer().analyze_text(text)

    assert result.commands == ("tool",)
