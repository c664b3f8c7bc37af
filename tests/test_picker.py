import io
import os
import subprocess
import sys

import pytest

from pix.config import Config, InteractiveConfig, LoadPromptConfig, PromptPickerConfig
from pix.picker import (
    LoadPromptResult,
    PickerError,
    invoke_picker,
    is_stdin_tty,
    list_prompt_files,
    picker_first_token,
    run_load_prompt_flow,
    shell_quote,
)


def _cfg(path="", picker="head -n 1", prompt_filter=""):
    return Config(
        model="fal-ai/flux/dev",
        interactive=InteractiveConfig(
            picker=picker,
            load_prompt=LoadPromptConfig(path=path),
            prompt_picker=PromptPickerConfig(filter=prompt_filter),
        ),
    )


@pytest.fixture
def prompt_dir(tmp_path):
    directory = tmp_path / "prompts"
    directory.mkdir()
    (directory / "a.md").write_text("alpha  \n\n")
    (directory / "b.md").write_text("beta\n")
    return directory


def test_shell_quote_escapes_single_quote():
    assert shell_quote("it's") == "'it'\\''s'"


@pytest.mark.parametrize("text", ["plain", "it's", "a b $HOME `x` \"q\"", "'"])
def test_shell_quote_round_trips_through_sh(text):
    out = subprocess.run(
        ["sh", "-c", "printf %s " + shell_quote(text)],
        stdout=subprocess.PIPE,
        check=True,
    ).stdout.decode()
    assert out == text


def test_picker_first_token():
    assert picker_first_token("fzf --ansi") == "fzf"
    assert picker_first_token("   ") == ""


def test_invoke_picker_returns_selection():
    assert invoke_picker("head -n 1", ["alpha", "beta"]) == "alpha"


def test_invoke_picker_nonzero_exit_is_cancel():
    assert invoke_picker("false", ["alpha"]) is None


def test_invoke_picker_empty_output_is_cancel():
    assert invoke_picker("cat > /dev/null", ["alpha"]) is None


def test_invoke_picker_skips_fzf_options_for_other_pickers():
    assert invoke_picker("cat", ["a", "b"], "--header=x") == "a\nb"


def test_invoke_picker_appends_options_for_fzf(tmp_path, monkeypatch):
    script = tmp_path / "fzf"
    script.write_text('#!/bin/sh\necho "$@"\n')
    script.chmod(0o755)
    monkeypatch.setenv("PATH", f"{tmp_path}{os.pathsep}{os.environ['PATH']}")
    assert invoke_picker("fzf", ["a"], "--header=x", "--ansi") == "--header=x --ansi"


def test_list_prompt_files_filters_and_sorts(tmp_path):
    (tmp_path / "a.md").write_text("a")
    (tmp_path / "B.MD").write_text("b")
    (tmp_path / "notes.txt").write_text("n")
    (tmp_path / ".git").mkdir()
    (tmp_path / ".git" / "x.md").write_text("x")
    (tmp_path / "sub").mkdir()
    (tmp_path / "sub" / "c.md").write_text("c")
    (tmp_path / "sub" / ".hidden").mkdir()
    (tmp_path / "sub" / ".hidden" / "d.md").write_text("d")

    files = list_prompt_files(tmp_path)
    expected = sorted(
        str(tmp_path / name) for name in ("a.md", "B.MD", os.path.join("sub", "c.md"))
    )
    assert files == expected


def test_list_prompt_files_missing_directory(tmp_path):
    with pytest.raises(PickerError, match="load-prompt.path"):
        list_prompt_files(tmp_path / "absent")


def test_list_prompt_files_rejects_file(tmp_path):
    target = tmp_path / "file.md"
    target.write_text("x")
    with pytest.raises(PickerError, match="is not a directory"):
        list_prompt_files(target)


def test_is_stdin_tty_forced_by_env(monkeypatch):
    monkeypatch.setenv("PIX_TEST_TTY", "1")
    assert is_stdin_tty() is True


def test_is_stdin_tty_false_for_pipe(monkeypatch):
    monkeypatch.delenv("PIX_TEST_TTY", raising=False)
    monkeypatch.setattr(sys, "stdin", io.StringIO("x"))
    assert is_stdin_tty() is False


def test_load_prompt_appends_addition(prompt_dir, monkeypatch):
    monkeypatch.setattr(sys, "stdin", io.StringIO("more detail\n"))
    result = run_load_prompt_flow(_cfg(str(prompt_dir)), True)
    assert result == LoadPromptResult(prompt="alpha\n\nmore detail", cancelled=False)


def test_load_prompt_without_addition(prompt_dir, monkeypatch, capsys):
    monkeypatch.setattr(sys, "stdin", io.StringIO("\n"))
    result = run_load_prompt_flow(_cfg(str(prompt_dir)), False)
    assert result.prompt == "alpha"
    assert "PROMPT:" in capsys.readouterr().err


def test_load_prompt_filter_selects_matching(prompt_dir, monkeypatch):
    monkeypatch.setattr(sys, "stdin", io.StringIO(""))
    result = run_load_prompt_flow(_cfg(str(prompt_dir), prompt_filter=r"b\.md$"), True)
    assert result.prompt == "beta"


def test_load_prompt_invalid_filter_warns(prompt_dir, monkeypatch, capsys):
    monkeypatch.setattr(sys, "stdin", io.StringIO(""))
    result = run_load_prompt_flow(_cfg(str(prompt_dir), prompt_filter="("), True)
    assert result.prompt == "alpha"
    assert "not a valid regex" in capsys.readouterr().err


def test_load_prompt_filter_without_match(prompt_dir):
    with pytest.raises(PickerError, match="no prompts match filter"):
        run_load_prompt_flow(_cfg(str(prompt_dir), prompt_filter="zzz"), True)


def test_load_prompt_cancelled(prompt_dir):
    result = run_load_prompt_flow(_cfg(str(prompt_dir), picker="false"), True)
    assert result.cancelled is True
    assert result.prompt == ""


def test_load_prompt_requires_path():
    with pytest.raises(PickerError, match="load-prompt.path is not configured"):
        run_load_prompt_flow(_cfg(""), True)


def test_load_prompt_missing_picker(prompt_dir):
    with pytest.raises(PickerError, match="not found on PATH"):
        run_load_prompt_flow(_cfg(str(prompt_dir), picker="no-such-picker-bin"), True)


def test_load_prompt_empty_directory(tmp_path):
    with pytest.raises(PickerError, match="contains no prompt files"):
        run_load_prompt_flow(_cfg(str(tmp_path)), True)