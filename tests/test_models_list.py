import sys

import pytest
import responses
from responses import matchers

from pix.models_list import run_models_list

BASE = "http://fal.test"


@pytest.fixture
def env(tmp_path, monkeypatch):
    launcher = tmp_path / "pix"
    launcher.write_text("")
    (tmp_path / "config.yaml").write_text("model: fal-ai/flux/dev\n")
    monkeypatch.setattr(sys, "argv", [str(launcher)])
    monkeypatch.setenv("FAL_KEY", "placeholder")
    monkeypatch.setenv("FAL_BASE_URL", BASE)
    return tmp_path


@pytest.fixture
def http():
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        yield rsps


def _catalogue(http, category, ids, status=200):
    http.add(
        responses.GET,
        f"{BASE}/v1/models",
        json={"models": [{"endpoint_id": i} for i in ids]},
        status=status,
        match=[
            matchers.query_param_matcher(
                {"category": category, "status": "active", "limit": "100"}
            )
        ],
    )


def test_help_returns_zero(capsys):
    assert run_models_list(["--help"], False) == 0
    assert "Usage: pix models" in capsys.readouterr().err


def test_unknown_flag(capsys):
    assert run_models_list(["--nope"], False) == 2
    assert "Unknown flag: --nope" in capsys.readouterr().err


def test_two_filters_rejected(capsys):
    assert run_models_list(["a", "b"], False) == 2
    assert "only one filter argument" in capsys.readouterr().err


def test_lists_merged_sorted_unique(env, http, capsys):
    _catalogue(http, "text-to-image", ["fal-ai/zeta", "fal-ai/alpha", "fal-ai/shared"])
    _catalogue(http, "image-to-image", ["fal-ai/shared", "fal-ai/beta/edit"])
    assert run_models_list([], False) == 0
    lines = capsys.readouterr().out.splitlines()
    assert lines == sorted(lines)
    assert len(lines) == len(set(lines))
    assert set(lines) == {"fal-ai/zeta", "fal-ai/alpha", "fal-ai/shared", "fal-ai/beta/edit"}


def test_filter_keeps_matches(env, http, capsys):
    _catalogue(http, "text-to-image", ["fal-ai/flux/dev", "fal-ai/recraft/v3"])
    _catalogue(http, "image-to-image", ["fal-ai/flux/dev/edit"])
    assert run_models_list(["flux"], False) == 0
    assert capsys.readouterr().out.splitlines() == ["fal-ai/flux/dev", "fal-ai/flux/dev/edit"]


def test_filter_without_matches(env, http, capsys):
    _catalogue(http, "text-to-image", ["fal-ai/flux/dev"])
    _catalogue(http, "image-to-image", [])
    assert run_models_list(["nothing-here"], False) == 1
    captured = capsys.readouterr()
    assert captured.out == ""
    assert '(no image models match "nothing-here")' in captured.err


def test_invalid_regex(env, http, capsys):
    _catalogue(http, "text-to-image", ["fal-ai/flux/dev"])
    _catalogue(http, "image-to-image", [])
    assert run_models_list(["("], False) == 2
    assert "is not a valid regex" in capsys.readouterr().err


def test_both_fetches_failing(env, http, capsys):
    _catalogue(http, "text-to-image", [], status=500)
    _catalogue(http, "image-to-image", [], status=500)
    assert run_models_list([], False) == 1
    assert "Error: fetching /v1/models: text-to-image:" in capsys.readouterr().err


def test_one_fetch_failing_still_lists(env, http, capsys):
    _catalogue(http, "text-to-image", [], status=500)
    _catalogue(http, "image-to-image", ["fal-ai/only/edit"])
    assert run_models_list([], False) == 0
    assert capsys.readouterr().out.splitlines() == ["fal-ai/only/edit"]