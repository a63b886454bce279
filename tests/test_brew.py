import json
from pathlib import Path

import pytest

from hushbrew import brew as brew_module
from hushbrew.brew import (
    BrewNotFoundError,
    Homebrew,
    detect_brew_prefix,
    parse_cask_app_name,
    parse_package_list,
)


def _fake_prefix(root: Path) -> Path:
    (root / "bin").mkdir(parents=True)
    (root / "bin" / "brew").write_text("#!/bin/sh\n", encoding="utf-8")
    return root


def test_explicit_prefix_is_used(tmp_path):
    prefix = _fake_prefix(tmp_path / "homebrew")
    assert detect_brew_prefix(prefix) == prefix


def test_missing_explicit_prefix_is_fatal(tmp_path):
    with pytest.raises(BrewNotFoundError):
        detect_brew_prefix(tmp_path / "nowhere")


def test_known_prefixes_are_tried_in_order(tmp_path, monkeypatch):
    intel = _fake_prefix(tmp_path / "usr-local")
    monkeypatch.setattr(brew_module, "KNOWN_PREFIXES", (tmp_path / "opt-homebrew", intel))

    assert detect_brew_prefix() == intel


def test_no_brew_anywhere_is_fatal(tmp_path, monkeypatch):
    monkeypatch.setattr(brew_module, "KNOWN_PREFIXES", (tmp_path / "a", tmp_path / "b"))
    monkeypatch.setattr(brew_module.shutil, "which", lambda name: None)

    with pytest.raises(BrewNotFoundError):
        detect_brew_prefix()


def test_package_list_parsing_ignores_blank_lines():
    assert parse_package_list("curl\n\nwget\n  git \n") == {"curl", "wget", "git"}


def test_cask_app_name_from_json_metadata():
    payload = {"casks": [{"token": "firefox", "artifacts": [{"uninstall": []}, {"app": ["Firefox.app"]}]}]}
    assert parse_cask_app_name(json.dumps(payload)) == "Firefox"


def test_cask_app_name_with_target_entry():
    payload = {"casks": [{"artifacts": [{"app": [{"target": "Visual Studio Code.app"}]}]}]}
    assert parse_cask_app_name(json.dumps(payload)) == "Visual Studio Code"


@pytest.mark.parametrize("text", ["", "not json", json.dumps({"casks": []}), json.dumps({"casks": [{"artifacts": [{"binary": ["x"]}]}]})])
def test_cask_app_name_is_unknown_on_ambiguity(text):
    assert parse_cask_app_name(text) is None


def test_command_builders():
    brew = Homebrew(prefix=Path("/opt/homebrew"))

    assert brew.update_command() == ["/opt/homebrew/bin/brew", "update"]
    assert brew.upgrade_command("cask", frozenset({"zoom", "firefox"})) == [
        "/opt/homebrew/bin/brew",
        "upgrade",
        "--cask",
        "firefox",
        "zoom",
    ]
    assert brew.cleanup_command(7) == ["/opt/homebrew/bin/brew", "cleanup", "--prune=7"]


def test_environment_anchors_path_and_disables_hints():
    env = Homebrew(prefix=Path("/opt/homebrew")).environment(base={"HOME": "/Users/me"}, extra={"BREW_RATE_LIMIT": "5"})

    assert env["HOME"] == "/Users/me"
    assert env["PATH"].startswith("/opt/homebrew/bin:/opt/homebrew/sbin:")
    assert env["HOMEBREW_NO_ENV_HINTS"] == "1"
    assert env["BREW_RATE_LIMIT"] == "5"


def test_queries_keep_output_of_nonzero_exits(tmp_path):
    prefix = tmp_path / "homebrew"
    (prefix / "bin").mkdir(parents=True)
    script = prefix / "bin" / "brew"
    script.write_text('#!/bin/sh\nif [ "$1" = missing ]; then echo "ffmpeg: libvpx"; exit 1; fi\necho curl\necho wget\n', encoding="utf-8")
    script.chmod(0o755)
    brew = Homebrew(prefix=prefix, query_timeout_s=5)

    assert brew.missing() == "ffmpeg: libvpx"
    assert brew.outdated("formula") == {"curl", "wget"}


def test_query_that_cannot_run_yields_empty(tmp_path):
    brew = Homebrew(prefix=tmp_path / "absent", query_timeout_s=5)

    assert brew.outdated("cask") == frozenset()
    assert brew.missing() == ""
