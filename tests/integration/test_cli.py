"""Integration tests for the cdiff CLI."""

import json
import shutil
from pathlib import Path
from types import SimpleNamespace

import pytest

from config_diff import cli
from config_diff.cli import format_change, main
from config_diff.config import get_config_path, load_config
from config_diff.differ import ChangeEvent, ChangeType
from config_diff.merkle import build_tree
from config_diff.watcher import SnapshotWatcher


@pytest.fixture
def workdir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Run each command from an empty temporary project."""
    monkeypatch.chdir(tmp_path)
    return tmp_path


class TestCLIEntry:
    """Tests for the CLI entry point."""

    def test_version_flag(self, cli_runner):
        result = cli_runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert "cdiff" in result.output
        assert "0.1.0" in result.output

    def test_help_flag(self, cli_runner):
        result = cli_runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        assert "Config Diff" in result.output
        assert "watch" in result.output


class TestInit:
    def test_init_writes_config(self, cli_runner, workdir: Path):
        result = cli_runner.invoke(main, ["init", "--digest-order", "sorted"])

        assert result.exit_code == 0
        assert get_config_path(workdir).exists()
        assert load_config(workdir).digest_order == "sorted"

    def test_init_refuses_to_overwrite(self, cli_runner, workdir: Path):
        cli_runner.invoke(main, ["init"])
        result = cli_runner.invoke(main, ["init"])

        assert result.exit_code == 1

    def test_init_force(self, cli_runner, workdir: Path):
        cli_runner.invoke(main, ["init"])
        result = cli_runner.invoke(main, ["init", "--force", "--digest-order", "sorted"])

        assert result.exit_code == 0
        assert load_config(workdir).digest_order == "sorted"


class TestHash:
    def test_prints_root_digest(self, cli_runner, workdir: Path, snapshots_dir: Path):
        result = cli_runner.invoke(main, ["hash", str(snapshots_dir / "app.json")])

        data = json.loads((snapshots_dir / "app.json").read_text())
        assert result.exit_code == 0
        assert result.output.strip() == build_tree(data).digest

    def test_yaml_and_json_hash_equal(self, cli_runner, workdir: Path, snapshots_dir: Path):
        json_out = cli_runner.invoke(main, ["hash", str(snapshots_dir / "app.json")]).output
        yaml_out = cli_runner.invoke(main, ["hash", str(snapshots_dir / "app.yaml")]).output

        assert json_out == yaml_out

    def test_tree_output(self, cli_runner, workdir: Path, snapshots_dir: Path):
        result = cli_runner.invoke(main, ["hash", "--tree", str(snapshots_dir / "app.json")])

        assert result.exit_code == 0
        assert "server" in result.output
        assert "opaque" in result.output

    def test_missing_file(self, cli_runner, workdir: Path):
        result = cli_runner.invoke(main, ["hash", "missing.json"])
        assert result.exit_code == 1

    def test_recursive_yaml_anchor_fails_cleanly(self, cli_runner, workdir: Path):
        target = workdir / "loop.yaml"
        target.write_text("a: &x [1, *x]\n")

        result = cli_runner.invoke(main, ["hash", str(target)])

        assert result.exit_code == 1
        assert "Error:" in result.output
        assert not isinstance(result.exception, RecursionError)


class TestDiff:
    def test_json_output(self, cli_runner, workdir: Path, snapshots_dir: Path):
        result = cli_runner.invoke(
            main,
            [
                "diff",
                "--json",
                str(snapshots_dir / "app.json"),
                str(snapshots_dir / "app_changed.json"),
            ],
        )

        assert result.exit_code == 0
        assert json.loads(result.output) == [
            {"type": "added", "path": "features.2"},
            {"type": "modified", "path": "password"},
            {"type": "modified", "path": "server.port"},
        ]

    def test_table_output(self, cli_runner, workdir: Path, snapshots_dir: Path):
        result = cli_runner.invoke(
            main,
            ["diff", str(snapshots_dir / "app.json"), str(snapshots_dir / "app_changed.json")],
        )

        assert result.exit_code == 0
        assert "server.port" in result.output
        assert "password" in result.output

    def test_no_changes(self, cli_runner, workdir: Path, snapshots_dir: Path):
        result = cli_runner.invoke(
            main, ["diff", str(snapshots_dir / "app.json"), str(snapshots_dir / "app.yaml")]
        )

        assert result.exit_code == 0
        assert "No changes" in result.output


class TestCheck:
    def test_creates_then_compares(self, cli_runner, workdir: Path, snapshots_dir: Path):
        target = workdir / "app.json"
        state = workdir / "state.json"
        shutil.copy(snapshots_dir / "app.json", target)

        first = cli_runner.invoke(main, ["check", str(target), "--state", str(state)])
        assert first.exit_code == 0
        assert "Baseline created" in first.output
        assert state.exists()

        shutil.copy(snapshots_dir / "app_changed.json", target)
        second = cli_runner.invoke(main, ["check", str(target), "--state", str(state)])
        assert second.exit_code == 0
        assert "server.port" in second.output

        third = cli_runner.invoke(main, ["check", str(target), "--state", str(state)])
        assert third.exit_code == 0
        assert "No changes" in third.output

    def test_corrupt_state(self, cli_runner, workdir: Path, snapshots_dir: Path):
        state = workdir / "state.json"
        state.write_text("{nope")

        result = cli_runner.invoke(
            main, ["check", str(snapshots_dir / "app.json"), "--state", str(state)]
        )

        assert result.exit_code == 1

    def test_sorted_digest_order_matches_fresh_build(
        self, cli_runner, sorted_project: Path, snapshots_dir: Path
    ):
        target = sorted_project / "app.json"
        state = sorted_project / "state.json"
        target.write_text(json.dumps({"b": 1}))
        cli_runner.invoke(main, ["check", str(target), "--state", str(state)])

        target.write_text(json.dumps({"b": 1, "a": 2}))
        result = cli_runner.invoke(main, ["check", str(target), "--state", str(state)])

        saved = json.loads(state.read_text())
        assert result.exit_code == 0
        assert saved["digest_order"] == "sorted"
        assert saved["tree"]["digest"] == build_tree({"a": 2, "b": 1}).digest

    def test_discriminator_change_rebuilds(
        self, cli_runner, workdir: Path, monkeypatch: pytest.MonkeyPatch
    ):
        target = workdir / "app.json"
        state = workdir / "state.json"
        target.write_text(json.dumps({"s": {"type": "X", "kind": "k"}, "b": 1}))
        cli_runner.invoke(main, ["check", str(target), "--state", str(state)])

        monkeypatch.setenv("CDIFF_DISCRIMINATOR_FIELD", "other")
        target.write_text(json.dumps({"s": {"type": "X", "kind": "k"}, "b": 2}))
        result = cli_runner.invoke(main, ["check", str(target), "--state", str(state)])

        saved = json.loads(state.read_text())
        assert result.exit_code == 0
        assert "rebuilding" in result.output
        assert "s.type" not in result.output
        assert "s.kind" not in result.output
        assert saved["discriminator_field"] == "other"
        assert saved["tree"]["children"]["s"]["kind"] == "object"

    def test_warns_when_baseline_belongs_to_another_file(
        self, cli_runner, workdir: Path, snapshots_dir: Path
    ):
        state = workdir / "state.json"
        first = workdir / "a.json"
        second = workdir / "b.json"
        shutil.copy(snapshots_dir / "app.json", first)
        shutil.copy(snapshots_dir / "app.json", second)
        cli_runner.invoke(main, ["check", str(first), "--state", str(state)])

        result = cli_runner.invoke(main, ["check", str(second), "--state", str(state)])

        assert result.exit_code == 0
        assert "Warning" in result.output
        assert json.loads(state.read_text())["source"] == str(second)

    def test_same_file_does_not_warn(self, cli_runner, workdir: Path, snapshots_dir: Path):
        state = workdir / "state.json"
        target = workdir / "a.json"
        shutil.copy(snapshots_dir / "app.json", target)
        cli_runner.invoke(main, ["check", str(target), "--state", str(state)])

        result = cli_runner.invoke(main, ["check", str(target), "--state", str(state)])

        assert "Warning" not in result.output


class TestWatch:
    def test_missing_file(self, cli_runner, workdir: Path):
        result = cli_runner.invoke(main, ["watch", "missing.json"])
        assert result.exit_code == 1

    def test_runs_until_interrupted(
        self, cli_runner, workdir: Path, monkeypatch: pytest.MonkeyPatch
    ):
        target = workdir / "app.json"
        target.write_text(json.dumps({"a": 1}))

        def interrupt(seconds):
            raise KeyboardInterrupt

        monkeypatch.setattr(cli, "time", SimpleNamespace(sleep=interrupt))
        stopped = []
        original_stop = SnapshotWatcher.stop

        def stop(self):
            stopped.append(self.path)
            original_stop(self)

        monkeypatch.setattr(SnapshotWatcher, "stop", stop)

        result = cli_runner.invoke(main, ["watch", "--debounce-ms", "10", str(target)])

        assert result.exit_code == 0
        assert "Watching" in result.output
        assert stopped == [target.resolve()]


class TestFormatChange:
    """Tests for the line printed per watch event."""

    def test_added_shows_new_value(self):
        snapshot = {"server": {"port": 9090}}
        line = format_change(ChangeEvent(ChangeType.ADDED, "server.port"), snapshot)

        assert line == "[green]added[/green] server.port = 9090"

    def test_modified_shows_json_value(self):
        snapshot = {"features": ["audit", "export"]}
        line = format_change(ChangeEvent(ChangeType.MODIFIED, "features"), snapshot)

        assert line == '[yellow]modified[/yellow] features = ["audit", "export"]'

    def test_removed_has_no_value(self):
        line = format_change(ChangeEvent(ChangeType.REMOVED, "b"), {"a": 1})

        assert line == "[red]removed[/red] b"

    def test_root_path(self):
        line = format_change(ChangeEvent(ChangeType.MODIFIED, ""), 5)

        assert line == "[yellow]modified[/yellow] <root> = 5"

    def test_markup_in_keys_and_values_is_escaped(self):
        snapshot = {"[bold]": "[red]x"}
        line = format_change(ChangeEvent(ChangeType.ADDED, "[bold]"), snapshot)

        assert line == '[green]added[/green] \\[bold] = "\\[red]x"'
