import json

from click.testing import CliRunner

from conftest import tree_contents
from volkeep import log
from volkeep.cli import main
from volkeep.snapshot import ARCHIVE_NAME


def test_backup_then_restore(volume, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    runner = CliRunner()
    snapshot = tmp_path / "data" / "pg"

    result = runner.invoke(main, ["backup", str(volume), str(snapshot)])
    assert result.exit_code == 0, result.output
    assert (snapshot / ARCHIVE_NAME).exists()

    restored = tmp_path / "restored"
    result = runner.invoke(main, ["restore", str(restored), str(snapshot)])
    assert result.exit_code == 0, result.output
    assert tree_contents(restored) == tree_contents(volume)

    events = [(e["event"], e["result"]) for e in log.read_logs()]
    assert events == [("backup", "backed_up"), ("restore", "restored")]
    assert log.read_logs("backup")[0]["mode"] == "compressed"


def test_paths_from_environment(volume, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("VOLKEEP_VOLUME_PATH", str(volume))
    monkeypatch.setenv("VOLKEEP_DATA_PATH", str(tmp_path / "data" / "pg"))

    result = CliRunner().invoke(main, ["backup"])

    assert result.exit_code == 0, result.output
    assert (tmp_path / "data" / "pg" / ARCHIVE_NAME).exists()


def test_paths_from_env_file(volume, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    # setenv first so monkeypatch removes whatever the env file exports
    for key in ("VOLKEEP_VOLUME_PATH", "VOLKEEP_DATA_PATH"):
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)
    (tmp_path / ".volkeep.env").write_text(
        f"VOLKEEP_VOLUME_PATH={volume}\nVOLKEEP_DATA_PATH={tmp_path / 'data' / 'pg'}\n"
    )

    result = CliRunner().invoke(main, ["stats"])

    assert result.exit_code == 0, result.output
    assert "Volume Statistics" in result.output


def test_backup_of_missing_volume_is_skipped(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)

    result = CliRunner().invoke(main, ["backup", str(tmp_path / "absent"), str(tmp_path / "data" / "x")])

    assert result.exit_code == 0
    assert "Skipping backup" in result.output
    assert log.read_logs()[0]["result"] == "skipped"


def test_empty_path_is_rejected(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)

    result = CliRunner().invoke(main, ["restore", "", str(tmp_path / "data")])

    assert result.exit_code == 1
    assert "required" in result.output


def test_stats_reports_ratio(store, volume, tmp_path):
    snapshot = tmp_path / "data" / "pg"
    store.backup(volume, snapshot)

    result = CliRunner().invoke(main, ["stats", str(volume), str(snapshot)])

    assert result.exit_code == 0
    assert "Compression ratio" in result.output


def test_stats_on_missing_volume(tmp_path):
    result = CliRunner().invoke(main, ["stats", str(tmp_path / "nope")])
    assert result.exit_code == 1


def test_init_writes_defaults(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    runner = CliRunner()

    assert runner.invoke(main, ["init"]).exit_code == 0
    config = json.loads((tmp_path / ".volkeepconfig").read_text())
    assert config["branch"] == "main"
    assert "already exists" in runner.invoke(main, ["init"]).output


def test_invalid_config_exits(tmp_path, monkeypatch, volume):
    monkeypatch.chdir(tmp_path)
    (tmp_path / ".volkeepconfig").write_text("{not json")

    result = CliRunner().invoke(main, ["backup", str(volume), str(tmp_path / "data")])

    assert result.exit_code == 1
    assert "Invalid JSON" in result.output


def test_commit_outside_repo_exits(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)

    result = CliRunner().invoke(main, ["commit"])

    assert result.exit_code == 1


def test_logs_table(volume, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    runner = CliRunner()
    assert "No logs yet" in runner.invoke(main, ["logs"]).output

    runner.invoke(main, ["backup", str(volume), str(tmp_path / "data" / "pg")])
    result = runner.invoke(main, ["logs", "--event", "backup"])

    assert result.exit_code == 0
    assert "Pipeline Log" in result.output
    assert "backup" in result.output
