import json
import logging

from modsync import cli
from modsync.models import Manifest
from modsync.progress import CallbackObserver, LoggingObserver, ProgressEvent
from modsync.state import InstallRecord
from tests.conftest import make_addon


def test_event_from_counts():
    assert ProgressEvent.from_counts(1, 4, "x") == ProgressEvent(25.0, "x")
    assert ProgressEvent.from_counts(0, 0, "nothing to do").progress == 100.0
    assert ProgressEvent.from_counts(5, 4, "over").progress == 100.0


def test_callback_observer_emits_gui_shape():
    seen = []
    CallbackObserver(lambda event: seen.append(event.to_dict())).on_progress(1, 2, "Installed mod: JEI")
    assert seen == [{"progress": 50.0, "message": "Installed mod: JEI"}]


def test_logging_observer_logs_ten_percent_buckets(caplog):
    observer = LoggingObserver()
    with caplog.at_level(logging.INFO, logger="modsync.progress"):
        for completed in range(1, 21):
            observer.on_progress(completed, 20, f"unit {completed}")
    buckets = [r.getMessage() for r in caplog.records if r.getMessage().startswith("Install progress")]
    assert buckets == [f"Install progress: {pct}%" for pct in range(0, 101, 10)]


def test_cli_diff_prints_preview(tmp_path, capsys):
    old = tmp_path / "old.json"
    new = tmp_path / "new.json"
    old.write_text(Manifest(mods=[make_addon(1, "1", name="JEI"), make_addon(2, name="OptiFine")]).to_json())
    new.write_text(Manifest(mods=[make_addon(1, "2", name="JEI"), make_addon(3, name="Iris")]).to_json())
    assert cli.main(["diff", str(old), str(new)]) == 0
    out = capsys.readouterr().out.splitlines()
    assert out == ["- OptiFine", "~ 1 -> 2", "+ Iris"]


def test_cli_diff_json_without_old(tmp_path, capsys):
    new = tmp_path / "new.json"
    new.write_text(Manifest(mods=[make_addon(3, name="Iris")]).to_json())
    assert cli.main(["diff", str(new), "--json"]) == 0
    assert json.loads(capsys.readouterr().out)["new_addons"] == ["Iris"]


def test_cli_reports_modsync_errors(tmp_path, capsys):
    bad = tmp_path / "bad.json"
    bad.write_text("{")
    assert cli.main(["diff", str(bad)]) == 1


def test_cli_status(tmp_path, capsys):
    assert cli.main(["status", str(tmp_path)]) == 0
    assert "No update recorded" in capsys.readouterr().out
    InstallRecord(Manifest(mods=[make_addon(1)]), update_id="upd-7").save(tmp_path)
    assert cli.main(["status", str(tmp_path)]) == 0
    out = capsys.readouterr().out
    assert "Update: upd-7" in out
    assert "mods: 1" in out


def test_cli_install_requires_repo(tmp_path, monkeypatch):
    monkeypatch.setattr(cli.config, "UPDATE_REPO", "")
    assert cli.main(["install", str(tmp_path), "upd-1"]) == 1


def test_cli_status_verify(tmp_path, capsys):
    mod = make_addon(1)
    InstallRecord(Manifest(mods=[mod]), update_id="upd-7").save(tmp_path)
    assert cli.main(["status", str(tmp_path), "--verify"]) == 1
    assert f"missing: {tmp_path / 'mods' / mod.filename}" in capsys.readouterr().out
    (tmp_path / "mods").mkdir()
    (tmp_path / "mods" / mod.filename).write_bytes(b"jar")
    assert cli.main(["status", str(tmp_path), "--verify"]) == 0
    assert "All recorded addons present" in capsys.readouterr().out
