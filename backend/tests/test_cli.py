import json
from pathlib import Path

import pytest

from shipdesk import cli


@pytest.fixture
def cli_env(test_settings, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(cli, "get_settings", lambda: test_settings)
    # Root handlers must not bind to capsys streams that close after each test.
    monkeypatch.setattr(cli, "configure_logging", lambda *_args, **_kwargs: None)
    monkeypatch.chdir(tmp_path)
    return test_settings


def test_normalize_json_filename_rejects_paths() -> None:
    assert cli._normalize_json_filename(" export.json ") == "export.json"
    for bad in ("", "../x.json", "dir/x.json", "x.txt", ".hidden.json"):
        with pytest.raises(SystemExit):
            cli._normalize_json_filename(bad)


def test_export_then_import_round_trip(cli_env, local_store, shipment_factory, tmp_path: Path, capsys) -> None:
    local_store.write_all([shipment_factory("a"), shipment_factory("b")])

    cli.main(["export-data", "--output", "backup.json"])
    exported = (tmp_path / "backup.json").read_text(encoding="utf-8")
    local_store.write_all([])
    cli.main(["import-data", "--input", "backup.json"])

    assert [doc["id"] for doc in json.loads(exported)] == ["a", "b"]
    assert [doc["id"] for doc in local_store.read_all()] == ["a", "b"]
    out = capsys.readouterr().out
    assert "Exported shipments to" in out
    assert "Imported shipments from" in out


def test_import_of_non_array_exits(cli_env, tmp_path: Path) -> None:
    (tmp_path / "bad.json").write_text('{"id": "a"}', encoding="utf-8")

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["import-data", "--input", "bad.json"])

    assert "Import failed" in str(excinfo.value)


def test_import_of_missing_file_exits(cli_env) -> None:
    with pytest.raises(SystemExit):
        cli.main(["import-data", "--input", "missing.json"])


def test_seed_data_fills_empty_local_store(cli_env, local_store, capsys) -> None:
    cli.main(["seed-data"])
    cli.main(["seed-data"])

    assert len(local_store.read_all()) == 2
    out = capsys.readouterr().out
    assert "Seeded demo shipments" in out
    assert "Local store already holds shipments" in out


def test_init_db_requires_remote_store(cli_env) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["init-db"])

    assert "REMOTE_DATABASE_URL" in str(excinfo.value)


def test_list_prints_status_and_page(cli_env, local_store, shipment_factory, capsys) -> None:
    local_store.write_all(
        [shipment_factory("a", status="Pending"), shipment_factory("b", status="Delivered", trackingNo="JPDONE")]
    )

    cli.main(["list", "--status", "Delivered"])

    out = capsys.readouterr().out
    assert "Status: local mode (no remote store configured)" in out
    assert "JPDONE" in out
    assert "JPA" not in out
    assert "1 result" in out


def test_add_quick_edit_and_delete(cli_env, local_store, draft_factory, tmp_path: Path, capsys) -> None:
    (tmp_path / "draft.json").write_text(json.dumps(draft_factory()), encoding="utf-8")

    cli.main(["add", "--draft", "draft.json"])
    shipment_id, tracking_no = capsys.readouterr().out.strip().splitlines()[-1].split("\t")
    assert local_store.read_all()[0]["trackingNo"] == tracking_no

    cli.main(
        [
            "quick-edit",
            "--id",
            shipment_id,
            "--status",
            "Delivered",
            "--status-date",
            "2024-05-03",
            "--status-time",
            "10:00",
            "--location",
            "Dallas",
            "--notes",
            "Signed by J. Miller",
        ]
    )
    assert local_store.read_all()[0]["status"] == "Delivered"

    cli.main(["delete", "--id", shipment_id])
    assert local_store.read_all() == []
    assert "[success] Shipment deleted successfully!" in capsys.readouterr().out


def test_add_with_invalid_draft_exits_with_error_toast(cli_env, draft_factory, tmp_path: Path, capsys) -> None:
    (tmp_path / "draft.json").write_text(json.dumps(draft_factory(origin="")), encoding="utf-8")

    with pytest.raises(SystemExit):
        cli.main(["add", "--draft", "draft.json"])

    assert "[error] Please fill all required fields." in capsys.readouterr().out


def test_track_prints_view_or_exits(cli_env, local_store, shipment_factory, capsys) -> None:
    local_store.write_all([shipment_factory("a", trackingNo="JP123456789")])

    cli.main(["track", "jp123456789"])
    assert json.loads(capsys.readouterr().out)["tracking_no"] == "JP123456789"

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["track", "JP000"])
    assert str(excinfo.value) == 'No results for "JP000"'


def test_track_with_blank_number_exits_with_message(cli_env) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["track", "  "])

    assert str(excinfo.value) == "Tracking number is required"


def test_preview_email_prints_subject_and_mailto_links(cli_env, capsys) -> None:
    cli.main(
        [
            "preview-email",
            "--tracking-no",
            "JP1",
            "--status",
            "In Transit",
            "--sender-email",
            "ana@example.com",
        ]
    )

    out = capsys.readouterr().out
    assert out.startswith("Subject: Shipment Status Update - JP1")
    assert "mailto:ana@example.com?subject=" in out


def test_no_command_prints_help(cli_env, capsys) -> None:
    cli.main([])

    assert "usage:" in capsys.readouterr().out


def test_serve_runs_the_api_app_with_uvicorn(cli_env, monkeypatch: pytest.MonkeyPatch) -> None:
    calls = []
    monkeypatch.setattr(cli.uvicorn, "run", lambda app, **kwargs: calls.append((app, kwargs)))

    cli.main(["serve", "--port", "9001"])

    assert calls == [("shipdesk.main:app", {"host": "127.0.0.1", "port": 9001, "reload": False})]
