from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from uplinegraph.core.config import FieldKeys
from uplinegraph.interfaces.cli import cli

KEYS = FieldKeys()


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture()
def export_path(tmp_path: Path) -> Path:
    payload = {
        "contacts": [
            {
                "id": "A",
                "firstName": "Ann",
                "lastName": "Boss",
                "customFields": [{"id": "f-npn", "value": "111"}],
            },
            {
                "id": "B",
                "firstName": "Ben",
                "lastName": "Rep",
                "customFields": [
                    {"id": "f-npn", "value": "112"},
                    {"id": "f-up", "value": "111"},
                ],
            },
            {"id": "C", "firstName": "Cy", "lastName": "Loose"},
        ],
    }
    path = tmp_path / "export.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


@pytest.fixture()
def fields_path(tmp_path: Path) -> Path:
    path = tmp_path / "fields.json"
    path.write_text(
        json.dumps(
            {
                "customFields": [
                    {"id": "f-npn", "fieldKey": KEYS.license_number},
                    {"id": "f-up", "fieldKey": KEYS.upline_identifier},
                ]
            }
        ),
        encoding="utf-8",
    )
    return path


def _build_args(export_path: Path, fields_path: Path, *extra: str) -> list[str]:
    return [
        "build",
        str(export_path),
        "--fields",
        str(fields_path),
        "--generated-at",
        "2024-01-01T00:00:00+00:00",
        *extra,
    ]


def test_build_prints_json_document(runner, export_path, fields_path) -> None:
    result = runner.invoke(
        cli, _build_args(export_path, fields_path, "--format", "json")
    )

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["generatedAt"].startswith("2024-01-01T00:00:00")
    assert payload["stats"]["branches"] == 2
    ids = [root["id"] for root in payload["hierarchy"]]
    assert ids == ["A", "C"]
    assert payload["hierarchy"][0]["children"][0]["id"] == "B"


def test_build_writes_snapshot_and_csv(
    runner, tmp_path, export_path, fields_path
) -> None:
    snapshot = tmp_path / "out" / "snapshot.json"
    report = tmp_path / "out" / "snapshot.csv"

    result = runner.invoke(
        cli,
        _build_args(
            export_path, fields_path, "--output", str(snapshot), "--csv", str(report)
        ),
    )

    assert result.exit_code == 0, result.output
    assert "Contacts: 3" in result.output
    assert "Branches: 2" in result.output
    assert "Producers: 2" in result.output
    assert "Missing identifier: 1" in result.output
    assert f"Snapshot written to {snapshot}" in result.output
    assert f"CSV report written to {report}" in result.output
    assert json.loads(snapshot.read_text(encoding="utf-8"))["stats"]["branches"] == 2
    assert report.read_text(encoding="utf-8").startswith("id,label,")


def test_build_root_override_collects_branches(
    runner, export_path, fields_path
) -> None:
    result = runner.invoke(
        cli,
        _build_args(
            export_path,
            fields_path,
            "--root-identifier",
            "111",
            "--format",
            "json",
        ),
    )

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert [root["id"] for root in payload["hierarchy"]] == ["A"]
    children = {child["id"]: child for child in payload["hierarchy"][0]["children"]}
    assert children["C"]["uplineSource"] == "fallback-root"


def test_build_reports_invalid_json(runner, tmp_path) -> None:
    broken = tmp_path / "broken.json"
    broken.write_text("{nope", encoding="utf-8")

    result = runner.invoke(cli, ["build", str(broken)])

    assert result.exit_code == 1
    assert "not valid JSON" in result.output


def test_build_rejects_bad_timestamp(runner, export_path) -> None:
    result = runner.invoke(
        cli, ["build", str(export_path), "--generated-at", "yesterday"]
    )

    assert result.exit_code == 2
    assert "ISO-8601" in result.output


def test_analyze_text_and_json(runner, tmp_path, export_path, fields_path) -> None:
    snapshot = tmp_path / "snapshot.json"
    built = runner.invoke(
        cli, _build_args(export_path, fields_path, "--output", str(snapshot))
    )
    assert built.exit_code == 0, built.output

    text = runner.invoke(cli, ["analyze", str(snapshot), "--upline", "111"])
    assert text.exit_code == 0, text.output
    assert "Nodes: 3" in text.output
    assert "Roots: 2" in text.output
    assert "Max depth: 2" in text.output
    assert "Level 1: 2 nodes" in text.output
    assert "Upline sources" in text.output
    assert "Upline 111 (1 contacts):" in text.output
    assert "Parent: Ann Boss [ID: A, matches upline: yes]" in text.output
    assert "- Ben Rep" in text.output

    as_json = runner.invoke(
        cli, ["analyze", str(snapshot), "--upline", "111", "--format", "json"]
    )
    assert as_json.exit_code == 0, as_json.output
    payload = json.loads(as_json.stdout)
    assert payload["nodeCount"] == 3
    assert payload["sourceCounts"]["license-number"] == 1
    assert payload["uplineReports"][0]["placements"][0]["parentId"] == "A"


def test_analyze_rejects_non_snapshot(runner, export_path) -> None:
    result = runner.invoke(cli, ["analyze", str(export_path)])

    assert result.exit_code == 1
    assert "not a valid snapshot" in result.output


def test_schema_command(runner) -> None:
    result = runner.invoke(cli, ["schema"])

    assert result.exit_code == 0
    schema = json.loads(result.stdout)
    assert schema["title"] == "SnapshotDocument"
    assert "TreeNodeContract" in schema["$defs"]
