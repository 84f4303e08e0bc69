# === NAVMAP v1 ===
# {
#   "module": "tests.lavender.test_cli",
#   "purpose": "CLI tests for the fsck and clusters commands against local docroots",
#   "sections": [
#     {"id": "setup", "name": "Test Setup", "anchor": "SETUP", "kind": "infra"},
#     {"id": "tests", "name": "CLI Command Tests", "anchor": "TESTS", "kind": "tests"}
#   ]
# }
# === /NAVMAP ===

"""Tests for the ``lavender`` command line."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from Lavender.cli import app
from Lavender.fsck import FsckReport
from Lavender.fsck.aggregate import aggregate_of
from Lavender.index import ALL_IDX
from Lavender.settings import HashTool

from .fakes import SITE, module_index

# ============================================================================
# SETUP (SETUP)
# ============================================================================


def _publish(root: Path) -> None:
    docroot = root / "htdocs" / "web"
    indexes = root / "indexes" / "web"
    indexes.mkdir(parents=True)
    built = []
    for module, contents in SITE.items():
        index = module_index(contents)
        for label in index:
            target = docroot / label.lavendelized_path
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(contents[label.original_path])
        (indexes / f"{module}.idx").write_text(index.serialize(), encoding="utf-8")
        built.append(index)
    (indexes / ALL_IDX).write_text(aggregate_of(built).serialize(), encoding="utf-8")


@pytest.fixture
def cli_runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def setup(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Two local hosts with one docroot each; returns the config path."""
    monkeypatch.setenv("LAVENDER_LOG_DIR", str(tmp_path / "logs"))
    for host in ("host1", "host2"):
        _publish(tmp_path / host)
    config = tmp_path / "lavender.yaml"
    config.write_text(
        f"""
hosts:
  - name: host1
    transport: local
    root: {tmp_path / 'host1'}
  - name: host2
    transport: local
    root: {tmp_path / 'host2'}
clusters:
  - name: prod
    hosts: [host1, host2]
    docroots:
      - name: web
        docroot: htdocs/web
        indexes: indexes/web
""",
        encoding="utf-8",
    )
    return config


# ============================================================================
# TESTS (TESTS)
# ============================================================================


class TestFsckCommand:
    """``lavender fsck``."""

    def test_clean_cluster_prints_ok(self, cli_runner: CliRunner, setup: Path) -> None:
        result = cli_runner.invoke(app, ["fsck", "prod", "--config", str(setup), "--no-log-file"])
        assert result.exit_code == 0, result.output
        assert result.output.rstrip().endswith("ok")

    def test_unreferenced_file_fails(self, cli_runner: CliRunner, setup: Path) -> None:
        (setup.parent / "host2" / "htdocs" / "web" / "stray.css").write_bytes(b"stray")
        result = cli_runner.invoke(app, ["fsck", "prod", "--config", str(setup), "--no-log-file"])
        assert result.exit_code == 1
        assert "FSCK FAILED" in result.output

    def test_gc_removes_unreferenced_file(self, cli_runner: CliRunner, setup: Path) -> None:
        stray = setup.parent / "host2" / "htdocs" / "web" / "old" / "stray.css"
        stray.parent.mkdir(parents=True)
        stray.write_bytes(b"stray")
        result = cli_runner.invoke(app, ["fsck", "prod", "--config", str(setup), "--gc", "--no-log-file"])
        assert result.exit_code == 0, result.output
        assert not stray.exists()
        assert not stray.parent.exists()
        assert (setup.parent / "host2" / "htdocs" / "web").is_dir()

    def test_gc_refused_exit_code(self, cli_runner: CliRunner, setup: Path) -> None:
        web = setup.parent / "host1" / "htdocs" / "web"
        victim = next(path for path in web.rglob("*") if path.is_file())
        victim.unlink()
        (web / "stray.css").write_bytes(b"stray")
        result = cli_runner.invoke(app, ["fsck", "prod", "--config", str(setup), "--gc", "--no-log-file"])
        assert result.exit_code == 3
        assert (web / "stray.css").exists()

    def test_mac_only_selects_hash_tool(
        self, cli_runner: CliRunner, setup: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        seen = []

        class RecordingFsck:
            def __init__(self, cluster, options, pool) -> None:
                seen.append(options)
                self.cluster = cluster

            def run(self) -> FsckReport:
                return FsckReport(cluster=self.cluster.name)

        monkeypatch.setattr("Lavender.cli.Fsck", RecordingFsck)
        result = cli_runner.invoke(
            app, ["fsck", "prod", "--config", str(setup), "--mac", "--no-md5", "--no-log-file"]
        )
        assert result.exit_code == 0, result.output
        assert seen[0].md5check is False
        assert seen[0].hash_tool is HashTool.MD5

    def test_missing_index_directory_is_fatal(self, cli_runner: CliRunner, setup: Path) -> None:
        config = setup.read_text(encoding="utf-8")
        setup.write_text(config.replace("indexes/web", "indexs/web"), encoding="utf-8")
        web = setup.parent / "host1" / "htdocs" / "web"
        before = sorted(path for path in web.rglob("*") if path.is_file())
        result = cli_runner.invoke(app, ["fsck", "prod", "--config", str(setup), "--gc", "--no-log-file"])
        assert result.exit_code == 2
        assert "index directory not found" in result.output
        assert sorted(path for path in web.rglob("*") if path.is_file()) == before

    def test_unknown_cluster_is_fatal(self, cli_runner: CliRunner, setup: Path) -> None:
        result = cli_runner.invoke(app, ["fsck", "qa", "--config", str(setup), "--no-log-file"])
        assert result.exit_code == 2
        assert "unknown cluster" in result.output

    def test_missing_config_is_fatal(self, cli_runner: CliRunner, tmp_path: Path) -> None:
        result = cli_runner.invoke(app, ["fsck", "prod", "--config", str(tmp_path / "nope.yaml")])
        assert result.exit_code == 2

    def test_json_report(self, cli_runner: CliRunner, setup: Path) -> None:
        result = cli_runner.invoke(
            app,
            ["fsck", "prod", "--config", str(setup), "--format", "json", "--log-level", "ERROR", "--no-log-file"],
        )
        assert result.exit_code == 0, result.output
        report = json.loads(result.stdout)
        assert report["ok"] is True
        assert [r["host"] for r in report["docroots"][0]["replicas"]] == ["host1", "host2"]

    def test_writes_json_log_file(self, cli_runner: CliRunner, setup: Path) -> None:
        result = cli_runner.invoke(app, ["fsck", "prod", "--config", str(setup)])
        assert result.exit_code == 0, result.output
        log_files = list((setup.parent / "logs").glob("lavender-*.jsonl"))
        assert len(log_files) == 1
        first = json.loads(log_files[0].read_text(encoding="utf-8").splitlines()[0])
        assert first["level"] == "INFO"


class TestClustersCommand:
    def test_lists_clusters(self, cli_runner: CliRunner, setup: Path) -> None:
        result = cli_runner.invoke(app, ["clusters", "--config", str(setup), "--format", "json"])
        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout) == [{"name": "prod", "hosts": ["host1", "host2"], "docroots": ["web"]}]

    def test_table_output(self, cli_runner: CliRunner, setup: Path) -> None:
        result = cli_runner.invoke(app, ["clusters", "--config", str(setup)])
        assert result.exit_code == 0
        assert "prod" in result.output
