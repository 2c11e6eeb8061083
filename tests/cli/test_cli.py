"""Tests for the modelchain CLI via CliRunner."""

from __future__ import annotations

import pytest
from typer.testing import CliRunner

from modelchain import __version__
from modelchain.cli.app import app

runner = CliRunner()

DOCUMENT = """
apiVersion: modelchain.io/v1
kind: Pipeline
models:
  - name: Post
    plural: posts
    operations:
      list:
        - log_request
        - name: throttle
          args: {wait: 0.5, default: []}
        - fetch_posts
      create:
        - name: timed
          stage: server
        - name: run
          middlewares:
            - log_request
"""


@pytest.fixture
def document(tmp_path):
    path = tmp_path / "pipelines.yaml"
    path.write_text(DOCUMENT, encoding="utf-8")
    return path


class TestRoot:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_no_args_shows_help(self):
        result = runner.invoke(app, [])
        assert "steps" in result.output
        assert "pipeline" in result.output


class TestStepsCLI:
    """Tests for 'steps list'."""

    def test_list_table(self):
        result = runner.invoke(app, ["steps", "list"])
        assert result.exit_code == 0
        assert "Registered steps" in result.output

    def test_list_json(self):
        result = runner.invoke(app, ["steps", "list", "--json"])
        assert result.exit_code == 0
        assert '"name": "throttle"' in result.output
        assert '"scope": "dual"' in result.output

    def test_list_restricted_hides_privileged(self):
        result = runner.invoke(app, ["steps", "list", "--scope", "client", "--json"])
        assert result.exit_code == 0
        assert '"timed"' not in result.output
        assert '"throttle"' in result.output

    def test_bad_scope(self):
        result = runner.invoke(app, ["steps", "list", "--scope", "browser"])
        assert result.exit_code == 1

    def test_extra_loader(self):
        result = runner.invoke(app, ["steps", "list", "--loader", "modelchain.steps:register_builtin_steps"])
        assert result.exit_code == 0

    def test_bad_loader(self):
        result = runner.invoke(app, ["steps", "list", "--loader", "no_such_module_xyz:load"])
        assert result.exit_code == 1
        assert "Cannot import loader" in result.output


class TestPipelineCLI:
    """Tests for 'pipeline describe'."""

    def test_describe_table(self, document):
        result = runner.invoke(app, ["pipeline", "describe", str(document)])
        assert result.exit_code == 0
        assert "Post.list" in result.output
        assert "Post.create" in result.output

    def test_describe_json_privileged(self, document):
        result = runner.invoke(app, ["pipeline", "describe", str(document), "--model", "Post", "--json"])
        assert result.exit_code == 0
        assert '"not_found"' in result.output
        assert '"resolved_scope": "privileged"' in result.output

    def test_describe_json_restricted(self, document):
        result = runner.invoke(
            app,
            ["pipeline", "describe", str(document), "--operation", "create", "--scope", "restricted", "--json"],
        )
        assert result.exit_code == 0
        assert '"skipped_scope"' in result.output
        assert '"children_skipped"' in result.output

    def test_describe_unknown_model(self, document):
        result = runner.invoke(app, ["pipeline", "describe", str(document), "--model", "User"])
        assert result.exit_code == 1
        assert "User" in result.output

    def test_describe_unknown_operation(self, document):
        result = runner.invoke(app, ["pipeline", "describe", str(document), "--operation", "archive"])
        assert result.exit_code == 1

    def test_describe_dual_scope_rejected(self, document):
        result = runner.invoke(app, ["pipeline", "describe", str(document), "--scope", "dual"])
        assert result.exit_code == 1

    def test_describe_invalid_document(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("kind: Workflow\n", encoding="utf-8")
        result = runner.invoke(app, ["pipeline", "describe", str(path)])
        assert result.exit_code == 1

    def test_describe_missing_file(self, tmp_path):
        result = runner.invoke(app, ["pipeline", "describe", str(tmp_path / "missing.yaml")])
        assert result.exit_code != 0
