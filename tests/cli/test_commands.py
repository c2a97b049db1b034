"""CLI 命令测试

通过 click 的 CliRunner 在临时 Git 仓库中调用命令。
"""

import json

import pytest
from click.testing import CliRunner

from wt import __version__
from wt.cli.main import cli


@pytest.fixture
def runner():
    return CliRunner()


def invoke(runner, *args):
    return runner.invoke(cli, ["--no-color", *args], catch_exceptions=False)


class TestGlobalOptions:
    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_help_lists_commands(self, runner):
        result = runner.invoke(cli, ["--help"])
        for name in ("switch", "remove", "list", "merge", "continue", "step", "hook", "approvals"):
            assert name in result.output

    def test_outside_repository(self, runner, tmp_path, monkeypatch):
        elsewhere = tmp_path / "elsewhere"
        elsewhere.mkdir()
        monkeypatch.chdir(elsewhere)
        monkeypatch.setenv("WT_CONFIG_PATH", str(tmp_path / "config.yaml"))

        result = invoke(runner, "list")

        assert result.exit_code == 1
        assert "not a git repository" in result.output


class TestSwitchCommand:
    """测试 wt switch"""

    def test_base_requires_create(self, runner):
        result = invoke(runner, "switch", "feature/x", "--base", "main")
        assert result.exit_code == 1
        assert "--base" in result.output

    def test_create(self, runner, git_sandbox):
        result = invoke(runner, "switch", "feature/x", "--create")

        assert result.exit_code == 0, result.output
        path = git_sandbox.tmp_path / "repo.feature-x"
        assert path.is_dir()
        assert "feature/x" in git_sandbox.branches()
        assert str(path) in result.output

    def test_create_existing_branch(self, runner, git_sandbox):
        result = invoke(runner, "switch", "main", "--create")
        assert result.exit_code == 1

    def test_fuzzy_switch(self, runner, git_sandbox):
        path = git_sandbox.add_worktree("feature/long-branch-name")

        result = invoke(runner, "switch", "feat")

        assert result.exit_code == 0, result.output
        assert "模糊匹配" in result.output
        assert str(path) in result.output

    def test_exact_lists_candidates(self, runner, git_sandbox):
        git_sandbox.add_worktree("feature/long-branch-name")

        result = invoke(runner, "switch", "feat", "--exact")

        assert result.exit_code == 1
        assert "feature/long-branch-name" in result.output

    def test_ambiguous(self, runner, git_sandbox):
        git_sandbox.add_worktree("feature/a")
        git_sandbox.add_worktree("feature/b")

        result = invoke(runner, "switch", "feature")

        assert result.exit_code == 1
        assert "feature/a" in result.output and "feature/b" in result.output

    def test_unapproved_hook_blocks_create(self, runner, git_sandbox):
        git_sandbox.write_hooks({"post-create": {"marker": "echo created > created.txt"}})

        result = invoke(runner, "switch", "feature/x", "--create")

        assert result.exit_code == 1
        assert "--force" in result.output
        assert not (git_sandbox.tmp_path / "repo.feature-x").exists()

    def test_force_runs_hooks(self, runner, git_sandbox):
        git_sandbox.write_hooks({"post-create": {"marker": "echo created > created.txt"}})

        result = invoke(runner, "switch", "feature/x", "--create", "--force")

        assert result.exit_code == 0, result.output
        assert (git_sandbox.tmp_path / "repo.feature-x" / "created.txt").exists()


class TestListCommand:
    def test_json(self, runner, git_sandbox):
        path = git_sandbox.add_worktree("feature/a")

        result = invoke(runner, "list", "--json")

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert [w["branch"] for w in data] == ["main", "feature/a"]
        assert data[0]["is_main"] is True
        assert data[1]["path"] == str(path)
        assert data[1]["merge_phase"] is None

    def test_table(self, runner, git_sandbox):
        git_sandbox.add_worktree("feature/a")

        result = invoke(runner, "list")

        assert result.exit_code == 0
        assert "BRANCH" in result.output
        assert "feature/a" in result.output


class TestRemoveCommand:
    def test_remove_with_branch(self, runner, git_sandbox):
        path = git_sandbox.add_worktree("feature/a")

        result = invoke(runner, "remove", "feature/a", "-D")

        assert result.exit_code == 0, result.output
        assert not path.exists()
        assert "feature/a" not in git_sandbox.branches()

    def test_remove_default_branch_is_noop(self, runner, git_sandbox):
        result = invoke(runner, "remove")

        assert result.exit_code == 0
        assert "无需删除" in result.output
        assert git_sandbox.repo_path.exists()

    def test_remove_dirty_needs_force(self, runner, git_sandbox):
        path = git_sandbox.add_worktree("feature/a")
        (path / "scratch.txt").write_text("wip", encoding="utf-8")

        result = invoke(runner, "remove", "feature/a")
        assert result.exit_code == 1
        assert path.exists()

        result = invoke(runner, "remove", "feature/a", "--force")
        assert result.exit_code == 0, result.output
        assert not path.exists()


class TestHookCommands:
    """测试 wt hook 与 wt approvals"""

    def test_no_project_config(self, runner, git_sandbox):
        result = invoke(runner, "hook", "run", "pre-merge")

        assert result.exit_code == 1
        assert "No project configuration found" in result.output

    def test_undeclared_stage(self, runner, git_sandbox):
        git_sandbox.write_hooks({"pre-merge": {"test": "true"}})

        result = invoke(runner, "hook", "run", "post-start")

        assert result.exit_code == 1

    def test_unknown_stage(self, runner, git_sandbox):
        git_sandbox.write_hooks({"pre-merge": {"test": "true"}})

        result = invoke(runner, "hook", "run", "pre-commit")

        assert result.exit_code == 1
        assert "pre-commit" in result.output

    def test_approval_flow(self, runner, git_sandbox):
        git_sandbox.write_hooks({"pre-merge": {"marker": "echo ran > hook-ran.txt"}})
        marker = git_sandbox.repo_path / "hook-ran.txt"

        result = invoke(runner, "hook", "run", "pre-merge")
        assert result.exit_code == 1
        assert not marker.exists()

        result = invoke(runner, "hook", "run", "pre-merge", "--force")
        assert result.exit_code == 0, result.output
        assert marker.exists()

        marker.unlink()
        result = invoke(runner, "hook", "run", "pre-merge")
        assert result.exit_code == 0, result.output
        assert marker.exists()

        result = invoke(runner, "approvals", "list")
        assert "marker" in result.output
        assert "echo ran > hook-ran.txt" in result.output

        result = invoke(runner, "hook", "show")
        assert "已授权" in result.output

        result = invoke(runner, "approvals", "clear", "--stage", "pre-merge")
        assert result.exit_code == 0
        assert "1" in result.output

        result = invoke(runner, "approvals", "list")
        assert "没有已授权的命令" in result.output

    def test_edited_command_requires_new_approval(self, runner, git_sandbox):
        git_sandbox.write_hooks({"pre-merge": {"check": "true"}})
        assert invoke(runner, "hook", "run", "pre-merge", "--force").exit_code == 0

        git_sandbox.write_hooks({"pre-merge": {"check": "true --verbose"}})
        result = invoke(runner, "hook", "run", "pre-merge")

        assert result.exit_code == 1

    def test_failing_command(self, runner, git_sandbox):
        git_sandbox.write_hooks({"pre-merge": {"fail": "exit 3", "after": "echo after > after.txt"}})

        result = invoke(runner, "hook", "run", "pre-merge", "--force")

        assert result.exit_code == 1
        assert "exit 3" in result.output
        assert not (git_sandbox.repo_path / "after.txt").exists()

    def test_continue_on_failure(self, runner, git_sandbox):
        git_sandbox.write_hooks({"pre-merge": {"fail": "exit 3", "after": "echo after > after.txt"}})

        result = invoke(runner, "hook", "run", "pre-merge", "--force", "--continue-on-failure")

        assert result.exit_code == 1
        assert (git_sandbox.repo_path / "after.txt").exists()


class TestStepCommand:
    def test_standalone_commit(self, runner, git_sandbox, monkeypatch):
        path = git_sandbox.add_worktree("feature/a")
        (path / "new.txt").write_text("content", encoding="utf-8")
        monkeypatch.chdir(path)

        result = invoke(runner, "step", "commit", "-m", "Add new file")

        assert result.exit_code == 0, result.output
        assert git_sandbox.log("feature/a")[0] == "Add new file"

    def test_step_on_target_branch(self, runner, git_sandbox):
        result = invoke(runner, "step", "commit")
        assert result.exit_code == 1
