"""端到端集成测试

在真实的 Git 仓库中走完整的工作流：
- 创建 worktree 并切换
- 提交、压缩、rebase、合并
- rebase 冲突后暂停，解决冲突后继续
- Hook 授权与执行
"""

import json

import pytest
from click.testing import CliRunner

from wt.cli.main import cli
from wt.core.git_client import GitClient
from wt.core.state_store import MergeStateStore


@pytest.fixture
def runner():
    return CliRunner()


def wt(runner, *args):
    return runner.invoke(cli, ["--no-color", *args], catch_exceptions=False)


def merge_state(sandbox, worktree):
    return MergeStateStore.for_repository(GitClient(sandbox.repo_path)).load(worktree)


class TestMergeWorkflowE2E:
    """完整合并流程"""

    def test_switch_commit_squash_merge(self, runner, git_sandbox, monkeypatch):
        result = wt(runner, "switch", "feature/login", "--create")
        assert result.exit_code == 0, result.output
        worktree = git_sandbox.tmp_path / "repo.feature-login"

        git_sandbox.commit_file("login.py", "def login():\n    pass\n", "Add login stub", cwd=worktree)
        git_sandbox.commit_file("form.py", "FORM = {}\n", "Add login form", cwd=worktree)
        (worktree / "login.py").write_text("def login():\n    return True\n", encoding="utf-8")

        monkeypatch.chdir(worktree)
        result = wt(runner, "merge")

        assert result.exit_code == 0, result.output
        log = git_sandbox.log("main")
        assert log[0] == "Squash commits from main"
        assert log[1] == "Initial commit"
        assert (git_sandbox.repo_path / "login.py").read_text(encoding="utf-8") == "def login():\n    return True\n"
        assert merge_state(git_sandbox, worktree) is None
        assert worktree.exists()

    def test_merge_with_remove(self, runner, git_sandbox, monkeypatch):
        worktree = git_sandbox.add_worktree("feature/docs")
        git_sandbox.commit_file("docs.md", "docs\n", "Add docs", cwd=worktree)

        monkeypatch.chdir(worktree)
        result = wt(runner, "merge", "--remove")

        assert result.exit_code == 0, result.output
        assert git_sandbox.log("main")[0] == "Add docs"
        assert not worktree.exists()
        assert "feature/docs" not in git_sandbox.branches()

    def test_rebase_conflict_then_continue(self, runner, git_sandbox, monkeypatch):
        worktree = git_sandbox.add_worktree("feature/readme")
        git_sandbox.commit_file("README.md", "# Feature title\n", "Change title on feature", cwd=worktree)
        git_sandbox.commit_file("README.md", "# Main title\n", "Change title on main")

        monkeypatch.chdir(worktree)
        result = wt(runner, "merge", "--no-squash")

        assert result.exit_code == 1
        assert "README.md" in result.output
        state = merge_state(git_sandbox, worktree)
        assert state.phase == "failed:rebase"
        assert state.resume_data["conflicts"] == ["README.md"]

        listing = json.loads(wt(runner, "list", "--json").output)
        phases = {w["branch"]: w["merge_phase"] for w in listing}
        assert "failed:rebase" in phases.values()

        result = wt(runner, "step", "merge")
        assert result.exit_code == 1
        assert "rebase" in result.output

        (worktree / "README.md").write_text("# Combined title\n", encoding="utf-8")
        git_sandbox.git("add", "README.md", cwd=worktree)

        result = wt(runner, "continue")

        assert result.exit_code == 0, result.output
        assert git_sandbox.log("main")[:2] == ["Change title on feature", "Change title on main"]
        assert (git_sandbox.repo_path / "README.md").read_text(encoding="utf-8") == "# Combined title\n"
        assert merge_state(git_sandbox, worktree) is None

    def test_continue_without_merge(self, runner, git_sandbox, monkeypatch):
        worktree = git_sandbox.add_worktree("feature/idle")
        monkeypatch.chdir(worktree)

        result = wt(runner, "continue")

        assert result.exit_code == 1

    def test_target_mismatch(self, runner, git_sandbox, monkeypatch):
        git_sandbox.git("branch", "release")
        worktree = git_sandbox.add_worktree("feature/readme")
        git_sandbox.commit_file("README.md", "# Feature\n", "Feature change", cwd=worktree)
        git_sandbox.commit_file("README.md", "# Main\n", "Main change")
        monkeypatch.chdir(worktree)
        assert wt(runner, "merge").exit_code == 1

        result = wt(runner, "merge", "release")

        assert result.exit_code == 1
        assert "--discard" in result.output
        assert merge_state(git_sandbox, worktree).target == "main"

        git_sandbox.git("rebase", "--abort", cwd=worktree)
        result = wt(runner, "merge", "release", "--discard")
        assert result.exit_code == 0, result.output
        assert git_sandbox.log("release")[0] == "Feature change"


class TestHooksE2E:
    """合并流程中的 Hook"""

    def test_merge_hooks_run_with_approval(self, runner, git_sandbox, monkeypatch):
        log_file = git_sandbox.tmp_path / "hooks.log"
        git_sandbox.write_hooks({
            "pre-merge": {"check": f'echo "pre $WT_BRANCH $WT_TARGET_BRANCH" >> "{log_file}"'},
            "post-merge": {"notify": f'echo "post $WT_STAGE" >> "{log_file}"'},
        })
        worktree = git_sandbox.add_worktree("feature/hooks")
        git_sandbox.commit_file("hooks.txt", "x\n", "Add hooks file", cwd=worktree)
        monkeypatch.chdir(worktree)

        result = wt(runner, "merge")
        assert result.exit_code == 1
        assert not log_file.exists()
        assert merge_state(git_sandbox, worktree) is None

        result = wt(runner, "merge", "--force")

        assert result.exit_code == 0, result.output
        assert log_file.read_text(encoding="utf-8").splitlines() == [
            "pre feature/hooks main",
            "post post-merge",
        ]

    def test_failing_pre_merge_blocks_merge(self, runner, git_sandbox, monkeypatch):
        git_sandbox.write_hooks({"pre-merge": {"test": "exit 1"}})
        worktree = git_sandbox.add_worktree("feature/broken")
        git_sandbox.commit_file("broken.txt", "x\n", "Add broken file", cwd=worktree)
        monkeypatch.chdir(worktree)

        result = wt(runner, "merge", "--force")

        assert result.exit_code == 1
        assert git_sandbox.log("main")[0] == "Initial commit"
        assert merge_state(git_sandbox, worktree).phase == "failed:merge"
