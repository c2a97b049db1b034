"""WorktreePathMapper 单元测试"""

from pathlib import Path

import pytest

from wt.core.exceptions import ConfigValidationError
from wt.core.path_mapper import WorktreePathMapper


class TestSanitize:
    """测试分支名到目录名的转换"""

    @pytest.mark.parametrize("branch, expected", [
        ("main", "main"),
        ("feature/ui", "feature-ui"),
        ("fix(#123)", "fix-123"),
        ("user@host:topic", "user-host-topic"),
        ("release [v1]", "release-v1"),
        ("feature//double", "feature-double"),
        ("weird*chars?", "weird-chars"),
        ("v1.2.3", "v1.2.3"),
    ])
    def test_mappings(self, branch, expected):
        assert WorktreePathMapper().sanitize(branch) == expected

    @pytest.mark.parametrize("branch", ["", "   ", "///", "#"])
    def test_unmappable(self, branch):
        with pytest.raises(ConfigValidationError):
            WorktreePathMapper().sanitize(branch)


class TestWorktreePath:
    """测试模板展开"""

    def test_default_template_is_sibling(self):
        path = WorktreePathMapper().worktree_path(Path("/work/app"), "feature/auth")
        assert path == Path("/work/app.feature-auth")

    def test_nested_template(self):
        mapper = WorktreePathMapper("../worktrees/{repo}/{branch}")
        assert mapper.worktree_path(Path("/work/app"), "fix/login") == Path("/work/worktrees/app/fix-login")

    def test_absolute_template(self, tmp_path):
        mapper = WorktreePathMapper(str(tmp_path / "{branch}"))
        assert mapper.worktree_path(Path("/work/app"), "dev") == tmp_path / "dev"

    def test_repo_name_override(self):
        path = WorktreePathMapper().worktree_path(Path("/work/app"), "dev", repo_name="api")
        assert path == Path("/work/api.dev")

    def test_unknown_placeholder(self):
        mapper = WorktreePathMapper("../{project}/{branch}")
        with pytest.raises(ConfigValidationError):
            mapper.worktree_path(Path("/work/app"), "dev")
