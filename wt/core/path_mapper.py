"""分支名称到 worktree 路径的映射

处理 Git 分支名称中的特殊字符，将其映射为合法的目录名称，
再按用户配置的 worktree-path 模板展开为绝对路径。
"""

import os
import re
from pathlib import Path
from typing import Dict, Optional

from wt.core.exceptions import ConfigValidationError
from wt.core.logger import get_logger


logger = get_logger("path_mapper")


class WorktreePathMapper:
    """分支名到 worktree 目录的映射器

    默认规则：
    - `/` → `-`  (feature/ui → feature-ui)
    - `(` → `-`  (fix(#123) → fix-123)
    - `)` `#` `]` → 移除
    - `@` `:` `[` 空格 → `-`
    - 其他非法字符 → `-`
    - 连续多个 `-` → 单个 `-`，去掉首尾 `-`

    模板占位符：{repo} 仓库目录名，{branch} 处理后的分支名。
    相对路径以主 worktree 根目录为基准。
    """

    CHAR_MAPPINGS = {
        '/': '-',
        '(': '-',
        ')': '',
        '#': '',
        '@': '-',
        ':': '-',
        '[': '-',
        ']': '',
        ' ': '-',
    }

    _INVALID_CHARS = re.compile(r'[^A-Za-z0-9._-]')
    _REPEATED_DASH = re.compile(r'-{2,}')

    def __init__(self, template: str = "../{repo}.{branch}"):
        self.template = template

    def sanitize(self, branch: str) -> str:
        """把分支名转换为目录名

        Raises:
            ConfigValidationError: 分支名为空或转换后为空
        """
        if not branch or not branch.strip():
            raise ConfigValidationError("Branch name cannot be empty")

        result = branch
        for char, replacement in self.CHAR_MAPPINGS.items():
            result = result.replace(char, replacement)
        result = self._INVALID_CHARS.sub('-', result)
        result = self._REPEATED_DASH.sub('-', result).strip('-')

        if not result or result in ('.', '..'):
            raise ConfigValidationError(
                f"Branch name '{branch}' cannot be mapped to a directory name"
            )
        return result

    def worktree_path(self, repo_root: Path, branch: str, repo_name: Optional[str] = None) -> Path:
        """按模板计算分支的 worktree 路径"""
        values: Dict[str, str] = {
            'repo': repo_name or Path(repo_root).name,
            'branch': self.sanitize(branch),
        }
        try:
            expanded = self.template.format(**values)
        except (KeyError, IndexError, ValueError) as e:
            raise ConfigValidationError(
                f"Invalid worktree-path template '{self.template}'",
                details=str(e),
            )

        path = Path(expanded).expanduser()
        if not path.is_absolute():
            path = Path(repo_root) / path
        path = Path(_normalize(path))

        logger.debug("Worktree path mapped", branch=branch, path=str(path))
        return path


def _normalize(path: Path) -> str:
    """折叠 .. 和 . 而不解析符号链接"""
    return os.path.normpath(str(path))
