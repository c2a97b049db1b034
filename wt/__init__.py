"""wt - Git Worktree 工作流管理工具"""

__version__ = "0.1.0"
