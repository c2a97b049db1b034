"""CLI 工具包导出"""

from .formatting import OutputFormatter, FormatterConfig, Color, formatter_from_context
from .interactive import InteractivePrompt, is_interactive
from .project_utils import (
    RepoNotFoundError,
    Session,
    find_repo_root,
    open_session,
)

__all__ = [
    'OutputFormatter',
    'FormatterConfig',
    'Color',
    'formatter_from_context',
    'InteractivePrompt',
    'is_interactive',
    'RepoNotFoundError',
    'Session',
    'find_repo_root',
    'open_session',
]
