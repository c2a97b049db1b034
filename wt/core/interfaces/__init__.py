"""wt 核心模块接口定义"""

from .repository import IRepository
from .executor import ICommandExecutor

__all__ = [
    'IRepository',
    'ICommandExecutor',
]
