"""基于文件的排他锁与原子写入

持久化状态（授权记录、合并状态）都通过 "加锁 → 读取 → 修改 → 写回 → 释放"
的方式更新。锁加在旁路的 .lock 文件上，数据文件用临时文件 + os.replace
原子替换，因此替换不会影响锁的身份。
"""

import os
import sys
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

if sys.platform == "win32":
    import msvcrt
else:  # pragma: no cover - platform-specific
    import fcntl

from wt.core.logger import get_logger

logger = get_logger("file_lock")


def lock_path_for(path: Path) -> Path:
    """数据文件对应的锁文件路径"""
    path = Path(path)
    return path.with_name(path.name + ".lock")


@contextmanager
def exclusive_lock(path: Path) -> Iterator[Path]:
    """对 path 加排他锁，阻塞直到获得

    Args:
        path: 被保护的数据文件路径（锁加在 <path>.lock 上）
    """
    lock_file = lock_path_for(path)
    lock_file.parent.mkdir(parents=True, exist_ok=True)

    with open(lock_file, "a+", encoding="utf-8") as handle:
        if sys.platform == "win32":
            msvcrt.locking(handle.fileno(), msvcrt.LK_LOCK, 1)
        else:  # pragma: no cover - platform-specific
            try:
                fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError:
                logger.debug("Waiting for lock", path=str(lock_file))
                fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
        try:
            yield Path(path)
        finally:
            if sys.platform == "win32":
                msvcrt.locking(handle.fileno(), msvcrt.LK_UNLCK, 1)
            else:  # pragma: no cover - platform-specific
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)


def atomic_write_text(path: Path, content: str) -> None:
    """原子地写入文本文件"""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise
