"""Hook 命令授权记录

授权以命令文本的 sha256 指纹为准：命令文本只要改动一个字符，
原有授权就失效，需要重新确认。

记录保存在用户配置文件中：

    projects:
      github.com/owner/repo:
        approved-commands:
          post-create:
            install:
              command: npm ci
              fingerprint: sha256:...
"""

import hashlib
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from wt.core.config_manager import ConfigManager
from wt.core.data_structures import HookStageName
from wt.core.logger import get_logger

logger = get_logger("approval_store")

APPROVALS_KEY = "approved-commands"

# {stage: {command_name: {"command": ..., "fingerprint": ...}}}
ApprovalTable = Dict[str, Dict[str, Dict[str, str]]]


def fingerprint(command_text: str) -> str:
    """命令文本的内容指纹"""
    return "sha256:" + hashlib.sha256(command_text.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class ApprovedCommandRecord:
    """一条授权记录"""
    project: str
    stage: str
    name: str
    command: str
    fingerprint: str


def _child_dict(parent: Dict[str, Any], key: str) -> Dict[str, Any]:
    """取出 key 对应的映射，缺失或不是映射时替换为空映射"""
    value = parent.get(key)
    if not isinstance(value, dict):
        value = parent[key] = {}
    return value


class ApprovalStore:
    """按项目保存的命令授权

    所有修改都在配置文件的排他锁内完成读-改-写，
    并发的授权操作不会互相覆盖。
    """

    def __init__(self, config_manager: ConfigManager):
        self.config_manager = config_manager

    def load(self) -> Dict[str, ApprovalTable]:
        """从磁盘读取所有项目的授权表"""
        config = self.config_manager.reload()
        tables = {}
        for project, section in (config.get("projects") or {}).items():
            if isinstance(section, dict) and isinstance(section.get(APPROVALS_KEY), dict):
                tables[project] = section[APPROVALS_KEY]
        return tables

    def save(self, tables: Dict[str, ApprovalTable]) -> None:
        """用给定内容整体替换所有项目的授权表"""
        def mutate(raw: Dict[str, Any]) -> None:
            projects = raw.setdefault("projects", {})
            for project in list(projects):
                section = projects[project]
                if isinstance(section, dict):
                    section.pop(APPROVALS_KEY, None)
                    if not section:
                        del projects[project]
            for project, table in tables.items():
                if table:
                    projects.setdefault(project, {})[APPROVALS_KEY] = table

        self.config_manager.update(mutate)

    def _table(self, project: str) -> ApprovalTable:
        table = self.load().get(project, {})
        return {stage: commands for stage, commands in table.items() if isinstance(commands, dict)}

    def is_approved(self, project: str, stage: str, command_name: str, command_text: str) -> bool:
        """授权存在且指纹与当前命令文本一致"""
        entry = self._table(project).get(stage, {}).get(command_name)
        if not isinstance(entry, dict):
            return False
        approved = entry.get("fingerprint") == fingerprint(command_text)
        if not approved:
            logger.info(
                "Stored approval does not match command",
                project=project,
                stage=stage,
                command=command_name,
            )
        return approved

    def record_approval(self, project: str, stage: str, command_name: str, command_text: str) -> ApprovedCommandRecord:
        """记录（或覆盖）一条授权"""
        record = ApprovedCommandRecord(
            project=project,
            stage=stage,
            name=command_name,
            command=command_text,
            fingerprint=fingerprint(command_text),
        )

        def mutate(raw: Dict[str, Any]) -> None:
            projects = _child_dict(raw, "projects")
            table = _child_dict(_child_dict(projects, project), APPROVALS_KEY)
            _child_dict(table, stage)[command_name] = {
                "command": record.command,
                "fingerprint": record.fingerprint,
            }

        self.config_manager.update(mutate)
        logger.info("Command approved", project=project, stage=stage, command=command_name)
        return record

    def list_approvals(self, project: str) -> List[ApprovedCommandRecord]:
        """按阶段、命令名排序的授权列表"""
        order = {name: i for i, name in enumerate(HookStageName.ALL)}
        records = []
        for stage, commands in self._table(project).items():
            for name, entry in (commands or {}).items():
                if not isinstance(entry, dict):
                    continue
                records.append(
                    ApprovedCommandRecord(
                        project=project,
                        stage=stage,
                        name=str(name),
                        command=entry.get("command", ""),
                        fingerprint=entry.get("fingerprint", ""),
                    )
                )
        records.sort(key=lambda r: (order.get(r.stage, len(order)), r.stage, r.name))
        return records

    def revoke(self, project: str, stage: Optional[str] = None) -> int:
        """撤销项目的全部授权或某个阶段的授权，返回撤销的条数"""
        removed = []

        def mutate(raw: Dict[str, Any]) -> None:
            section = (raw.get("projects") or {}).get(project)
            if not isinstance(section, dict):
                return
            table = section.get(APPROVALS_KEY)
            if not isinstance(table, dict):
                table = {}
            stages = [stage] if stage else list(table)
            for name in stages:
                commands = table.pop(name, None)
                if isinstance(commands, dict):
                    removed.extend(commands.keys())
            if not table:
                section.pop(APPROVALS_KEY, None)
            if not section:
                raw["projects"].pop(project, None)

        self.config_manager.update(mutate)
        logger.info("Approvals revoked", project=project, stage=stage, count=len(removed))
        return len(removed)
