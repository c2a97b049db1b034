"""提交信息生成

配置了 commit-generation.command 时，把提示词写入该命令的标准输入，
用其标准输出作为提交信息；命令失败时直接报错，不会退回默认信息。
未配置时使用固定的默认信息。
"""

import re
from pathlib import Path
from typing import List, Optional, Sequence

from wt.core.data_structures import CommitGenerationConfig
from wt.core.exceptions import CommitGenerationError
from wt.core.interfaces.executor import ICommandExecutor
from wt.core.interfaces.repository import IRepository
from wt.core.logger import get_logger

logger = get_logger("commit_message")

FALLBACK_COMMIT_MESSAGE = "WIP: Auto-commit before merge"

DEFAULT_TEMPLATE = """Format
- First line: <50 chars, present tense, describes WHAT and WHY (not HOW).
- Blank line after first line.
- Optional details with proper line breaks explaining context. Commits with more substantial changes should have more details.
- Return ONLY the formatted message without quotes, code blocks, or preamble.

Style
- Do not give normative statements or otherwise speculate on why the change was made.
- Broadly match the style of the previous commit messages.
  - For example, if they're in conventional commit format, use conventional commits; if they're not, don't use conventional commits.

The context contains:
- <git-diff> with the staged changes. This is the ONLY content you should base your message on.
- <git-info> with branch name and recent commit message titles for style reference ONLY. DO NOT use their content to inform your message.

---
The following is the context for your task:
---
<git-diff>
```
{git-diff}
```
</git-diff>

<git-info>
  <current-branch>{branch}</current-branch>
{recent-commits}
</git-info>
"""

_PLACEHOLDER_RE = re.compile(r"\{(git-diff|branch|recent-commits|repo)\}")

SQUASH_INSTRUCTION = (
    "Generate a conventional commit message (feat/fix/docs/style/refactor) that combines "
    "these changes into one cohesive message. Output only the commit message without any explanation."
)


def format_recent_commits(subjects: Sequence[str]) -> str:
    """把最近的提交标题包装成提示词片段，没有提交时为空字符串"""
    if not subjects:
        return ""
    lines = ["  <previous-commit-message-titles>"]
    for subject in subjects:
        lines.append(f"    <previous-commit-message-title>{subject}</previous-commit-message-title>")
    lines.append("  </previous-commit-message-titles>")
    return "\n".join(lines)


def expand_template(template: str, diff: str, branch: str, recent_commits: str, repo: str) -> str:
    """展开 {git-diff} {branch} {recent-commits} {repo} 变量

    只替换模板中的变量，代入的文本（例如 diff）中的同名占位符保持原样。
    """
    values = {
        "git-diff": diff,
        "branch": branch,
        "recent-commits": recent_commits,
        "repo": repo,
    }
    return _PLACEHOLDER_RE.sub(lambda m: values[m.group(1)], template)


class CommitMessageGenerator:
    """提交信息与 squash 信息生成器"""

    def __init__(
        self,
        config: CommitGenerationConfig,
        executor: ICommandExecutor,
        repository: IRepository,
    ):
        self.config = config
        self.executor = executor
        self.repository = repository

    def _load_template(self) -> str:
        if self.config.template is not None:
            template = self.config.template
        elif self.config.template_file is not None:
            path = Path(self.config.template_file).expanduser()
            try:
                template = path.read_text(encoding="utf-8")
            except OSError as e:
                raise CommitGenerationError(f"Failed to read template-file '{path}': {e}")
        else:
            template = DEFAULT_TEMPLATE

        if not template.strip():
            raise CommitGenerationError("Template is empty")
        return template

    def build_commit_prompt(self, worktree: Path) -> str:
        diff = self.repository.staged_diff(worktree)
        branch = self.repository.current_branch(worktree) or "HEAD"
        recent = self.repository.recent_subjects(worktree, count=5)
        repo_name = self.repository.repo_root().name or "repo"
        return expand_template(
            self._load_template(),
            diff=diff,
            branch=branch,
            recent_commits=format_recent_commits(recent),
            repo=repo_name,
        )

    def commit_message(self, worktree: Path) -> str:
        """为暂存区生成提交信息

        Raises:
            CommitGenerationError: 已配置命令但执行失败
        """
        if not self.config.is_configured:
            return FALLBACK_COMMIT_MESSAGE
        try:
            prompt = self.build_commit_prompt(worktree)
        except CommitGenerationError as e:
            raise self._failure(e.message)
        return self._run_llm(prompt, worktree)

    def squash_message(self, worktree: Path, target: str, subjects: List[str]) -> str:
        """为 squash 生成提交信息，subjects 按时间顺序排列"""
        if not self.config.is_configured:
            lines = [f"Squash commits from {target}", "", "Combined commits:"]
            lines.extend(f"- {subject}" for subject in subjects)
            return "\n".join(lines) + "\n"

        context = [
            f"Squashing commits on current branch since branching from {target}",
            "",
            "Commits being combined:",
        ]
        context.extend(f"- {subject}" for subject in subjects)
        prompt = "\n".join(context) + "\n\n\n" + SQUASH_INSTRUCTION
        return self._run_llm(prompt, worktree)

    def _run_llm(self, prompt: str, cwd: Optional[Path]) -> str:
        command = [self.config.command] + list(self.config.args)
        logger.debug("Running commit generation command", command=" ".join(command))
        result = self.executor.run(command, cwd=cwd, stdin=prompt)

        if not result.ok:
            detail = result.stderr.strip() or f"exit code {result.returncode}"
            raise self._failure(f"LLM command failed: {detail}")

        message = result.stdout.strip()
        if not message:
            raise self._failure("LLM returned empty message")
        logger.info("Commit message generated", length=len(message))
        return message

    def _failure(self, reason: str) -> CommitGenerationError:
        return CommitGenerationError(
            f"Commit generation command '{self.config.command}' failed: {reason}"
        )
