"""分支 / worktree 名称解析

把用户输入的名称解析为确切的分支身份。精确匹配总是优先；
只有 FUZZY 模式下才会尝试近似匹配，且近似匹配有歧义时拒绝猜测。

评分分为互不重叠的区间，保证前缀、子串匹配总是高于编辑距离匹配：

    完整名称前缀          [0.9, 1.0)
    路径片段前缀          [0.8, 0.9)   例如 "long" 匹配 feature/long-name
    子串                  [0.7, 0.8)
    SequenceMatcher 相似度  [0.0, 0.6]

区间内按覆盖率 len(输入)/len(候选) 最多加 0.1。
"""

import re
from difflib import SequenceMatcher
from typing import Iterable, List, Mapping, Optional, Tuple, Union

from wt.core.data_structures import (
    CandidateMap,
    MatchKind,
    ResolutionMode,
    ResolvedWorktree,
)
from wt.core.exceptions import Ambiguous, NotFound
from wt.core.logger import get_logger

logger = get_logger("name_resolver")

Candidates = Union[Mapping[str, object], Iterable[str]]

_SEGMENT_SEPARATORS = re.compile(r"[/\-_.]")


class NameResolver:
    """名称解析器

    纯函数式：相同输入总是得到相同输出，错误中的候选列表已排序。
    """

    ACCEPT_THRESHOLD = 0.45
    TIE_MARGIN = 0.05
    EDIT_DISTANCE_WEIGHT = 0.6

    def __init__(
        self,
        threshold: float = ACCEPT_THRESHOLD,
        tie_margin: float = TIE_MARGIN,
    ):
        self.threshold = threshold
        self.tie_margin = tie_margin

    def resolve(
        self,
        name: str,
        mode: ResolutionMode,
        candidate_set: Candidates,
    ) -> ResolvedWorktree:
        """解析名称

        Args:
            name: 用户输入的名称
            mode: 解析模式
            candidate_set: 分支名到 worktree 路径的映射，或分支名集合

        Returns:
            ResolvedWorktree

        Raises:
            NotFound: 没有匹配项
            Ambiguous: 模糊匹配存在并列候选
        """
        candidates = normalize_candidates(candidate_set)
        names = sorted(candidates)

        if name in candidates:
            logger.debug("Name resolved exactly", name=name)
            return ResolvedWorktree(
                branch=name,
                path=candidates[name],
                match_kind=MatchKind.EXACT,
                score=1.0,
            )

        if not name or not name.strip() or mode == ResolutionMode.STRICT:
            logger.debug("Name not found", name=name, mode=mode.value)
            raise NotFound(name, names)

        scored = self.rank(name, names)
        qualifying = [(c, s) for c, s in scored if s >= self.threshold]

        if not qualifying:
            logger.debug("No fuzzy candidate above threshold", name=name)
            raise NotFound(name, names)

        best, best_score = qualifying[0]
        ties = [c for c, s in qualifying if best_score - s < self.tie_margin]
        if len(ties) > 1:
            logger.info("Fuzzy resolution ambiguous", name=name, matches=ties)
            raise Ambiguous(name, ties)

        logger.info("Name resolved fuzzily", name=name, branch=best, score=round(best_score, 3))
        return ResolvedWorktree(
            branch=best,
            path=candidates[best],
            match_kind=MatchKind.FUZZY,
            score=best_score,
        )

    def rank(self, name: str, names: Iterable[str]) -> List[Tuple[str, float]]:
        """按得分降序（同分按名称）排列候选项"""
        scored = [(candidate, self.score(name, candidate)) for candidate in names]
        scored.sort(key=lambda item: (-item[1], item[0]))
        return scored

    def score(self, typed: str, candidate: str) -> float:
        """计算输入与候选项的相似度，范围 [0, 1)"""
        typed = typed.strip().lower()
        full = candidate.lower()
        if not typed or not full:
            return 0.0

        coverage = min(len(typed) / len(full), 1.0) * 0.1 * 0.999

        if full.startswith(typed):
            return 0.9 + coverage
        if any(segment.startswith(typed) for segment in _segments(full)):
            return 0.8 + coverage
        if typed in full:
            return 0.7 + coverage

        ratio = SequenceMatcher(a=typed, b=full).ratio()
        return ratio * self.EDIT_DISTANCE_WEIGHT


def _segments(name: str) -> List[str]:
    """按分隔符切出的每个片段起点之后的剩余字符串"""
    suffixes = []
    for match in _SEGMENT_SEPARATORS.finditer(name):
        rest = name[match.end():]
        if rest:
            suffixes.append(rest)
    return suffixes


def normalize_candidates(candidate_set: Candidates) -> CandidateMap:
    """把候选集合统一成 {分支名: 路径或 None}"""
    if isinstance(candidate_set, Mapping):
        return {str(k): v for k, v in candidate_set.items()}  # type: ignore[misc]
    return {str(name): None for name in candidate_set}


_default_resolver: Optional[NameResolver] = None


def resolve(name: str, mode: ResolutionMode, candidate_set: Candidates) -> ResolvedWorktree:
    """使用默认参数的解析入口"""
    global _default_resolver
    if _default_resolver is None:
        _default_resolver = NameResolver()
    return _default_resolver.resolve(name, mode, candidate_set)
