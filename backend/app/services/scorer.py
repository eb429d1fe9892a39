"""
Relevance Scorer — Decides which agent speaks first in a debate.

WHAT THIS DOES:
Gives every agent a score in [0, 1] for a user message. Higher score = the
message is closer to that agent's persona, so it speaks earlier.

HOW IT WORKS:
1. Each agent has a fixed keyword list for its persona
2. Count how many distinct keywords appear in the message (substring, case-sensitive)
3. Base score 0.3 + 0.1 per matched keyword, capped at 1.0
4. Add a random perturbation in [-0.1, +0.1] and clamp to [0, 1]

This is a keyword heuristic, not an NLP model. The random source is injected
so tests can pin it.

USAGE:
    scorer = RelevanceScorer(rng=random.Random(42))
    scorer.score("这幅画的色彩和构图", "Art Critic")    # ~0.5
    scorer.rank("这幅画的色彩和构图", ["Art Historian", "Art Critic"])
    # [("Art Critic", 0.53), ("Art Historian", 0.31)]
"""

import logging
import random
from typing import Optional

from app.services.debate.protocols import BaseScorer

logger = logging.getLogger(__name__)

BASE_SCORE = 0.3
KEYWORD_WEIGHT = 0.1
PERTURBATION = 0.1
FALLBACK_SCORE = 0.5

AGENT_KEYWORDS: dict[str, list[str]] = {
    "Art Critic": ["评价", "批评", "风格", "评论", "鉴赏", "美学", "艺术性", "表现力", "构图", "色彩"],
    "Art Historian": ["历史", "年代", "时期", "流派", "背景", "演变", "影响", "传统", "文化", "年份"],
    "Art Theorist": ["理论", "概念", "原理", "学派", "思想", "哲学", "意义", "符号", "解读", "分析"],
    "Art Collector": ["收藏", "价值", "市场", "拍卖", "投资", "真伪", "保存", "修复", "珍品", "稀有"],
    "Painter": ["技法", "材料", "笔触", "线条", "创作", "灵感", "表达", "画布", "颜料", "光影"],
    "General Audience": ["感受", "喜欢", "印象", "情感", "联想", "美丽", "有趣", "吸引", "故事", "想象"],
}


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return min(max(value, low), high)


class RelevanceScorer(BaseScorer):
    """Keyword-count relevance heuristic with a pluggable random source."""

    def __init__(
        self,
        keywords: Optional[dict[str, list[str]]] = None,
        rng: Optional[random.Random] = None,
    ):
        self.keywords = AGENT_KEYWORDS if keywords is None else keywords
        self.rng = rng or random.Random()

    def count_matches(self, message: str, agent_name: str) -> int:
        """Number of distinct persona keywords found in the message."""
        return sum(1 for keyword in self.keywords.get(agent_name, []) if keyword in message)

    def score(self, message: str, agent_name: str) -> float:
        """
        Score one agent against a message.

        Never raises: any failure falls back to 0.5.
        """
        try:
            base = min(BASE_SCORE + self.count_matches(message, agent_name) * KEYWORD_WEIGHT, 1.0)
            return _clamp(base + self.rng.uniform(-PERTURBATION, PERTURBATION))
        except Exception as e:
            logger.warning(f"Scoring failed for {agent_name}, using fallback: {e}")
            return FALLBACK_SCORE

