"""候補マージ・スコア補正・重複除去

ソースごとの候補リストを連結し、ソース種別の倍率を適用して大文字小文字を区別せずに
重複を除去する。ソートはしない（ランキングはアグリゲータの責務）。
"""

import logging
from dataclasses import replace

from suggestion_service.models.suggestion import (
    DuplicatePolicy,
    SuggestionCandidate,
    profile_for,
)

logger = logging.getLogger(__name__)


def apply_multiplier(candidate: SuggestionCandidate) -> SuggestionCandidate:
    """ソース種別の倍率を適用した新しい候補を返す"""
    multiplier = profile_for(candidate.source_type).multiplier
    return replace(candidate, score=candidate.score * multiplier)


class SuggestionMerger:
    """候補マージャー

    入力リストはディスパッチ優先度順に並んでいる前提。FIRST_SEEN では先に現れた候補が
    勝ち、HIGHEST_SCORE では補正後スコアが高い候補が最初の出現位置を引き継ぐ。
    """

    def __init__(self, policy: DuplicatePolicy = DuplicatePolicy.FIRST_SEEN):
        self.policy = policy

    def merge(
        self, candidate_lists: list[list[SuggestionCandidate]]
    ) -> list[SuggestionCandidate]:
        """候補リストを連結・補正・重複除去"""
        scored = [
            apply_multiplier(candidate)
            for candidates in candidate_lists
            for candidate in candidates
        ]
        return self.deduplicate(scored)

    def deduplicate(
        self, candidates: list[SuggestionCandidate]
    ) -> list[SuggestionCandidate]:
        """大文字小文字を区別しない重複除去（出現順を維持）"""
        unique: dict[str, SuggestionCandidate] = {}
        for candidate in candidates:
            existing = unique.get(candidate.key)
            if existing is None:
                unique[candidate.key] = candidate
            elif (
                self.policy == DuplicatePolicy.HIGHEST_SCORE
                and candidate.score > existing.score
            ):
                # dict は挿入順を保持するので位置は最初の出現のまま
                unique[candidate.key] = candidate

        dropped = len(candidates) - len(unique)
        if dropped:
            logger.debug(f"Dropped {dropped} duplicate suggestions")
        return list(unique.values())
