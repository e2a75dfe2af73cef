"""Edit-distance based string similarity used for redundancy detection."""

import logging
from typing import List, Sequence

from .models import Priority, Topic

logger = logging.getLogger(__name__)


class SimilarityScorer:
    """Normalized Levenshtein similarity between short strings such as titles."""

    def __init__(self, merge_threshold: float = 0.6, min_stem_length: int = 4):
        """
        Initialize the similarity scorer.

        Args:
            merge_threshold: Similarity above which two titles are considered redundant
            min_stem_length: Minimum length of a shared leading-word stem
        """
        self.merge_threshold = merge_threshold
        self.min_stem_length = min_stem_length

    def edit_distance(self, first: str, second: str) -> int:
        """
        Compute the Levenshtein distance between two strings.

        Classic dynamic programming over a (len(second) + 1) x (len(first) + 1)
        matrix. Row 0 and column 0 hold the distance to the empty prefix; every
        other cell is the minimum of deletion (left + 1), insertion (up + 1)
        and substitution (diagonal + 0 if the characters match, else + 1).

        Args:
            first: First string
            second: Second string

        Returns:
            Minimum number of single-character edits turning one string into the other
        """
        matrix = [[0] * (len(first) + 1) for _ in range(len(second) + 1)]

        for i in range(len(first) + 1):
            matrix[0][i] = i
        for j in range(len(second) + 1):
            matrix[j][0] = j

        for j in range(1, len(second) + 1):
            for i in range(1, len(first) + 1):
                indicator = 0 if first[i - 1] == second[j - 1] else 1
                matrix[j][i] = min(
                    matrix[j][i - 1] + 1,
                    matrix[j - 1][i] + 1,
                    matrix[j - 1][i - 1] + indicator,
                )

        return matrix[len(second)][len(first)]

    def calculate_string_similarity(self, first: str, second: str) -> float:
        """
        Similarity in [0, 1]: 1 - edit_distance(longer, shorter) / len(longer).

        Two empty strings are identical and score 1.0.
        """
        longer, shorter = (first, second) if len(first) > len(second) else (second, first)

        if len(longer) == 0:
            return 1.0

        return (len(longer) - self.edit_distance(longer, shorter)) / len(longer)

    def titles_similar(self, first: str, second: str) -> bool:
        """
        Check whether two titles describe overlapping content.

        Titles are compared case-insensitively. They are similar when their
        similarity exceeds the merge threshold, or when the leading word of one
        is an abbreviation of the other's leading word ("Math" / "Mathematics").

        The abbreviation rule is a plain prefix test on the leading words, so it
        also pairs titles such as "Data Structures" and "Database Design".
        Those are reported as merge candidates for review, not merged.
        """
        first = first.strip().lower()
        second = second.strip().lower()

        if self.calculate_string_similarity(first, second) > self.merge_threshold:
            return True

        first_words = first.split()
        second_words = second.split()
        if not first_words or not second_words:
            return False

        lead_a, lead_b = first_words[0], second_words[0]
        stem, word = (lead_a, lead_b) if len(lead_a) <= len(lead_b) else (lead_b, lead_a)
        return (
            self.min_stem_length <= len(stem) < len(word)
            and word.startswith(stem)
        )

    def find_mergeable_topics(self, topics: Sequence[Topic]) -> List[str]:
        """
        Find topics that could be merged with another topic in the sequence.

        High-priority topics are never merge candidates.

        Args:
            topics: Topics to compare pairwise

        Returns:
            Ids of mergeable topics in first-seen order, without duplicates
        """
        candidates: List[str] = []

        for i, topic_a in enumerate(topics):
            for topic_b in topics[i + 1:]:
                if topic_a.priority == Priority.HIGH or topic_b.priority == Priority.HIGH:
                    continue
                if not self.titles_similar(topic_a.title, topic_b.title):
                    continue

                logger.debug(f"Merge candidates: '{topic_a.title}' and '{topic_b.title}'")
                for topic_id in (topic_a.id, topic_b.id):
                    if topic_id not in candidates:
                        candidates.append(topic_id)

        return candidates
