"""Space budget calculation and priority-tiered greedy allocation."""

import logging
import math
from typing import Dict, List, Optional, Sequence, Tuple

from .models import (
    FONT_DENSITIES,
    PAGE_DIMENSIONS,
    PRIORITY_RANK,
    PRIORITY_SCORES,
    PRIORITY_SPACE_WEIGHTS,
    AllocationConfig,
    FontSize,
    LayoutPattern,
    OrganizationStyle,
    PageSize,
    Priority,
    ReferenceFormatAnalysis,
    SpaceConstraints,
    SpaceOptimizationResult,
    SpaceSuggestion,
    SpaceUtilizationInfo,
    SubTopic,
    SubtopicSelection,
    SuggestionType,
    Topic,
    TopicSelection,
    UtilizationStatus,
)

logger = logging.getLogger(__name__)

# Constraints used to size topics when no output layout is known
BASELINE_CONSTRAINTS = SpaceConstraints(
    available_pages=1,
    page_size=PageSize.A4,
    font_size=FontSize.MEDIUM,
    columns=1,
    target_utilization=0.85,
)

LOW_PRIORITY_BACKFILL_MIN = 100
FINE_TUNE_MIN = 50

# Remaining space needed before suggesting additions or expansions
ADD_SUGGESTION_MIN_REMAINING = 50
EXPAND_SUGGESTION_MIN_REMAINING = 100

# Hierarchical references need more room per topic, flat ones less
TOPIC_COUNT_FACTORS: Dict[OrganizationStyle, float] = {
    OrganizationStyle.HIERARCHICAL: 0.9,
    OrganizationStyle.FLAT: 1.1,
}

REFERENCE_BUFFER_SPACE: Dict[OrganizationStyle, float] = {
    OrganizationStyle.HIERARCHICAL: 0.15,
    OrganizationStyle.FLAT: 0.05,
}

MULTI_COLUMN_EXTRA_BUFFER = 0.05


class SpaceCalculationService:
    """Converts layouts into space budgets and selects content that fits them."""

    def __init__(self, config: Optional[AllocationConfig] = None):
        """
        Initialize the space calculation service.

        Args:
            config: Tunable constants for estimation and allocation
        """
        self.config = config or AllocationConfig()

        logger.info("SpaceCalculationService initialized")

    def calculate_available_space(self, constraints: SpaceConstraints) -> int:
        """
        Calculate the space budget for a page configuration.

        Args:
            constraints: Physical output target

        Returns:
            Available space in space units (approximately characters)
        """
        width, height = PAGE_DIMENSIONS[constraints.page_size]
        total_page_area = width * height * constraints.available_pages
        usable_area = total_page_area * self.config.margin_factor
        column_adjusted_area = usable_area * (
            self.config.column_spacing_factor ** (constraints.columns - 1)
        )
        font_density = FONT_DENSITIES[constraints.font_size]

        available_space = math.floor(column_adjusted_area * font_density)
        logger.debug(
            f"Available space for {constraints.available_pages} {constraints.page_size.value} page(s), "
            f"{constraints.columns} column(s), {constraints.font_size.value} font: {available_space}"
        )
        return available_space

    def estimate_content_space(self, content: str, constraints: SpaceConstraints) -> int:
        """Estimate the space a piece of text consumes, including formatting overhead."""
        character_count = len(content) * self.config.formatting_overhead

        if constraints.columns > 1:
            character_count *= self.config.multi_column_overhead

        return math.ceil(character_count)

    def estimate_subtopic_space(self, subtopic: SubTopic, constraints: SpaceConstraints) -> int:
        space = self.estimate_content_space(subtopic.content, constraints)
        return space + self.config.subtopic_title_overhead

    def estimate_topic_space(self, topic: Topic, constraints: SpaceConstraints) -> int:
        """
        Estimate the space for a complete topic.

        Includes the topic body, its title, every subtopic and a flat allowance
        per example image.
        """
        total_space = self.estimate_content_space(topic.content, constraints)
        total_space += self.config.topic_title_overhead

        for subtopic in topic.subtopics:
            total_space += self.estimate_subtopic_space(subtopic, constraints)

        total_space += len(topic.examples) * self.config.example_space
        return total_space

    def calculate_utilization(self, used_space: float, available_space: float) -> float:
        """
        Ratio of used to available space.

        A zero or negative budget can never be satisfied; it reports the
        configured overflow sentinel instead of dividing by zero.
        """
        if available_space <= 0:
            logger.warning(
                f"Non-positive space budget ({available_space}); reporting overflow sentinel"
            )
            return self.config.overflow_sentinel
        return used_space / available_space

    def classify_utilization(self, utilization: float) -> UtilizationStatus:
        if utilization > self.config.overflow_threshold:
            return UtilizationStatus.OVERFLOWING
        if utilization < self.config.underfilled_threshold:
            return UtilizationStatus.UNDERFILLED
        return UtilizationStatus.BALANCED

    def calculate_optimal_topic_count(
        self,
        available_space: int,
        topics: Sequence[Topic],
        reference_analysis: Optional[ReferenceFormatAnalysis] = None,
        target_utilization: Optional[float] = None
    ) -> int:
        """
        Calculate how many topics the budget can hold.

        Args:
            available_space: Space budget
            topics: Candidate topics
            reference_analysis: Optional reference document statistics
            target_utilization: Fraction of the budget to fill without a
                reference; defaults to the configured target

        Returns:
            Topic count clamped to [1, len(topics)], or 0 when there are no topics
        """
        if not topics:
            return 0

        if reference_analysis:
            reference_ratio = available_space / reference_analysis.content_density
            scaled_count = math.floor(reference_analysis.topic_count * reference_ratio)
            adjustment_factor = TOPIC_COUNT_FACTORS[reference_analysis.organization_style]

            adjusted_count = math.floor(scaled_count * adjustment_factor)
            return min(max(adjusted_count, 1), len(topics))

        weighted_total = sum(
            self.estimate_topic_space(topic, BASELINE_CONSTRAINTS) * PRIORITY_SPACE_WEIGHTS[topic.priority]
            for topic in topics
        )
        weighted_average_space = weighted_total / len(topics)
        if target_utilization is None:
            target_utilization = self.config.target_utilization

        optimal_count = math.floor(available_space * target_utilization / weighted_average_space)
        return min(max(optimal_count, 1), len(topics))

    def optimize_space_utilization(
        self,
        topics: Sequence[Topic],
        available_space: int,
        reference_analysis: Optional[ReferenceFormatAnalysis] = None,
        target_utilization: Optional[float] = None
    ) -> SpaceOptimizationResult:
        """
        Select topics and subtopics with a four-phase greedy allocation.

        1. Mandatory: high-priority topics with their high-priority subtopics,
           while usage stays within the budget minus a buffer.
        2. Fill: medium-priority topics with their medium-priority subtopics,
           while usage stays within the target utilization.
        3. Backfill: best-scoring low-priority topics packed into the remainder,
           if more than 100 units are left.
        4. Fine-tune: unselected subtopics of selected topics, highest priority
           first, if at least 50 units are left.

        Args:
            topics: Candidate topics with estimated spaces
            available_space: Space budget
            reference_analysis: Optional reference document statistics
            target_utilization: Fill-phase target without a reference;
                defaults to the configured target

        Returns:
            SpaceOptimizationResult with the selection and follow-up suggestions
        """
        buffer_space = self._buffer_space(reference_analysis)
        fill_target = self._fill_target(available_space, reference_analysis, target_utilization)

        scored_topics = sorted(
            ((topic, self.calculate_topic_score(topic, reference_analysis)) for topic in topics),
            key=lambda item: item[1],
            reverse=True,
        )

        recommended_topics: List[str] = []
        recommended_subtopics: Dict[str, List[str]] = {}
        used_space = 0.0

        # Phase 1: mandatory high-priority content
        mandatory_limit = available_space * (1 - buffer_space)
        for topic, _ in scored_topics:
            if topic.priority != Priority.HIGH:
                continue
            topic_space = self._topic_space_for_tier(topic, Priority.HIGH)
            if used_space + topic_space <= mandatory_limit:
                recommended_topics.append(topic.id)
                recommended_subtopics[topic.id] = self._subtopic_ids_for_tier(topic, Priority.HIGH)
                used_space += topic_space
            else:
                logger.debug(f"High-priority topic '{topic.id}' ({topic_space}) exceeds mandatory limit")

        # Phase 2: fill with medium-priority content
        fill_limit = available_space * fill_target
        for topic, _ in scored_topics:
            if topic.priority != Priority.MEDIUM or topic.id in recommended_subtopics:
                continue
            topic_space = self._topic_space_for_tier(topic, Priority.MEDIUM)
            if used_space + topic_space <= fill_limit:
                recommended_topics.append(topic.id)
                recommended_subtopics[topic.id] = self._subtopic_ids_for_tier(topic, Priority.MEDIUM)
                used_space += topic_space

        # Phase 3: low-priority backfill
        remaining_space = available_space - used_space
        if remaining_space > LOW_PRIORITY_BACKFILL_MIN:
            low_priority = [
                item for item in scored_topics
                if item[0].priority == Priority.LOW and item[0].id not in recommended_subtopics
            ]
            for topic, topic_space in self._find_low_priority_fit(low_priority, remaining_space):
                recommended_topics.append(topic.id)
                recommended_subtopics[topic.id] = self._subtopic_ids_for_tier(topic, Priority.LOW)
                used_space += topic_space

        # Phase 4: fine-tune with individual subtopics
        remaining_space = available_space - used_space
        if remaining_space >= FINE_TUNE_MIN:
            used_space += self._add_optimal_subtopics(
                topics, recommended_topics, recommended_subtopics, remaining_space
            )

        utilization_score = self.calculate_utilization(used_space, available_space)

        result = SpaceOptimizationResult(
            recommended_topics=recommended_topics,
            recommended_subtopics=[
                SubtopicSelection(topic_id=topic_id, subtopic_ids=recommended_subtopics[topic_id])
                for topic_id in recommended_topics
            ],
            utilization_score=utilization_score,
            suggestions=[],
            estimated_final_utilization=min(utilization_score, 1.0),
        )

        selection = self.build_topic_selections(topics, result)
        result.suggestions = self.generate_space_suggestions(selection, available_space, topics)

        logger.info(
            f"Space optimization selected {len(recommended_topics)} of {len(topics)} topics "
            f"({used_space:.0f}/{available_space} units, {utilization_score:.1%})"
        )
        return result

    def calculate_topic_score(
        self,
        topic: Topic,
        reference_analysis: Optional[ReferenceFormatAnalysis] = None
    ) -> float:
        """
        Composite ranking score for allocation.

        0.4 x priority + 0.25 x confidence + subtopic and example richness,
        plus 0.15 x length alignment with the reference when one is given.
        """
        priority_score = PRIORITY_SCORES[topic.priority]
        subtopic_score = min(0.2, len(topic.subtopics) * 0.05)
        example_score = min(0.1, len(topic.examples) * 0.03)

        reference_score = 0.0
        if reference_analysis:
            topic_length = len(topic.content)
            ideal_length = reference_analysis.average_topic_length
            length_alignment = 1 - abs(topic_length - ideal_length) / max(topic_length, ideal_length)
            reference_score = length_alignment * 0.15

        return (
            priority_score * 0.4
            + topic.confidence * 0.25
            + subtopic_score
            + example_score
            + reference_score
        )

    def calculate_fit_score(self, topic: Topic, remaining_space: float) -> float:
        """Score how well an unselected topic fills the remaining space."""
        priority_score = PRIORITY_SCORES[topic.priority]
        space_efficiency = min(1.0, remaining_space / (topic.estimated_space or 1))
        subtopic_bonus = 0.1 if topic.subtopics else 0.0

        return priority_score * 0.4 + space_efficiency * 0.3 + topic.confidence * 0.2 + subtopic_bonus

    def build_topic_selections(
        self,
        topics: Sequence[Topic],
        result: SpaceOptimizationResult
    ) -> List[TopicSelection]:
        """
        Convert an optimization result into topic selections.

        Each selection's space is the topic's own space plus that of its
        recommended subtopics.
        """
        topics_by_id = {topic.id: topic for topic in topics}
        selections = []

        for topic_id in result.recommended_topics:
            topic = topics_by_id.get(topic_id)
            if topic is None:
                continue
            subtopic_ids = result.subtopics_for(topic_id)
            subtopic_space = sum(
                subtopic.estimated_space for subtopic in topic.subtopics if subtopic.id in subtopic_ids
            )
            selections.append(TopicSelection(
                topic_id=topic_id,
                subtopic_ids=subtopic_ids,
                priority=topic.priority,
                estimated_space=topic.estimated_space + subtopic_space,
            ))

        return selections

    def generate_space_suggestions(
        self,
        current_selection: Sequence[TopicSelection],
        available_space: int,
        all_topics: Sequence[Topic]
    ) -> List[SpaceSuggestion]:
        """
        Suggest adding, expanding or removing content based on utilization.

        Args:
            current_selection: Currently selected topics
            available_space: Space budget
            all_topics: Every candidate topic

        Returns:
            At most five suggestions, most useful first
        """
        suggestions: List[SpaceSuggestion] = []
        used_space = sum(selection.estimated_space for selection in current_selection)
        remaining_space = available_space - used_space
        utilization = self.calculate_utilization(used_space, available_space)

        topics_by_id = {topic.id: topic for topic in all_topics}
        selected_ids = {selection.topic_id for selection in current_selection}

        if utilization < self.config.underfilled_threshold and remaining_space > ADD_SUGGESTION_MIN_REMAINING:
            candidates = [
                topic for topic in all_topics
                if topic.id not in selected_ids and topic.estimated_space <= remaining_space
            ]
            candidates.sort(key=lambda topic: self.calculate_fit_score(topic, remaining_space), reverse=True)

            for topic in candidates[:3]:
                suggestions.append(SpaceSuggestion(
                    type=SuggestionType.ADD_TOPIC,
                    target_id=topic.id,
                    description=(
                        f'Add "{topic.title}" ({topic.priority.value} priority) '
                        f"to better utilize available space"
                    ),
                    space_impact=topic.estimated_space,
                ))

            for selection in current_selection:
                topic = topics_by_id.get(selection.topic_id)
                if topic is None:
                    continue
                unselected = [
                    subtopic for subtopic in topic.subtopics
                    if subtopic.id not in selection.subtopic_ids
                    and subtopic.estimated_space <= remaining_space
                ]
                unselected.sort(key=lambda subtopic: PRIORITY_RANK[subtopic.priority], reverse=True)

                for subtopic in unselected[:2]:
                    if len(suggestions) < self.config.max_suggestions:
                        suggestions.append(SpaceSuggestion(
                            type=SuggestionType.ADD_SUBTOPIC,
                            target_id=subtopic.id,
                            description=f'Add subtopic "{subtopic.title}" from {topic.title}',
                            space_impact=subtopic.estimated_space,
                        ))

        elif (
            self.config.underfilled_threshold <= utilization < self.config.balanced_upper_threshold
            and remaining_space > EXPAND_SUGGESTION_MIN_REMAINING
        ):
            selected_topics = [
                topics_by_id[selection.topic_id]
                for selection in current_selection if selection.topic_id in topics_by_id
            ]
            for topic in selected_topics[:2]:
                suggestions.append(SpaceSuggestion(
                    type=SuggestionType.EXPAND_CONTENT,
                    target_id=topic.id,
                    description=f'Consider expanding "{topic.title}" with additional details',
                    space_impact=min(remaining_space * 0.3, 150),
                ))

        elif utilization > self.config.overflow_threshold:
            suggestions.extend(self._removal_suggestions(
                current_selection, topics_by_id, max(used_space - available_space, 0)
            ))

        return suggestions[:self.config.max_suggestions]

    def calculate_space_utilization(
        self,
        selected_topics: Sequence[TopicSelection],
        available_space: int,
        all_topics: Sequence[Topic]
    ) -> SpaceUtilizationInfo:
        """Summarize how a selection uses the budget."""
        used_space = sum(selection.estimated_space for selection in selected_topics)

        return SpaceUtilizationInfo(
            total_available_space=available_space,
            used_space=used_space,
            remaining_space=max(0, available_space - used_space),
            utilization_percentage=self.calculate_utilization(used_space, available_space),
            suggestions=self.generate_space_suggestions(selected_topics, available_space, all_topics),
        )

    def _buffer_space(self, reference_analysis: Optional[ReferenceFormatAnalysis]) -> float:
        if not reference_analysis:
            return self.config.buffer_space

        buffer_space = REFERENCE_BUFFER_SPACE[reference_analysis.organization_style]
        if reference_analysis.layout_pattern == LayoutPattern.MULTI_COLUMN:
            buffer_space += MULTI_COLUMN_EXTRA_BUFFER

        return buffer_space

    def _fill_target(
        self,
        available_space: int,
        reference_analysis: Optional[ReferenceFormatAnalysis],
        target_utilization: Optional[float] = None
    ) -> float:
        if not reference_analysis or available_space <= 0:
            if target_utilization is None:
                return self.config.target_utilization
            return target_utilization

        density_ratio = reference_analysis.content_density / available_space
        return min(0.95, max(0.7, density_ratio))

    def _topic_space_for_tier(self, topic: Topic, tier: Priority) -> float:
        """Topic space plus the space of its subtopics in the given priority tier."""
        return topic.estimated_space + sum(
            subtopic.estimated_space for subtopic in topic.subtopics if subtopic.priority == tier
        )

    def _subtopic_ids_for_tier(self, topic: Topic, tier: Priority) -> List[str]:
        return [subtopic.id for subtopic in topic.subtopics if subtopic.priority == tier]

    def _find_low_priority_fit(
        self,
        low_priority_topics: List[Tuple[Topic, float]],
        remaining_space: float
    ) -> List[Tuple[Topic, float]]:
        """
        Pack low-priority topics into the remaining space, best score first.

        Args:
            low_priority_topics: (topic, score) pairs sorted by descending score
            remaining_space: Space left after the earlier phases

        Returns:
            (topic, space) pairs that fit together
        """
        candidates = [
            (topic, self._topic_space_for_tier(topic, Priority.LOW), score)
            for topic, score in low_priority_topics
        ]
        candidates = [item for item in candidates if item[1] <= remaining_space]
        candidates.sort(key=lambda item: item[2], reverse=True)

        fitting = []
        used_space = 0.0
        for topic, topic_space, _ in candidates:
            if used_space + topic_space <= remaining_space:
                fitting.append((topic, topic_space))
                used_space += topic_space

        return fitting

    def _add_optimal_subtopics(
        self,
        all_topics: Sequence[Topic],
        recommended_topics: List[str],
        recommended_subtopics: Dict[str, List[str]],
        remaining_space: float
    ) -> float:
        """Add unselected subtopics of selected topics while they fit."""
        topics_by_id = {topic.id: topic for topic in all_topics}
        added_space = 0.0

        for topic_id in recommended_topics:
            topic = topics_by_id.get(topic_id)
            if topic is None:
                continue
            current = recommended_subtopics[topic_id]

            unselected = [
                subtopic for subtopic in topic.subtopics
                if subtopic.id not in current
                and subtopic.estimated_space <= remaining_space - added_space
            ]
            unselected.sort(key=lambda subtopic: PRIORITY_RANK[subtopic.priority], reverse=True)

            for subtopic in unselected:
                if added_space + subtopic.estimated_space <= remaining_space:
                    current.append(subtopic.id)
                    added_space += subtopic.estimated_space
                    logger.debug(f"Fine-tune added subtopic '{subtopic.id}' to topic '{topic_id}'")

        return added_space

    def _removal_suggestions(
        self,
        current_selection: Sequence[TopicSelection],
        topics_by_id: Dict[str, Topic],
        overflow_amount: float
    ) -> List[SpaceSuggestion]:
        """Suggest removing low-priority topics, or low-priority subtopics if there are none."""
        suggestions = []

        low_priority = [
            selection for selection in current_selection
            if self._selection_priority(selection, topics_by_id) == Priority.LOW
        ]
        low_priority.sort(key=lambda selection: selection.estimated_space, reverse=True)

        freed_space = 0.0
        for selection in low_priority:
            topic = topics_by_id.get(selection.topic_id)
            title = topic.title if topic else selection.topic_id
            suggestions.append(SpaceSuggestion(
                type=SuggestionType.REDUCE_CONTENT,
                target_id=selection.topic_id,
                description=f'Remove low-priority topic "{title}" to prevent overflow',
                space_impact=-selection.estimated_space,
            ))
            freed_space += selection.estimated_space
            if freed_space >= overflow_amount or len(suggestions) >= self.config.max_suggestions:
                break

        if low_priority:
            return suggestions

        ordered = sorted(
            current_selection,
            key=lambda selection: PRIORITY_RANK[self._selection_priority(selection, topics_by_id)],
        )
        for selection in ordered:
            topic = topics_by_id.get(selection.topic_id)
            if topic is None or len(suggestions) >= self.config.max_suggestions:
                continue
            low_subtopics = [
                subtopic for subtopic in topic.subtopics
                if subtopic.id in selection.subtopic_ids and subtopic.priority == Priority.LOW
            ]
            for subtopic in low_subtopics[:1]:
                suggestions.append(SpaceSuggestion(
                    type=SuggestionType.REDUCE_CONTENT,
                    target_id=subtopic.id,
                    description=f'Remove low-priority subtopic "{subtopic.title}" to prevent overflow',
                    space_impact=-subtopic.estimated_space,
                ))

        return suggestions

    def _selection_priority(self, selection: TopicSelection, topics_by_id: Dict[str, Topic]) -> Priority:
        topic = topics_by_id.get(selection.topic_id)
        return topic.priority if topic else selection.priority
