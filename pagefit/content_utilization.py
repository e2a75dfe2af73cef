"""Utilization analysis and corrective recommendations for a topic selection."""

import logging
from typing import Dict, List, Optional, Sequence

from .models import (
    PRIORITY_RANK,
    PRIORITY_SCORES,
    AllocationConfig,
    ContentExpansionSuggestion,
    ContentImpact,
    ContentReductionStrategy,
    ContentUtilizationAnalysis,
    ContentUtilizationRecommendation,
    DensityAction,
    DensityActionType,
    DensityOptimizationResult,
    DensityTargetArea,
    ExpansionType,
    LayoutPattern,
    OrganizationStyle,
    Priority,
    RecommendationType,
    ReductionType,
    ReferenceFormatAnalysis,
    SpaceConstraints,
    SubTopic,
    Topic,
    TopicSelection,
)
from .similarity import SimilarityScorer
from .space_calculator import SpaceCalculationService

logger = logging.getLogger(__name__)

# Shift applied to the reference-derived density target
DENSITY_STYLE_ADJUSTMENTS: Dict[OrganizationStyle, float] = {
    OrganizationStyle.HIERARCHICAL: -0.05,
    OrganizationStyle.FLAT: 0.05,
}
MULTI_COLUMN_DENSITY_ADJUSTMENT = -0.05

MIN_TARGET_DENSITY = 0.7
MAX_TARGET_DENSITY = 0.95
DENSITY_TOLERANCE = 0.1

DEFAULT_REFERENCE_ALIGNMENT = 0.5
REDISTRIBUTE_THRESHOLD = 0.7

# Suggestions kept after reordering for a hierarchical reference
HIERARCHICAL_SUGGESTION_LIMIT = 4


def _clamp(value: float, lower: float = 0.0, upper: float = 1.0) -> float:
    return min(upper, max(lower, value))


class ContentUtilizationService:
    """Interprets a selection against the space budget and recommends corrections."""

    def __init__(
        self,
        space_calculation_service: SpaceCalculationService,
        config: Optional[AllocationConfig] = None,
        similarity_scorer: Optional[SimilarityScorer] = None
    ):
        """
        Initialize the content utilization service.

        Args:
            space_calculation_service: Service used for budgets and utilization ratios
            config: Thresholds; defaults to the space service's configuration
            similarity_scorer: Title similarity used for relevance and merge detection
        """
        self.space_service = space_calculation_service
        self.config = config or space_calculation_service.config
        self.similarity = similarity_scorer or SimilarityScorer(
            merge_threshold=self.config.merge_similarity_threshold
        )

        logger.info("ContentUtilizationService initialized")

    def analyze_content_utilization(
        self,
        selected_topics: Sequence[TopicSelection],
        all_topics: Sequence[Topic],
        constraints: SpaceConstraints,
        reference_analysis: Optional[ReferenceFormatAnalysis] = None
    ) -> ContentUtilizationAnalysis:
        """
        Analyze a selection and compose prioritized recommendations.

        Args:
            selected_topics: Current selection
            all_topics: Every candidate topic
            constraints: Physical output target
            reference_analysis: Optional reference document statistics

        Returns:
            ContentUtilizationAnalysis with classification, recommendations and density
        """
        available_space = self.space_service.calculate_available_space(constraints)
        used_space = self._used_space(selected_topics)
        utilization = self.space_service.calculate_utilization(used_space, available_space)

        recommendations = self._generate_utilization_recommendations(
            selected_topics,
            all_topics,
            available_space,
            utilization,
            reference_analysis
        )

        density_optimization = self.optimize_content_density(
            selected_topics,
            all_topics,
            constraints,
            reference_analysis
        )

        analysis = ContentUtilizationAnalysis(
            utilization_percentage=utilization,
            empty_space_detected=utilization < self.config.underfilled_threshold,
            overflow_detected=utilization > self.config.overflow_threshold,
            recommendations=recommendations,
            density_optimization=density_optimization,
        )

        logger.info(
            f"Utilization {utilization:.1%} ({analysis.status.value}), "
            f"{len(recommendations)} recommendation(s)"
        )
        return analysis

    def detect_empty_space_and_suggest_content(
        self,
        selected_topics: Sequence[TopicSelection],
        all_topics: Sequence[Topic],
        available_space: int,
        reference_analysis: Optional[ReferenceFormatAnalysis] = None
    ) -> List[ContentExpansionSuggestion]:
        """
        Suggest content to fill partially empty pages.

        Only produces suggestions when utilization is below the expansion
        threshold and more than 100 units remain.

        Args:
            selected_topics: Current selection
            all_topics: Every candidate topic
            available_space: Space budget
            reference_analysis: Optional reference; reorders suggestions by style

        Returns:
            At most five suggestions (four for hierarchical references)
        """
        used_space = self._used_space(selected_topics)
        remaining_space = available_space - used_space
        utilization = self.space_service.calculate_utilization(used_space, available_space)

        suggestions: List[ContentExpansionSuggestion] = []

        if utilization < self.config.expansion_threshold and remaining_space > 100:
            topics_by_id = {topic.id: topic for topic in all_topics}
            selected_ids = {selection.topic_id for selection in selected_topics}

            topic_suggestions = [
                ContentExpansionSuggestion(
                    topic_id=topic.id,
                    expansion_type=ExpansionType.ADD_CONTEXT,
                    suggested_content=f"Add topic: {topic.title}",
                    estimated_space=topic.estimated_space,
                    relevance_score=self.calculate_topic_relevance(topic, selected_topics, all_topics),
                )
                for topic in all_topics
                if topic.id not in selected_ids and topic.estimated_space <= remaining_space
            ]
            topic_suggestions.sort(key=lambda suggestion: suggestion.relevance_score, reverse=True)
            suggestions.extend(topic_suggestions[:3])

            for selection in selected_topics:
                topic = topics_by_id.get(selection.topic_id)
                if topic is None:
                    continue

                subtopic_suggestions = [
                    ContentExpansionSuggestion(
                        topic_id=topic.id,
                        subtopic_id=subtopic.id,
                        expansion_type=ExpansionType.ADD_SUBTOPICS,
                        suggested_content=f"Add subtopic: {subtopic.title}",
                        estimated_space=subtopic.estimated_space,
                        relevance_score=self.calculate_subtopic_relevance(subtopic),
                    )
                    for subtopic in topic.subtopics
                    if subtopic.id not in selection.subtopic_ids
                    and 0 < subtopic.estimated_space <= remaining_space
                ]
                subtopic_suggestions.sort(key=lambda suggestion: suggestion.relevance_score, reverse=True)
                suggestions.extend(subtopic_suggestions[:2])

            if remaining_space > 200:
                for selection in selected_topics[:2]:
                    topic = topics_by_id.get(selection.topic_id)
                    if topic is None:
                        continue
                    suggestions.append(ContentExpansionSuggestion(
                        topic_id=topic.id,
                        expansion_type=ExpansionType.ADD_DETAILS,
                        suggested_content=f'Expand "{topic.title}" with additional examples and explanations',
                        estimated_space=min(remaining_space * 0.3, 300),
                        relevance_score=0.7,
                    ))

        suggestions.sort(key=lambda suggestion: suggestion.relevance_score, reverse=True)

        if reference_analysis:
            return self._order_suggestions_by_reference(suggestions, reference_analysis)

        return suggestions[:self.config.max_suggestions]

    def create_content_reduction_strategy(
        self,
        selected_topics: Sequence[TopicSelection],
        all_topics: Sequence[Topic],
        overflow_amount: float,
        reference_analysis: Optional[ReferenceFormatAnalysis] = None
    ) -> List[ContentReductionStrategy]:
        """
        Build the applicable strategies for recovering overflowing space.

        Strategies are computed independently: removing low-priority topics,
        removing low-priority subtopics, condensing verbose topics and merging
        similar topics. The reference analysis does not change the ranking.

        Args:
            selected_topics: Current selection
            all_topics: Every candidate topic
            overflow_amount: Space that must be recovered
            reference_analysis: Optional reference document statistics

        Returns:
            Strategies ranked by descending preservation score
        """
        topics_by_id = {topic.id: topic for topic in all_topics}
        strategies: List[ContentReductionStrategy] = []

        # Strategy 1: remove low-priority topics
        low_priority = [selection for selection in selected_topics if selection.priority == Priority.LOW]
        if low_priority:
            space_recovered = self._used_space(low_priority)
            if space_recovered >= overflow_amount * 0.8:
                strategies.append(ContentReductionStrategy(
                    reduction_type=ReductionType.REMOVE_TOPICS,
                    target_ids=[selection.topic_id for selection in low_priority],
                    space_recovered=space_recovered,
                    content_impact=ContentImpact.MINIMAL,
                    preservation_score=0.9,
                ))

        # Strategy 2: remove low-priority subtopics
        subtopic_reductions: List[str] = []
        subtopic_space_recovered = 0.0
        for selection in selected_topics:
            topic = topics_by_id.get(selection.topic_id)
            if topic is None:
                continue
            for subtopic in topic.subtopics:
                if subtopic.id not in selection.subtopic_ids or subtopic.priority != Priority.LOW:
                    continue
                if subtopic_space_recovered < overflow_amount:
                    subtopic_reductions.append(subtopic.id)
                    subtopic_space_recovered += subtopic.estimated_space

        if subtopic_reductions:
            strategies.append(ContentReductionStrategy(
                reduction_type=ReductionType.REMOVE_SUBTOPICS,
                target_ids=subtopic_reductions,
                space_recovered=subtopic_space_recovered,
                content_impact=ContentImpact.MINIMAL,
                preservation_score=0.85,
            ))

        # Strategy 3: condense verbose, less essential topics
        condensation_targets = []
        for selection in selected_topics:
            if selection.priority == Priority.HIGH:
                continue
            potential = self.calculate_condensation_potential(topics_by_id.get(selection.topic_id))
            if potential > 0.2:
                condensation_targets.append((selection, potential))
        condensation_targets.sort(key=lambda item: item[1], reverse=True)

        if condensation_targets:
            strategies.append(ContentReductionStrategy(
                reduction_type=ReductionType.CONDENSE_CONTENT,
                target_ids=[selection.topic_id for selection, _ in condensation_targets],
                space_recovered=sum(
                    selection.estimated_space * potential for selection, potential in condensation_targets
                ),
                content_impact=ContentImpact.MODERATE,
                preservation_score=0.75,
            ))

        # Strategy 4: merge topics with similar titles
        merge_candidates = self.find_mergeable_topics(selected_topics, all_topics)
        if merge_candidates:
            strategies.append(ContentReductionStrategy(
                reduction_type=ReductionType.MERGE_SIMILAR,
                target_ids=merge_candidates,
                space_recovered=overflow_amount * 0.3,
                content_impact=ContentImpact.MODERATE,
                preservation_score=0.8,
            ))

        strategies.sort(key=lambda strategy: strategy.preservation_score, reverse=True)
        logger.debug(
            f"Reduction strategies for overflow {overflow_amount:.0f}: "
            f"{[strategy.reduction_type.value for strategy in strategies]}"
        )
        return strategies

    def optimize_content_density(
        self,
        selected_topics: Sequence[TopicSelection],
        all_topics: Sequence[Topic],
        constraints: SpaceConstraints,
        reference_analysis: Optional[ReferenceFormatAnalysis] = None
    ) -> DensityOptimizationResult:
        """
        Compare the selection's density with a target density.

        Args:
            selected_topics: Current selection
            all_topics: Every candidate topic
            constraints: Physical output target
            reference_analysis: Optional reference; sets the target and alignment

        Returns:
            DensityOptimizationResult with gap and suggested actions
        """
        available_space = self.space_service.calculate_available_space(constraints)
        used_space = self._used_space(selected_topics)
        current_density = self.space_service.calculate_utilization(used_space, available_space)

        target_density = self.config.target_utilization
        reference_alignment = DEFAULT_REFERENCE_ALIGNMENT

        if reference_analysis:
            target_density = self._reference_target_density(available_space, reference_analysis)
            reference_alignment = self.calculate_reference_alignment(
                selected_topics,
                all_topics,
                reference_analysis
            )

        density_gap = target_density - current_density
        optimization_actions: List[DensityAction] = []

        if abs(density_gap) > DENSITY_TOLERANCE:
            magnitude = abs(density_gap)
            if density_gap > 0:
                optimization_actions.append(DensityAction(
                    type=DensityActionType.INCREASE_DENSITY,
                    target_area=DensityTargetArea.TOPICS,
                    description="Add more topics or expand existing content to match the target density",
                    impact=magnitude * 0.6,
                ))
                optimization_actions.append(DensityAction(
                    type=DensityActionType.INCREASE_DENSITY,
                    target_area=DensityTargetArea.SUBTOPICS,
                    description="Include additional subtopics from selected topics",
                    impact=magnitude * 0.4,
                ))
            else:
                optimization_actions.append(DensityAction(
                    type=DensityActionType.DECREASE_DENSITY,
                    target_area=DensityTargetArea.TOPICS,
                    description="Remove lower-priority topics to match the target density",
                    impact=magnitude * 0.6,
                ))
                optimization_actions.append(DensityAction(
                    type=DensityActionType.DECREASE_DENSITY,
                    target_area=DensityTargetArea.SPACING,
                    description="Optimize spacing and formatting to reduce density",
                    impact=magnitude * 0.4,
                ))
        else:
            optimization_actions.append(DensityAction(
                type=DensityActionType.MAINTAIN_DENSITY,
                target_area=DensityTargetArea.FORMATTING,
                description="Current density is close to target, maintain with fine-tuning",
                impact=0,
            ))

        return DensityOptimizationResult(
            current_density=current_density,
            target_density=target_density,
            density_gap=density_gap,
            optimization_actions=optimization_actions,
            reference_alignment=reference_alignment,
        )

    def calculate_reference_alignment(
        self,
        selected_topics: Sequence[TopicSelection],
        all_topics: Sequence[Topic],
        reference_analysis: ReferenceFormatAnalysis
    ) -> float:
        """
        Score in [0, 1] of how closely a selection matches a reference pattern.

        Weighted average of topic-count alignment (0.3), average content length
        alignment (0.3) and organization style alignment (0.4). An empty
        selection scores 0.
        """
        if not selected_topics:
            return 0.0

        topics_by_id = {topic.id: topic for topic in all_topics}
        selected = [topics_by_id.get(selection.topic_id) for selection in selected_topics]

        topic_count_ratio = len(selected_topics) / reference_analysis.topic_count
        topic_count_alignment = _clamp(1 - abs(1 - topic_count_ratio))

        average_length = sum(len(topic.content) if topic else 0 for topic in selected) / len(selected)
        length_ratio = average_length / reference_analysis.average_topic_length
        length_alignment = _clamp(1 - abs(1 - length_ratio))

        hierarchical_ratio = sum(1 for topic in selected if topic and topic.subtopics) / len(selected)
        if reference_analysis.organization_style == OrganizationStyle.HIERARCHICAL:
            organization_alignment = hierarchical_ratio
        else:
            organization_alignment = 1 - hierarchical_ratio

        return _clamp(
            topic_count_alignment * 0.3
            + length_alignment * 0.3
            + organization_alignment * 0.4
        )

    def calculate_condensation_potential(self, topic: Optional[Topic]) -> float:
        """
        Estimate how much a topic could shrink without major content loss.

        Returns:
            Potential in [0, 0.8]; 0 for an unknown topic
        """
        if topic is None:
            return 0.0

        potential = 0.0

        if len(topic.content) > 500:
            potential += 0.3
        if len(topic.subtopics) > 3:
            potential += 0.2
        if topic.confidence < 0.7:
            potential += 0.2

        if topic.priority == Priority.LOW:
            potential += 0.3
        elif topic.priority == Priority.MEDIUM:
            potential += 0.1

        return min(potential, 0.8)

    def find_mergeable_topics(
        self,
        selected_topics: Sequence[TopicSelection],
        all_topics: Sequence[Topic]
    ) -> List[str]:
        """Ids of selected, non-high-priority topics whose titles overlap."""
        topics_by_id = {topic.id: topic for topic in all_topics}
        selected = [
            topics_by_id[selection.topic_id]
            for selection in selected_topics if selection.topic_id in topics_by_id
        ]
        return self.similarity.find_mergeable_topics(selected)

    def calculate_topic_relevance(
        self,
        topic: Topic,
        selected_topics: Sequence[TopicSelection],
        all_topics: Sequence[Topic]
    ) -> float:
        """
        Relevance of an unselected topic as an addition.

        Blends priority, confidence and richness with a complementarity bonus
        that penalizes titles resembling an already selected topic.
        """
        priority_score = PRIORITY_SCORES[topic.priority]
        richness_score = min(0.3, len(topic.subtopics) * 0.1 + len(topic.examples) * 0.05)

        topics_by_id = {candidate.id: candidate for candidate in all_topics}
        selected_titles = [
            topics_by_id[selection.topic_id].title.lower()
            for selection in selected_topics if selection.topic_id in topics_by_id
        ]
        title_similarity = max(
            (
                self.similarity.calculate_string_similarity(topic.title.lower(), title)
                for title in selected_titles
            ),
            default=0.0,
        )
        complementarity_score = 1 - title_similarity

        return (
            priority_score * 0.4
            + topic.confidence * 0.3
            + richness_score
            + complementarity_score * 0.2
        )

    def calculate_subtopic_relevance(self, subtopic: SubTopic) -> float:
        priority_score = PRIORITY_SCORES[subtopic.priority]
        length_score = min(0.2, len(subtopic.content) / 500)

        return priority_score * 0.5 + subtopic.confidence * 0.3 + length_score

    def _generate_utilization_recommendations(
        self,
        selected_topics: Sequence[TopicSelection],
        all_topics: Sequence[Topic],
        available_space: int,
        utilization: float,
        reference_analysis: Optional[ReferenceFormatAnalysis]
    ) -> List[ContentUtilizationRecommendation]:
        recommendations: List[ContentUtilizationRecommendation] = []
        used_space = self._used_space(selected_topics)

        if utilization < self.config.underfilled_threshold:
            expansion_suggestions = self.detect_empty_space_and_suggest_content(
                selected_topics,
                all_topics,
                available_space,
                reference_analysis
            )[:3]

            target_ids: List[str] = []
            for suggestion in expansion_suggestions:
                if suggestion.topic_id not in target_ids:
                    target_ids.append(suggestion.topic_id)

            recommendations.append(ContentUtilizationRecommendation(
                type=RecommendationType.ADD_CONTENT,
                priority=Priority.HIGH,
                description=(
                    f"Space utilization is low ({utilization * 100:.1f}%). "
                    f"Consider adding more content."
                ),
                target_ids=target_ids,
                expected_space_impact=sum(suggestion.estimated_space for suggestion in expansion_suggestions),
                confidence_score=0.9,
                implementation_steps=[
                    "Review suggested topics and subtopics",
                    "Select high-relevance additions",
                    "Verify content quality and accuracy",
                    "Update topic selection",
                ],
            ))

        elif utilization < self.config.balanced_upper_threshold:
            recommendations.append(ContentUtilizationRecommendation(
                type=RecommendationType.EXPAND_EXISTING,
                priority=Priority.MEDIUM,
                description="Good utilization. Consider expanding existing topics with more details.",
                target_ids=[selection.topic_id for selection in selected_topics[:2]],
                expected_space_impact=(available_space - used_space) * 0.5,
                confidence_score=0.7,
                implementation_steps=[
                    "Identify topics that could benefit from expansion",
                    "Add relevant examples or explanations",
                    "Ensure expanded content maintains quality",
                ],
            ))

        elif utilization > self.config.overflow_threshold:
            overflow_amount = used_space - available_space
            strategies = self.create_content_reduction_strategy(
                selected_topics,
                all_topics,
                overflow_amount,
                reference_analysis
            )

            if strategies:
                best_strategy = strategies[0]
                recommendations.append(ContentUtilizationRecommendation(
                    type=RecommendationType.REDUCE_CONTENT,
                    priority=Priority.HIGH,
                    description=(
                        f"Content overflow detected. "
                        f"{best_strategy.reduction_type.value.replace('_', ' ')} recommended."
                    ),
                    target_ids=best_strategy.target_ids,
                    expected_space_impact=-best_strategy.space_recovered,
                    confidence_score=best_strategy.preservation_score,
                    implementation_steps=[
                        "Review content reduction strategy",
                        "Prioritize content preservation",
                        "Apply recommended changes",
                        "Verify final layout fits",
                    ],
                ))
            else:
                logger.warning(f"Overflow of {overflow_amount:.0f} units but no reduction strategy applies")

        if reference_analysis:
            alignment = self.calculate_reference_alignment(selected_topics, all_topics, reference_analysis)
            if alignment < REDISTRIBUTE_THRESHOLD:
                recommendations.append(ContentUtilizationRecommendation(
                    type=RecommendationType.REDISTRIBUTE,
                    priority=Priority.MEDIUM,
                    description="Content doesn't align well with reference format. Consider redistributing topics.",
                    target_ids=[selection.topic_id for selection in selected_topics],
                    expected_space_impact=0,
                    confidence_score=alignment,
                    implementation_steps=[
                        "Analyze reference format patterns",
                        "Adjust topic selection to match reference density",
                        "Optimize content organization",
                        "Verify visual alignment",
                    ],
                ))

        recommendations.sort(key=lambda recommendation: PRIORITY_RANK[recommendation.priority], reverse=True)
        return recommendations

    def _reference_target_density(
        self,
        available_space: int,
        reference_analysis: ReferenceFormatAnalysis
    ) -> float:
        if available_space <= 0:
            return self.config.target_utilization

        density_ratio = reference_analysis.content_density / available_space
        target = _clamp(density_ratio, MIN_TARGET_DENSITY, MAX_TARGET_DENSITY)
        target += DENSITY_STYLE_ADJUSTMENTS[reference_analysis.organization_style]
        if reference_analysis.layout_pattern == LayoutPattern.MULTI_COLUMN:
            target += MULTI_COLUMN_DENSITY_ADJUSTMENT

        return _clamp(target, MIN_TARGET_DENSITY, MAX_TARGET_DENSITY)

    def _order_suggestions_by_reference(
        self,
        suggestions: List[ContentExpansionSuggestion],
        reference_analysis: ReferenceFormatAnalysis
    ) -> List[ContentExpansionSuggestion]:
        """Favor subtopic additions for hierarchical references and new topics for flat ones."""
        if reference_analysis.organization_style == OrganizationStyle.HIERARCHICAL:
            ordered = sorted(suggestions, key=lambda suggestion: suggestion.subtopic_id is None)
            return ordered[:HIERARCHICAL_SUGGESTION_LIMIT]

        ordered = sorted(suggestions, key=lambda suggestion: suggestion.subtopic_id is not None)
        return ordered[:self.config.max_suggestions]

    def _used_space(self, selected_topics: Sequence[TopicSelection]) -> float:
        return sum(selection.estimated_space for selection in selected_topics)
