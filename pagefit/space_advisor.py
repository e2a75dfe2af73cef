"""Space estimates, selection validation and layout advice for extracted topics."""

import logging
import math
from typing import List, Optional, Sequence

from .models import (
    FontSize,
    Priority,
    ReferenceFormatAnalysis,
    SelectionValidation,
    SpaceConstraints,
    SubtopicSelection,
    Topic,
)
from .space_calculator import SpaceCalculationService

logger = logging.getLogger(__name__)

MAX_TIPS = 5

# Budgets above this fit comfortably in two columns
TWO_COLUMN_SPACE_THRESHOLD = 15000


class SpaceAdvisor:
    """Prepares topics for allocation and advises on the page configuration."""

    def __init__(self, space_calculation_service: SpaceCalculationService):
        """
        Initialize the space advisor.

        Args:
            space_calculation_service: Service used for estimates and budgets
        """
        self.space_service = space_calculation_service

        logger.info("SpaceAdvisor initialized")

    def add_space_estimates(
        self,
        topics: Sequence[Topic],
        constraints: SpaceConstraints
    ) -> List[Topic]:
        """
        Return copies of the topics with computed space estimates.

        Subtopics get their own estimate; each topic's estimate covers its
        content, title, subtopics and example images. The input is not
        modified.

        Args:
            topics: Topics to annotate
            constraints: Output layout the estimates are computed for

        Returns:
            New Topic instances with estimated_space populated
        """
        estimated_topics = []

        for topic in topics:
            subtopics = [
                subtopic.model_copy(update={
                    "estimated_space": self.space_service.estimate_subtopic_space(subtopic, constraints)
                })
                for subtopic in topic.subtopics
            ]
            estimated_topics.append(topic.model_copy(update={
                "subtopics": subtopics,
                "estimated_space": self.space_service.estimate_topic_space(topic, constraints),
            }))

        logger.debug(f"Estimated space for {len(estimated_topics)} topic(s)")
        return estimated_topics

    def validate_topic_selection(
        self,
        selected_topic_ids: Sequence[str],
        selected_subtopics: Sequence[SubtopicSelection],
        all_topics: Sequence[Topic],
        constraints: SpaceConstraints
    ) -> SelectionValidation:
        """
        Check whether an explicit selection fits the page configuration.

        Unknown topic and subtopic ids contribute no space.

        Args:
            selected_topic_ids: Ids of the chosen topics
            selected_subtopics: Chosen subtopics per topic
            all_topics: Every candidate topic
            constraints: Physical output target

        Returns:
            SelectionValidation with warnings and suggestions
        """
        available_space = self.space_service.calculate_available_space(constraints)
        topics_by_id = {topic.id: topic for topic in all_topics}
        subtopics_by_topic = {entry.topic_id: entry.subtopic_ids for entry in selected_subtopics}

        used_space = 0.0
        for topic_id in selected_topic_ids:
            topic = topics_by_id.get(topic_id)
            if topic is None:
                logger.warning(f"Selected topic '{topic_id}' not found")
                continue

            used_space += topic.estimated_space
            for subtopic_id in subtopics_by_topic.get(topic_id, []):
                subtopic = topic.get_subtopic(subtopic_id)
                if subtopic:
                    used_space += subtopic.estimated_space

        utilization = self.space_service.calculate_utilization(used_space, available_space)

        warnings = []
        if utilization > 1.0:
            warnings.append(f"Content exceeds available space by {(utilization - 1) * 100:.1f}%")
        elif utilization > 0.95:
            warnings.append("Content is very close to space limit. Consider removing some low-priority items.")

        if utilization < 0.5:
            warnings.append("Space utilization is quite low. Consider adding more content.")

        suggestions = []
        if utilization > 1.0:
            suggestions.append("Remove some low-priority topics or subtopics")
            suggestions.append("Consider increasing page count or using smaller font size")
        elif utilization < 0.7:
            suggestions.append("Add more topics or subtopics to better utilize available space")
            suggestions.append("Consider expanding existing topics with more details")

        return SelectionValidation(
            is_valid=utilization <= 1.0,
            total_space=available_space,
            used_space=used_space,
            utilization_percentage=utilization,
            warnings=warnings,
            suggestions=suggestions,
        )

    def suggest_optimal_configuration(
        self,
        constraints: SpaceConstraints,
        topics: Sequence[Topic],
        available_space: int
    ) -> SpaceConstraints:
        """
        Suggest a page configuration that better fits the total content.

        Content above 95% of the budget steps the font down, or adds pages once
        the font is already small. Content below 60% steps a small font up, or
        trims pages at medium font.
        """
        total_space = sum(topic.estimated_space for topic in topics)
        utilization = self.space_service.calculate_utilization(total_space, available_space)

        update = {}

        if utilization > 0.95:
            if constraints.font_size == FontSize.LARGE:
                update["font_size"] = FontSize.MEDIUM
            elif constraints.font_size == FontSize.MEDIUM:
                update["font_size"] = FontSize.SMALL
            else:
                update["available_pages"] = math.ceil(constraints.available_pages * 1.5)

        if utilization < 0.6:
            if constraints.font_size == FontSize.SMALL:
                update["font_size"] = FontSize.MEDIUM
            elif constraints.font_size == FontSize.MEDIUM and constraints.available_pages > 1:
                update["available_pages"] = max(1, math.floor(constraints.available_pages * 0.8))

        if update:
            logger.info(f"Suggested configuration changes: {update}")

        return constraints.model_copy(update=update)

    def generate_space_utilization_tips(
        self,
        topics: Sequence[Topic],
        constraints: SpaceConstraints,
        available_space: int,
        reference_analysis: Optional[ReferenceFormatAnalysis] = None
    ) -> List[str]:
        """
        Produce practical tips for using the page space.

        Args:
            topics: Candidate topics with space estimates
            constraints: Physical output target
            available_space: Space budget
            reference_analysis: Optional reference document statistics

        Returns:
            At most five tips
        """
        tips = []
        total_space = sum(topic.estimated_space for topic in topics)
        utilization = self.space_service.calculate_utilization(total_space, available_space)

        if utilization > 1.0:
            tips.append(
                "Content exceeds available space. Consider removing low-priority topics "
                "or increasing page count."
            )
            tips.append("Focus on high-priority topics and essential subtopics only.")
        elif utilization < 0.6:
            tips.append(
                "You have significant unused space. Consider adding more topics "
                "or expanding existing content."
            )
            tips.append("Include additional subtopics or examples to maximize learning value.")

        high_priority = sum(1 for topic in topics if topic.priority == Priority.HIGH)
        low_priority = sum(1 for topic in topics if topic.priority == Priority.LOW)

        if high_priority < len(topics) * 0.3:
            tips.append("Consider marking more essential topics as high priority for better space allocation.")

        if low_priority > len(topics) * 0.4:
            tips.append("You have many low-priority topics. These will be used to fill remaining space optimally.")

        if constraints.columns == 1 and available_space > TWO_COLUMN_SPACE_THRESHOLD:
            tips.append("Consider using 2 columns for better space utilization with this amount of content.")

        if constraints.font_size == FontSize.LARGE and utilization > 0.8:
            tips.append("Consider using medium font size to fit more content comfortably.")

        if reference_analysis and available_space > 0:
            reference_utilization = reference_analysis.content_density / available_space
            if utilization < reference_utilization * 0.7:
                tips.append(
                    "Your content density is lower than the reference. "
                    "Consider adding more detailed information."
                )
            elif utilization > reference_utilization * 1.3:
                tips.append(
                    "Your content is denser than the reference. "
                    "Consider condensing or splitting across more pages."
                )

        return tips[:MAX_TIPS]
