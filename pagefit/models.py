"""Domain models for the pagefit space allocation engine."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel


class Priority(str, Enum):
    """Priority tier of a topic or subtopic."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


# Weight used when scoring candidates for selection
PRIORITY_SCORES: Dict[Priority, float] = {
    Priority.HIGH: 1.0,
    Priority.MEDIUM: 0.7,
    Priority.LOW: 0.4,
}

# Weight used when averaging topic sizes for the optimal topic count
PRIORITY_SPACE_WEIGHTS: Dict[Priority, float] = {
    Priority.HIGH: 1.5,
    Priority.MEDIUM: 1.0,
    Priority.LOW: 0.7,
}

PRIORITY_RANK: Dict[Priority, int] = {
    Priority.HIGH: 3,
    Priority.MEDIUM: 2,
    Priority.LOW: 1,
}


class PageSize(str, Enum):
    """Supported physical page sizes."""

    A4 = "a4"
    LETTER = "letter"
    LEGAL = "legal"
    A3 = "a3"


# Width and height in inches
PAGE_DIMENSIONS: Dict[PageSize, tuple] = {
    PageSize.A4: (8.27, 11.69),
    PageSize.LETTER: (8.5, 11.0),
    PageSize.LEGAL: (8.5, 14.0),
    PageSize.A3: (11.69, 16.54),
}


class FontSize(str, Enum):
    """Body font size presets."""

    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"


# Characters per square inch
FONT_DENSITIES: Dict[FontSize, int] = {
    FontSize.SMALL: 180,
    FontSize.MEDIUM: 140,
    FontSize.LARGE: 100,
}


class OrganizationStyle(str, Enum):
    """How a reference document organizes its topics."""

    HIERARCHICAL = "hierarchical"
    FLAT = "flat"


class LayoutPattern(str, Enum):
    """Column layout of a reference document."""

    SINGLE_COLUMN = "single-column"
    MULTI_COLUMN = "multi-column"


class UtilizationStatus(str, Enum):
    """Classification of a selection against the space budget."""

    UNDERFILLED = "underfilled"
    BALANCED = "balanced"
    OVERFLOWING = "overflowing"


class SuggestionType(str, Enum):
    ADD_TOPIC = "add_topic"
    ADD_SUBTOPIC = "add_subtopic"
    EXPAND_CONTENT = "expand_content"
    REDUCE_CONTENT = "reduce_content"


class RecommendationType(str, Enum):
    ADD_CONTENT = "add_content"
    EXPAND_EXISTING = "expand_existing"
    REDUCE_CONTENT = "reduce_content"
    REDISTRIBUTE = "redistribute"


class ReductionType(str, Enum):
    REMOVE_TOPICS = "remove_topics"
    REMOVE_SUBTOPICS = "remove_subtopics"
    CONDENSE_CONTENT = "condense_content"
    MERGE_SIMILAR = "merge_similar"


class ContentImpact(str, Enum):
    MINIMAL = "minimal"
    MODERATE = "moderate"
    SIGNIFICANT = "significant"


class ExpansionType(str, Enum):
    ADD_EXAMPLES = "add_examples"
    ADD_DETAILS = "add_details"
    ADD_SUBTOPICS = "add_subtopics"
    ADD_CONTEXT = "add_context"


class DensityActionType(str, Enum):
    INCREASE_DENSITY = "increase_density"
    DECREASE_DENSITY = "decrease_density"
    MAINTAIN_DENSITY = "maintain_density"


class DensityTargetArea(str, Enum):
    TOPICS = "topics"
    SUBTOPICS = "subtopics"
    SPACING = "spacing"
    FORMATTING = "formatting"


class PagefitModel(BaseModel):
    """Base model accepting both snake_case names and camelCase JSON keys."""

    class Config:
        """Pydantic configuration."""

        alias_generator = to_camel
        populate_by_name = True


def _missing_as_default(value: Any, default: Any) -> Any:
    return default if value is None else value


class SubTopic(PagefitModel):
    """A unit of content owned by a single parent topic."""

    id: str = Field(..., description="Subtopic identifier, unique within its topic")
    title: str = Field(..., description="Subtopic title")
    content: str = Field(default="", description="Subtopic body text")
    priority: Priority = Field(default=Priority.MEDIUM, description="Priority tier")
    confidence: float = Field(
        default=0.0, ge=0.0, le=1.0, description="Extraction confidence"
    )
    estimated_space: float = Field(
        default=0, ge=0, description="Estimated space units consumed"
    )

    @field_validator("priority", mode="before")
    @classmethod
    def _default_priority(cls, value: Any) -> Any:
        return _missing_as_default(value, Priority.MEDIUM)

    @field_validator("confidence", "estimated_space", mode="before")
    @classmethod
    def _default_zero(cls, value: Any) -> Any:
        return _missing_as_default(value, 0)


class Topic(PagefitModel):
    """A candidate topic with its subtopics."""

    id: str = Field(..., description="Topic identifier")
    title: str = Field(..., description="Topic title")
    content: str = Field(default="", description="Topic body text")
    subtopics: List[SubTopic] = Field(
        default_factory=list, description="Subtopics owned by this topic"
    )
    priority: Priority = Field(default=Priority.MEDIUM, description="Priority tier")
    confidence: float = Field(
        default=0.0, ge=0.0, le=1.0, description="Extraction confidence"
    )
    estimated_space: float = Field(
        default=0, ge=0, description="Estimated space units consumed by the topic itself"
    )
    source_files: List[str] = Field(
        default_factory=list, description="Source documents the topic came from"
    )
    examples: List[str] = Field(
        default_factory=list, description="Identifiers of example images attached to the topic"
    )

    @field_validator("priority", mode="before")
    @classmethod
    def _default_priority(cls, value: Any) -> Any:
        return _missing_as_default(value, Priority.MEDIUM)

    @field_validator("confidence", "estimated_space", mode="before")
    @classmethod
    def _default_zero(cls, value: Any) -> Any:
        return _missing_as_default(value, 0)

    @field_validator("subtopics")
    @classmethod
    def _unique_subtopic_ids(cls, subtopics: List[SubTopic]) -> List[SubTopic]:
        seen = set()
        for subtopic in subtopics:
            if subtopic.id in seen:
                raise ValueError(f"Duplicate subtopic id: {subtopic.id}")
            seen.add(subtopic.id)
        return subtopics

    def get_subtopic(self, subtopic_id: str) -> Optional[SubTopic]:
        """Get a subtopic by its id."""
        for subtopic in self.subtopics:
            if subtopic.id == subtopic_id:
                return subtopic
        return None

    class Config:
        """Pydantic configuration."""

        json_schema_extra = {
            "example": {
                "id": "topic-1",
                "title": "Derivatives",
                "content": "Rules for differentiating common functions.",
                "subtopics": [
                    {
                        "id": "sub-1",
                        "title": "Chain rule",
                        "content": "d/dx f(g(x)) = f'(g(x)) g'(x)",
                        "priority": "high",
                        "confidence": 0.9,
                        "estimatedSpace": 80
                    }
                ],
                "priority": "high",
                "confidence": 0.95,
                "estimatedSpace": 250,
                "sourceFiles": ["calculus.pdf"],
                "examples": []
            }
        }


class SpaceConstraints(PagefitModel):
    """Physical output target for the compact document."""

    available_pages: int = Field(default=1, ge=1, description="Number of pages available")
    page_size: PageSize = Field(default=PageSize.A4, description="Physical page size")
    font_size: FontSize = Field(default=FontSize.MEDIUM, description="Body font size preset")
    columns: int = Field(default=1, ge=1, description="Number of text columns")
    target_utilization: float = Field(
        default=0.85, gt=0.0, le=1.0, description="Desired fraction of space to fill"
    )

    class Config:
        """Pydantic configuration."""

        frozen = True
        json_schema_extra = {
            "example": {
                "availablePages": 2,
                "pageSize": "a4",
                "fontSize": "medium",
                "columns": 1,
                "targetUtilization": 0.85
            }
        }


class ReferenceFormatAnalysis(PagefitModel):
    """Density and organization statistics of a reference document."""

    content_density: float = Field(..., gt=0, description="Characters per available space unit")
    topic_count: int = Field(..., ge=1, description="Number of topics in the reference")
    average_topic_length: float = Field(..., gt=0, description="Average topic length in characters")
    organization_style: OrganizationStyle = Field(
        default=OrganizationStyle.HIERARCHICAL, description="Topic organization"
    )
    layout_pattern: LayoutPattern = Field(
        default=LayoutPattern.SINGLE_COLUMN, description="Column layout"
    )

    class Config:
        """Pydantic configuration."""

        frozen = True


class TopicSelection(PagefitModel):
    """One selected topic with the subtopics chosen under it."""

    topic_id: str = Field(..., description="Selected topic id")
    subtopic_ids: List[str] = Field(default_factory=list, description="Selected subtopic ids")
    priority: Priority = Field(default=Priority.MEDIUM, description="Priority of the topic")
    estimated_space: float = Field(
        default=0, ge=0, description="Aggregate space including chosen subtopics"
    )

    @field_validator("priority", mode="before")
    @classmethod
    def _default_priority(cls, value: Any) -> Any:
        return _missing_as_default(value, Priority.MEDIUM)

    @field_validator("estimated_space", mode="before")
    @classmethod
    def _default_zero(cls, value: Any) -> Any:
        return _missing_as_default(value, 0)


class SubtopicSelection(PagefitModel):
    """Subtopics recommended under a topic."""

    topic_id: str
    subtopic_ids: List[str] = Field(default_factory=list)


class SpaceSuggestion(PagefitModel):
    """Low-level suggestion for adjusting space usage."""

    type: SuggestionType
    target_id: str
    description: str
    space_impact: float = Field(..., description="Signed space change (negative frees space)")


class SpaceOptimizationResult(PagefitModel):
    """Output of the greedy allocation."""

    recommended_topics: List[str] = Field(default_factory=list)
    recommended_subtopics: List[SubtopicSelection] = Field(default_factory=list)
    utilization_score: float = Field(..., description="Used space / available space")
    suggestions: List[SpaceSuggestion] = Field(default_factory=list)
    estimated_final_utilization: float = Field(..., le=1.0)

    def subtopics_for(self, topic_id: str) -> List[str]:
        """Return the recommended subtopic ids for a topic."""
        for entry in self.recommended_subtopics:
            if entry.topic_id == topic_id:
                return list(entry.subtopic_ids)
        return []


class SpaceUtilizationInfo(PagefitModel):
    """Read-only summary of a selection against the budget."""

    total_available_space: int
    used_space: float
    remaining_space: float
    utilization_percentage: float
    suggestions: List[SpaceSuggestion] = Field(default_factory=list)


class ContentUtilizationRecommendation(PagefitModel):
    """Human-facing recommendation for a selection."""

    type: RecommendationType
    priority: Priority
    description: str
    target_ids: List[str] = Field(default_factory=list)
    expected_space_impact: float = 0
    confidence_score: float = Field(default=0.0, ge=0.0, le=1.0)
    implementation_steps: List[str] = Field(default_factory=list)


class DensityAction(PagefitModel):
    type: DensityActionType
    target_area: DensityTargetArea
    description: str
    impact: float


class DensityOptimizationResult(PagefitModel):
    """Comparison of current density against a target density."""

    current_density: float
    target_density: float
    density_gap: float = Field(..., description="target_density - current_density")
    optimization_actions: List[DensityAction] = Field(default_factory=list)
    reference_alignment: float = Field(..., ge=0.0, le=1.0)


class ContentUtilizationAnalysis(PagefitModel):
    """Full analysis of a selection."""

    utilization_percentage: float
    empty_space_detected: bool
    overflow_detected: bool
    recommendations: List[ContentUtilizationRecommendation] = Field(default_factory=list)
    density_optimization: DensityOptimizationResult

    @property
    def status(self) -> UtilizationStatus:
        """Classify the selection as underfilled, balanced or overflowing."""
        if self.overflow_detected:
            return UtilizationStatus.OVERFLOWING
        if self.empty_space_detected:
            return UtilizationStatus.UNDERFILLED
        return UtilizationStatus.BALANCED


class ContentExpansionSuggestion(PagefitModel):
    """Content that could fill empty space."""

    topic_id: str
    subtopic_id: Optional[str] = None
    expansion_type: ExpansionType
    suggested_content: str
    estimated_space: float
    relevance_score: float


class ContentReductionStrategy(PagefitModel):
    """A way to recover space when a selection overflows."""

    reduction_type: ReductionType
    target_ids: List[str] = Field(default_factory=list)
    space_recovered: float
    content_impact: ContentImpact
    preservation_score: float = Field(..., ge=0.0, le=1.0)


class SelectionValidation(PagefitModel):
    """Result of validating an explicit topic selection."""

    is_valid: bool
    total_space: int
    used_space: float
    utilization_percentage: float
    warnings: List[str] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)


class AllocationConfig(BaseModel):
    """Tunable constants for space estimation and allocation."""

    margin_factor: float = Field(default=0.85, description="Usable fraction of each page after margins")
    column_spacing_factor: float = Field(default=0.95, description="Space kept per additional column")
    formatting_overhead: float = Field(default=1.2, description="Multiplier for headers, bullets and spacing")
    multi_column_overhead: float = Field(default=1.1, description="Multiplier for column breaks")
    topic_title_overhead: int = Field(default=50, description="Space units for a topic title")
    subtopic_title_overhead: int = Field(default=30, description="Space units for a subtopic title")
    example_space: int = Field(default=200, description="Space units per example image")
    buffer_space: float = Field(default=0.10, description="Reserve kept free during the mandatory phase")
    target_utilization: float = Field(default=0.85, description="Fill-phase and density target")
    underfilled_threshold: float = Field(default=0.7, description="Utilization below this is underfilled")
    balanced_upper_threshold: float = Field(default=0.85, description="Upper bound of the expand band")
    overflow_threshold: float = Field(default=0.95, description="Utilization above this overflows")
    expansion_threshold: float = Field(default=0.8, description="Utilization below which expansions are sought")
    merge_similarity_threshold: float = Field(default=0.6, description="Title similarity for merge candidates")
    max_suggestions: int = Field(default=5, description="Maximum suggestions returned")
    overflow_sentinel: float = Field(
        default=999.0, description="Utilization reported when the budget is zero or negative"
    )

    class Config:
        """Pydantic configuration."""

        json_schema_extra = {
            "example": {
                "margin_factor": 0.85,
                "buffer_space": 0.1,
                "target_utilization": 0.85,
                "overflow_threshold": 0.95,
                "overflow_sentinel": 999.0
            }
        }
