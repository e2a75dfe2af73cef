"""Tests for the space calculation service."""

import math

import pytest

from pagefit.models import (
    AllocationConfig,
    FontSize,
    LayoutPattern,
    OrganizationStyle,
    PageSize,
    Priority,
    ReferenceFormatAnalysis,
    SpaceConstraints,
    SubTopic,
    SuggestionType,
    Topic,
    TopicSelection,
    UtilizationStatus,
)
from pagefit.space_calculator import (
    ADD_SUGGESTION_MIN_REMAINING,
    EXPAND_SUGGESTION_MIN_REMAINING,
    SpaceCalculationService,
)


def make_topic(topic_id, space, priority=Priority.MEDIUM, confidence=0.8, subtopics=None, title=None):
    return Topic(
        id=topic_id,
        title=title or f"Topic {topic_id}",
        priority=priority,
        confidence=confidence,
        estimated_space=space,
        subtopics=subtopics or [],
    )


class TestAvailableSpace:
    """Tests for space budget calculation."""

    def setup_method(self):
        """Set up test fixtures."""
        self.service = SpaceCalculationService()

    def test_single_a4_page(self):
        """Test the budget of one A4 page at medium font."""
        assert self.service.calculate_available_space(SpaceConstraints()) == 11504

    def test_two_a4_pages(self):
        """Test the budget of two A4 pages at medium font."""
        constraints = SpaceConstraints(available_pages=2)
        assert self.service.calculate_available_space(constraints) == 23008

    def test_large_font_three_columns(self):
        """Test the budget with column spacing losses."""
        constraints = SpaceConstraints(font_size=FontSize.LARGE, columns=3)
        assert self.service.calculate_available_space(constraints) == 7416

    def test_increasing_in_pages(self):
        """Test that more pages give more space."""
        spaces = [
            self.service.calculate_available_space(SpaceConstraints(available_pages=pages))
            for pages in (1, 2, 3, 4)
        ]
        assert spaces == sorted(spaces)
        assert len(set(spaces)) == len(spaces)

    def test_decreasing_in_font_size(self):
        """Test that larger fonts give less space."""
        small, medium, large = (
            self.service.calculate_available_space(SpaceConstraints(font_size=size))
            for size in (FontSize.SMALL, FontSize.MEDIUM, FontSize.LARGE)
        )
        assert small > medium > large

    def test_decreasing_in_columns(self):
        """Test that more columns give less space."""
        spaces = [
            self.service.calculate_available_space(SpaceConstraints(columns=columns))
            for columns in (1, 2, 3)
        ]
        assert spaces[0] > spaces[1] > spaces[2]

    @pytest.mark.parametrize("page_size", list(PageSize))
    def test_all_page_sizes(self, page_size):
        """Test that every page size yields a positive budget."""
        constraints = SpaceConstraints(page_size=page_size)
        assert self.service.calculate_available_space(constraints) > 0

    def test_a3_larger_than_a4(self):
        """Test that bigger paper gives more space."""
        a4 = self.service.calculate_available_space(SpaceConstraints(page_size=PageSize.A4))
        a3 = self.service.calculate_available_space(SpaceConstraints(page_size=PageSize.A3))
        assert a3 > a4

    def test_custom_margin_factor(self):
        """Test that the margin factor comes from the config."""
        service = SpaceCalculationService(config=AllocationConfig(margin_factor=0.5))
        assert service.calculate_available_space(SpaceConstraints()) < 11504


class TestSpaceEstimation:
    """Tests for content space estimates."""

    def setup_method(self):
        """Set up test fixtures."""
        self.service = SpaceCalculationService()
        self.single = SpaceConstraints()
        self.double = SpaceConstraints(columns=2)

    def test_content_space(self):
        """Test formatting overhead on plain text."""
        assert self.service.estimate_content_space("a" * 100, self.single) == math.ceil(100 * 1.2)

    def test_content_space_multi_column(self):
        """Test the extra overhead for column breaks."""
        assert self.service.estimate_content_space("a" * 100, self.double) == math.ceil(100 * 1.2 * 1.1)

    def test_empty_content(self):
        """Test that empty text takes no space."""
        assert self.service.estimate_content_space("", self.single) == 0

    def test_subtopic_space(self):
        """Test the subtopic title overhead."""
        subtopic = SubTopic(id="s1", title="Chain rule", content="b" * 50)
        assert self.service.estimate_subtopic_space(subtopic, self.single) == math.ceil(50 * 1.2) + 30

    def test_topic_space(self):
        """Test topic space with subtopics and examples."""
        topic = Topic(
            id="t1",
            title="Derivatives",
            content="a" * 100,
            subtopics=[SubTopic(id="s1", title="Chain rule", content="b" * 50)],
            examples=["img-1", "img-2"],
        )
        expected = math.ceil(100 * 1.2) + 50 + (math.ceil(50 * 1.2) + 30) + 2 * 200
        assert self.service.estimate_topic_space(topic, self.single) == expected


class TestUtilization:
    """Tests for utilization ratios and classification."""

    def setup_method(self):
        """Set up test fixtures."""
        self.service = SpaceCalculationService()

    def test_ratio(self):
        """Test used over available."""
        assert self.service.calculate_utilization(500, 1000) == 0.5

    def test_zero_budget_is_overflow(self):
        """Test that a zero budget reports the overflow sentinel."""
        utilization = self.service.calculate_utilization(0, 0)

        assert utilization == 999.0
        assert self.service.classify_utilization(utilization) == UtilizationStatus.OVERFLOWING

    def test_negative_budget_is_overflow(self):
        """Test that a negative budget reports the overflow sentinel."""
        assert self.service.calculate_utilization(100, -5) == 999.0

    @pytest.mark.parametrize("utilization,expected", [
        (0.1, UtilizationStatus.UNDERFILLED),
        (0.69, UtilizationStatus.UNDERFILLED),
        (0.7, UtilizationStatus.BALANCED),
        (0.95, UtilizationStatus.BALANCED),
        (0.96, UtilizationStatus.OVERFLOWING),
    ])
    def test_classification(self, utilization, expected):
        """Test classification thresholds."""
        assert self.service.classify_utilization(utilization) == expected


class TestOptimalTopicCount:
    """Tests for optimal topic count estimation."""

    def setup_method(self):
        """Set up test fixtures."""
        self.service = SpaceCalculationService()

    def test_no_topics(self):
        """Test that no topics give a count of zero."""
        assert self.service.calculate_optimal_topic_count(11504, []) == 0

    def test_clamped_to_topic_count(self):
        """Test that small topics are capped at the number available."""
        topics = [make_topic(f"t{i}", 0) for i in range(3)]
        assert self.service.calculate_optimal_topic_count(11504, topics) == 3

    def test_at_least_one(self):
        """Test that a tiny budget still recommends one topic."""
        topics = [Topic(id="t1", title="Long", content="a" * 5000)]
        assert self.service.calculate_optimal_topic_count(10, topics) == 1

    def test_weighted_average(self):
        """Test the count derived from the average topic size."""
        # Each topic measures 6000 + 50 units on the baseline layout
        topics = [Topic(id=f"t{i}", title="Long", content="a" * 5000) for i in range(5)]
        assert self.service.calculate_optimal_topic_count(11504, topics) == 1
        assert self.service.calculate_optimal_topic_count(23008, topics) == 3

    def test_target_utilization(self):
        """Test that a lower target recommends fewer topics."""
        topics = [Topic(id=f"t{i}", title="Long", content="a" * 5000) for i in range(5)]

        assert self.service.calculate_optimal_topic_count(23008, topics, target_utilization=0.5) == 1

    def test_with_hierarchical_reference(self):
        """Test the reference-scaled count for hierarchical documents."""
        topics = [make_topic(f"t{i}", 100) for i in range(20)]
        reference = ReferenceFormatAnalysis(content_density=11504, topic_count=10, average_topic_length=500)

        assert self.service.calculate_optimal_topic_count(11504, topics, reference) == 9

    def test_with_flat_reference(self):
        """Test the reference-scaled count for flat documents."""
        topics = [make_topic(f"t{i}", 100) for i in range(20)]
        reference = ReferenceFormatAnalysis(
            content_density=11504,
            topic_count=10,
            average_topic_length=500,
            organization_style=OrganizationStyle.FLAT,
        )

        assert self.service.calculate_optimal_topic_count(11504, topics, reference) == 11

    def test_non_decreasing_in_pages(self):
        """Test that more pages never recommend fewer topics."""
        topics = [Topic(id=f"t{i}", title="Topic", content="a" * (400 * (i + 1))) for i in range(10)]
        counts = []
        for pages in range(1, 6):
            space = self.service.calculate_available_space(SpaceConstraints(available_pages=pages))
            counts.append(self.service.calculate_optimal_topic_count(space, topics))

        assert counts == sorted(counts)


class TestOptimizeSpaceUtilization:
    """Tests for the greedy allocation."""

    def setup_method(self):
        """Set up test fixtures."""
        self.service = SpaceCalculationService()

    def test_all_phases(self):
        """Test that each priority tier is placed in its phase."""
        topics = [
            make_topic("low", 200, Priority.LOW),
            make_topic("medium", 300, Priority.MEDIUM),
            make_topic("high", 300, Priority.HIGH),
        ]

        result = self.service.optimize_space_utilization(topics, 1000)

        assert result.recommended_topics == ["high", "medium", "low"]
        assert result.utilization_score == pytest.approx(0.8)
        assert result.estimated_final_utilization == pytest.approx(0.8)

    def test_high_priority_respects_buffer(self):
        """Test that mandatory content never eats into the buffer."""
        topics = [make_topic("big", 950, Priority.HIGH)]

        result = self.service.optimize_space_utilization(topics, 1000)

        assert result.recommended_topics == []

    def test_fitting_high_priority_always_selected(self):
        """Test that high-priority topics within the buffered budget are selected."""
        topics = [
            make_topic("m1", 400, Priority.MEDIUM, confidence=1.0),
            make_topic("h1", 400, Priority.HIGH, confidence=0.1),
            make_topic("h2", 400, Priority.HIGH, confidence=0.1),
        ]

        result = self.service.optimize_space_utilization(topics, 1000)

        assert "h1" in result.recommended_topics
        assert "h2" in result.recommended_topics
        assert "m1" not in result.recommended_topics

    def test_fill_phase_stops_at_target(self):
        """Test that medium content stops at the target utilization."""
        topics = [make_topic(f"m{i}", 300) for i in range(3)]

        result = self.service.optimize_space_utilization(topics, 1000)

        # A third topic would reach 900 > 850
        assert result.recommended_topics == ["m0", "m1"]

    def test_lower_target_selects_fewer_medium_topics(self):
        """Test that the caller's target utilization bounds the fill phase."""
        topics = [make_topic(f"m{i}", 1000) for i in range(10)]

        default = self.service.optimize_space_utilization(topics, 11504)
        half = self.service.optimize_space_utilization(topics, 11504, target_utilization=0.5)

        assert len(default.recommended_topics) == 9
        assert len(half.recommended_topics) == 5

    def test_configured_target_used_by_default(self):
        """Test that the configured target applies when none is passed."""
        service = SpaceCalculationService(AllocationConfig(target_utilization=0.5))
        topics = [make_topic(f"m{i}", 1000) for i in range(10)]

        result = service.optimize_space_utilization(topics, 11504)

        assert len(result.recommended_topics) == 5

    def test_higher_score_selected_first(self):
        """Test that candidates are ranked by topic score."""
        topics = [
            make_topic("m0", 300, confidence=0.1),
            make_topic("m1", 300, confidence=0.2),
            make_topic("m2", 300, confidence=0.9),
        ]

        result = self.service.optimize_space_utilization(topics, 1000)

        assert result.recommended_topics == ["m2", "m1"]

    def test_tier_subtopics_selected_with_topic(self):
        """Test that same-tier subtopics come with their topic and others are fine-tuned in."""
        topic = make_topic(
            "h1",
            300,
            Priority.HIGH,
            subtopics=[
                SubTopic(id="sh", title="Core", priority=Priority.HIGH, estimated_space=50),
                SubTopic(id="sl", title="Aside", priority=Priority.LOW, estimated_space=40),
            ],
        )

        result = self.service.optimize_space_utilization([topic], 1000)

        assert result.recommended_topics == ["h1"]
        assert result.subtopics_for("h1") == ["sh", "sl"]
        assert result.utilization_score == pytest.approx(0.39)

    def test_fine_tuning_respects_remaining_space(self):
        """Test that fine-tuning only adds subtopics that fit."""
        topic = make_topic(
            "h1",
            800,
            Priority.HIGH,
            subtopics=[
                SubTopic(id="s-big", title="Big", priority=Priority.LOW, estimated_space=300),
                SubTopic(id="s-small", title="Small", priority=Priority.LOW, estimated_space=60),
            ],
        )

        result = self.service.optimize_space_utilization([topic], 1000)

        assert result.subtopics_for("h1") == ["s-small"]

    def test_low_priority_backfill(self):
        """Test that low-priority topics fill what is left."""
        topics = [
            make_topic("h1", 500, Priority.HIGH),
            make_topic("l1", 300, Priority.LOW, confidence=0.9),
            make_topic("l2", 300, Priority.LOW, confidence=0.1),
        ]

        result = self.service.optimize_space_utilization(topics, 1000)

        assert result.recommended_topics == ["h1", "l1"]

    def test_zero_budget(self):
        """Test that nothing is selected for a zero budget."""
        topics = [make_topic("h1", 100, Priority.HIGH), make_topic("m1", 100)]

        result = self.service.optimize_space_utilization(topics, 0)

        assert result.recommended_topics == []
        assert result.utilization_score == 999.0
        assert result.estimated_final_utilization == 1.0

    def test_no_topics(self):
        """Test an empty candidate list."""
        result = self.service.optimize_space_utilization([], 1000)

        assert result.recommended_topics == []
        assert result.recommended_subtopics == []
        assert result.utilization_score == 0

    def test_deterministic(self):
        """Test that identical inputs give identical results."""
        topics = [
            make_topic(f"t{i}", 150 + 37 * i, list(Priority)[i % 3], confidence=(i % 5) / 5)
            for i in range(12)
        ]

        first = self.service.optimize_space_utilization(topics, 2000)
        second = self.service.optimize_space_utilization(topics, 2000)

        assert first.model_dump() == second.model_dump()

    def test_reference_changes_buffer(self):
        """Test that a hierarchical reference reserves a larger buffer."""
        topics = [make_topic("h1", 880, Priority.HIGH)]
        reference = ReferenceFormatAnalysis(content_density=900, topic_count=1, average_topic_length=100)

        without_reference = self.service.optimize_space_utilization(topics, 1000)
        with_reference = self.service.optimize_space_utilization(topics, 1000, reference)

        assert without_reference.recommended_topics == ["h1"]
        assert with_reference.recommended_topics == []

    def test_multi_column_reference_buffer(self):
        """Test the extra buffer for multi-column references."""
        topics = [make_topic("h1", 920, Priority.HIGH)]
        flat = ReferenceFormatAnalysis(
            content_density=900,
            topic_count=1,
            average_topic_length=100,
            organization_style=OrganizationStyle.FLAT,
        )
        flat_multi_column = flat.model_copy(update={"layout_pattern": LayoutPattern.MULTI_COLUMN})

        assert self.service.optimize_space_utilization(topics, 1000, flat).recommended_topics == ["h1"]
        assert self.service.optimize_space_utilization(topics, 1000, flat_multi_column).recommended_topics == []

    def test_suggestions_attached(self):
        """Test that the result carries follow-up suggestions."""
        topics = [
            make_topic("h1", 300, Priority.HIGH),
            make_topic("m1", 300),
            make_topic("l1", 200, Priority.LOW),
        ]

        result = self.service.optimize_space_utilization(topics, 1000)

        # 80% utilization falls in the expand band
        assert [suggestion.type for suggestion in result.suggestions] == [SuggestionType.EXPAND_CONTENT] * 2
        assert result.suggestions[0].space_impact == pytest.approx(60)


class TestTopicScore:
    """Tests for topic and fit scores."""

    def setup_method(self):
        """Set up test fixtures."""
        self.service = SpaceCalculationService()

    def test_topic_score_without_reference(self):
        """Test the composite score."""
        topic = Topic(
            id="t1",
            title="Limits",
            priority=Priority.HIGH,
            confidence=1.0,
            subtopics=[SubTopic(id=f"s{i}", title="Sub") for i in range(5)],
            examples=["a", "b", "c", "d"],
        )

        # 0.4 + 0.25 + min(0.2, 0.25) + min(0.1, 0.12)
        assert self.service.calculate_topic_score(topic) == pytest.approx(0.95)

    def test_topic_score_reference_alignment(self):
        """Test that matching the reference length adds to the score."""
        reference = ReferenceFormatAnalysis(content_density=1000, topic_count=1, average_topic_length=100)
        aligned = Topic(id="t1", title="A", content="a" * 100)
        misaligned = Topic(id="t2", title="B", content="a" * 10)

        assert self.service.calculate_topic_score(aligned, reference) == pytest.approx(0.28 + 0.15)
        assert self.service.calculate_topic_score(misaligned, reference) < self.service.calculate_topic_score(
            aligned, reference
        )

    def test_fit_score(self):
        """Test the fit score for filling remaining space."""
        topic = make_topic("t1", 200, Priority.MEDIUM, confidence=0.5)

        assert self.service.calculate_fit_score(topic, 100) == pytest.approx(0.28 + 0.15 + 0.1)
        assert self.service.calculate_fit_score(topic, 400) == pytest.approx(0.28 + 0.3 + 0.1)


class TestSpaceSuggestions:
    """Tests for space suggestions."""

    def setup_method(self):
        """Set up test fixtures."""
        self.service = SpaceCalculationService()

    def test_underfilled_suggests_additions(self):
        """Test add suggestions for an underfilled selection."""
        topics = [
            make_topic("h1", 100, Priority.HIGH, subtopics=[
                SubTopic(id="s1", title="Detail", priority=Priority.LOW, estimated_space=50),
            ]),
            make_topic("m1", 200, confidence=0.5),
            make_topic("huge", 2000, Priority.LOW),
        ]
        selection = [TopicSelection(topic_id="h1", priority=Priority.HIGH, estimated_space=100)]

        suggestions = self.service.generate_space_suggestions(selection, 1000, topics)

        assert [(s.type, s.target_id) for s in suggestions] == [
            (SuggestionType.ADD_TOPIC, "m1"),
            (SuggestionType.ADD_SUBTOPIC, "s1"),
        ]

    def test_add_topic_ranked_by_fit(self):
        """Test that at most three topics are suggested, best fit first."""
        topics = [make_topic("sel", 100)] + [
            make_topic(f"c{i}", 100, confidence=i / 10) for i in range(5)
        ]
        selection = [TopicSelection(topic_id="sel", estimated_space=100)]

        suggestions = self.service.generate_space_suggestions(selection, 1000, topics)

        assert [s.target_id for s in suggestions] == ["c4", "c3", "c2"]

    def test_balanced_low_suggests_expansion(self):
        """Test expand suggestions in the [0.7, 0.85) band."""
        topics = [make_topic("t1", 400), make_topic("t2", 300), make_topic("t3", 100)]
        selection = [
            TopicSelection(topic_id="t1", estimated_space=400),
            TopicSelection(topic_id="t2", estimated_space=300),
            TopicSelection(topic_id="t3", estimated_space=100),
        ]

        suggestions = self.service.generate_space_suggestions(selection, 1000, topics)

        assert [s.target_id for s in suggestions] == ["t1", "t2"]
        assert all(s.type == SuggestionType.EXPAND_CONTENT for s in suggestions)
        assert all(s.space_impact == pytest.approx(60) for s in suggestions)

    def test_well_filled_no_suggestions(self):
        """Test that a selection near the target gets no suggestions."""
        topics = [make_topic("t1", 900)]
        selection = [TopicSelection(topic_id="t1", estimated_space=900)]

        assert self.service.generate_space_suggestions(selection, 1000, topics) == []

    def test_minimum_remaining_space_gates(self):
        """Test that small remainders produce no add or expand suggestions."""
        topics = [make_topic("t1", 10), make_topic("t2", 10)]

        # Underfilled, but only the minimum remaining space is left
        selection = [TopicSelection(topic_id="t1", estimated_space=ADD_SUGGESTION_MIN_REMAINING)]
        assert self.service.generate_space_suggestions(
            selection, 2 * ADD_SUGGESTION_MIN_REMAINING, topics
        ) == []

        # Balanced-low at 0.75 with exactly the expansion minimum left
        selection = [TopicSelection(topic_id="t1", estimated_space=3 * EXPAND_SUGGESTION_MIN_REMAINING)]
        assert self.service.generate_space_suggestions(
            selection, 4 * EXPAND_SUGGESTION_MIN_REMAINING, topics
        ) == []

    def test_overflow_removes_low_priority_topics(self):
        """Test removal suggestions, largest low-priority topic first."""
        topics = [
            make_topic("a", 600, Priority.HIGH),
            make_topic("b", 300, Priority.LOW),
            make_topic("c", 200, Priority.LOW),
        ]
        selection = [
            TopicSelection(topic_id="a", priority=Priority.HIGH, estimated_space=600),
            TopicSelection(topic_id="c", priority=Priority.LOW, estimated_space=200),
            TopicSelection(topic_id="b", priority=Priority.LOW, estimated_space=300),
        ]

        suggestions = self.service.generate_space_suggestions(selection, 1000, topics)

        assert len(suggestions) == 1
        assert suggestions[0].type == SuggestionType.REDUCE_CONTENT
        assert suggestions[0].target_id == "b"
        assert suggestions[0].space_impact == -300

    def test_overflow_falls_back_to_subtopics(self):
        """Test subtopic removal when no low-priority topic is selected."""
        topics = [
            make_topic("a", 1000, Priority.HIGH, subtopics=[
                SubTopic(id="s-low", title="Aside", priority=Priority.LOW, estimated_space=100),
                SubTopic(id="s-high", title="Core", priority=Priority.HIGH, estimated_space=100),
            ]),
        ]
        selection = [
            TopicSelection(
                topic_id="a",
                subtopic_ids=["s-low", "s-high"],
                priority=Priority.HIGH,
                estimated_space=1200,
            )
        ]

        suggestions = self.service.generate_space_suggestions(selection, 1000, topics)

        assert [(s.target_id, s.space_impact) for s in suggestions] == [("s-low", -100)]

    def test_at_most_five(self):
        """Test the cap on suggestions."""
        topics = [make_topic(f"t{i}", 10, subtopics=[
            SubTopic(id=f"t{i}-s{j}", title="Sub", estimated_space=5) for j in range(3)
        ]) for i in range(10)]
        selection = [TopicSelection(topic_id=f"t{i}", estimated_space=10) for i in range(5)]

        assert len(self.service.generate_space_suggestions(selection, 1000, topics)) == 5

    def test_empty_selection_and_topics(self):
        """Test that empty inputs give no suggestions."""
        assert self.service.generate_space_suggestions([], 1000, []) == []


class TestSelections:
    """Tests for turning results into selections and summaries."""

    def setup_method(self):
        """Set up test fixtures."""
        self.service = SpaceCalculationService()

    def test_build_topic_selections(self):
        """Test aggregate selection space including chosen subtopics."""
        topics = [
            make_topic("h1", 300, Priority.HIGH, subtopics=[
                SubTopic(id="s1", title="Core", priority=Priority.HIGH, estimated_space=50),
            ]),
        ]
        result = self.service.optimize_space_utilization(topics, 1000)

        selections = self.service.build_topic_selections(topics, result)

        assert len(selections) == 1
        assert selections[0].topic_id == "h1"
        assert selections[0].subtopic_ids == ["s1"]
        assert selections[0].priority == Priority.HIGH
        assert selections[0].estimated_space == 350

    def test_space_utilization_summary(self):
        """Test the utilization summary."""
        topics = [make_topic("t1", 400)]
        selection = [TopicSelection(topic_id="t1", estimated_space=400)]

        info = self.service.calculate_space_utilization(selection, 1000, topics)

        assert info.total_available_space == 1000
        assert info.used_space == 400
        assert info.remaining_space == 600
        assert info.utilization_percentage == pytest.approx(0.4)

    def test_space_utilization_overflow_remaining_floor(self):
        """Test that remaining space never goes negative."""
        topics = [make_topic("t1", 1500, Priority.LOW)]
        selection = [TopicSelection(topic_id="t1", priority=Priority.LOW, estimated_space=1500)]

        info = self.service.calculate_space_utilization(selection, 1000, topics)

        assert info.remaining_space == 0
        assert info.utilization_percentage == pytest.approx(1.5)
        assert info.suggestions[0].type == SuggestionType.REDUCE_CONTENT
