#!/usr/bin/env python3
"""
Demo script for the page space allocation engine.

Walks through a compact "exam cheat sheet" scenario:
- Budget calculation for a page configuration
- Four-phase topic selection
- Utilization analysis with expansion and reduction advice
- Configuration tips

Usage:
    python examples/allocation_demo.py
"""

from pagefit import ContentUtilizationService, SpaceAdvisor, SpaceCalculationService
from pagefit.models import (
    FontSize,
    OrganizationStyle,
    Priority,
    ReferenceFormatAnalysis,
    SpaceConstraints,
    SubTopic,
    Topic,
)


def create_calculus_topics() -> list[Topic]:
    """Create candidate topics for a one-page calculus summary."""
    return [
        Topic(
            id="limits",
            title="Limits",
            content="Definition of a limit, one-sided limits, squeeze theorem. " * 12,
            priority=Priority.HIGH,
            confidence=0.95,
            subtopics=[
                SubTopic(id="lhopital", title="L'Hopital's rule", content="0/0 and inf/inf forms. " * 8,
                         priority=Priority.HIGH, confidence=0.9),
                SubTopic(id="continuity", title="Continuity", content="Removable and jump discontinuities. " * 6,
                         priority=Priority.MEDIUM, confidence=0.8),
            ],
        ),
        Topic(
            id="derivatives",
            title="Derivatives",
            content="Power, product, quotient and chain rules. " * 20,
            priority=Priority.HIGH,
            confidence=0.9,
            examples=["tangent-line.png"],
        ),
        Topic(
            id="integrals",
            title="Integrals",
            content="Substitution, integration by parts, partial fractions. " * 18,
            priority=Priority.MEDIUM,
            confidence=0.85,
            subtopics=[
                SubTopic(id="improper", title="Improper integrals", content="Convergence tests. " * 10,
                         priority=Priority.LOW, confidence=0.6),
            ],
        ),
        Topic(
            id="series",
            title="Series",
            content="Geometric, p-series, ratio and root tests, Taylor series. " * 25,
            priority=Priority.MEDIUM,
            confidence=0.8,
        ),
        Topic(
            id="history",
            title="History of calculus",
            content="Newton and Leibniz priority dispute. " * 30,
            priority=Priority.LOW,
            confidence=0.5,
        ),
    ]


def demo_available_space(service: SpaceCalculationService):
    """Demonstrate budgets for several page configurations."""
    print("📏 Available Space...")

    for label, constraints in [
        ("1 page, A4, medium font", SpaceConstraints()),
        ("1 page, A4, small font", SpaceConstraints(font_size=FontSize.SMALL)),
        ("2 pages, A4, 2 columns", SpaceConstraints(available_pages=2, columns=2)),
    ]:
        print(f"   {label}: {service.calculate_available_space(constraints)} units")
    print()


def demo_optimization(service: SpaceCalculationService, advisor: SpaceAdvisor, topics, constraints):
    """Demonstrate greedy topic selection."""
    print("🧮 Topic Selection...")

    available = service.calculate_available_space(constraints)
    result = service.optimize_space_utilization(topics, available)

    print(f"   Budget: {available} units")
    print(f"   Selected topics: {', '.join(result.recommended_topics)}")
    for topic_id in result.recommended_topics:
        subtopic_ids = result.subtopics_for(topic_id)
        if subtopic_ids:
            print(f"      {topic_id}: {', '.join(subtopic_ids)}")
    print(f"   Utilization: {result.utilization_score:.1%}")

    for suggestion in result.suggestions:
        print(f"   💡 {suggestion.description} ({suggestion.space_impact:+.0f})")

    validation = advisor.validate_topic_selection(
        result.recommended_topics, result.recommended_subtopics, topics, constraints
    )
    print(f"   Valid: {'✅' if validation.is_valid else '❌'}")
    print()

    return service.build_topic_selections(topics, result)


def demo_analysis(utilization: ContentUtilizationService, selection, topics, constraints):
    """Demonstrate utilization analysis against a reference document."""
    print("🔍 Utilization Analysis...")

    reference = ReferenceFormatAnalysis(
        content_density=9000,
        topic_count=4,
        average_topic_length=1500,
        organization_style=OrganizationStyle.HIERARCHICAL,
    )
    analysis = utilization.analyze_content_utilization(selection, topics, constraints, reference)

    print(f"   Status: {analysis.status.value} ({analysis.utilization_percentage:.1%})")
    density = analysis.density_optimization
    print(f"   Density: {density.current_density:.2f} → {density.target_density:.2f}")
    print(f"   Reference alignment: {density.reference_alignment:.2f}")
    for recommendation in analysis.recommendations:
        print(f"   • [{recommendation.priority.value}] {recommendation.description}")
    print()


def demo_reduction(service: SpaceCalculationService, utilization: ContentUtilizationService, topics):
    """Demonstrate reduction strategies for a tight layout."""
    print("✂️  Content Reduction...")

    constraints = SpaceConstraints(font_size=FontSize.LARGE, columns=3)
    available = service.calculate_available_space(constraints)
    selection = service.build_topic_selections(
        topics, service.optimize_space_utilization(topics, available * 2)
    )
    used = sum(entry.estimated_space for entry in selection)
    overflow = max(0.0, used - available)

    print(f"   Budget: {available} units, selected: {used:.0f} units")
    for strategy in utilization.create_content_reduction_strategy(selection, topics, overflow):
        print(
            f"   • {strategy.reduction_type.value}: {', '.join(strategy.target_ids)} "
            f"recovers {strategy.space_recovered:.0f} ({strategy.content_impact.value})"
        )
    print()


def demo_tips(service: SpaceCalculationService, advisor: SpaceAdvisor, topics, constraints):
    """Demonstrate configuration advice."""
    print("💡 Configuration Tips...")

    available = service.calculate_available_space(constraints)
    suggested = advisor.suggest_optimal_configuration(constraints, topics, available)
    print(f"   Suggested: {suggested.available_pages} page(s), {suggested.font_size.value} font")
    for tip in advisor.generate_space_utilization_tips(topics, constraints, available):
        print(f"   • {tip}")


def main():
    """Run the allocation demo."""
    print("📐 Page Space Allocation Demo")
    print("=" * 60)

    service = SpaceCalculationService()
    utilization = ContentUtilizationService(service)
    advisor = SpaceAdvisor(service)

    constraints = SpaceConstraints()
    topics = advisor.add_space_estimates(create_calculus_topics(), constraints)

    demo_available_space(service)
    selection = demo_optimization(service, advisor, topics, constraints)
    demo_analysis(utilization, selection, topics, constraints)
    demo_reduction(service, utilization, topics)
    demo_tips(service, advisor, topics, constraints)

    print("\n🚀 Usage in CLI:")
    print("   pagefit optimize request.json --pages 1 --font-size medium")
    print("   pagefit analyze request.json --json")


if __name__ == "__main__":
    main()
