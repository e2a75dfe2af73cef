"""Command-line interface for the pagefit space allocation engine."""

import json
import sys
from pathlib import Path
from typing import Optional

import click
from dotenv import load_dotenv
from pydantic import BaseModel
from rich.console import Console
from rich.table import Table

from . import __version__
from .content_utilization import ContentUtilizationService
from .exceptions import PagefitError
from .input_loader import AllocationRequest, load_config, load_request
from .models import (
    AllocationConfig,
    FontSize,
    PageSize,
    SpaceConstraints,
    UtilizationStatus,
)
from .space_advisor import SpaceAdvisor
from .space_calculator import SpaceCalculationService

# Load environment variables
load_dotenv()

console = Console()

STATUS_COLORS = {
    UtilizationStatus.UNDERFILLED: "yellow",
    UtilizationStatus.BALANCED: "green",
    UtilizationStatus.OVERFLOWING: "red",
}


def _configure_logging(debug: bool, log_file: Optional[Path]):
    """Configure root logging handlers and level."""
    import logging

    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file, mode="w"))

    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=handlers,
    )


def constraint_options(command):
    """Attach the page layout options shared by every command."""
    options = [
        click.option(
            "--pages", "-p",
            default=1,
            type=click.IntRange(min=1),
            envvar="PAGEFIT_PAGES",
            show_default=True,
            help="Number of pages available"
        ),
        click.option(
            "--page-size",
            default=PageSize.A4.value,
            type=click.Choice([size.value for size in PageSize]),
            envvar="PAGEFIT_PAGE_SIZE",
            show_default=True,
            help="Physical page size"
        ),
        click.option(
            "--font-size",
            default=FontSize.MEDIUM.value,
            type=click.Choice([size.value for size in FontSize]),
            envvar="PAGEFIT_FONT_SIZE",
            show_default=True,
            help="Body font size preset"
        ),
        click.option(
            "--columns", "-c",
            default=1,
            type=click.IntRange(min=1),
            envvar="PAGEFIT_COLUMNS",
            show_default=True,
            help="Number of text columns"
        ),
        click.option(
            "--target-utilization",
            default=None,
            type=click.FloatRange(min=0, max=1, min_open=True),
            envvar="PAGEFIT_TARGET_UTILIZATION",
            help="Desired fraction of space to fill (defaults to the configured target)"
        ),
        click.option(
            "--json", "as_json",
            is_flag=True,
            help="Print the result as JSON"
        ),
    ]
    for option in reversed(options):
        command = option(command)
    return command


request_argument = click.argument(
    "request_path",
    type=click.Path(path_type=Path),
)


def _build_constraints(
    pages: int,
    page_size: str,
    font_size: str,
    columns: int,
    target_utilization: Optional[float]
) -> SpaceConstraints:
    constraints = SpaceConstraints(
        available_pages=pages,
        page_size=PageSize(page_size),
        font_size=FontSize(font_size),
        columns=columns,
    )
    if target_utilization is not None:
        constraints = constraints.model_copy(update={"target_utilization": target_utilization})
    return constraints


def _fail(message: str, hint: Optional[str] = None):
    console.print(f"[red]❌ {message}[/red]")
    if hint:
        console.print(f"Hint: {hint}")
    sys.exit(1)


def _load_request(request_path: Path) -> AllocationRequest:
    try:
        return load_request(request_path)
    except PagefitError as e:
        _fail(f"Error loading request: {e}", "requests are JSON objects with topics, selection and reference")


def _space_service(ctx: click.Context) -> SpaceCalculationService:
    return SpaceCalculationService(config=ctx.obj["config"])


def _echo_json(result):
    """Print a model, or a list of models, as camelCase JSON."""
    if isinstance(result, BaseModel):
        click.echo(result.model_dump_json(by_alias=True, indent=2))
        return

    click.echo(json.dumps(
        [item.model_dump(mode="json", by_alias=True) if isinstance(item, BaseModel) else item
         for item in result],
        indent=2,
    ))


def _print_space_suggestions(suggestions):
    if not suggestions:
        console.print("No suggestions.")
        return

    table = Table(title="Space Suggestions")
    table.add_column("Type", style="bold")
    table.add_column("Target")
    table.add_column("Impact", justify="right")
    table.add_column("Description")

    for suggestion in suggestions:
        table.add_row(
            suggestion.type.value,
            suggestion.target_id,
            f"{suggestion.space_impact:+.0f}",
            suggestion.description,
        )

    console.print(table)


@click.group()
@click.version_option(version=__version__)
@click.option("--debug", is_flag=True, help="Show debug logging")
@click.option("--log-file", type=click.Path(path_type=Path), help="Write logs to file")
@click.option(
    "--config", "config_path",
    type=click.Path(path_type=Path),
    envvar="PAGEFIT_CONFIG",
    help="JSON file with allocation tuning constants"
)
@click.pass_context
def cli(ctx: click.Context, debug: bool, log_file: Optional[Path], config_path: Optional[Path]):
    """
    pagefit - space allocation for compact study documents.

    Select topics and subtopics that fill a page budget without overflowing it.
    """
    _configure_logging(debug, log_file)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug

    config = AllocationConfig()
    if config_path:
        try:
            config = load_config(config_path)
        except PagefitError as e:
            _fail(f"Error loading config: {e}")
    ctx.obj["config"] = config


@cli.command("available-space")
@constraint_options
@click.pass_context
def available_space(ctx, pages, page_size, font_size, columns, target_utilization, as_json):
    """Show the space budget for a page layout."""
    constraints = _build_constraints(pages, page_size, font_size, columns, target_utilization)
    space = _space_service(ctx).calculate_available_space(constraints)

    if as_json:
        click.echo(json.dumps({
            "availableSpace": space,
            "constraints": constraints.model_dump(mode="json", by_alias=True),
        }, indent=2))
        return

    table = Table(title="Available Space")
    table.add_column("Setting", style="bold")
    table.add_column("Value")
    table.add_row("Pages", str(constraints.available_pages))
    table.add_row("Page Size", constraints.page_size.value)
    table.add_row("Font Size", constraints.font_size.value)
    table.add_row("Columns", str(constraints.columns))
    table.add_row("Available Space", f"{space} units")
    console.print(table)


@cli.command()
@request_argument
@constraint_options
@click.option(
    "--estimate",
    is_flag=True,
    help="Recompute space estimates from topic content before allocating"
)
@click.pass_context
def optimize(ctx, request_path, pages, page_size, font_size, columns, target_utilization, as_json, estimate):
    """Select the topics and subtopics that best fill the page budget."""
    request = _load_request(request_path)
    constraints = _build_constraints(pages, page_size, font_size, columns, target_utilization)
    space_service = _space_service(ctx)

    topics = request.topics
    if estimate:
        topics = SpaceAdvisor(space_service).add_space_estimates(topics, constraints)

    space = space_service.calculate_available_space(constraints)
    result = space_service.optimize_space_utilization(
        topics, space, request.reference, target_utilization
    )

    if as_json:
        _echo_json(result)
        return

    titles = {topic.id: topic.title for topic in topics}
    table = Table(title="Recommended Topics")
    table.add_column("Topic", style="bold")
    table.add_column("Title")
    table.add_column("Subtopics")
    for topic_id in result.recommended_topics:
        table.add_row(topic_id, titles.get(topic_id, ""), ", ".join(result.subtopics_for(topic_id)))
    console.print(table)

    console.print(
        f"Utilization: {result.utilization_score:.1%} "
        f"(estimated final {result.estimated_final_utilization:.1%}) of {space} units"
    )
    _print_space_suggestions(result.suggestions)


@cli.command()
@request_argument
@constraint_options
@click.pass_context
def advise(ctx, request_path, pages, page_size, font_size, columns, target_utilization, as_json):
    """Recommend a topic count, page configuration and layout tips."""
    request = _load_request(request_path)
    constraints = _build_constraints(pages, page_size, font_size, columns, target_utilization)
    space_service = _space_service(ctx)
    advisor = SpaceAdvisor(space_service)

    space = space_service.calculate_available_space(constraints)
    optimal_count = space_service.calculate_optimal_topic_count(
        space, request.topics, request.reference, target_utilization
    )
    configuration = advisor.suggest_optimal_configuration(constraints, request.topics, space)
    tips = advisor.generate_space_utilization_tips(request.topics, constraints, space, request.reference)

    if as_json:
        click.echo(json.dumps({
            "optimalTopicCount": optimal_count,
            "suggestedConfiguration": configuration.model_dump(mode="json", by_alias=True),
            "spaceUtilizationTips": tips,
        }, indent=2))
        return

    table = Table(title="Configuration Advice")
    table.add_column("Setting", style="bold")
    table.add_column("Current")
    table.add_column("Suggested")
    table.add_row("Pages", str(constraints.available_pages), str(configuration.available_pages))
    table.add_row("Font Size", constraints.font_size.value, configuration.font_size.value)
    table.add_row("Optimal Topic Count", "", str(optimal_count))
    console.print(table)

    for tip in tips:
        console.print(f"  • {tip}")


@cli.command()
@request_argument
@constraint_options
@click.pass_context
def utilization(ctx, request_path, pages, page_size, font_size, columns, target_utilization, as_json):
    """Summarize how the current selection uses the page budget."""
    request = _load_request(request_path)
    constraints = _build_constraints(pages, page_size, font_size, columns, target_utilization)
    space_service = _space_service(ctx)

    space = space_service.calculate_available_space(constraints)
    info = space_service.calculate_space_utilization(request.selection, space, request.topics)

    if as_json:
        _echo_json(info)
        return

    status = space_service.classify_utilization(info.utilization_percentage)
    table = Table(title="Space Utilization")
    table.add_column("Metric", style="bold")
    table.add_column("Value")
    table.add_row("Available Space", str(info.total_available_space))
    table.add_row("Used Space", f"{info.used_space:.0f}")
    table.add_row("Remaining Space", f"{info.remaining_space:.0f}")
    table.add_row(
        "Utilization",
        f"[{STATUS_COLORS[status]}]{info.utilization_percentage:.1%} ({status.value})[/{STATUS_COLORS[status]}]"
    )
    console.print(table)
    _print_space_suggestions(info.suggestions)


@cli.command()
@request_argument
@constraint_options
@click.pass_context
def suggest(ctx, request_path, pages, page_size, font_size, columns, target_utilization, as_json):
    """Suggest adding, expanding or removing content for the current selection."""
    request = _load_request(request_path)
    constraints = _build_constraints(pages, page_size, font_size, columns, target_utilization)
    space_service = _space_service(ctx)

    space = space_service.calculate_available_space(constraints)
    suggestions = space_service.generate_space_suggestions(request.selection, space, request.topics)

    if as_json:
        _echo_json(suggestions)
        return

    _print_space_suggestions(suggestions)


@cli.command("topic-count")
@request_argument
@constraint_options
@click.pass_context
def topic_count(ctx, request_path, pages, page_size, font_size, columns, target_utilization, as_json):
    """Estimate how many topics fit the page budget."""
    request = _load_request(request_path)
    constraints = _build_constraints(pages, page_size, font_size, columns, target_utilization)
    space_service = _space_service(ctx)

    space = space_service.calculate_available_space(constraints)
    count = space_service.calculate_optimal_topic_count(
        space, request.topics, request.reference, target_utilization
    )

    if as_json:
        click.echo(json.dumps({"optimalTopicCount": count, "availableSpace": space}, indent=2))
        return

    console.print(f"Optimal topic count: [bold]{count}[/bold] of {len(request.topics)} ({space} units available)")


@cli.command()
@request_argument
@constraint_options
@click.pass_context
def analyze(ctx, request_path, pages, page_size, font_size, columns, target_utilization, as_json):
    """Analyze the current selection and recommend corrections."""
    request = _load_request(request_path)
    constraints = _build_constraints(pages, page_size, font_size, columns, target_utilization)
    service = ContentUtilizationService(_space_service(ctx))

    analysis = service.analyze_content_utilization(
        request.selection,
        request.topics,
        constraints,
        request.reference
    )

    if as_json:
        _echo_json(analysis)
        return

    color = STATUS_COLORS[analysis.status]
    console.print(
        f"[bold {color}]Utilization {analysis.utilization_percentage:.1%} "
        f"({analysis.status.value})[/bold {color}]"
    )

    if analysis.recommendations:
        table = Table(title="Recommendations")
        table.add_column("Priority", style="bold")
        table.add_column("Type")
        table.add_column("Targets")
        table.add_column("Impact", justify="right")
        table.add_column("Description")
        for recommendation in analysis.recommendations:
            table.add_row(
                recommendation.priority.value.upper(),
                recommendation.type.value,
                ", ".join(recommendation.target_ids),
                f"{recommendation.expected_space_impact:+.0f}",
                recommendation.description,
            )
        console.print(table)
    else:
        console.print("No recommendations.")

    density = analysis.density_optimization
    console.print(
        f"Density {density.current_density:.2f} vs target {density.target_density:.2f}, "
        f"reference alignment {density.reference_alignment:.2f}"
    )


@cli.command()
@request_argument
@constraint_options
@click.pass_context
def expand(ctx, request_path, pages, page_size, font_size, columns, target_utilization, as_json):
    """Suggest content to fill empty space."""
    request = _load_request(request_path)
    constraints = _build_constraints(pages, page_size, font_size, columns, target_utilization)
    space_service = _space_service(ctx)
    service = ContentUtilizationService(space_service)

    space = space_service.calculate_available_space(constraints)
    suggestions = service.detect_empty_space_and_suggest_content(
        request.selection,
        request.topics,
        space,
        request.reference
    )

    if as_json:
        _echo_json(suggestions)
        return

    if not suggestions:
        console.print("No expansion suggestions.")
        return

    table = Table(title="Expansion Suggestions")
    table.add_column("Topic", style="bold")
    table.add_column("Subtopic")
    table.add_column("Type")
    table.add_column("Space", justify="right")
    table.add_column("Relevance", justify="right")
    table.add_column("Suggestion")
    for suggestion in suggestions:
        table.add_row(
            suggestion.topic_id,
            suggestion.subtopic_id or "",
            suggestion.expansion_type.value,
            f"{suggestion.estimated_space:.0f}",
            f"{suggestion.relevance_score:.2f}",
            suggestion.suggested_content,
        )
    console.print(table)


@cli.command()
@request_argument
@constraint_options
@click.option(
    "--overflow",
    type=click.FloatRange(min=0),
    help="Space to recover (defaults to overflowAmount in the request)"
)
@click.pass_context
def reduce(ctx, request_path, pages, page_size, font_size, columns, target_utilization, as_json, overflow):
    """Build strategies for recovering overflowing space."""
    request = _load_request(request_path)
    overflow_amount = overflow if overflow is not None else request.overflow_amount
    if overflow_amount is None:
        _fail("overflowAmount is required", "pass --overflow or set overflowAmount in the request")

    service = ContentUtilizationService(_space_service(ctx))
    strategies = service.create_content_reduction_strategy(
        request.selection,
        request.topics,
        overflow_amount,
        request.reference
    )

    if as_json:
        _echo_json(strategies)
        return

    if not strategies:
        console.print("[yellow]⚠️  No reduction strategy applies to this selection[/yellow]")
        return

    table = Table(title=f"Reduction Strategies (overflow {overflow_amount:.0f})")
    table.add_column("Strategy", style="bold")
    table.add_column("Targets")
    table.add_column("Recovered", justify="right")
    table.add_column("Impact")
    table.add_column("Preservation", justify="right")
    for strategy in strategies:
        table.add_row(
            strategy.reduction_type.value,
            ", ".join(strategy.target_ids),
            f"{strategy.space_recovered:.0f}",
            strategy.content_impact.value,
            f"{strategy.preservation_score:.2f}",
        )
    console.print(table)


@cli.command()
@request_argument
@constraint_options
@click.pass_context
def density(ctx, request_path, pages, page_size, font_size, columns, target_utilization, as_json):
    """Compare the selection's density with the target density."""
    request = _load_request(request_path)
    constraints = _build_constraints(pages, page_size, font_size, columns, target_utilization)
    service = ContentUtilizationService(_space_service(ctx))

    result = service.optimize_content_density(
        request.selection,
        request.topics,
        constraints,
        request.reference
    )

    if as_json:
        _echo_json(result)
        return

    table = Table(title="Content Density")
    table.add_column("Metric", style="bold")
    table.add_column("Value")
    table.add_row("Current Density", f"{result.current_density:.2f}")
    table.add_row("Target Density", f"{result.target_density:.2f}")
    table.add_row("Gap", f"{result.density_gap:+.2f}")
    table.add_row("Reference Alignment", f"{result.reference_alignment:.2f}")
    console.print(table)

    for action in result.optimization_actions:
        console.print(f"  • [bold]{action.type.value}[/bold] ({action.target_area.value}): {action.description}")


@cli.command()
@request_argument
@constraint_options
@click.pass_context
def validate(ctx, request_path, pages, page_size, font_size, columns, target_utilization, as_json):
    """Check whether the current selection fits the page layout."""
    request = _load_request(request_path)
    constraints = _build_constraints(pages, page_size, font_size, columns, target_utilization)
    advisor = SpaceAdvisor(_space_service(ctx))

    validation = advisor.validate_topic_selection(
        request.selected_topic_ids(),
        request.selected_subtopics(),
        request.topics,
        constraints
    )

    if as_json:
        _echo_json(validation)
    else:
        if validation.is_valid:
            console.print(f"[green]✅ Selection fits ({validation.utilization_percentage:.1%} of {validation.total_space} units)[/green]")
        else:
            console.print(f"[red]❌ Selection does not fit ({validation.utilization_percentage:.1%} of {validation.total_space} units)[/red]")

        for warning in validation.warnings:
            console.print(f"[yellow]⚠️  {warning}[/yellow]")
        for suggestion in validation.suggestions:
            console.print(f"   💡 {suggestion}")

    if not validation.is_valid:
        sys.exit(1)


if __name__ == "__main__":
    cli()
