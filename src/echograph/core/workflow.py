# ABOUTME: Quote extraction workflow graph wiring the stages together
# ABOUTME: Fan-out stages are reached through Send routers; empty stages route straight to export

from dataclasses import dataclass

from echograph.core.graph import END, CompiledGraph, Route, Send, StateGraph
from echograph.core.state import PipelineState
from echograph.stages import (
    ArticleExtractionStage,
    ArticleSelectionStage,
    DeduplicationStage,
    ExportStage,
    HeadlineDiscoveryStage,
    QuoteExtractionStage,
    QuoteValidationStage,
    SourceLoadingStage,
    StorageStage,
)


@dataclass
class WorkflowStages:
    load_sources: SourceLoadingStage
    discover_headlines: HeadlineDiscoveryStage
    select_articles: ArticleSelectionStage
    extract_article: ArticleExtractionStage
    extract_quotes: QuoteExtractionStage
    validate_quotes: QuoteValidationStage
    deduplicate: DeduplicationStage
    store_quotes: StorageStage
    export: ExportStage


def route_sources(state: PipelineState) -> Route | list[Route]:
    return [Send("discover_headlines", source) for source in state.sources] or "select_articles"


def route_headlines(state: PipelineState) -> Route | list[Route]:
    return [Send("extract_article", ref) for ref in state.headlines] or "export"


def route_articles(state: PipelineState) -> Route | list[Route]:
    return [Send("extract_quotes", article) for article in state.articles] or "export"


def route_drafts(state: PipelineState) -> Route | list[Route]:
    return [Send("validate_quotes", draft) for draft in state.quote_drafts] or "export"


def route_unique_quotes(state: PipelineState) -> Route:
    return "store_quotes" if state.unique_quotes else "export"


def build_workflow(stages: WorkflowStages, stage_deadline: float | None = None) -> CompiledGraph:
    """Compile the quote extraction graph.

    Args:
        stages: Stage instances bound to this run's collaborators and limiter
        stage_deadline: Deadline in seconds for each fan-out stage

    Returns:
        Compiled workflow graph
    """
    graph = StateGraph()

    graph.add_node("load_sources", stages.load_sources)
    graph.add_node("discover_headlines", stages.discover_headlines, deadline=stage_deadline)
    graph.add_node("select_articles", stages.select_articles)
    graph.add_node("extract_article", stages.extract_article, deadline=stage_deadline)
    graph.add_node("extract_quotes", stages.extract_quotes, deadline=stage_deadline)
    graph.add_node("validate_quotes", stages.validate_quotes, deadline=stage_deadline)
    graph.add_node("deduplicate", stages.deduplicate)
    graph.add_node("store_quotes", stages.store_quotes)
    graph.add_node("export", stages.export)

    graph.set_entry_point("load_sources")
    graph.add_conditional_edges("load_sources", route_sources)
    graph.add_edge("discover_headlines", "select_articles")
    graph.add_conditional_edges("select_articles", route_headlines)
    graph.add_conditional_edges("extract_article", route_articles)
    graph.add_conditional_edges("extract_quotes", route_drafts)
    graph.add_edge("validate_quotes", "deduplicate")
    graph.add_conditional_edges("deduplicate", route_unique_quotes)
    graph.add_edge("store_quotes", "export")
    graph.add_edge("export", END)

    return graph.compile()
