# ABOUTME: Pipeline stages, one callable class per workflow node
# ABOUTME: Each stage takes its collaborators at construction and returns a state update per activation

"""
Stages Layer: What each workflow node does

Every stage is called with the current state snapshot and its payload (the
Send payload for fan-out nodes, None for join nodes) and returns a mapping of
state fields to the items it contributes. Per-item failures are logged and
turn into empty contributions.

Data Flow: sources → headlines → articles → quote drafts → validated sets → unique quotes → storage → export
"""

from .articles import ArticleExtractionStage
from .dedup import DeduplicationStage
from .export import ExportStage
from .headlines import ArticleSelectionStage, HeadlineDiscoveryStage
from .quotes import QuoteExtractionStage
from .sources import SourceLoadingStage
from .storage import StorageStage
from .validation import QuoteValidationStage

__all__ = [
    "ArticleExtractionStage",
    "ArticleSelectionStage",
    "DeduplicationStage",
    "ExportStage",
    "HeadlineDiscoveryStage",
    "QuoteExtractionStage",
    "QuoteValidationStage",
    "SourceLoadingStage",
    "StorageStage",
]
