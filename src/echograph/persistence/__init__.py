# ABOUTME: Database operations and data persistence layer
# ABOUTME: Monitored sources in, staged quotes out

"""
Persistence Layer: Sources the pipeline crawls and quotes it produces

This layer handles:
- SQLModel tables for monitored URLs and staged quotes
- The persistence operations the pipeline stages call
- Database connection and transaction management

Data Flow: monitored_url → pipeline → staged_quote
"""

from .manager import DatabaseManager
from .models import MonitoredUrl, StagedQuote

__all__ = [
    "DatabaseManager",
    "MonitoredUrl",
    "StagedQuote",
]
