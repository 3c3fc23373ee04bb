"""Issue Sync - keeps tracker issues and platform challenges in step.

Key components:
- EventProcessor: Validates events and runs them through the dispatch graph
- IssueService: One handler per event kind
- RecordStore: Issue/challenge mappings on a LangGraph Store
- get_graph: The compiled dispatch graph (lazy-loaded)
"""

from .graph import get_graph
from .issue_service import IssueService
from .processor import EventProcessor
from .store import RecordStore, get_store

__all__ = [
    "EventProcessor",
    "IssueService",
    "RecordStore",
    "get_graph",
    "get_store",
]
