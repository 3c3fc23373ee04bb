"""Event dispatch graph.

normalize -> route_event -> one handler node -> END

Nodes receive the IssueService through ``config["configurable"]["service"]``
so the compiled graph is shared by every event. No checkpointer is attached:
the state carries live clients and the record store is the durable state.
"""

import logging

logger = logging.getLogger(__name__)

HANDLER_NODES = (
    "issue_created",
    "issue_updated",
    "issue_closed",
    "issue_comment",
    "issue_assigned",
    "issue_unassigned",
    "issue_label_updated",
)


def build_graph():
    """Build and compile the dispatch graph."""
    from langgraph.graph import END, StateGraph

    from . import nodes
    from .state import SyncState

    workflow = StateGraph(SyncState)

    workflow.add_node("normalize", nodes.normalize_event)
    for name in HANDLER_NODES:
        workflow.add_node(name, getattr(nodes, name))

    workflow.set_entry_point("normalize")

    workflow.add_conditional_edges(
        "normalize",
        nodes.route_event,
        {**{name: name for name in HANDLER_NODES}, "skip": END},
    )

    for name in HANDLER_NODES:
        workflow.add_edge(name, END)

    graph = workflow.compile()
    logger.info("Event dispatch graph compiled", extra={"nodes": len(HANDLER_NODES) + 1})
    return graph


# Lazy-loaded so importing the package does not compile the graph
_graph_instance = None


def get_graph():
    """Get or create the compiled graph."""
    global _graph_instance
    if _graph_instance is None:
        _graph_instance = build_graph()
    return _graph_instance
