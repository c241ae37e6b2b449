"""
Document validation - structural checks for concept-map graphs.

Nothing found here is fatal: the editor tolerates dangling references and
cycles. Issues are reported so they can be logged on load or shown to
the user.
"""

from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Iterator, Optional

if TYPE_CHECKING:
    from .models import Edge, Node


class IssueSeverity(str, Enum):
    ERROR = "error"      # Breaks id-based lookups
    WARNING = "warning"  # Tolerated, but probably unintended
    INFO = "info"        # Leftover state, harmless


@dataclass
class ValidationIssue:
    """One problem found in a document."""
    code: str
    severity: IssueSeverity
    message: str
    node_id: Optional[str] = None
    edge_id: Optional[str] = None

    def to_dict(self) -> dict:
        data = {"code": self.code, "type": self.severity.value, "message": self.message}
        if self.node_id:
            data["node_id"] = self.node_id
        if self.edge_id:
            data["edge_id"] = self.edge_id
        return data


def _check_node_ids(nodes: list["Node"]) -> Iterator[ValidationIssue]:
    seen: set[str] = set()
    for node in nodes:
        if node.id in seen:
            yield ValidationIssue(
                "duplicate_node", IssueSeverity.ERROR,
                f"Node id {node.id} is used more than once", node_id=node.id,
            )
        seen.add(node.id)


def _check_edges(edges: list["Edge"], node_ids: set[str]) -> Iterator[ValidationIssue]:
    connected: set[tuple[str, str]] = set()
    for edge in edges:
        for end, ref in (("source", edge.source), ("target", edge.target)):
            if ref not in node_ids:
                yield ValidationIssue(
                    "dangling_edge", IssueSeverity.WARNING,
                    f"Edge {edge.id} {end} {ref} does not exist", edge_id=edge.id,
                )

        if edge.source == edge.target:
            yield ValidationIssue(
                "self_loop", IssueSeverity.WARNING,
                f"Edge {edge.id} connects {edge.source} to itself",
                node_id=edge.source, edge_id=edge.id,
            )

        key = (edge.source, edge.target)
        if key in connected:
            yield ValidationIssue(
                "duplicate_edge", IssueSeverity.WARNING,
                f"{edge.source} is already connected to {edge.target}", edge_id=edge.id,
            )
        connected.add(key)


def _check_parents(nodes: list["Node"], node_ids: set[str]) -> Iterator[ValidationIssue]:
    for node in nodes:
        parent_id = node.data.parent_id
        if parent_id and parent_id not in node_ids:
            yield ValidationIssue(
                "missing_parent", IssueSeverity.INFO,
                f"Parent {parent_id} no longer exists", node_id=node.id,
            )


def validate_document(nodes: list["Node"], edges: list["Edge"]) -> list[ValidationIssue]:
    """
    Check a graph and return every issue found.

    - duplicate node ids (ERROR)
    - edges whose source or target is missing (WARNING)
    - self-loops and repeated source->target pairs (WARNING)
    - parentId pointing at a removed node (INFO)
    """
    node_ids = {node.id for node in nodes}
    return [
        *_check_node_ids(nodes),
        *_check_edges(edges, node_ids),
        *_check_parents(nodes, node_ids),
    ]


def validation_summary(issues: list[ValidationIssue]) -> dict:
    """Counts by severity; `valid` is True when there are no errors."""
    counts = Counter(issue.severity for issue in issues)
    return {
        "total": len(issues),
        "errors": counts[IssueSeverity.ERROR],
        "warnings": counts[IssueSeverity.WARNING],
        "info": counts[IssueSeverity.INFO],
        "valid": counts[IssueSeverity.ERROR] == 0,
    }
