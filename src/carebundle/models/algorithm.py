"""
CareBundle Algorithm Models

Decision-support algorithms are binary decision trees over assessment
items, optionally preceded by computed inputs (derived formulas).

Key components:
- Leaf / Branch: the two tree node variants (TreeNode = Leaf | Branch)
- AlgorithmDefinition: immutable, validated definition loaded from a pack
- AlgorithmMeta: introspection record returned without evaluating

Trees are validated when converted from their schema, so traversal can
assume every Branch has two children and every path ends in a Leaf.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterator, Optional, Union


LeafValue = Union[int, bool]


# =============================================================================
# Tree Nodes
# =============================================================================

@dataclass(frozen=True)
class Leaf:
    """Terminal node carrying the algorithm output."""
    value: LeafValue


@dataclass(frozen=True)
class Branch:
    """Decision node: follow true_branch when condition is truthy."""
    condition: str
    true_branch: TreeNode
    false_branch: TreeNode


TreeNode = Union[Leaf, Branch]


def iter_nodes(node: TreeNode) -> Iterator[TreeNode]:
    """Yield every node of a tree, depth first."""
    stack: list[TreeNode] = [node]
    while stack:
        current = stack.pop()
        yield current
        if isinstance(current, Branch):
            stack.append(current.false_branch)
            stack.append(current.true_branch)


def tree_depth(node: TreeNode) -> int:
    """Number of Branch nodes on the longest root-to-leaf path."""
    if isinstance(node, Leaf):
        return 0
    return 1 + max(tree_depth(node.true_branch), tree_depth(node.false_branch))


# =============================================================================
# Algorithm Definition
# =============================================================================

@dataclass(frozen=True)
class AlgorithmDefinition:
    """
    A validated decision-tree algorithm.

    Attributes:
        name: Algorithm identifier (e.g., "personal_support")
        version: Definition version string
        output_range: Inclusive (min, max) of the authored outputs
        tree: Root node
        computed_inputs: Ordered (name, formula) pairs evaluated before traversal
        items_used: Raw assessment items the algorithm reads
        output_type: "integer" or "boolean"
        verification_status: Clinical verification state of the definition
    """
    name: str
    version: str
    output_range: tuple[int, int]
    tree: TreeNode
    computed_inputs: tuple[tuple[str, str], ...] = ()
    items_used: tuple[str, ...] = ()
    output_type: str = "integer"
    verification_status: str = "unverified"
    verification_source: Optional[str] = None
    description: str = ""

    @property
    def computed_input_names(self) -> list[str]:
        return [name for name, _ in self.computed_inputs]

    def leaf_values(self) -> list[LeafValue]:
        """All values the tree can return."""
        return [n.value for n in iter_nodes(self.tree) if isinstance(n, Leaf)]

    def conditions(self) -> list[str]:
        """All branch condition strings, depth first."""
        return [n.condition for n in iter_nodes(self.tree) if isinstance(n, Branch)]

    def in_output_range(self, value: LeafValue) -> bool:
        low, high = self.output_range
        return low <= int(value) <= high

    def meta(self) -> AlgorithmMeta:
        return AlgorithmMeta(
            name=self.name,
            version=self.version,
            verification_status=self.verification_status,
            verification_source=self.verification_source,
            output_range=self.output_range,
            output_type=self.output_type,
            description=self.description,
            items_used=list(self.items_used),
        )


@dataclass(frozen=True)
class AlgorithmMeta:
    """Metadata about an algorithm, returned without evaluating it."""
    name: str
    version: str
    verification_status: str
    output_range: tuple[int, int]
    output_type: str
    description: str = ""
    verification_source: Optional[str] = None
    items_used: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "verification_status": self.verification_status,
            "verification_source": self.verification_source,
            "output_range": list(self.output_range),
            "output_type": self.output_type,
            "description": self.description,
            "items_used": list(self.items_used),
        }
