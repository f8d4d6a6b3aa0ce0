"""
CareBundle Decision Tree Engine

Loads algorithm definitions and evaluates them against assessment items.

Key features:
- Name-addressed store: <algorithms_dir>/<name>.json (or .yaml/.yml)
- Computed inputs evaluated in declaration order before traversal
- Iterative tree traversal (trees are validated at load time)
- Per-instance read-through cache guarded by a lock
- Offline lint for unknown identifiers and out-of-range leaves
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional, Union

from ..exceptions import CareBundleError, DefinitionNotFoundError
from ..models import AlgorithmDefinition, AlgorithmMeta, Branch, LeafValue, TreeNode
from ..packs import DOCUMENT_SUFFIXES, build_algorithm, load_algorithm_file
from .expression import evaluate_condition, evaluate_expression, expression_identifiers


logger = logging.getLogger(__name__)


@dataclass
class LintFinding:
    """One authoring problem found by lint_algorithm."""
    algorithm: str
    kind: str
    message: str

    def __str__(self) -> str:
        return f"{self.algorithm}: {self.message}"


@dataclass
class DecisionTreeEngine:
    """
    Evaluates decision-tree algorithms.

    Usage:
        engine = DecisionTreeEngine(Path("config/algorithms"))

        score = engine.evaluate("personal_support", {"C2a": 3, "C2b": 2})
        meta = engine.get_algorithm_meta("personal_support")
    """

    algorithms_path: Path
    _cache: dict[str, AlgorithmDefinition] = field(default_factory=dict, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def __post_init__(self) -> None:
        self.algorithms_path = Path(self.algorithms_path)

    # =========================================================================
    # Loading
    # =========================================================================

    def _locate(self, name: str) -> Path:
        for suffix in DOCUMENT_SUFFIXES:
            candidate = self.algorithms_path / f"{name}{suffix}"
            if candidate.is_file():
                return candidate
        raise DefinitionNotFoundError(
            message=f"Algorithm definition not found: {name}",
            details={"directory": str(self.algorithms_path)},
            definition_name=name,
        )

    def load_algorithm(self, name: str) -> AlgorithmDefinition:
        """
        Load an algorithm by name, caching it for this engine instance.

        Raises:
            DefinitionNotFoundError: If no file exists for the name
            DefinitionLoadError: If the file cannot be parsed
            DefinitionValidationError: If required fields or tree nodes
                are malformed
        """
        with self._lock:
            cached = self._cache.get(name)
            if cached is not None:
                return cached
            definition = load_algorithm_file(self._locate(name))
            self._cache[name] = definition
            return definition

    def register(self, definition: AlgorithmDefinition) -> None:
        """Add a definition loaded from elsewhere to this engine's cache."""
        with self._lock:
            self._cache[definition.name] = definition

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()

    # =========================================================================
    # Evaluation
    # =========================================================================

    def evaluate(self, name: str, inputs: Mapping[str, Any]) -> LeafValue:
        """
        Evaluate an algorithm against assessment items.

        Args:
            name: Algorithm name
            inputs: Raw item code -> value

        Returns:
            The value of the leaf the traversal reaches
        """
        return self.evaluate_definition(self.load_algorithm(name), inputs)

    def evaluate_definition(
        self, definition: AlgorithmDefinition, inputs: Mapping[str, Any]
    ) -> LeafValue:
        context = self.build_context(definition, inputs)
        return traverse(definition.tree, context)

    @staticmethod
    def build_context(
        definition: AlgorithmDefinition, inputs: Mapping[str, Any]
    ) -> dict[str, Any]:
        """
        Raw inputs merged with computed inputs.

        Each formula sees the raw inputs plus every computed input declared
        before it; a computed input shadows a raw item of the same name.
        """
        computed: dict[str, Any] = {}
        for name, formula in definition.computed_inputs:
            computed[name] = evaluate_expression(formula, {**inputs, **computed})
        return {**inputs, **computed}

    # =========================================================================
    # Introspection
    # =========================================================================

    def get_algorithm_meta(self, name: str) -> AlgorithmMeta:
        return self.load_algorithm(name).meta()

    def validate_algorithm(self, data: Mapping[str, Any]) -> AlgorithmDefinition:
        """
        Validate an algorithm document supplied by the caller.

        Raises:
            DefinitionValidationError: If the document is malformed
        """
        return build_algorithm(data, source="<inline>")

    def get_available_algorithms(self) -> dict[str, AlgorithmMeta]:
        """
        Metadata of every algorithm file in the store.

        Files that fail to load are logged and left out.
        """
        available: dict[str, AlgorithmMeta] = {}
        if not self.algorithms_path.is_dir():
            return available
        for path in sorted(self.algorithms_path.iterdir()):
            if path.suffix.lower() not in DOCUMENT_SUFFIXES or path.stem in available:
                continue
            try:
                available[path.stem] = self.get_algorithm_meta(path.stem)
            except CareBundleError as e:
                logger.warning(
                    "Skipping algorithm %s: %s", path.stem, e.message,
                    extra={"algorithm": path.stem, "path": str(path)},
                )
        return available

    # =========================================================================
    # Lint
    # =========================================================================

    def lint_algorithm(
        self, name: str, known_items: Optional[Iterable[str]] = None
    ) -> list[LintFinding]:
        """
        Report authoring problems that runtime evaluation tolerates.

        Flags identifiers read by a condition or formula that are neither
        a known raw item (items_used plus known_items) nor a computed
        input declared earlier, and leaves outside output_range.
        """
        return lint_definition(self.load_algorithm(name), known_items)


# =============================================================================
# Module Functions
# =============================================================================

def traverse(tree: TreeNode, context: Mapping[str, Any]) -> LeafValue:
    """Walk from the root to a leaf, following each branch condition."""
    node = tree
    while isinstance(node, Branch):
        if evaluate_condition(node.condition, context):
            node = node.true_branch
        else:
            node = node.false_branch
    return node.value


def lint_definition(
    definition: AlgorithmDefinition, known_items: Optional[Iterable[str]] = None
) -> list[LintFinding]:
    findings: list[LintFinding] = []
    vocabulary = set(definition.items_used) | set(known_items or ())

    seen_computed: set[str] = set()
    for name, formula in definition.computed_inputs:
        for ident in sorted(expression_identifiers(formula) - vocabulary - seen_computed):
            findings.append(LintFinding(
                definition.name,
                "unknown_identifier",
                f"computed input '{name}' reads unknown identifier '{ident}'",
            ))
        seen_computed.add(name)

    reported: set[str] = set()
    for condition in definition.conditions():
        for ident in sorted(expression_identifiers(condition) - vocabulary - seen_computed):
            if ident in reported:
                continue
            reported.add(ident)
            findings.append(LintFinding(
                definition.name,
                "unknown_identifier",
                f"condition '{condition}' reads unknown identifier '{ident}'",
            ))

    for value in definition.leaf_values():
        if not definition.in_output_range(value):
            findings.append(LintFinding(
                definition.name,
                "leaf_out_of_range",
                f"leaf value {value!r} outside output range {list(definition.output_range)}",
            ))
    return findings


def create_engine(algorithms_path: Union[str, Path]) -> DecisionTreeEngine:
    return DecisionTreeEngine(Path(algorithms_path))
