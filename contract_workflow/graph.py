"""
Workflow Graph - nodes, typed edges and the builder that validates them.

A graph is built once with ``WorkflowBuilder`` and then executed any number
of times by ``WorkflowEngine``. Edge kinds:

- direct: A -> B, B receives A's output
- conditional: A -> B guarded by a predicate over A's output
- fan-out: A -> {B1..Bn}, every target receives A's output
- fan-in: {A1..An} -> B, B receives the list of outputs in declared order
- loop-back: B -> A inside a declared loop region, optionally guarded

Conditional and guarded loop-back edges leaving one node form a single
switch. Each carries an integer priority (lower wins); when several
predicates match, the lowest priority fires and a tie at that priority is a
``ConditionalEdgeConflictError``.
"""

from collections import deque
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple, Union

from msgspec import Struct

from contract_workflow.error_handling import GraphValidationError
from contract_workflow.executor import Executor


Predicate = Callable[[Any], bool]
NodeRef = Union[Executor, str]


class EdgeKind(str, Enum):
    DIRECT = "direct"
    CONDITIONAL = "conditional"
    FAN_OUT = "fan_out"
    FAN_IN = "fan_in"
    LOOP_BACK = "loop_back"


class Edge(Struct, frozen=True, kw_only=True):
    """One declared edge. Single-source kinds have exactly one source."""
    kind: EdgeKind
    sources: Tuple[str, ...]
    targets: Tuple[str, ...]
    predicate: Optional[Predicate] = None
    priority: int = 0
    label: Optional[str] = None

    @property
    def is_guarded(self) -> bool:
        return self.predicate is not None


class LoopRegion(Struct, frozen=True):
    name: str
    members: Tuple[str, ...]


class WorkflowGraph:
    """Validated, immutable workflow graph."""

    def __init__(
        self,
        name: str,
        entry_id: str,
        executors: Dict[str, Executor],
        edges: List[Edge],
        output_ids: List[str],
        loop_regions: List[LoopRegion]
    ):
        self.name = name
        self.entry_id = entry_id
        self.executors = dict(executors)
        self.edges = tuple(edges)
        self.output_ids = tuple(output_ids)
        self.loop_regions = tuple(loop_regions)

        self._outgoing: Dict[str, List[Edge]] = {node_id: [] for node_id in self.executors}
        for edge in self.edges:
            for source in edge.sources:
                self._outgoing[source].append(edge)

    def executor(self, node_id: str) -> Executor:
        return self.executors[node_id]

    def outgoing(self, node_id: str) -> List[Edge]:
        """Edges leaving ``node_id`` in declaration order."""
        return list(self._outgoing.get(node_id, []))

    def is_output(self, node_id: str) -> bool:
        return node_id in self.output_ids

    def fan_in_edges(self) -> List[Edge]:
        return [e for e in self.edges if e.kind == EdgeKind.FAN_IN]

    def to_mermaid(self) -> str:
        """Render the graph as a Mermaid flowchart.

        Returns:
            Mermaid source, one statement per line
        """
        lines = ["flowchart TD"]
        for node_id in self.executors:
            if node_id == self.entry_id:
                lines.append(f'    {node_id}(["{node_id}"])')
            elif node_id in self.output_ids:
                lines.append(f'    {node_id}[["{node_id}"]]')
            else:
                lines.append(f'    {node_id}["{node_id}"]')

        for edge in self.edges:
            label = edge.label or ""
            for source in edge.sources:
                for target in edge.targets:
                    if edge.kind == EdgeKind.LOOP_BACK:
                        arrow = f"-. {label or 'loop'} .->"
                    elif edge.kind == EdgeKind.CONDITIONAL:
                        arrow = f"-->|{label or 'condition'}|"
                    elif edge.kind == EdgeKind.FAN_IN:
                        arrow = "==>"
                    elif label:
                        arrow = f"-->|{label}|"
                    else:
                        arrow = "-->"
                    lines.append(f"    {source} {arrow} {target}")

        for region in self.loop_regions:
            lines.append(f"    subgraph {region.name}")
            for member in region.members:
                lines.append(f"        {member}")
            lines.append("    end")

        return "\n".join(lines)

    def __repr__(self) -> str:
        return f"WorkflowGraph(name={self.name!r}, nodes={len(self.executors)}, edges={len(self.edges)})"


class WorkflowBuilder:
    """Fluent builder for ``WorkflowGraph``.

    Nodes are registered implicitly the first time an ``Executor`` instance
    is passed to any method, or explicitly with ``add_executor``. Methods
    also accept node ids of already registered executors.
    """

    def __init__(self, name: str = "workflow"):
        self.name = name
        self._executors: Dict[str, Executor] = {}
        self._duplicates: Set[str] = set()
        self._edges: List[Edge] = []
        self._output_ids: List[str] = []
        self._loop_regions: List[LoopRegion] = []
        self._entry_id: Optional[str] = None

    def add_executor(self, executor: Executor) -> "WorkflowBuilder":
        self._register(executor)
        return self

    def set_entry(self, node: NodeRef) -> "WorkflowBuilder":
        self._entry_id = self._ref(node)
        return self

    def add_edge(self, source: NodeRef, target: NodeRef, label: Optional[str] = None) -> "WorkflowBuilder":
        self._edges.append(Edge(
            kind=EdgeKind.DIRECT,
            sources=(self._ref(source),),
            targets=(self._ref(target),),
            label=label
        ))
        return self

    def add_conditional_edge(
        self,
        source: NodeRef,
        target: NodeRef,
        predicate: Predicate,
        priority: int = 0,
        label: Optional[str] = None
    ) -> "WorkflowBuilder":
        """Add an edge that fires only when ``predicate(output)`` holds.

        Args:
            source: Source node
            target: Target node
            predicate: Condition over the source output
            priority: Rank within the source's switch (lower wins)
            label: Optional label used in the Mermaid rendering
        """
        self._edges.append(Edge(
            kind=EdgeKind.CONDITIONAL,
            sources=(self._ref(source),),
            targets=(self._ref(target),),
            predicate=predicate,
            priority=priority,
            label=label
        ))
        return self

    def add_fan_out_edges(self, source: NodeRef, targets: Sequence[NodeRef]) -> "WorkflowBuilder":
        self._edges.append(Edge(
            kind=EdgeKind.FAN_OUT,
            sources=(self._ref(source),),
            targets=tuple(self._ref(t) for t in targets)
        ))
        return self

    def add_fan_in_edges(self, sources: Sequence[NodeRef], target: NodeRef) -> "WorkflowBuilder":
        """Join ``sources`` into ``target``.

        The target receives a list with one output per source, in the order
        given here.
        """
        self._edges.append(Edge(
            kind=EdgeKind.FAN_IN,
            sources=tuple(self._ref(s) for s in sources),
            targets=(self._ref(target),)
        ))
        return self

    def add_loop_region(self, name: str, members: Iterable[NodeRef]) -> "WorkflowBuilder":
        self._loop_regions.append(LoopRegion(name, tuple(self._ref(m) for m in members)))
        return self

    def add_loop_back_edge(
        self,
        source: NodeRef,
        target: NodeRef,
        predicate: Optional[Predicate] = None,
        priority: int = 0,
        label: Optional[str] = None
    ) -> "WorkflowBuilder":
        self._edges.append(Edge(
            kind=EdgeKind.LOOP_BACK,
            sources=(self._ref(source),),
            targets=(self._ref(target),),
            predicate=predicate,
            priority=priority,
            label=label
        ))
        return self

    def add_output(self, node: NodeRef) -> "WorkflowBuilder":
        node_id = self._ref(node)
        if node_id not in self._output_ids:
            self._output_ids.append(node_id)
        return self

    def build(self) -> WorkflowGraph:
        """Validate the declarations and freeze them into a graph.

        Returns:
            WorkflowGraph ready for execution

        Raises:
            GraphValidationError: If the graph is malformed
        """
        errors = self._validate()
        if errors:
            raise GraphValidationError(
                f"Workflow '{self.name}' is invalid:\n" + "\n".join(f"  - {e}" for e in errors)
            )

        return WorkflowGraph(
            name=self.name,
            entry_id=self._entry_id,
            executors=self._executors,
            edges=self._edges,
            output_ids=self._output_ids,
            loop_regions=self._loop_regions
        )

    def _register(self, executor: Executor) -> str:
        existing = self._executors.get(executor.id)
        if existing is None:
            self._executors[executor.id] = executor
        elif existing is not executor:
            self._duplicates.add(executor.id)
        return executor.id

    def _ref(self, node: NodeRef) -> str:
        if isinstance(node, Executor):
            return self._register(node)
        return node

    def _validate(self) -> List[str]:
        errors = []

        for node_id in sorted(self._duplicates):
            errors.append(f"duplicate executor id '{node_id}'")

        if self._entry_id is None:
            errors.append("no entry node set")
        elif self._entry_id not in self._executors:
            errors.append(f"entry node '{self._entry_id}' is not a registered executor")

        for edge in self._edges:
            for node_id in edge.sources + edge.targets:
                if node_id not in self._executors:
                    errors.append(f"{edge.kind.value} edge references unknown node '{node_id}'")
            if not edge.targets or not edge.sources:
                errors.append(f"{edge.kind.value} edge has no endpoints")

        if not self._output_ids:
            errors.append("no output node declared")
        for node_id in self._output_ids:
            if node_id not in self._executors:
                errors.append(f"output node '{node_id}' is not a registered executor")

        for region in self._loop_regions:
            for member in region.members:
                if member not in self._executors:
                    errors.append(f"loop region '{region.name}' references unknown node '{member}'")

        fan_in_targets: Set[str] = set()
        for edge in self._edges:
            if edge.kind != EdgeKind.FAN_IN:
                continue
            if len(set(edge.sources)) != len(edge.sources):
                errors.append(f"fan-in into '{edge.targets[0]}' lists a source more than once")
            if edge.targets[0] in fan_in_targets:
                errors.append(f"node '{edge.targets[0]}' is the target of more than one fan-in")
            fan_in_targets.add(edge.targets[0])

        if errors:
            # Structural checks below assume known endpoints
            return errors

        errors.extend(self._validate_loop_backs())

        reachable = self._reachable_from(self._entry_id, include_loop_backs=True)
        for node_id in self._output_ids:
            if node_id not in reachable:
                errors.append(f"output node '{node_id}' is unreachable from entry '{self._entry_id}'")

        return errors

    def _validate_loop_backs(self) -> List[str]:
        errors = []
        for edge in self._edges:
            if edge.kind != EdgeKind.LOOP_BACK:
                continue
            source, target = edge.sources[0], edge.targets[0]
            region = next(
                (r for r in self._loop_regions if source in r.members and target in r.members),
                None
            )
            if region is None:
                errors.append(
                    f"loop-back edge {source} -> {target} is not inside a declared loop region"
                )
                continue
            if source not in self._reachable_from(target, include_loop_backs=False):
                errors.append(
                    f"loop-back edge {source} -> {target} does not close a cycle: "
                    f"'{source}' is not reachable from '{target}' through forward edges"
                )
        return errors

    def _reachable_from(self, start: str, include_loop_backs: bool) -> Set[str]:
        successors: Dict[str, Set[str]] = {}
        for edge in self._edges:
            if edge.kind == EdgeKind.LOOP_BACK and not include_loop_backs:
                continue
            for source in edge.sources:
                successors.setdefault(source, set()).update(edge.targets)

        seen = {start}
        queue = deque([start])
        while queue:
            node_id = queue.popleft()
            for successor in successors.get(node_id, ()):
                if successor not in seen:
                    seen.add(successor)
                    queue.append(successor)
        return seen
