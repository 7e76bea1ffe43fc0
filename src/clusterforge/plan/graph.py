# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterforge/plan/graph.py

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Dict, FrozenSet, Iterable, List, Optional, Tuple

from .errors import (
    CyclicDependencyError,
    DuplicateNodeError,
    InvalidFragmentError,
    UnknownDependencyError,
)

if TYPE_CHECKING:
    from ..connector.models import Host
    from ..step.interface import Step

NodeID = str


@dataclass(frozen=True)
class ExecutionNode:
    """
    One operation bound to one or more hosts.

    Equality is structural: two nodes are the same planning decision when
    their step payloads, host lists and dependency sets compare equal.
    """
    name: str
    step: "Step"
    hosts: Tuple["Host", ...]
    dependencies: FrozenSet[NodeID] = field(default_factory=frozenset)

    def __post_init__(self):
        object.__setattr__(self, "hosts", tuple(self.hosts))
        object.__setattr__(self, "dependencies", frozenset(self.dependencies))
        if not self.hosts:
            raise InvalidFragmentError(f"node '{self.name}' has no target hosts")

    @property
    def hostnames(self) -> List[str]:
        return [h.name for h in self.hosts]

    def with_dependencies(self, extra: Iterable[NodeID]) -> "ExecutionNode":
        return replace(self, dependencies=self.dependencies | frozenset(extra))


class ExecutionFragment:
    """
    A self-contained DAG of execution nodes with its entry and exit sets.

    Entry and exit sets are kept current on every mutation:
      - entry: nodes with no dependency inside the fragment
      - exit:  nodes no other node in the fragment depends on
    """

    def __init__(
        self,
        name: str = "",
        nodes: Optional[Dict[NodeID, ExecutionNode]] = None,
        entry_nodes: Optional[Iterable[NodeID]] = None,
        exit_nodes: Optional[Iterable[NodeID]] = None,
    ):
        self.name = name
        self.nodes: Dict[NodeID, ExecutionNode] = dict(nodes or {})
        self.entry_nodes: List[NodeID] = []
        self.exit_nodes: List[NodeID] = []

        if entry_nodes is None and exit_nodes is None:
            self.calculate_entry_and_exit_nodes()
        else:
            self.entry_nodes = sorted(set(entry_nodes or []))
            self.exit_nodes = sorted(set(exit_nodes or []))

        if self.nodes:
            self.validate()

    @classmethod
    def empty(cls, name: str = "") -> "ExecutionFragment":
        return cls(name=name)

    # ------------------ mutation ------------------

    def add_node(self, node_id: NodeID, node: ExecutionNode) -> NodeID:
        existing = self.nodes.get(node_id)
        if existing is not None:
            if existing != node:
                raise DuplicateNodeError(
                    f"node '{node_id}' already defined in fragment '{self.name}' with a different definition"
                )
            return node_id
        self.nodes[node_id] = node
        self.calculate_entry_and_exit_nodes()
        return node_id

    def add_dependency(self, from_id: NodeID, to_id: NodeID) -> None:
        """
        Make *to_id* depend on *from_id*.
        """
        for nid in (from_id, to_id):
            if nid not in self.nodes:
                raise UnknownDependencyError(f"node '{nid}' not found in fragment '{self.name}'")
        self.nodes[to_id] = self.nodes[to_id].with_dependencies([from_id])
        self.calculate_entry_and_exit_nodes()

    def calculate_entry_and_exit_nodes(self) -> None:
        depended_on = set()
        entries = []
        for nid, node in self.nodes.items():
            internal = [d for d in node.dependencies if d in self.nodes]
            if not internal:
                entries.append(nid)
            depended_on.update(internal)
        self.entry_nodes = sorted(entries)
        self.exit_nodes = sorted(n for n in self.nodes if n not in depended_on)

    # ------------------ inspection ------------------

    def is_empty(self) -> bool:
        return not self.nodes

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self.nodes

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ExecutionFragment):
            return NotImplemented
        return (
            self.nodes == other.nodes
            and self.entry_nodes == other.entry_nodes
            and self.exit_nodes == other.exit_nodes
        )

    def __repr__(self) -> str:
        return (
            f"ExecutionFragment(name={self.name!r}, nodes={len(self.nodes)}, "
            f"entry={self.entry_nodes}, exit={self.exit_nodes})"
        )

    def copy(self, name: Optional[str] = None) -> "ExecutionFragment":
        frag = ExecutionFragment(name=self.name if name is None else name)
        frag.nodes = dict(self.nodes)
        frag.entry_nodes = list(self.entry_nodes)
        frag.exit_nodes = list(self.exit_nodes)
        return frag

    def dependents(self) -> Dict[NodeID, List[NodeID]]:
        out: Dict[NodeID, List[NodeID]] = {nid: [] for nid in self.nodes}
        for nid, node in self.nodes.items():
            for d in node.dependencies:
                if d in out:
                    out[d].append(nid)
        for deps in out.values():
            deps.sort()
        return out

    def topological_order(self) -> List[NodeID]:
        """
        Stable Kahn ordering; ties are broken by node id.
        """
        indeg: Dict[NodeID, int] = {nid: len(n.dependencies) for nid, n in self.nodes.items()}
        children = self.dependents()

        queue = deque(sorted(n for n, deg in indeg.items() if deg == 0))
        order: List[NodeID] = []
        while queue:
            n = queue.popleft()
            order.append(n)
            for m in children[n]:
                indeg[m] -= 1
                if indeg[m] == 0:
                    queue.append(m)
                    queue = deque(sorted(queue))  # deterministic

        if len(order) != len(self.nodes):
            stuck = sorted(n for n, deg in indeg.items() if deg > 0)
            raise CyclicDependencyError(
                f"cyclic dependency detected in fragment '{self.name}' among: {', '.join(stuck)}"
            )
        return order

    def validate(self) -> None:
        for nid, node in self.nodes.items():
            for d in sorted(node.dependencies):
                if d not in self.nodes:
                    raise UnknownDependencyError(
                        f"node '{nid}' in fragment '{self.name}' depends on unknown node '{d}'"
                    )

        if self.nodes and (not self.entry_nodes or not self.exit_nodes):
            raise InvalidFragmentError(
                f"fragment '{self.name}' has {len(self.nodes)} nodes but an empty entry or exit set"
            )

        for nid in self.entry_nodes + self.exit_nodes:
            if nid not in self.nodes:
                raise InvalidFragmentError(
                    f"fragment '{self.name}' references node '{nid}' in its entry/exit set but does not define it"
                )

        self.topological_order()


# ------------------ composition ------------------

def merge(
    a: ExecutionFragment,
    b: ExecutionFragment,
    *,
    chain: bool = False,
    name: Optional[str] = None,
) -> ExecutionFragment:
    """
    Union two fragments into a new one. Neither operand is mutated.

    - identical duplicate nodes collapse into one; differing ones raise
      DuplicateNodeError
    - entry/exit sets are the unions of the operands' sets
    - chain=True makes every entry node of *b* depend on every exit node
      of *a*; the result then enters through *a* and exits through *b*.
      An entry node of *b* that *a* already defines is left as is.
    """
    merged_name = name if name is not None else (a.name or b.name)
    if b.is_empty():
        return a.copy(merged_name)
    if a.is_empty():
        return b.copy(merged_name)

    out = ExecutionFragment(name=merged_name)
    out.nodes = dict(a.nodes)

    b_nodes = dict(b.nodes)
    if chain:
        for nid in b.entry_nodes:
            if nid in a.nodes:
                # already scheduled by a; collapses below
                continue
            b_nodes[nid] = b_nodes[nid].with_dependencies(a.exit_nodes)

    for nid, node in b_nodes.items():
        existing = out.nodes.get(nid)
        if existing is not None and existing != node:
            raise DuplicateNodeError(
                f"cannot merge '{b.name}' into '{a.name}': node '{nid}' is defined differently in each"
            )
        out.nodes[nid] = node

    # with chain=True, b's linked entries and a's consumed exits drop out here
    entries = set(a.entry_nodes) | set(b.entry_nodes)
    exits = set(a.exit_nodes) | set(b.exit_nodes)
    depended_on = {d for n in out.nodes.values() for d in n.dependencies}
    out.entry_nodes = sorted(n for n in entries if not out.nodes[n].dependencies)
    out.exit_nodes = sorted(n for n in exits if n not in depended_on)

    out.validate()
    return out


def merge_all(fragments: Iterable[ExecutionFragment], name: str = "") -> ExecutionFragment:
    out = ExecutionFragment.empty(name)
    for frag in fragments:
        out = merge(out, frag, name=name or None)
    return out


def link_fragments(
    fragment: ExecutionFragment,
    from_nodes: Iterable[NodeID],
    to_nodes: Iterable[NodeID],
) -> None:
    """
    Make every node in *to_nodes* depend on every node in *from_nodes*.
    """
    from_ids = list(from_nodes)
    for to_id in to_nodes:
        for from_id in from_ids:
            fragment.add_dependency(from_id, to_id)
