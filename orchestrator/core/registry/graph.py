from __future__ import annotations

import heapq
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Tuple


@dataclass
class PackageNode:
    name: str
    rank: int
    depends_on: List[str] = field(default_factory=list)


class CircularDependencyError(Exception):
    def __init__(self, members: List[str]):
        self.members = members
        super().__init__(f"Circular package dependency detected among: {', '.join(members)}")


class DependencyGraph:
    """Dependency graph over package names.

    Edges to names that were never added are ignored, so a graph built from a
    subset of the registry sorts only that subset. Among packages that are
    ready at the same time, the lowest rank goes first.
    """

    def __init__(self):
        self.nodes: Dict[str, PackageNode] = {}
        self.edges: Dict[str, List[str]] = defaultdict(list)

    def add_node(self, node: PackageNode) -> None:
        self.nodes[node.name] = node
        for dep in node.depends_on:
            self.edges[dep].append(node.name)

    def topological_sort(self) -> List[str]:
        in_degree: Dict[str, int] = {name: 0 for name in self.nodes}

        for src, dsts in self.edges.items():
            if src not in self.nodes:
                continue
            for node in dsts:
                in_degree[node] += 1

        ready: List[Tuple[int, str]] = [
            (self.nodes[n].rank, n) for n, d in in_degree.items() if d == 0
        ]
        heapq.heapify(ready)

        order: List[str] = []

        while ready:
            _, current = heapq.heappop(ready)
            order.append(current)

            for neighbor in self.edges.get(current, []):
                in_degree[neighbor] -= 1
                if in_degree[neighbor] == 0:
                    heapq.heappush(ready, (self.nodes[neighbor].rank, neighbor))

        if len(order) != len(self.nodes):
            stuck = sorted((n for n, d in in_degree.items() if d > 0), key=lambda n: self.nodes[n].rank)
            raise CircularDependencyError(stuck)

        return order
