"""Dependency graph utilities.

Provides graph construction and topological sorting for determining install
order. Formulae must be installed in dependency order so that when formula
A depends on formula B, B is already on disk when A is poured or built.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from .errors import CyclicDependencyError
from .index import FormulaIndex, presort_key
from .models import Formula

_ON_STACK, _DONE = 1, 2


@dataclass
class DependencyGraph:
    """A directed graph of formula dependencies keyed by full name.

    If ``A`` depends on ``B`` there is an edge ``A → B`` in :attr:`edges`.

    Attributes:
        formulae: Nodes, in the order they were added. Sorting visits roots
                  in this order, so it decides the output for unrelated nodes.
        edges: Forward adjacency list (dependent → sorted dependencies).
    """

    formulae: dict[str, Formula] = field(default_factory=dict)
    edges: dict[str, list[str]] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.formulae)


def presort(formulae: Iterable[Formula], *, keg_only_first: bool = False) -> list[Formula]:
    """Order formulae for stable, predictable output before sorting.

    Core formulae (no "/" in the full name) come before tap formulae, each
    group sorted by full name. With ``keg_only_first``, keg-only formulae are
    moved ahead of the rest, which avoids link conflicts with outdated,
    non-keg-only versions during upgrades.
    """
    if keg_only_first:
        return sorted(formulae, key=lambda f: (not f.keg_only, *presort_key(f)))
    return sorted(formulae, key=presort_key)


def build_graph(
    formulae: Iterable[Formula],
    index: FormulaIndex,
    relevant: Callable[[Formula], bool] | None = None,
) -> DependencyGraph:
    """Build a dependency graph for the given formulae.

    Dependencies are resolved through the index and kept only if they are
    relevant: by default, installed or among the given formulae. Relevant
    dependencies become nodes themselves so ordering constraints that pass
    through them are respected. Unresolved or irrelevant dependencies are
    dropped without error; missing dependencies are the installer's concern.

    Args:
        formulae: The formulae to order.
        index: Index used to resolve dependency names.
        relevant: Predicate deciding whether a dependency constrains order.

    Returns:
        A graph whose nodes are keyed only by canonical full name.
    """
    formulae = list(formulae)
    requested = {f.full_name for f in formulae}
    if relevant is None:

        def relevant(dep: Formula) -> bool:
            return dep.any_version_installed or dep.full_name in requested

    graph = DependencyGraph()
    queue: deque[Formula] = deque()
    for formula in formulae:
        if formula.full_name not in graph.formulae:
            graph.formulae[formula.full_name] = formula
            queue.append(formula)

    while queue:
        formula = queue.popleft()
        deps: set[str] = set()
        for dep_name in formula.installed_dependencies:
            dep = index.lookup(dep_name)
            if dep is None or dep.full_name == formula.full_name or not relevant(dep):
                continue
            deps.add(dep.full_name)
            if dep.full_name not in graph.formulae:
                graph.formulae[dep.full_name] = dep
                queue.append(dep)
        graph.edges[formula.full_name] = sorted(deps)

    return graph


def topo_sort(graph: DependencyGraph) -> list[str]:
    """Topologically sort the graph so dependencies come before dependents.

    Depth-first post-order traversal. Roots are visited in node order and
    each node's children in name order, so identical input always produces
    identical output. Edges to names outside the graph are ignored.

    Returns:
        All node names in install order (dependencies first).

    Raises:
        CyclicDependencyError: If the graph contains a cycle. The error
            carries the shortest cycle found through the offending nodes.

    Example:
        If A depends on B, and B depends on C:
        topo_sort({A, B, C}) → [C, B, A]
    """
    state: dict[str, int] = {}
    order: list[str] = []

    for root in graph.formulae:
        if root in state:
            continue
        state[root] = _ON_STACK
        stack = [(root, iter(graph.edges.get(root, [])))]
        while stack:
            node, children = stack[-1]
            for child in children:
                if child not in graph.formulae:
                    continue
                seen = state.get(child)
                if seen is None:
                    state[child] = _ON_STACK
                    stack.append((child, iter(graph.edges.get(child, []))))
                    break
                if seen == _ON_STACK:
                    path = [name for name, _ in stack]
                    raise _cycle_error(graph, path[path.index(child):])
            else:
                stack.pop()
                state[node] = _DONE
                order.append(node)

    return order


def shortest_cycle(graph: DependencyGraph, candidates: list[str]) -> list[str]:
    """Find the shortest cycle passing through any of the candidate nodes.

    Ties go to the candidate listed first.
    """
    best: list[str] = candidates
    for start in candidates:
        parent: dict[str, str] = {}
        queue = deque([start])
        found = False
        while queue and not found:
            node = queue.popleft()
            for child in graph.edges.get(node, []):
                if child == start:
                    parent[start] = node
                    found = True
                    break
                if child in graph.formulae and child not in parent:
                    parent[child] = node
                    queue.append(child)
        if not found:
            continue
        cycle = [parent[start]]
        while cycle[-1] != start:
            cycle.append(parent[cycle[-1]])
        cycle.reverse()
        if len(cycle) < len(best):
            best = cycle
    return best


def _cycle_error(graph: DependencyGraph, path: list[str]) -> CyclicDependencyError:
    cycle = shortest_cycle(graph, path)
    return CyclicDependencyError(cycle, graph.edges)


def sort_formulae(
    formulae: Iterable[Formula],
    index: FormulaIndex,
    *,
    keg_only_first: bool = False,
    relevant: Callable[[Formula], bool] | None = None,
) -> list[Formula]:
    """Presort, graph and topologically sort formulae.

    Returns:
        The given formulae (and only those) in install order.

    Raises:
        CyclicDependencyError: If the formulae depend on each other in a loop.
    """
    ordered = presort(formulae, keg_only_first=keg_only_first)
    graph = build_graph(ordered, index, relevant)
    wanted = {f.full_name: f for f in ordered}
    return [wanted[name] for name in topo_sort(graph) if name in wanted]
