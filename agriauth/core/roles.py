"""
Role hierarchy with precomputed transitive closure.

A role hierarchy is a set of (parent, child) edges where the parent subsumes
every right of the child. The graph must be acyclic. Closure sets are
computed once at build time and never recomputed per request.
"""

from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, List, Mapping, Set, Tuple

from agriauth.core.errors import RoleCycleError


@dataclass(frozen=True)
class RoleEdge:
    """Parent subsumes child's rights."""
    parent: str
    child: str


class RoleGraph:
    """Immutable, validated role hierarchy."""

    def __init__(self, children: Dict[str, Tuple[str, ...]], closures: Dict[str, FrozenSet[str]]):
        # Use RoleGraph.build(); this constructor assumes validated input.
        self._children = children
        self._closures = closures

    @classmethod
    def build(cls, edges: Iterable[RoleEdge], roles: Iterable[str] = ()) -> "RoleGraph":
        """Validate edges and precompute every role's closure.

        Args:
            edges: Inheritance edges. Self edges are redundant and dropped.
            roles: Additional roles declared without any edge.

        Raises:
            RoleCycleError: If the edges form a cycle.
        """
        children: Dict[str, List[str]] = {}
        for role in roles:
            children.setdefault(role, [])

        for edge in edges:
            children.setdefault(edge.parent, [])
            children.setdefault(edge.child, [])
            if edge.parent == edge.child:
                continue
            if edge.child not in children[edge.parent]:
                children[edge.parent].append(edge.child)

        frozen = {role: tuple(kids) for role, kids in children.items()}
        _check_acyclic(frozen)

        closures = {role: _reachable(role, frozen) for role in frozen}
        return cls(frozen, closures)

    @classmethod
    def from_mapping(cls, hierarchy: Mapping[str, Iterable[str]]) -> "RoleGraph":
        """Build from ``{parent: [children, ...]}``."""
        edges = [
            RoleEdge(parent, child)
            for parent, kids in hierarchy.items()
            for child in kids
        ]
        return cls.build(edges, roles=hierarchy.keys())

    @property
    def roles(self) -> FrozenSet[str]:
        return frozenset(self._children)

    def __contains__(self, role: str) -> bool:
        return role in self._children

    def children(self, role: str) -> Tuple[str, ...]:
        return self._children.get(role, ())

    def closure(self, role: str) -> FrozenSet[str]:
        """Roles subsumed by ``role``, always including ``role`` itself.

        A role unknown to the graph subsumes only itself.
        """
        closure = self._closures.get(role)
        if closure is None:
            return frozenset((role,))
        return closure

    def closure_of(self, roles: Iterable[str]) -> FrozenSet[str]:
        """Union of the closures of ``roles``."""
        result: Set[str] = set()
        for role in roles:
            result |= self.closure(role)
        return frozenset(result)

    def to_dict(self) -> Dict[str, Dict[str, List[str]]]:
        return {
            role: {
                "inherits": list(self._children[role]),
                "closure": sorted(self._closures[role]),
            }
            for role in sorted(self._children)
        }


_WHITE, _GREY, _BLACK = 0, 1, 2


def _check_acyclic(children: Mapping[str, Tuple[str, ...]]) -> None:
    """Depth-first search with visited/on-stack marking."""
    state = {role: _WHITE for role in children}

    for root in sorted(children):
        if state[root] != _WHITE:
            continue

        path = [root]
        stack = [iter(children[root])]
        state[root] = _GREY

        while stack:
            child = next(stack[-1], None)
            if child is None:
                stack.pop()
                state[path.pop()] = _BLACK
                continue

            if state[child] == _GREY:
                start = path.index(child)
                raise RoleCycleError(path[start:] + [child])

            if state[child] == _WHITE:
                state[child] = _GREY
                path.append(child)
                stack.append(iter(children[child]))


def _reachable(role: str, children: Mapping[str, Tuple[str, ...]]) -> FrozenSet[str]:
    seen = {role}
    pending = [role]
    while pending:
        for child in children[pending.pop()]:
            if child not in seen:
                seen.add(child)
                pending.append(child)
    return frozenset(seen)
