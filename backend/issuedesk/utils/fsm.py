from __future__ import annotations
"""Declarative role-aware state machine.

One table of edges (intent x role x source status -> target status) replaces per-endpoint
role checks.
Usage:
    TABLE = TransitionTable([
        Edge('approve', roles={'manager'}, sources={'NEW'}, target='APPROVED'),
    ])
    edge = TABLE.assert_can_transition(current_status, 'approve', actor_role)

Raises IllegalTransition for edges missing from the table and NoChange when the target
equals the current status (a retried request).
"""
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Set

from issuedesk.domain.errors import IllegalTransition, NoChange


@dataclass(frozen=True)
class Edge:
    intent: str
    roles: FrozenSet[Any]
    sources: FrozenSet[Any]
    target: Any
    stamp: Optional[str] = None
    note: str = ''
    requires_assignment: bool = False
    requested: Optional[Any] = None

    def __post_init__(self):
        object.__setattr__(self, 'roles', frozenset(self.roles))
        object.__setattr__(self, 'sources', frozenset(self.sources))

    @property
    def reported_target(self):
        return self.requested if self.requested is not None else self.target


class TransitionTable:
    def __init__(self, edges: Iterable[Edge], field_name: str = 'status'):
        self.field_name = field_name
        self.edges: Dict[str, Edge] = {}
        for edge in edges:
            if edge.intent in self.edges:
                raise ValueError(f'Duplicate intent {edge.intent}')
            self.edges[edge.intent] = edge

    def intents(self) -> List[str]:
        return list(self.edges)

    def edge_for(self, intent: str) -> Optional[Edge]:
        return self.edges.get(intent)

    def graph(self) -> Dict[Any, Set[Any]]:
        out: Dict[Any, Set[Any]] = {}
        for edge in self.edges.values():
            for src in edge.sources:
                out.setdefault(src, set()).add(edge.target)
        return out

    def is_allowed(self, current, intent: str, role) -> bool:
        edge = self.edges.get(intent)
        return bool(edge) and role in edge.roles and current in edge.sources

    def assert_can_transition(self, current, intent: str, role) -> Edge:
        edge = self.edges.get(intent)
        if edge is None:
            raise IllegalTransition(current, None, intent, message=f'Unknown intent {intent!r}')
        if current == edge.target and role in edge.roles:
            raise NoChange(current, intent)
        if role not in edge.roles or current not in edge.sources:
            raise IllegalTransition(current, edge.reported_target, intent, edge.roles)
        return edge

__all__ = ['Edge', 'TransitionTable']
