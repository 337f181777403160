# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/relaychain/topology/resolver.py

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, List, Optional, Sequence, TypeVar

from relaychain.errors import ValidationError


class Role(str, Enum):
    INTERMEDIATE = "intermediate"
    TERMINAL = "terminal"


N = TypeVar("N")


@dataclass(frozen=True)
class Hop(Generic[N]):
    index: int
    node: N
    role: Role
    next_hop: Optional[str]

    @property
    def address(self) -> str:
        return self.node.address  # type: ignore[attr-defined]

    @property
    def is_terminal(self) -> bool:
        return self.role is Role.TERMINAL


def resolve(nodes: Sequence[N]) -> List[Hop[N]]:
    """
    Assign roles and next hops from list position.

    The last node is terminal with no next hop; every other node is
    intermediate and forwards to the address of the node after it.
    """
    if not nodes:
        raise ValidationError("node list must not be empty")

    seen = set()
    for n in nodes:
        addr = n.address  # type: ignore[attr-defined]
        if addr in seen:
            raise ValidationError(f"duplicate node address: {addr}")
        seen.add(addr)

    last = len(nodes) - 1
    return [
        Hop(
            index=i,
            node=n,
            role=Role.TERMINAL if i == last else Role.INTERMEDIATE,
            next_hop=None if i == last else nodes[i + 1].address,  # type: ignore[attr-defined]
        )
        for i, n in enumerate(nodes)
    ]
