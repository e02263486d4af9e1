from __future__ import annotations

from dataclasses import dataclass, field

INPUT = "input"
HIDDEN = "hidden"
OUTPUT = "output"

NODE_KINDS = (INPUT, HIDDEN, OUTPUT)


@dataclass
class NodeGene:
    node_id: int
    kind: str
    incoming: list[int] = field(default_factory=list)
    outgoing: list[int] = field(default_factory=list)
    value: float = 0.0

    def prototype(self) -> "NodeGene":
        return NodeGene(node_id=self.node_id, kind=self.kind)


@dataclass
class ConnectionGene:
    lineage: int
    src: int
    dst: int
    weight: float
    bias: float = 0.0
    enabled: bool = True

    @property
    def pair(self) -> tuple[int, int]:
        return self.src, self.dst
