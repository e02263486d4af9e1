from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .genome import Genome


@dataclass
class InnovationTracker:
    """Shared node-id and lineage-number sequences.

    Every genome that should be able to cross over with another must draw from
    the same tracker: equal lineage numbers then mean the same historical
    structural change. Both counters are advanced under a lock so concurrent
    mutation stays collision free.
    """

    next_lineage: int = 0
    next_node_id: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def new_lineage(self) -> int:
        with self._lock:
            lineage = self.next_lineage
            self.next_lineage += 1
        return lineage

    def new_node_id(self) -> int:
        with self._lock:
            node_id = self.next_node_id
            self.next_node_id += 1
        return node_id

    def observe(self, genome: "Genome") -> None:
        """Move both sequences past every id already used by ``genome``."""
        with self._lock:
            if genome.nodes:
                self.next_node_id = max(self.next_node_id, max(genome.nodes) + 1)
            if genome.connections:
                self.next_lineage = max(self.next_lineage, max(genome.connections) + 1)
