from __future__ import annotations

import copy
from collections import deque
from dataclasses import dataclass, field, replace
from typing import Sequence

import numpy as np

from .config import EvolutionConfig
from .errors import StructuralError
from .genes import HIDDEN, INPUT, NODE_KINDS, OUTPUT, ConnectionGene, NodeGene
from .innovation import InnovationTracker

MATCHING_GENE_POLICIES = ("uniform", "fitter")


@dataclass
class Genome:
    """Nodes and connection genes of one candidate controller.

    Nodes are stored by id and genes by lineage number; adjacency lists hold
    lineage numbers, never objects, so inserting a gene only ever needs ids.
    """

    genome_id: int
    input_ids: list[int] = field(default_factory=list)
    output_ids: list[int] = field(default_factory=list)
    nodes: dict[int, NodeGene] = field(default_factory=dict)
    connections: dict[int, ConnectionGene] = field(default_factory=dict)
    fitness: float | None = None

    def clone(self, new_id: int | None = None) -> "Genome":
        return Genome(
            genome_id=self.genome_id if new_id is None else new_id,
            input_ids=list(self.input_ids),
            output_ids=list(self.output_ids),
            nodes=copy.deepcopy(self.nodes),
            connections=copy.deepcopy(self.connections),
            fitness=self.fitness,
        )

    @property
    def hidden_ids(self) -> list[int]:
        return sorted(k for k, n in self.nodes.items() if n.kind == HIDDEN)

    def lineages(self) -> list[int]:
        return sorted(self.connections)

    def genes(self) -> list[ConnectionGene]:
        return [self.connections[lineage] for lineage in self.lineages()]

    def complexity(self) -> tuple[int, int]:
        enabled = sum(1 for c in self.connections.values() if c.enabled)
        return len(self.hidden_ids), enabled

    def has_pair(self, src: int, dst: int) -> bool:
        node = self.nodes.get(src)
        if node is None:
            return False
        return any(self.connections[lineage].dst == dst for lineage in node.outgoing)

    def to_phenotype(self) -> "FeedForwardPhenotype":
        return FeedForwardPhenotype(self)

    def compute(self, inputs: Sequence[float]) -> list[float]:
        return self.to_phenotype().forward(inputs)

    # Insertion

    def put_node(self, node: NodeGene) -> bool:
        """Insert a fresh copy of ``node`` unless its id is already present."""
        existing = self.nodes.get(node.node_id)
        if existing is not None:
            if existing.kind != node.kind:
                raise StructuralError(
                    f"node {node.node_id} is a {existing.kind} node in genome {self.genome_id}, not {node.kind}"
                )
            return False
        if node.kind not in NODE_KINDS:
            raise StructuralError(f"unknown node kind {node.kind!r}")

        self.nodes[node.node_id] = node.prototype()
        if node.kind == INPUT:
            self.input_ids.append(node.node_id)
        elif node.kind == OUTPUT:
            self.output_ids.append(node.node_id)
        return True

    def put_connection(
        self,
        gene: ConnectionGene,
        src_node: NodeGene | None = None,
        dst_node: NodeGene | None = None,
    ) -> ConnectionGene:
        """Register a copy of ``gene`` and return the stored instance.

        Endpoints missing from this genome are created from the given node
        prototypes. A lineage that is already registered with the same
        endpoints is left as it is.
        """
        src_kind = self._endpoint_kind(gene.src, src_node)
        dst_kind = self._endpoint_kind(gene.dst, dst_node)
        if gene.src == gene.dst:
            raise StructuralError(f"connection {gene.lineage} loops on node {gene.src}")
        if src_kind == OUTPUT:
            raise StructuralError(f"connection {gene.lineage} leaves output node {gene.src}")
        if dst_kind == INPUT:
            raise StructuralError(f"connection {gene.lineage} enters input node {gene.dst}")

        existing = self.connections.get(gene.lineage)
        if existing is not None:
            if existing.pair != gene.pair:
                raise StructuralError(
                    f"lineage {gene.lineage} already connects {existing.src}->{existing.dst}"
                )
            return existing

        if src_node is not None:
            self.put_node(src_node)
        if dst_node is not None:
            self.put_node(dst_node)

        stored = replace(gene)
        self.connections[stored.lineage] = stored
        outgoing = self.nodes[stored.src].outgoing
        if stored.lineage not in outgoing:
            outgoing.append(stored.lineage)
        incoming = self.nodes[stored.dst].incoming
        if stored.lineage not in incoming:
            incoming.append(stored.lineage)
        return stored

    def _endpoint_kind(self, node_id: int, prototype: NodeGene | None) -> str:
        existing = self.nodes.get(node_id)
        if existing is not None:
            if prototype is not None and prototype.kind != existing.kind:
                raise StructuralError(
                    f"node {node_id} is a {existing.kind} node in genome {self.genome_id}, not {prototype.kind}"
                )
            return existing.kind
        if prototype is None:
            raise StructuralError(f"node {node_id} is not in genome {self.genome_id}")
        if prototype.node_id != node_id:
            raise StructuralError(f"prototype {prototype.node_id} given for node {node_id}")
        if prototype.kind not in NODE_KINDS:
            raise StructuralError(f"unknown node kind {prototype.kind!r}")
        return prototype.kind

    # Structural mutation

    def add_connection(
        self,
        tracker: InnovationTracker,
        src_id: int,
        dst_id: int,
        weight: float,
        bias: float = 0.0,
    ) -> ConnectionGene:
        """The add-connection mutation: link two nodes this genome already owns."""
        for node_id in (src_id, dst_id):
            if node_id not in self.nodes:
                raise StructuralError(f"node {node_id} is not in genome {self.genome_id}")
        if self.has_pair(src_id, dst_id):
            raise StructuralError(f"genome {self.genome_id} already connects {src_id}->{dst_id}")
        if src_id == dst_id or self._reaches(dst_id, src_id):
            raise StructuralError(f"connecting {src_id}->{dst_id} would close a cycle")
        if self.nodes[src_id].kind == OUTPUT or self.nodes[dst_id].kind == INPUT:
            raise StructuralError(f"{src_id}->{dst_id} runs against the input/output direction")

        gene = ConnectionGene(
            lineage=tracker.new_lineage(),
            src=src_id,
            dst=dst_id,
            weight=float(weight),
            bias=float(bias),
            enabled=True,
        )
        return self.put_connection(gene)

    def add_node(self, lineage: int, tracker: InnovationTracker) -> int:
        """The add-node mutation: split connection ``lineage`` with a new hidden node.

        The split leaves the network output unchanged: the incoming half copies the
        old weight and bias, the outgoing half passes the value through with
        weight 1 and bias 0. Returns the new node id.
        """
        old = self.connections.get(lineage)
        if old is None:
            raise StructuralError(f"lineage {lineage} is not in genome {self.genome_id}")

        node_id = tracker.new_node_id()
        if node_id in self.nodes:
            raise StructuralError(f"tracker handed out node id {node_id} already used by genome {self.genome_id}")
        into, out = tracker.new_lineage(), tracker.new_lineage()
        for lineage_no in (into, out):
            if lineage_no in self.connections:
                raise StructuralError(
                    f"tracker handed out lineage {lineage_no} already used by genome {self.genome_id}"
                )

        # Nothing below can fail: both lineages and the node id are fresh.
        old.enabled = False
        self.put_node(NodeGene(node_id=node_id, kind=HIDDEN))
        self.put_connection(
            ConnectionGene(
                lineage=into,
                src=old.src,
                dst=node_id,
                weight=old.weight,
                bias=old.bias,
            )
        )
        self.put_connection(
            ConnectionGene(
                lineage=out,
                src=node_id,
                dst=old.dst,
                weight=1.0,
                bias=0.0,
            )
        )
        return node_id

    def _reaches(self, start: int, goal: int) -> bool:
        # Disabled genes count: they can be switched back on later.
        seen: set[int] = set()
        stack = [start]
        while stack:
            nid = stack.pop()
            if nid == goal:
                return True
            if nid in seen:
                continue
            seen.add(nid)
            stack.extend(self.connections[lineage].dst for lineage in self.nodes[nid].outgoing)
        return False

    def _descendants(self) -> dict[int, set[int]]:
        reach: dict[int, set[int]] = {}
        for nid in self.nodes:
            seen: set[int] = set()
            stack = [self.connections[lineage].dst for lineage in self.nodes[nid].outgoing]
            while stack:
                cur = stack.pop()
                if cur in seen:
                    continue
                seen.add(cur)
                stack.extend(self.connections[lineage].dst for lineage in self.nodes[cur].outgoing)
            reach[nid] = seen
        return reach

    # Random mutation driver

    def mutate(
        self,
        rng: np.random.Generator,
        cfg: EvolutionConfig,
        tracker: InnovationTracker,
    ) -> None:
        self._mutate_params(rng, cfg)

        if rng.random() < cfg.mutation.add_node_rate:
            self._mutate_add_node(rng, tracker)

        if rng.random() < cfg.mutation.add_conn_rate:
            self._mutate_add_connection(rng, tracker)

        if rng.random() < cfg.mutation.toggle_conn_rate and self.connections:
            lineages = self.lineages()
            gene = self.connections[lineages[rng.integers(len(lineages))]]
            gene.enabled = not gene.enabled

    def randomize_weights(self, rng: np.random.Generator) -> None:
        for lineage in self.lineages():
            self.connections[lineage].weight = float(rng.uniform(-1.0, 1.0))

    def _mutate_params(self, rng: np.random.Generator, cfg: EvolutionConfig) -> None:
        mcfg = cfg.mutation

        for lineage in self.lineages():
            conn = self.connections[lineage]
            if rng.random() < mcfg.weight_mutate_rate:
                if rng.random() < mcfg.weight_replace_rate:
                    conn.weight = float(rng.uniform(-1.0, 1.0))
                else:
                    conn.weight += float(rng.normal(0.0, mcfg.weight_mutate_power))
                conn.weight = float(np.clip(conn.weight, -mcfg.weight_clip, mcfg.weight_clip))
            if rng.random() < mcfg.bias_mutate_rate:
                conn.bias += float(rng.normal(0.0, mcfg.bias_mutate_power))
                conn.bias = float(np.clip(conn.bias, -mcfg.weight_clip, mcfg.weight_clip))

    def _mutate_add_connection(self, rng: np.random.Generator, tracker: InnovationTracker) -> None:
        reach = self._descendants()
        candidates: list[tuple[int, int]] = []
        node_ids = sorted(self.nodes)

        for src_id in node_ids:
            if self.nodes[src_id].kind == OUTPUT:
                continue
            for dst_id in node_ids:
                if src_id == dst_id or self.nodes[dst_id].kind == INPUT:
                    continue
                if src_id in reach[dst_id]:
                    continue
                if self.has_pair(src_id, dst_id):
                    continue
                candidates.append((src_id, dst_id))

        if not candidates:
            return

        src, dst = candidates[rng.integers(len(candidates))]
        self.add_connection(tracker, src, dst, weight=float(rng.uniform(-1.0, 1.0)))

    def _mutate_add_node(self, rng: np.random.Generator, tracker: InnovationTracker) -> None:
        enabled = [lineage for lineage in self.lineages() if self.connections[lineage].enabled]
        if not enabled:
            return
        self.add_node(enabled[rng.integers(len(enabled))], tracker)

    # Crossover

    def reproduce_with(
        self,
        other: "Genome",
        rng: np.random.Generator,
        child_id: int | None = None,
        policy: str = "uniform",
    ) -> "Genome":
        """Cross this genome with ``other`` by walking both lineage lists in order.

        Matching genes come from either parent (coin flip, or the fitter one
        under ``policy="fitter"``); disjoint and excess genes are always kept.
        """
        if policy not in MATCHING_GENE_POLICIES:
            raise ValueError(f"Unsupported matching gene policy: {policy}")

        child = Genome(genome_id=self.genome_id if child_id is None else child_id)
        for parent in (self, other):
            for nid in parent.input_ids + parent.output_ids:
                child.put_node(parent.nodes[nid])

        mine = self.lineages()
        theirs = other.lineages()
        i = j = 0
        while i < len(mine) and j < len(theirs):
            a, b = mine[i], theirs[j]
            if a == b:
                child._inherit(self._matching_donor(other, rng, policy), a)
                i += 1
                j += 1
            elif a < b:
                child._inherit(self, a)
                i += 1
            else:
                child._inherit(other, b)
                j += 1

        for lineage in mine[i:]:
            child._inherit(self, lineage)
        for lineage in theirs[j:]:
            child._inherit(other, lineage)
        return child

    def _matching_donor(self, other: "Genome", rng: np.random.Generator, policy: str) -> "Genome":
        if policy == "fitter" and self.fitness is not None and other.fitness is not None:
            if self.fitness > other.fitness:
                return self
            if other.fitness > self.fitness:
                return other
        return self if rng.random() < 0.5 else other

    def _inherit(self, parent: "Genome", lineage: int) -> None:
        gene = parent.connections[lineage]
        self.put_connection(gene, parent.nodes[gene.src], parent.nodes[gene.dst])


class FeedForwardPhenotype:
    """One non-recurrent pass over a genome by pushing values downstream.

    A node settles once it has heard from every enabled incoming gene; its
    value is the mean of ``weight * value + bias`` over those genes.
    """

    def __init__(self, genome: Genome):
        self._nodes = genome.nodes
        self._input_ids = list(genome.input_ids)
        self._output_ids = list(genome.output_ids)

        self._outgoing: dict[int, list[tuple[int, float, float]]] = {}
        self._fan_in: dict[int, int] = {}
        for nid, node in genome.nodes.items():
            out = sorted(node.outgoing)
            self._outgoing[nid] = [
                (genome.connections[lineage].dst, genome.connections[lineage].weight, genome.connections[lineage].bias)
                for lineage in out
                if genome.connections[lineage].enabled
            ]
            self._fan_in[nid] = sum(1 for lineage in node.incoming if genome.connections[lineage].enabled)

    def forward(self, inputs: Sequence[float]) -> list[float]:
        obs = np.asarray(inputs, dtype=np.float64).reshape(-1)
        pending: dict[int, list[float]] = {nid: [] for nid in self._fan_in}
        for node in self._nodes.values():
            node.value = 0.0

        queue: deque[tuple[int, float]] = deque(
            (nid, 0.0)
            for nid, fan_in in self._fan_in.items()
            if fan_in == 0 and self._nodes[nid].kind != INPUT
        )
        for i, nid in enumerate(self._input_ids):
            queue.append((nid, float(obs[i]) if i < obs.shape[0] else 0.0))

        while queue:
            nid, value = queue.popleft()
            self._nodes[nid].value = value
            for dst, weight, bias in self._outgoing[nid]:
                bucket = pending[dst]
                bucket.append(weight * value + bias)
                if len(bucket) == self._fan_in[dst]:
                    queue.append((dst, float(np.mean(bucket))))

        return [self._nodes[nid].value for nid in self._output_ids]

    def actions(self, inputs: Sequence[float]) -> list[bool]:
        return [value > 0.5 for value in self.forward(inputs)]


def create_initial_genome(
    genome_id: int,
    cfg: EvolutionConfig,
    tracker: InnovationTracker,
    rng: np.random.Generator,
) -> Genome:
    """Inputs wired straight to outputs with random weights.

    Genomes meant to cross over should be clones of one such genome so they
    share lineage numbers.
    """
    genome = Genome(genome_id=genome_id)

    for _ in range(cfg.input_size):
        genome.put_node(NodeGene(node_id=tracker.new_node_id(), kind=INPUT))
    for _ in range(cfg.output_size):
        genome.put_node(NodeGene(node_id=tracker.new_node_id(), kind=OUTPUT))

    for src in list(genome.input_ids):
        for dst in list(genome.output_ids):
            genome.add_connection(tracker, src, dst, weight=float(rng.uniform(-1.0, 1.0)))

    return genome
