"""Text formats for genomes and tracks, and the file helpers around them.

Genome files hold three header lines (input, hidden and output node labels,
joined with ", ") followed by one line per connection gene::

    I0, I1
    H5
    O2
    0:	I0->0.5+0.0->O2
    3:	I0->0.5+0.0->H5	disabled

A node label is the kind tag (I, O or H) followed by the id in hex. Track
files list one boundary segment per line as ``(x1, y1)->(x2, y2)``.
"""

from __future__ import annotations

import datetime as dt
import re
from pathlib import Path
from typing import Iterable

from loguru import logger

from .envs.track import Segment
from .errors import MalformedDataError, StructuralError
from .genes import HIDDEN, INPUT, OUTPUT, ConnectionGene, NodeGene
from .genome import Genome

KIND_TAGS = {INPUT: "I", HIDDEN: "H", OUTPUT: "O"}
TAG_KINDS = {tag: kind for kind, tag in KIND_TAGS.items()}

DISABLED_MARK = "disabled"

_FLOAT = r"[-+]?(?:(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][-+]?\d+)?|inf|nan)"
_LABEL = r"[IOH][0-9a-fA-F]+"
_GENE_RE = re.compile(
    rf"^(\d+):\s*({_LABEL})->({_FLOAT})\+({_FLOAT})->({_LABEL})(?:\t({DISABLED_MARK}))?$"
)
_SEGMENT_RE = re.compile(
    rf"^\(\s*({_FLOAT})\s*,\s*({_FLOAT})\s*\)\s*->\s*\(\s*({_FLOAT})\s*,\s*({_FLOAT})\s*\)$"
)

_HEADER_KINDS = (INPUT, HIDDEN, OUTPUT)


def node_label(node: NodeGene) -> str:
    return f"{KIND_TAGS[node.kind]}{node.node_id:x}"


def parse_node_label(label: str) -> NodeGene:
    label = label.strip()
    if not re.fullmatch(_LABEL, label):
        raise MalformedDataError(f"invalid node label {label!r}", line=label)
    return NodeGene(node_id=int(label[1:], 16), kind=TAG_KINDS[label[0]])


def encode_gene(genome: Genome, gene: ConnectionGene) -> str:
    line = (
        f"{gene.lineage}:\t{node_label(genome.nodes[gene.src])}->"
        f"{float(gene.weight)!r}+{float(gene.bias)!r}->{node_label(genome.nodes[gene.dst])}"
    )
    if not gene.enabled:
        line += f"\t{DISABLED_MARK}"
    return line


def encode_genome(genome: Genome) -> str:
    header_ids = (genome.input_ids, genome.hidden_ids, genome.output_ids)
    lines = [", ".join(node_label(genome.nodes[nid]) for nid in ids) for ids in header_ids]
    lines.extend(encode_gene(genome, gene) for gene in genome.genes())
    return "\n".join(lines) + "\n"


def decode_gene(line: str, lineno: int | None = None) -> tuple[ConnectionGene, NodeGene, NodeGene]:
    match = _GENE_RE.match(line.rstrip("\r\n"))
    if match is None:
        raise MalformedDataError(f"invalid connection entry {line!r}", line=line, lineno=lineno)
    lineage, src_label, weight, bias, dst_label, disabled = match.groups()
    src = parse_node_label(src_label)
    dst = parse_node_label(dst_label)
    gene = ConnectionGene(
        lineage=int(lineage),
        src=src.node_id,
        dst=dst.node_id,
        weight=float(weight),
        bias=float(bias),
        enabled=disabled is None,
    )
    return gene, src, dst


def decode_genome(text: str, genome_id: int = 0) -> Genome:
    lines = text.splitlines()
    if len(lines) < 3:
        raise MalformedDataError(f"expected 3 header lines, got {len(lines)}")

    genome = Genome(genome_id=genome_id)
    for lineno, (line, kind) in enumerate(zip(lines[:3], _HEADER_KINDS), start=1):
        if not line.strip():
            continue
        for label in line.split(","):
            if not label.strip():
                continue
            try:
                node = parse_node_label(label)
            except MalformedDataError as exc:
                raise MalformedDataError(str(exc), line=line, lineno=lineno) from exc
            if node.kind != kind:
                raise MalformedDataError(f"{label.strip()} listed among {kind} nodes", line=line, lineno=lineno)
            try:
                genome.put_node(node)
            except StructuralError as exc:
                raise MalformedDataError(str(exc), line=line, lineno=lineno) from exc

    for lineno, line in enumerate(lines[3:], start=4):
        if not line.strip():
            continue
        gene, src, dst = decode_gene(line, lineno)
        try:
            genome.put_connection(gene, src, dst)
        except StructuralError as exc:
            raise MalformedDataError(str(exc), line=line, lineno=lineno) from exc
    return genome


def encode_segment(segment: Segment) -> str:
    x1, y1, x2, y2 = (float(v) for v in segment)
    return f"({x1!r}, {y1!r})->({x2!r}, {y2!r})"


def decode_segment(line: str, lineno: int | None = None) -> Segment:
    match = _SEGMENT_RE.match(line.strip())
    if match is None:
        raise MalformedDataError(f"invalid edge {line!r}", line=line, lineno=lineno)
    return Segment(*(float(v) for v in match.groups()))


def encode_track(segments: Iterable[Segment]) -> str:
    return "".join(encode_segment(s) + "\n" for s in segments)


def decode_track(text: str, skip_malformed: bool = False) -> list[Segment]:
    segments: list[Segment] = []
    for lineno, line in enumerate(text.splitlines(), start=1):
        if not line.strip():
            continue
        try:
            segments.append(decode_segment(line, lineno))
        except MalformedDataError as exc:
            if not skip_malformed:
                raise
            logger.warning("Skipping track edge: {}", exc)
    return segments


# Files


def default_genome_path(directory: Path, now: dt.datetime | None = None) -> Path:
    stamp = (now or dt.datetime.now()).strftime("%Y%m%d_%H%M%S")
    return directory / f"Network_{stamp}.nw"


def write_genome(genome: Genome, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(encode_genome(genome), encoding="utf-8")
    return path


def read_genome(path: Path, genome_id: int = 0) -> Genome:
    try:
        return decode_genome(path.read_text(encoding="utf-8"), genome_id=genome_id)
    except MalformedDataError as exc:
        raise MalformedDataError(f"{path}: {exc}", line=exc.line) from exc


def load_genomes(path: Path) -> list[Genome]:
    """Read one genome file, or every regular file in a directory.

    Files that cannot be read or parsed are logged and left out.
    """
    files = sorted(p for p in path.iterdir() if p.is_file()) if path.is_dir() else [path]
    genomes: list[Genome] = []
    for file in files:
        try:
            genomes.append(read_genome(file, genome_id=len(genomes)))
        except (MalformedDataError, OSError, UnicodeDecodeError) as exc:
            logger.warning("Skipping genome file {}: {}", file, exc)
    return genomes


def write_track(segments: Iterable[Segment], path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(encode_track(segments), encoding="utf-8")
    return path


def read_track(path: Path) -> list[Segment]:
    """Read a track file, skipping (and logging) lines that do not parse."""
    return decode_track(path.read_text(encoding="utf-8"), skip_malformed=True)
