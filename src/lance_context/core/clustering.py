"""K-means concept clustering over chunk embeddings.

Groups indexed chunks into concepts, then labels each group from the
directories, symbol kinds and identifiers of its members. Seeding is
random (k-means++), so cluster ids differ between unseeded runs. Pass a
seeded ``numpy.random.Generator`` for repeatable output.
"""

import math
import re
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import numpy as np
from loguru import logger

from .storage import StoredRow, VectorStore

STOP_WORDS = frozenset(
    {
        "function", "const", "let", "var", "return", "if", "else", "for",
        "while", "import", "export", "from", "class", "interface", "type",
        "async", "await", "new", "this", "true", "false", "null", "undefined",
        "public", "private", "static", "void", "string", "number", "boolean",
        "any", "def", "self", "none", "pass", "try", "except", "catch",
        "throw", "throws", "extends", "implements", "default", "case",
        "break", "continue",
    }
)

IDENTIFIER_PATTERN = re.compile(r"[a-zA-Z][a-zA-Z0-9_]*[a-zA-Z0-9]")
SYMBOL_WORD_PATTERN = re.compile(r"[A-Z]?[a-z]+")
MIN_KEYWORD_LENGTH = 4
SYMBOL_WORD_WEIGHT = 3
MAX_KEYWORDS = 10


@dataclass
class ClusterChunk:
    """The parts of a chunk clustering needs."""

    chunk_id: str
    content: str
    file_path: str
    embedding: list[float]
    symbol_name: str | None = None
    symbol_type: str | None = None
    start_line: int = 0
    end_line: int = 0

    @property
    def location(self) -> str:
        return f"{self.file_path}:{self.start_line}-{self.end_line}"

    @classmethod
    def from_row(cls, row: StoredRow) -> "ClusterChunk":
        return cls(
            chunk_id=row.chunk_id,
            content=row.content,
            file_path=row.file_path,
            embedding=row.vector,
            symbol_name=row.symbol_name,
            symbol_type=row.symbol_type,
            start_line=row.start_line,
            end_line=row.end_line,
        )


@dataclass
class ClusteringOptions:
    num_clusters: int | None = None
    max_iterations: int = 100
    convergence_threshold: float = 0.001
    num_representatives: int = 3


@dataclass
class ConceptCluster:
    id: int
    label: str
    size: int
    representative_chunks: list[str]
    centroid: list[float] = field(repr=False)
    keywords: list[str]
    representative_locations: list[str] = field(default_factory=list)

    def to_dict(self, include_centroid: bool = False) -> dict[str, Any]:
        data = {
            "id": self.id,
            "label": self.label,
            "size": self.size,
            "representative_chunks": self.representative_chunks,
            "keywords": self.keywords,
            "representative_locations": self.representative_locations,
        }
        if include_centroid:
            data["centroid"] = self.centroid
        return data


@dataclass
class ClusteringResult:
    clusters: list[ConceptCluster] = field(default_factory=list)
    assignments: dict[str, int] = field(default_factory=dict)
    silhouette: float = 0.0

    @property
    def cluster_count(self) -> int:
        return len(self.clusters)


def _as_pair(a: Sequence[float], b: Sequence[float]) -> tuple[np.ndarray, np.ndarray]:
    if len(a) != len(b):
        raise ValueError("Vectors must have same length")
    return np.asarray(a, dtype=np.float64), np.asarray(b, dtype=np.float64)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity; 0.0 when either vector has zero length."""
    va, vb = _as_pair(a, b)
    norm_a = float(np.linalg.norm(va))
    norm_b = float(np.linalg.norm(vb))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return float(np.dot(va, vb) / (norm_a * norm_b))


def euclidean_distance(a: Sequence[float], b: Sequence[float]) -> float:
    va, vb = _as_pair(a, b)
    return float(np.linalg.norm(va - vb))


def default_cluster_count(n: int) -> int:
    return max(3, min(20, math.ceil(math.sqrt(n / 2))))


def _squared_distances(points: np.ndarray, centroids: np.ndarray) -> np.ndarray:
    """(n, k) matrix of squared euclidean distances."""
    diff = points[:, None, :] - centroids[None, :, :]
    return np.einsum("nkd,nkd->nk", diff, diff)


def _init_centroids(points: np.ndarray, k: int, rng: np.random.Generator) -> np.ndarray:
    """k-means++: each new seed is drawn with probability proportional to its
    squared distance from the nearest existing seed."""
    n = points.shape[0]
    centroids = [points[rng.integers(n)].copy()]

    for _ in range(1, k):
        d2 = _squared_distances(points, np.asarray(centroids)).min(axis=1)
        total = d2.sum()
        if total <= 0:
            # All remaining points coincide with a seed
            index = int(rng.integers(n))
        else:
            index = int(rng.choice(n, p=d2 / total))
        centroids.append(points[index].copy())

    return np.asarray(centroids)


def extract_keywords(chunks: Sequence[ClusterChunk]) -> list[str]:
    """Top identifier-like words across chunks, symbol-name words weighted 3x."""
    freq: Counter[str] = Counter()

    for chunk in chunks:
        for word in IDENTIFIER_PATTERN.findall(chunk.content):
            lower = word.lower()
            if len(lower) >= MIN_KEYWORD_LENGTH and lower not in STOP_WORDS:
                freq[lower] += 1

        if chunk.symbol_name:
            for word in SYMBOL_WORD_PATTERN.findall(chunk.symbol_name):
                lower = word.lower()
                if len(lower) >= MIN_KEYWORD_LENGTH and lower not in STOP_WORDS:
                    freq[lower] += SYMBOL_WORD_WEIGHT

    return [word for word, _ in freq.most_common(MAX_KEYWORDS)]


def generate_label(
    members: Sequence[ClusterChunk], representatives: Sequence[ClusterChunk]
) -> str:
    """Label a cluster, e.g. ``"embeddings functions"``.

    Uses the last component of the most common directory and the most
    common symbol kind. Falls back to the top two keywords of the
    representatives, then to ``"Code"``.
    """
    symbol_types: Counter[str] = Counter()
    directories: Counter[str] = Counter()

    for chunk in members:
        if chunk.symbol_type:
            symbol_types[chunk.symbol_type] += 1
        segments = chunk.file_path.split("/")
        if len(segments) > 1:
            directories["/".join(segments[:-1])] += 1

    parts = []
    if directories:
        parts.append(directories.most_common(1)[0][0].split("/")[-1])
    if symbol_types:
        parts.append(f"{symbol_types.most_common(1)[0][0]}s")

    if not parts:
        keywords = extract_keywords(representatives)
        return " & ".join(keywords[:2]) if keywords else "Code"

    return " ".join(parts)


def k_means_clustering(
    chunks: Sequence[ClusterChunk],
    options: ClusteringOptions | None = None,
    rng: np.random.Generator | None = None,
) -> ClusteringResult:
    """Cluster chunks by embedding.

    Args:
        chunks: Chunks with embeddings of equal dimension
        options: Cluster count, iteration cap, convergence threshold and
            number of representatives per cluster
        rng: Random source for seeding (fresh unseeded generator when None)

    Returns:
        Clusters sorted by size (largest is id 0) and the chunk -> cluster map
    """
    options = options or ClusteringOptions()
    rng = rng or np.random.default_rng()
    n = len(chunks)
    if n == 0:
        return ClusteringResult()

    num_clusters = options.num_clusters or default_cluster_count(n)
    k = min(num_clusters, n)
    points = np.asarray([c.embedding for c in chunks], dtype=np.float64)

    if k <= 1:
        centroid = points.mean(axis=0)
        return _build_result(chunks, points, np.zeros(n, dtype=int), centroid[None, :], options)

    centroids = _init_centroids(points, k, rng)
    labels = np.full(n, -1, dtype=int)

    iteration = 0
    for iteration in range(1, options.max_iterations + 1):
        new_labels = _squared_distances(points, centroids).argmin(axis=1)
        if np.array_equal(new_labels, labels):
            break
        labels = new_labels

        new_centroids = np.empty_like(centroids)
        for j in range(k):
            members = points[labels == j]
            if len(members) == 0:
                new_centroids[j] = points[rng.integers(n)]
            else:
                new_centroids[j] = members.mean(axis=0)

        shift = float(np.linalg.norm(new_centroids - centroids, axis=1).max())
        centroids = new_centroids
        if shift < options.convergence_threshold:
            labels = _squared_distances(points, centroids).argmin(axis=1)
            break

    logger.debug(f"K-means converged after {iteration} iterations (k={k}, n={n})")
    return _build_result(chunks, points, labels, centroids, options)


def _build_result(
    chunks: Sequence[ClusterChunk],
    points: np.ndarray,
    labels: np.ndarray,
    centroids: np.ndarray,
    options: ClusteringOptions,
) -> ClusteringResult:
    """Drop empty clusters, sort by size, renumber and label."""
    sizes = np.bincount(labels, minlength=len(centroids))
    # Stable sort keeps the original order among equal sizes
    order = [int(j) for j in np.argsort(-sizes, kind="stable") if sizes[j] > 0]
    remap = {old: new for new, old in enumerate(order)}

    clusters = []
    for new_id, old_id in enumerate(order):
        member_idx = np.flatnonzero(labels == old_id)
        members = [chunks[i] for i in member_idx]
        d2 = ((points[member_idx] - centroids[old_id]) ** 2).sum(axis=1)
        closest = member_idx[np.argsort(d2, kind="stable")[: options.num_representatives]]
        representatives = [chunks[i] for i in closest]

        clusters.append(
            ConceptCluster(
                id=new_id,
                label=generate_label(members, representatives),
                size=len(members),
                representative_chunks=[c.chunk_id for c in representatives],
                centroid=centroids[old_id].tolist(),
                keywords=extract_keywords(members),
                representative_locations=[c.location for c in representatives],
            )
        )

    assignments = {
        chunk.chunk_id: remap[int(label)] for chunk, label in zip(chunks, labels, strict=True)
    }
    return ClusteringResult(clusters=clusters, assignments=assignments)


def assign_to_cluster(embedding: Sequence[float], clusters: Sequence[ConceptCluster]) -> int:
    """Id of the cluster with the nearest centroid (0 when there are none)."""
    nearest = 0
    best = math.inf
    for cluster in clusters:
        distance = euclidean_distance(embedding, cluster.centroid)
        if distance < best:
            best = distance
            nearest = cluster.id
    return nearest


def calculate_silhouette_score(
    chunks: Sequence[ClusterChunk],
    assignments: dict[str, int],
    clusters: Sequence[ConceptCluster],
) -> float:
    """Mean silhouette coefficient in [-1, 1]; 0 for < 2 clusters or chunks."""
    if len(clusters) <= 1 or len(chunks) <= 1:
        return 0.0

    assigned = [c for c in chunks if c.chunk_id in assignments]
    if not assigned:
        return 0.0

    points = np.asarray([c.embedding for c in assigned], dtype=np.float64)
    labels = np.asarray([assignments[c.chunk_id] for c in assigned])
    distances = np.sqrt(_squared_distances(points, points))
    cluster_ids = [cluster.id for cluster in clusters]

    total = 0.0
    for i in range(len(assigned)):
        same = labels == labels[i]
        same[i] = False
        a = float(distances[i, same].mean()) if same.any() else 0.0

        b = math.inf
        for cluster_id in cluster_ids:
            if cluster_id == labels[i]:
                continue
            other = labels == cluster_id
            if other.any():
                b = min(b, float(distances[i, other].mean()))
        b = 0.0 if b == math.inf else b

        denom = max(a, b)
        total += (b - a) / denom if denom > 0 else 0.0

    return total / len(assigned)


async def list_concepts(
    store: VectorStore,
    num_clusters: int | None = None,
    rng: np.random.Generator | None = None,
) -> ClusteringResult:
    """Cluster every indexed chunk into concepts.

    Args:
        store: Vector store holding the index
        num_clusters: Cluster count (derived from the chunk count when None)
        rng: Random source for seeding

    Returns:
        Clustering result with its silhouette score filled in
    """
    rows = await store.list_rows(include_vectors=True)
    chunks = [ClusterChunk.from_row(row) for row in rows if row.vector]
    result = k_means_clustering(chunks, ClusteringOptions(num_clusters=num_clusters), rng)
    result.silhouette = calculate_silhouette_score(chunks, result.assignments, result.clusters)
    logger.info(
        f"✓ Clustered {len(chunks)} chunks into {result.cluster_count} concepts "
        f"(silhouette {result.silhouette:.3f})"
    )
    return result
