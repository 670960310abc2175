"""Record types passed between pipeline components."""

from dataclasses import dataclass, field

UNTAGGED = "none"


@dataclass(frozen=True)
class BarcodeRecord:
    """Barcode extracted from one read pair"""

    read_pair_id: str
    sequence: str


@dataclass
class Bucket:
    """Barcode records sharing a prefix, in input order"""

    prefix: str
    records: list[BarcodeRecord] = field(default_factory=list)

    def __len__(self):
        return len(self.records)


@dataclass
class Cluster:
    """Bucket-local cluster, mutable only while its bucket is being clustered."""

    local_id: int
    representative: str
    members: set[str] = field(default_factory=set)
    sequences: list[str] = field(default_factory=list)

    def add(self, record: BarcodeRecord, is_new_sequence: bool):
        self.members.add(record.read_pair_id)
        if is_new_sequence:
            self.sequences.append(record.sequence)


@dataclass(frozen=True)
class GlobalCluster:
    global_id: int
    representative: str
    members: frozenset[str]
    sequences: tuple[str, ...]

    @property
    def size(self) -> int:
        return len(self.members)


class ClusterSet:
    """Globally numbered clusters with sequence and read-pair lookups."""

    def __init__(self, clusters: list[GlobalCluster]):
        self.clusters = clusters
        self.by_sequence: dict[str, int] = {}
        self.by_read_pair: dict[str, int] = {}
        for cluster in clusters:
            for seq in cluster.sequences:
                self.by_sequence[seq] = cluster.global_id
            for read_pair_id in cluster.members:
                self.by_read_pair[read_pair_id] = cluster.global_id

    def __len__(self):
        return len(self.clusters)

    def __iter__(self):
        return iter(self.clusters)

    def __getitem__(self, global_id: int) -> GlobalCluster:
        return self.clusters[global_id]

    def cluster_of(self, read_pair_id: str) -> int | None:
        return self.by_read_pair.get(read_pair_id)


@dataclass(frozen=True)
class TaggedRead:
    """One FASTQ read with cluster and barcode tags attached"""

    name: str
    sequence: str
    quality: str
    cluster_tag: str = UNTAGGED
    sequence_tag: str | None = None

    @property
    def is_tagged(self) -> bool:
        return self.cluster_tag != UNTAGGED

    def header(self, cluster_tag: str = "BC", sequence_tag: str = "RX") -> str:
        fields = [f"@{self.name}", f"{cluster_tag}:Z:{self.cluster_tag}"]
        if self.sequence_tag:
            fields.append(f"{sequence_tag}:Z:{self.sequence_tag}")
        return " ".join(fields)
