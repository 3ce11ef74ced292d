from __future__ import annotations

import re
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Models whose JSON form uses camelCase keys, as the data files do."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StrictCamelModel(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


# --- QC rules -----------------------------------------------------------------


class MissingDataConfig(StrictCamelModel):
    enabled: bool = True
    missing_data_threshold: float = Field(gt=0)
    score_bias: float = Field(default=0.0, ge=0)


class MixedSitesConfig(StrictCamelModel):
    enabled: bool = True
    mixed_sites_threshold: int = Field(gt=0)


class PrivateMutationsConfig(StrictCamelModel):
    enabled: bool = True
    typical: int = Field(ge=0)
    cutoff: int = Field(gt=0)


class SnpClustersConfig(StrictCamelModel):
    enabled: bool = True
    window_size: int = Field(gt=0)
    cluster_cut_off: int = Field(gt=0)
    score_weight: float = Field(ge=0)


class QcRulesConfig(StrictCamelModel):
    missing_data: MissingDataConfig
    mixed_sites: MixedSitesConfig
    private_mutations: PrivateMutationsConfig
    snp_clusters: SnpClustersConfig


# --- gene map -----------------------------------------------------------------


class Gene(CamelModel):
    """A gene annotation. Coordinates are 0-based, end-exclusive."""

    name: str = Field(min_length=1)
    color: Optional[str] = None
    start: int = Field(ge=0)
    end: int
    strand: Literal["+", "-"] = "+"
    frame: Optional[int] = None

    @model_validator(mode="after")
    def _check_range(self) -> "Gene":
        if self.end <= self.start:
            raise ValueError(f"gene '{self.name}' has end ({self.end}) <= start ({self.start})")
        if self.frame is None:
            self.frame = self.start % 3
        return self

    @property
    def length(self) -> int:
        return self.end - self.start


# --- PCR primers --------------------------------------------------------------


class PcrPrimerEntry(BaseModel):
    """One row of a primer CSV file."""

    model_config = ConfigDict(populate_by_name=True)

    source: str = Field(alias="Country (Institute)")
    target: str = Field(alias="Target")
    name: str = Field(alias="Oligonucleotide", min_length=1)
    primer_oligonuc: str = Field(alias="Sequence", min_length=1)

    @field_validator("primer_oligonuc")
    @classmethod
    def _normalize_oligonuc(cls, value: str) -> str:
        value = "".join(value.split()).upper()
        if not value.isalpha():
            raise ValueError(f"primer sequence contains non-letter characters: {value!r}")
        return value


class NucleotideRange(CamelModel):
    begin: int = Field(ge=0)
    end: int = Field(ge=0)

    @property
    def length(self) -> int:
        return self.end - self.begin

    def contains(self, pos: int) -> bool:
        return self.begin <= pos < self.end


class NucleotideLocation(CamelModel):
    pos: int = Field(ge=0)
    nuc: str


class PcrPrimer(CamelModel):
    name: str
    target: str
    source: str
    root_oligonuc: str
    primer_oligonuc: str
    range: NucleotideRange
    non_acgts: list[NucleotideLocation] = Field(default_factory=list, alias="nonACGTs")

    @model_validator(mode="after")
    def _check_lengths(self) -> "PcrPrimer":
        if len(self.root_oligonuc) != self.range.length:
            raise ValueError(f"primer '{self.name}' range does not match its root oligonucleotide")
        if len(self.primer_oligonuc) != self.range.length:
            raise ValueError(f"primer '{self.name}' range does not match its oligonucleotide")
        return self


# --- reference tree -----------------------------------------------------------


# Branch mutation as written in Auspice JSON, e.g. "A41G"; positions are 1-based.
MUTATION_RE = re.compile(r"^([A-Z*-])([1-9]\d*)([A-Z*-])$")


class BranchAttrs(BaseModel):
    """Branch annotations. Only `mutations` is interpreted; other keys are kept."""

    model_config = ConfigDict(extra="allow")

    mutations: dict[str, list[str]] = Field(default_factory=dict)

    @field_validator("mutations")
    @classmethod
    def _check_nuc_mutations(cls, value: dict[str, list[str]]) -> dict[str, list[str]]:
        malformed = [m for m in value.get("nuc", []) if not MUTATION_RE.match(m.strip())]
        if malformed:
            raise ValueError(f"malformed nucleotide mutation(s): {', '.join(malformed)}")
        return value


class AuspiceNode(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str
    node_attrs: dict[str, Any] = Field(default_factory=dict)
    branch_attrs: BranchAttrs = Field(default_factory=BranchAttrs)
    children: list[AuspiceNode] = Field(default_factory=list)

    @property
    def clade(self) -> Optional[str]:
        membership = self.node_attrs.get("clade_membership")
        if isinstance(membership, dict):
            value = membership.get("value")
            return str(value) if value is not None else None
        return None

    @property
    def nuc_mutations(self) -> list[str]:
        return list(self.branch_attrs.mutations.get("nuc", []))


class AuspiceTree(BaseModel):
    """Auspice JSON v2 dataset. Unknown keys are preserved."""

    model_config = ConfigDict(extra="allow")

    version: Literal["v2"]
    meta: dict[str, Any] = Field(default_factory=dict)
    tree: AuspiceNode


# --- configuration ------------------------------------------------------------


class VirusConfig(BaseModel):
    """Fully resolved analysis configuration. Every field is populated."""

    model_config = ConfigDict(frozen=True)

    name: str
    root_seq: str
    auspice_data: AuspiceTree
    qc_rules_config: QcRulesConfig
    gene_map: list[Gene]
    pcr_primers: list[PcrPrimer]


# --- analysis results ---------------------------------------------------------


class NucleotideSubstitution(CamelModel):
    pos: int
    ref_nuc: str
    query_nuc: str
    pcr_primers_changed: list[str] = Field(default_factory=list)

    def __str__(self) -> str:
        return f"{self.ref_nuc}{self.pos + 1}{self.query_nuc}"


class NucleotideDeletion(CamelModel):
    start: int
    length: int

    def __str__(self) -> str:
        if self.length == 1:
            return f"{self.start + 1}"
        return f"{self.start + 1}-{self.start + self.length}"


class CharacterRange(CamelModel):
    character: str
    begin: int
    end: int

    def __str__(self) -> str:
        if self.end - self.begin == 1:
            return f"{self.character}:{self.begin + 1}"
        return f"{self.character}:{self.begin + 1}-{self.end}"


class AminoacidSubstitution(CamelModel):
    gene: str
    codon: int
    ref_aa: str
    query_aa: str

    def __str__(self) -> str:
        return f"{self.gene}:{self.ref_aa}{self.codon + 1}{self.query_aa}"


class PcrPrimerChange(CamelModel):
    primer: str
    substitutions: list[NucleotideSubstitution]

    def __str__(self) -> str:
        return f"{self.primer}:{'/'.join(str(s) for s in self.substitutions)}"


QcStatus = Literal["good", "mediocre", "bad"]


class QcRuleResult(CamelModel):
    score: float
    status: QcStatus
    details: dict[str, Any] = Field(default_factory=dict)


class QcResult(CamelModel):
    overall_score: float
    overall_status: QcStatus
    missing_data: Optional[QcRuleResult] = None
    mixed_sites: Optional[QcRuleResult] = None
    private_mutations: Optional[QcRuleResult] = None
    snp_clusters: Optional[QcRuleResult] = None


class AnalysisResult(CamelModel):
    """Per-sequence analysis outcome. Treated as immutable once produced."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    seq_name: str
    clade: Optional[str] = None
    substitutions: list[NucleotideSubstitution] = Field(default_factory=list)
    deletions: list[NucleotideDeletion] = Field(default_factory=list)
    missing: list[CharacterRange] = Field(default_factory=list)
    non_acgtns: list[CharacterRange] = Field(default_factory=list, alias="nonACGTNs")
    pcr_primer_changes: list[PcrPrimerChange] = Field(default_factory=list)
    aa_substitutions: list[AminoacidSubstitution] = Field(default_factory=list)
    total_mutations: int = 0
    total_gaps: int = 0
    total_missing: int = 0
    total_non_acgtns: int = Field(default=0, alias="totalNonACGTNs")
    total_pcr_primer_changes: int = 0
    total_aminoacid_substitutions: int = 0
    private_mutations: list[NucleotideSubstitution] = Field(default_factory=list)
    nearest_node: Optional[str] = None
    qc: Optional[QcResult] = None
    errors: list[str] = Field(default_factory=list)


class OutputKind(str, Enum):
    JSON = "json"
    CSV = "csv"
    TSV_CLADES_ONLY = "tsv-clades-only"
    TSV = "tsv"
    TREE = "tree"

    @property
    def flag(self) -> str:
        return f"--output-{self.value}"
