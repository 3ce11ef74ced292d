from .models import (
    AminoacidSubstitution,
    AnalysisResult,
    AuspiceNode,
    AuspiceTree,
    CharacterRange,
    Gene,
    NucleotideDeletion,
    NucleotideLocation,
    NucleotideRange,
    NucleotideSubstitution,
    OutputKind,
    PcrPrimer,
    PcrPrimerChange,
    PcrPrimerEntry,
    QcResult,
    QcRuleResult,
    QcRulesConfig,
    VirusConfig,
)

__all__ = [
    "AminoacidSubstitution",
    "AnalysisResult",
    "AuspiceNode",
    "AuspiceTree",
    "CharacterRange",
    "Gene",
    "NucleotideDeletion",
    "NucleotideLocation",
    "NucleotideRange",
    "NucleotideSubstitution",
    "OutputKind",
    "PcrPrimer",
    "PcrPrimerChange",
    "PcrPrimerEntry",
    "QcResult",
    "QcRuleResult",
    "QcRulesConfig",
    "VirusConfig",
]
