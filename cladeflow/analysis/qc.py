from __future__ import annotations

from typing import Optional

from cladeflow.schemas.models import (
    MissingDataConfig,
    MixedSitesConfig,
    PrivateMutationsConfig,
    QcResult,
    QcRuleResult,
    QcRulesConfig,
    SnpClustersConfig,
)

GOOD_BELOW = 30.0
MEDIOCRE_BELOW = 100.0


def qc_status(score: float) -> str:
    if score < GOOD_BELOW:
        return "good"
    if score < MEDIOCRE_BELOW:
        return "mediocre"
    return "bad"


def _rule(score: float, **details) -> QcRuleResult:
    score = round(max(0.0, score), 2)
    return QcRuleResult(score=score, status=qc_status(score), details=details)


def rule_missing_data(total_missing: int, config: MissingDataConfig) -> QcRuleResult:
    score = (total_missing - config.score_bias) * 100.0 / config.missing_data_threshold
    return _rule(score, total_missing=total_missing, threshold=config.missing_data_threshold)


def rule_mixed_sites(total_mixed: int, config: MixedSitesConfig) -> QcRuleResult:
    score = total_mixed * 100.0 / config.mixed_sites_threshold
    return _rule(score, total_mixed_sites=total_mixed, threshold=config.mixed_sites_threshold)


def rule_private_mutations(total_private: int, config: PrivateMutationsConfig) -> QcRuleResult:
    score = (total_private - config.typical) * 100.0 / config.cutoff
    return _rule(score, total_private_mutations=total_private, excess=max(0, total_private - config.typical))


def find_snp_clusters(positions: list[int], window_size: int, cut_off: int) -> list[list[int]]:
    """Groups of private mutations where more than `cut_off` fall within one window."""
    positions = sorted(positions)
    clusters: list[list[int]] = []
    for i, start in enumerate(positions):
        window = [p for p in positions[i:] if p < start + window_size]
        if len(window) <= cut_off:
            continue
        if clusters and window[0] <= clusters[-1][-1]:
            merged = sorted(set(clusters[-1]) | set(window))
            clusters[-1] = merged
        else:
            clusters.append(window)
    return clusters


def rule_snp_clusters(private_positions: list[int], config: SnpClustersConfig) -> QcRuleResult:
    clusters = find_snp_clusters(private_positions, config.window_size, config.cluster_cut_off)
    score = len(clusters) * config.score_weight
    return _rule(
        score,
        total_clusters=len(clusters),
        clustered_snps=[{"start": c[0], "end": c[-1], "number_of_snps": len(c)} for c in clusters],
    )


def run_qc(
    config: QcRulesConfig,
    *,
    total_missing: int,
    total_mixed_sites: int,
    private_positions: list[int],
) -> QcResult:
    """Evaluate every enabled rule. The overall score is the sum of squared rule scores / 100."""
    missing_data: Optional[QcRuleResult] = None
    mixed_sites: Optional[QcRuleResult] = None
    private_mutations: Optional[QcRuleResult] = None
    snp_clusters: Optional[QcRuleResult] = None

    if config.missing_data.enabled:
        missing_data = rule_missing_data(total_missing, config.missing_data)
    if config.mixed_sites.enabled:
        mixed_sites = rule_mixed_sites(total_mixed_sites, config.mixed_sites)
    if config.private_mutations.enabled:
        private_mutations = rule_private_mutations(len(private_positions), config.private_mutations)
    if config.snp_clusters.enabled:
        snp_clusters = rule_snp_clusters(private_positions, config.snp_clusters)

    rules = [r for r in (missing_data, mixed_sites, private_mutations, snp_clusters) if r is not None]
    overall = round(sum(r.score ** 2 for r in rules) / 100.0, 2)
    return QcResult(
        overall_score=overall,
        overall_status=qc_status(overall),
        missing_data=missing_data,
        mixed_sites=mixed_sites,
        private_mutations=private_mutations,
        snp_clusters=snp_clusters,
    )
