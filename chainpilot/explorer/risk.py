"""Additive risk scoring over contract traits."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from chainpilot.analyzer.models import ContractInfo
from chainpilot.core.types import RiskLevel

# Score contributions
UNVERIFIED_SCORE = 30
UPGRADEABILITY_SCORE = 40
OWNERSHIP_SCORE = 25
PAUSE_SCORE = 20
MINT_BURN_SCORE = 15

# Level thresholds, highest first
_LEVEL_THRESHOLDS: tuple[tuple[int, RiskLevel], ...] = (
    (80, RiskLevel.CRITICAL),
    (60, RiskLevel.HIGH),
    (30, RiskLevel.MEDIUM),
)


@dataclass
class RiskFactor:
    type: str
    severity: str
    description: str
    detected: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "severity": self.severity,
            "description": self.description,
            "detected": self.detected,
        }


@dataclass
class RiskAssessment:
    level: RiskLevel
    score: int
    factors: list[RiskFactor] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "level": self.level.value,
            "score": self.score,
            "factors": [f.to_dict() for f in self.factors],
            "recommendations": self.recommendations,
        }


def risk_level_for(score: int) -> RiskLevel:
    for threshold, level in _LEVEL_THRESHOLDS:
        if score >= threshold:
            return level
    return RiskLevel.LOW


def assess_contract_risk(info: ContractInfo) -> RiskAssessment:
    """Score a contract from its verification status and function names."""
    factors: list[RiskFactor] = []
    score = 0

    if not info.verified:
        factors.append(RiskFactor("unverified", "medium", "Contract source code is not verified"))
        score += UNVERIFIED_SCORE

    upgradeable = info.has_function_like("upgrade", "implementation")
    if upgradeable:
        factors.append(RiskFactor("upgradeability", "high", "Contract appears to have upgrade functionality"))
        score += UPGRADEABILITY_SCORE

    owned = info.has_function_like("owner", "admin")
    if owned:
        factors.append(RiskFactor("ownership", "medium", "Contract has privileged ownership functions"))
        score += OWNERSHIP_SCORE

    if info.has_function_like("pause"):
        factors.append(RiskFactor("pause", "medium", "Contract can be paused by privileged accounts"))
        score += PAUSE_SCORE

    # Counted once even when both are present
    if info.has_function_like("mint", "burn"):
        factors.append(RiskFactor("mint", "medium", "Contract has token minting or burning capabilities"))
        score += MINT_BURN_SCORE

    recommendations: list[str] = []
    if not info.verified:
        recommendations.append("Verify contract source code for transparency")
    if upgradeable:
        recommendations.append("Review upgrade mechanisms and admin controls")
    if owned:
        recommendations.append("Check ownership distribution and admin functions")
    if not factors:
        recommendations.append("Contract appears to have standard functionality")

    return RiskAssessment(
        level=risk_level_for(score),
        score=score,
        factors=factors,
        recommendations=recommendations,
    )
