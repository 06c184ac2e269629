"""
PhaseGate Findings

A finding is a VALID hypothesis enriched with severity, source location and
root cause. Findings are terminal; a finding without a traceable source
citation is never emitted.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from .evaluator import GateResult, Verdict
from .hypotheses import Hypothesis
from .severity import Severity, SeverityClassifier, parse_impact, platform_mapping
from .units import CodeUnit


class MissingLocationError(ValueError):
    """Unit has no source-location citation; the finding cannot be emitted."""

    def __init__(self, hypothesis_id: str, unit_id: str):
        self.hypothesis_id = hypothesis_id
        self.unit_id = unit_id
        super().__init__(f"Hypothesis {hypothesis_id}: unit {unit_id} has no source location")


@dataclass
class Finding:
    """Admitted finding, ready for the report collaborator."""
    finding_id: str
    hypothesis: Hypothesis
    severity: Severity
    location: str
    root_cause: str
    impact: str
    gate_result: GateResult

    def platform_labels(self) -> Dict[str, str]:
        return platform_mapping(self.severity)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "finding_id": self.finding_id,
            "title": self.hypothesis.description,
            "severity": self.severity.value,
            "location": self.location,
            "root_cause": self.root_cause,
            "impact": self.impact,
            "hypothesis": self.hypothesis.to_dict(),
            "gate_result": self.gate_result.to_dict(),
            "platform_labels": self.platform_labels(),
        }


def finding_id_for(hypothesis: Hypothesis) -> str:
    """F-<suffix> sharing the hypothesis id's content hash."""
    return "F-" + hypothesis.hypothesis_id.split("-", 1)[1]


def default_root_cause(hypothesis: Hypothesis, unit: CodeUnit) -> str:
    if hypothesis.exploit_id is None:
        return (
            f"{unit.name} changes state before validating it; a failing check "
            f"runs after the mutation it should have prevented."
        )
    return f"{unit.name} matches the {hypothesis.phase.value.lower()} pattern of: {hypothesis.similar_exploit}."


def promote(
    hypothesis: Hypothesis,
    gate_result: GateResult,
    unit: CodeUnit,
    classifier: SeverityClassifier,
    root_cause: Optional[str] = None,
    impact: Optional[str] = None,
) -> Finding:
    """
    Promote a gated hypothesis to a finding.

    Args:
        hypothesis: The hypothesis that was gated
        gate_result: Its gate result; the verdict must be VALID
        unit: The unit the hypothesis points at
        classifier: Severity classifier of the unit's ecosystem
        root_cause: Auditor-written root cause (generated if omitted)
        impact: Impact descriptor overriding the hypothesis impact

    Raises:
        ValueError: verdict is not VALID or the result is for another hypothesis
        MissingLocationError: the unit has no source-location citation
        UnmappedImpactError: the impact descriptor has no severity entry
    """
    if gate_result.hypothesis_id != hypothesis.hypothesis_id:
        raise ValueError(
            f"Gate result for {gate_result.hypothesis_id} does not belong to {hypothesis.hypothesis_id}"
        )
    if gate_result.verdict != Verdict.VALID:
        raise ValueError(
            f"Hypothesis {hypothesis.hypothesis_id} is {gate_result.verdict.value}, only VALID can be promoted"
        )

    location = unit.location()
    if not location:
        raise MissingLocationError(hypothesis.hypothesis_id, unit.unit_id)

    descriptor = parse_impact(impact or hypothesis.impact)
    severity = classifier.classify(descriptor)

    return Finding(
        finding_id=finding_id_for(hypothesis),
        hypothesis=hypothesis,
        severity=severity,
        location=location,
        root_cause=root_cause or default_root_cause(hypothesis, unit),
        impact=descriptor.to_text(),
        gate_result=gate_result,
    )
