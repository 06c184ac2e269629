"""
PhaseGate Validation Gate

Admits a hypothesis as a finding only when all four predicates hold.

The verdict is a conservative AND with explicit unknown propagation:

    any predicate UNKNOWN          -> INCONCLUSIVE (unknown dominates false)
    all four PASS                  -> VALID
    otherwise                      -> INVALID

The analysis context (classifications, stale-read set, threshold) is built
once per pass and shared by every hypothesis gated in that pass.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Optional

from .gates import (
    AnalysisContext, FailureCode, Gate, GateEvaluation, GateEvidence, GateOutcome,
    PREDICATES, create_gate,
)
from .hypotheses import Hypothesis
from .phases import PhaseClassifier, PhaseLabel
from .units import Corpus


logger = logging.getLogger(__name__)


class Verdict(str, Enum):
    VALID = "VALID"
    INVALID = "INVALID"
    INCONCLUSIVE = "INCONCLUSIVE"


def compute_verdict(values: Iterable[Optional[bool]]) -> Verdict:
    """Combine predicate values; None is unknown."""
    values = list(values)
    if any(v is None for v in values):
        return Verdict.INCONCLUSIVE
    if all(values):
        return Verdict.VALID
    return Verdict.INVALID


@dataclass
class GateResult:
    """
    The four predicate values for one hypothesis and the resulting verdict.

    Each predicate is True, False or None (unknown).
    """
    hypothesis_id: str
    reachability: Optional[bool]
    state_freshness: Optional[bool]
    execution_closure: Optional[bool]
    economic_realism: Optional[bool]
    evaluations: List[GateEvaluation] = field(default_factory=list)

    @property
    def verdict(self) -> Verdict:
        return compute_verdict(self.predicates().values())

    def predicates(self) -> Dict[str, Optional[bool]]:
        return {
            "reachability": self.reachability,
            "state_freshness": self.state_freshness,
            "execution_closure": self.execution_closure,
            "economic_realism": self.economic_realism,
        }

    def unknown_predicates(self) -> List[str]:
        return [name for name, value in self.predicates().items() if value is None]

    def failed_predicates(self) -> List[str]:
        return [name for name, value in self.predicates().items() if value is False]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hypothesis_id": self.hypothesis_id,
            **self.predicates(),
            "verdict": self.verdict.value,
            "evaluations": [e.to_dict() for e in self.evaluations],
        }

    @classmethod
    def from_evaluations(cls, hypothesis_id: str, evaluations: List[GateEvaluation]) -> 'GateResult':
        by_id = {e.gate_id: e.as_bool() for e in evaluations}
        return cls(
            hypothesis_id=hypothesis_id,
            reachability=by_id.get("reachability"),
            state_freshness=by_id.get("state_freshness"),
            execution_closure=by_id.get("execution_closure"),
            economic_realism=by_id.get("economic_realism"),
            evaluations=evaluations,
        )


def load_evidence(data: Optional[Dict[str, Any]]) -> Dict[str, GateEvidence]:
    """Parse auditor evidence keyed by hypothesis id."""
    return {hid: GateEvidence.from_dict(item) for hid, item in (data or {}).items()}


def evidence_to_dict(evidence: Dict[str, GateEvidence]) -> Dict[str, Any]:
    return {hid: item.to_dict() for hid, item in sorted(evidence.items())}


class ValidationGate:
    """
    Evaluates the four predicates for a hypothesis against the full corpus.

    Args:
        classifier: Classifier holding the ecosystem profiles
        feasibility_threshold: Externally supplied economic threshold
        gates: Predicate instances (default: the four standard predicates)
    """

    def __init__(
        self,
        classifier: PhaseClassifier,
        feasibility_threshold: Optional[str] = None,
        gates: Optional[List[Gate]] = None
    ):
        self.classifier = classifier
        self.feasibility_threshold = None if feasibility_threshold is None else str(feasibility_threshold)
        self.gates = gates or [create_gate(name, name) for name in PREDICATES]

    def build_context(
        self,
        corpus: Corpus,
        classifications: Optional[Dict[str, FrozenSet[PhaseLabel]]] = None
    ) -> AnalysisContext:
        """Build the per-pass analysis context."""
        if classifications is None:
            classifications = self.classifier.classify_all(corpus)

        return AnalysisContext(
            classifier=self.classifier,
            classifications=classifications,
            stale_reads={unit.unit_id: self.classifier.stale_reads(unit) for unit in corpus},
            feasibility_threshold=self.feasibility_threshold,
        )

    def evaluate(
        self,
        hypothesis: Hypothesis,
        corpus: Corpus,
        evidence: Optional[GateEvidence] = None,
        context: Optional[AnalysisContext] = None
    ) -> GateResult:
        """
        Evaluate every predicate for one hypothesis.

        All predicates are evaluated even after an unknown or failure so the
        result carries the complete picture.
        """
        evidence = evidence or GateEvidence()
        context = context or self.build_context(corpus)

        evaluations: List[GateEvaluation] = []
        for gate in self.gates:
            try:
                evaluation = gate.evaluate(hypothesis, corpus, evidence, context)
            except Exception as e:
                logger.exception("Predicate %s raised for %s", gate.gate_id, hypothesis.hypothesis_id)
                evaluation = GateEvaluation(
                    gate_id=gate.gate_id,
                    outcome=GateOutcome.UNKNOWN,
                    failure_code=FailureCode.INVALID,
                    required="predicate evaluation",
                    observed=f"{type(e).__name__}: {e}",
                )
            evaluations.append(evaluation)

        return GateResult.from_evaluations(hypothesis.hypothesis_id, evaluations)
