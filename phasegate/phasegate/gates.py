"""
PhaseGate Validation Gate Predicates

Four predicates decide whether a hypothesis is admissible as a finding:

- reachability: the unit is reachable from a registered or public entry point
- state_freshness: the unit's snapshot reads are not already proven stale
- execution_closure: every external call reachable from the unit is classified
- economic_realism: the attack cost is below the feasibility threshold

Design principles:
- Deterministic (no randomness, no ML, no probabilistic logic)
- Tri-state (PASS, FAIL or UNKNOWN); what cannot be decided is UNKNOWN
- Never raise: malformed input becomes UNKNOWN with a failure code
- Replayable (identical inputs produce identical outputs)
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Set

from .hypotheses import Hypothesis
from .phases import PhaseClassifier, PhaseLabel
from .units import Corpus


class GateOutcome(str, Enum):
    """Predicate evaluation outcome."""
    PASS = "PASS"
    FAIL = "FAIL"
    UNKNOWN = "UNKNOWN"


class FailureCode(str, Enum):
    """Reason attached to a FAIL or UNKNOWN outcome."""
    MISSING = "MISSING"          # required input absent
    UNREACHABLE = "UNREACHABLE"  # no entry path in a complete corpus
    DEAD_CODE = "DEAD_CODE"      # guarded by an always-false condition
    STALE = "STALE"              # depends on state proven stale
    UNCLOSED = "UNCLOSED"        # external call not classified
    EXCEEDED = "EXCEEDED"        # cost at or above threshold
    INVALID = "INVALID"          # malformed input


@dataclass
class GateEvaluation:
    """Result of evaluating a single predicate."""
    gate_id: str
    outcome: GateOutcome
    failure_code: Optional[FailureCode] = None
    required: Optional[str] = None
    observed: Optional[str] = None

    def passed(self) -> bool:
        return self.outcome == GateOutcome.PASS

    def as_bool(self) -> Optional[bool]:
        """True, False, or None for unknown."""
        if self.outcome == GateOutcome.UNKNOWN:
            return None
        return self.outcome == GateOutcome.PASS

    def to_dict(self) -> Dict[str, Any]:
        d = {"gate_id": self.gate_id, "outcome": self.outcome.value}
        if self.failure_code:
            d["failure_code"] = self.failure_code.value
        if self.required:
            d["required"] = self.required
        if self.observed:
            d["observed"] = self.observed
        return d


@dataclass
class GateEvidence:
    """
    Auditor-supplied input for one hypothesis.

    - cost_estimate: Attack cost (gas, fees, capital) as a decimal string
    - resolved_calls: External calls the auditor attests are understood,
      by callee name or matched call text
    - stale_reads: Snapshot reads the auditor has proven stale
    - impact: Impact descriptor replacing the generated one
    """
    cost_estimate: Optional[str] = None
    resolved_calls: List[str] = field(default_factory=list)
    stale_reads: List[str] = field(default_factory=list)
    impact: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {}
        if self.cost_estimate is not None:
            d["cost_estimate"] = str(self.cost_estimate)
        if self.resolved_calls:
            d["resolved_calls"] = sorted(self.resolved_calls)
        if self.stale_reads:
            d["stale_reads"] = sorted(self.stale_reads)
        if self.impact:
            d["impact"] = self.impact
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'GateEvidence':
        cost = data.get("cost_estimate")
        return cls(
            cost_estimate=None if cost is None else str(cost),
            resolved_calls=list(data.get("resolved_calls", [])),
            stale_reads=list(data.get("stale_reads", [])),
            impact=data.get("impact"),
        )


@dataclass
class AnalysisContext:
    """
    State shared by every predicate within one analysis pass.

    Built once per pass by the validation gate.
    """
    classifier: PhaseClassifier
    classifications: Dict[str, FrozenSet[PhaseLabel]]
    stale_reads: Dict[str, Set[str]]
    feasibility_threshold: Optional[str] = None

    def labels(self, unit_id: str) -> FrozenSet[PhaseLabel]:
        return self.classifications.get(unit_id, frozenset())

    def stale_along(self, corpus: Corpus, unit_id: str) -> Set[str]:
        """Stale reads of the unit and of every unit it can reach."""
        stale = set()
        for uid in corpus.reachable_units(unit_id):
            stale |= self.stale_reads.get(uid, set())
        return stale


class Gate(ABC):
    """Abstract base class for all predicates."""

    def __init__(self, gate_id: str, parameters: Optional[Dict[str, Any]] = None):
        self.gate_id = gate_id
        self.parameters = parameters or {}

    @abstractmethod
    def evaluate(
        self,
        hypothesis: Hypothesis,
        corpus: Corpus,
        evidence: GateEvidence,
        context: AnalysisContext
    ) -> GateEvaluation:
        """Evaluate the predicate. Must return PASS, FAIL or UNKNOWN, never raise."""
        pass

    def _pass(self, observed: str = None) -> GateEvaluation:
        return GateEvaluation(gate_id=self.gate_id, outcome=GateOutcome.PASS, observed=observed)

    def _fail(
        self,
        code: FailureCode,
        required: str = None,
        observed: str = None
    ) -> GateEvaluation:
        return GateEvaluation(
            gate_id=self.gate_id,
            outcome=GateOutcome.FAIL,
            failure_code=code,
            required=required,
            observed=observed
        )

    def _unknown(
        self,
        code: FailureCode,
        required: str = None,
        observed: str = None
    ) -> GateEvaluation:
        return GateEvaluation(
            gate_id=self.gate_id,
            outcome=GateOutcome.UNKNOWN,
            failure_code=code,
            required=required,
            observed=observed
        )


class ReachabilityGate(Gate):
    """
    reachability

    The unit must be reachable from a registered or public entry point.
    Absence of a path only proves unreachability when the corpus is attested
    complete; otherwise the caller may live outside the corpus.
    """

    def evaluate(self, hypothesis, corpus, evidence, context) -> GateEvaluation:
        unit = corpus.get(hypothesis.unit_id)
        if unit is None:
            return self._unknown(FailureCode.MISSING, "unit in corpus", hypothesis.unit_id)

        if context.classifier.in_dead_code(unit, _subject_offsets(hypothesis, unit, context)):
            return self._fail(FailureCode.DEAD_CODE, "live code path", "always-false guard")

        path = corpus.entry_path(unit.unit_id)
        if path is not None:
            return self._pass(" -> ".join(path))

        if corpus.complete:
            return self._fail(FailureCode.UNREACHABLE, "path from entry point", "none in complete corpus")

        return self._unknown(FailureCode.UNREACHABLE, "path from entry point", "none in partial corpus")


def _subject_offsets(hypothesis, unit, context) -> List[int]:
    """Offsets of the lexicon matches the hypothesis is about."""
    occurrences = context.classifier.occurrences(unit)
    offsets = [offset for offset, phase, _ in occurrences if phase == hypothesis.phase]
    return offsets or [offset for offset, _, _ in occurrences]


class StateFreshnessGate(Gate):
    """
    state_freshness

    The unit's snapshot reads must not depend on state proven stale along
    its own call path in the same analysis pass. Reads the hypothesis itself
    is built on are its subject, not a reason to reject it.
    """

    def evaluate(self, hypothesis, corpus, evidence, context) -> GateEvaluation:
        unit = corpus.get(hypothesis.unit_id)
        if unit is None:
            return self._unknown(FailureCode.MISSING, "unit in corpus", hypothesis.unit_id)

        proven_stale = context.stale_along(corpus, unit.unit_id) - set(hypothesis.basis_reads)
        proven_stale |= {s.strip() for s in evidence.stale_reads}
        stale = sorted(context.classifier.snapshot_reads(unit) & proven_stale)
        if stale:
            return self._fail(FailureCode.STALE, "fresh snapshot reads", "; ".join(stale))

        return self._pass()


class ExecutionClosureGate(Gate):
    """
    execution_closure

    Every external call reachable from the unit must itself be classified:
    its callee resolves to a corpus unit with at least one label, or the
    auditor attests it resolved.
    """

    def evaluate(self, hypothesis, corpus, evidence, context) -> GateEvaluation:
        if hypothesis.unit_id not in corpus:
            return self._unknown(FailureCode.MISSING, "unit in corpus", hypothesis.unit_id)

        resolved = set(evidence.resolved_calls)
        unclosed: List[str] = []

        for unit_id in corpus.reachable_units(hypothesis.unit_id):
            unit = corpus.get(unit_id)
            for _, text, callee in context.classifier.external_calls(unit):
                if callee in resolved or text in resolved:
                    continue
                if any(context.labels(target.unit_id) for target in corpus.by_name(callee)):
                    continue
                if text not in unclosed:
                    unclosed.append(text)

        if unclosed:
            return self._unknown(FailureCode.UNCLOSED, "classified external calls", "; ".join(unclosed))

        return self._pass()


class EconomicRealismGate(Gate):
    """
    economic_realism

    The attached cost estimate must be strictly below the feasibility
    threshold. The threshold comes from the analysis context, or from the
    "threshold" parameter when the context has none.
    """

    def evaluate(self, hypothesis, corpus, evidence, context) -> GateEvaluation:
        threshold_raw = context.feasibility_threshold
        if threshold_raw is None:
            threshold_raw = self.parameters.get("threshold")

        if evidence.cost_estimate is None:
            return self._unknown(FailureCode.MISSING, "cost estimate", "none attached")
        if threshold_raw is None:
            return self._unknown(FailureCode.MISSING, "feasibility threshold", "none supplied")

        try:
            cost = Decimal(str(evidence.cost_estimate))
            threshold = Decimal(str(threshold_raw))
        except InvalidOperation:
            return self._unknown(
                FailureCode.INVALID,
                "numeric cost and threshold",
                f"{evidence.cost_estimate} / {threshold_raw}"
            )

        if not cost.is_finite() or not threshold.is_finite() or cost < 0:
            return self._unknown(
                FailureCode.INVALID,
                "finite non-negative cost",
                f"{evidence.cost_estimate} / {threshold_raw}"
            )

        if cost < threshold:
            return self._pass(f"{cost} < {threshold}")

        return self._fail(FailureCode.EXCEEDED, f"cost < {threshold}", str(cost))


# Gate type registry
GATE_TYPES: Dict[str, type] = {
    "reachability": ReachabilityGate,
    "state_freshness": StateFreshnessGate,
    "execution_closure": ExecutionClosureGate,
    "economic_realism": EconomicRealismGate,
}

# The four predicates, in evaluation order
PREDICATES = ["reachability", "state_freshness", "execution_closure", "economic_realism"]


def create_gate(gate_id: str, gate_type: str, parameters: Optional[Dict[str, Any]] = None) -> Gate:
    """Factory function to create a gate instance."""
    if gate_type not in GATE_TYPES:
        raise ValueError(f"Unknown gate type: {gate_type}")

    return GATE_TYPES[gate_type](gate_id, parameters or {})
