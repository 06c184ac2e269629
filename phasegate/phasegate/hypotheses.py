"""
PhaseGate Hypothesis Generator

Turns phase-labelled units into a bounded, ordered list of vulnerability
hypotheses for the validation gate.

Ordering:
1. Units whose labels contain both VALIDATION and MUTATION come first
2. Ties are broken by unit declaration order
3. Within a unit, the ordering hypothesis precedes exploit-table candidates,
   which keep their table order

At most MAX_LIVE_HYPOTHESES are live at once. Excess candidates are deferred,
in priority order, to a later pass and counted in the result.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple

from .hashing import short_id
from .phases import PhaseClassifier, PhaseLabel
from .units import CodeUnit, Corpus


MAX_LIVE_HYPOTHESES = 15

ORDERING_RULE = "ordering.validation-after-mutation"


@dataclass(frozen=True)
class Hypothesis:
    """
    A candidate vulnerability tied to one unit.

    - hypothesis_id: Content-derived id ("H-" + 12 hex)
    - phase: Phase the hypothesis is about
    - description: Human-readable statement to validate
    - unit_id: Unit to inspect
    - rule: Generating rule (ordering rule or exploit id)
    - similar_exploit: Historical reference, if any
    - exploit_id: Exploit-table entry that produced it, if any
    - impact: Impact descriptor text used for severity
    - tier: 0 for units with both VALIDATION and MUTATION, else 1
    - basis_reads: Stale snapshot reads the hypothesis is built on
    """
    hypothesis_id: str
    phase: PhaseLabel
    description: str
    unit_id: str
    rule: str
    impact: str
    similar_exploit: Optional[str] = None
    exploit_id: Optional[str] = None
    tier: int = 1
    basis_reads: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        d = {
            "hypothesis_id": self.hypothesis_id,
            "phase": self.phase.value,
            "description": self.description,
            "unit_id": self.unit_id,
            "rule": self.rule,
            "impact": self.impact,
            "tier": self.tier,
        }
        if self.similar_exploit:
            d["similar_exploit"] = self.similar_exploit
        if self.exploit_id:
            d["exploit_id"] = self.exploit_id
        if self.basis_reads:
            d["basis_reads"] = list(self.basis_reads)
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Hypothesis':
        required = ["hypothesis_id", "phase", "description", "unit_id", "rule", "impact"]
        missing = [f for f in required if f not in data]
        if missing:
            raise ValueError(f"Missing required fields: {missing}")
        return cls(
            hypothesis_id=data["hypothesis_id"],
            phase=PhaseLabel(data["phase"]),
            description=data["description"],
            unit_id=data["unit_id"],
            rule=data["rule"],
            impact=data["impact"],
            similar_exploit=data.get("similar_exploit"),
            exploit_id=data.get("exploit_id"),
            tier=data.get("tier", 1),
            basis_reads=tuple(data.get("basis_reads", ())),
        )


def make_hypothesis_id(unit_id: str, phase: PhaseLabel, rule: str) -> str:
    return short_id("H", {"unit_id": unit_id, "phase": PhaseLabel(phase).value, "rule": rule})


@dataclass
class GenerationResult:
    """
    Output of one generation run.

    - hypotheses: Live hypotheses, at most the cap
    - truncated: Number of candidates beyond the cap
    - deferred: Those candidates, in priority order, for a later pass
    - unclassified: Units with no phase labels (require manual review)
    """
    hypotheses: List[Hypothesis]
    truncated: int = 0
    deferred: List[Hypothesis] = field(default_factory=list)
    unclassified: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hypotheses": [h.to_dict() for h in self.hypotheses],
            "truncated": self.truncated,
            "deferred": [h.to_dict() for h in self.deferred],
            "unclassified": list(self.unclassified),
        }


def _tier(labels: FrozenSet[PhaseLabel]) -> int:
    return 0 if {PhaseLabel.VALIDATION, PhaseLabel.MUTATION} <= labels else 1


class HypothesisGenerator:
    """
    Generates hypotheses from classified units and ecosystem exploit tables.

    Args:
        classifier: Classifier holding the ecosystem profiles
        cap: Maximum live hypotheses; never more than MAX_LIVE_HYPOTHESES
    """

    def __init__(self, classifier: PhaseClassifier, cap: int = MAX_LIVE_HYPOTHESES):
        if cap < 1:
            raise ValueError(f"Hypothesis cap must be positive, got {cap}")
        self.classifier = classifier
        self.cap = min(cap, MAX_LIVE_HYPOTHESES)

    def candidates_for(self, unit: CodeUnit, labels: FrozenSet[PhaseLabel]) -> List[Hypothesis]:
        """All candidates for one unit, in within-unit order."""
        if not labels:
            return []

        profile = self.classifier.profile_for(unit.ecosystem)
        if profile is None:
            return []

        tier = _tier(labels)
        stale = tuple(sorted(self.classifier.stale_reads(unit)))
        found: List[Hypothesis] = []

        if self.classifier.mutation_before_validation(unit):
            found.append(Hypothesis(
                hypothesis_id=make_hypothesis_id(unit.unit_id, PhaseLabel.MUTATION, ORDERING_RULE),
                phase=PhaseLabel.MUTATION,
                description=(
                    f"{unit.name}: validation after mutation; state is changed before "
                    f"the check that should guard it"
                ),
                unit_id=unit.unit_id,
                rule=ORDERING_RULE,
                impact=profile.ordering_impact,
                similar_exploit=profile.ordering_reference or None,
                tier=tier,
            ))

        for exploit in profile.exploits:
            if not exploit.applies_to(labels, unit.text):
                continue
            if exploit.stale_read and not stale:
                continue
            found.append(Hypothesis(
                hypothesis_id=make_hypothesis_id(unit.unit_id, exploit.phase, exploit.id),
                phase=exploit.phase,
                description=f"{unit.name}: {exploit.title}",
                unit_id=unit.unit_id,
                rule=exploit.id,
                impact=exploit.impact,
                similar_exploit=exploit.reference(),
                exploit_id=exploit.id,
                tier=tier,
                basis_reads=stale if exploit.stale_read else (),
            ))

        return found

    def generate(
        self,
        corpus: Corpus,
        classifications: Optional[Dict[str, FrozenSet[PhaseLabel]]] = None,
    ) -> GenerationResult:
        """
        Generate the ordered, capped hypothesis list for a corpus.

        Args:
            corpus: Units in declaration order
            classifications: Precomputed labels by unit id (computed if omitted)
        """
        if classifications is None:
            classifications = self.classifier.classify_all(corpus)

        ranked: List[Tuple[Tuple[int, int, int], Hypothesis]] = []
        unclassified: List[str] = []

        for position, unit in enumerate(corpus):
            labels = classifications.get(unit.unit_id, frozenset())
            if not labels:
                unclassified.append(unit.unit_id)
                continue
            for order, hypothesis in enumerate(self.candidates_for(unit, labels)):
                ranked.append(((hypothesis.tier, position, order), hypothesis))

        ranked.sort(key=lambda item: item[0])
        ordered = [h for _, h in ranked]

        return GenerationResult(
            hypotheses=ordered[:self.cap],
            truncated=max(0, len(ordered) - self.cap),
            deferred=ordered[self.cap:],
            unclassified=unclassified,
        )


def generate_hypotheses(
    corpus: Corpus,
    profiles: Iterable[Any],
    cap: int = MAX_LIVE_HYPOTHESES,
) -> GenerationResult:
    """Convenience wrapper: classify and generate in one call."""
    return HypothesisGenerator(PhaseClassifier(profiles), cap=cap).generate(corpus)
