"""
PhaseGate Review Session

Runs one review over a corpus:

    classify -> generate -> gate each live hypothesis -> severity -> findings

Hypotheses are gated one at a time against a context built once per pass.
Every indeterminate result surfaces in the outcome; nothing is recovered
locally. The outcome is a record binding the hashes of every input (corpus,
profiles, evidence, settings) and of the results, so a third party holding the
same inputs can replay the review and compare.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from .canonicalization import canonicalize
from .evaluator import GateResult, ValidationGate, Verdict, evidence_to_dict, load_evidence
from .findings import Finding, MissingLocationError, promote
from .gates import GateEvidence
from .hashing import content_hash, corpus_hash, evidence_hash
from .hypotheses import GenerationResult, Hypothesis, HypothesisGenerator, MAX_LIVE_HYPOTHESES
from .logging_config import review_log, set_review_id
from .phases import PhaseClassifier, sorted_labels
from .profiles import ProfileRegistry
from .profiles_builtin import create_default_registry
from .report import render_findings
from .severity import parse_impact
from .signing import SigningService, format_time
from .units import Corpus


PHASEGATE_VERSION = "1.0"


class Disposition(str, Enum):
    """What became of a hypothesis or unit in a review."""
    FINDING = "FINDING"
    INVALID = "INVALID"
    INCONCLUSIVE = "INCONCLUSIVE"
    NOT_APPLICABLE = "NOT_APPLICABLE"
    SUPPRESSED = "SUPPRESSED"
    UNKNOWN = "UNKNOWN"


@dataclass
class HypothesisRecord:
    """A gated hypothesis and its disposition."""
    hypothesis: Hypothesis
    disposition: Disposition
    gate_result: Optional[GateResult] = None
    reason: Optional[str] = None
    finding_id: Optional[str] = None
    finding: Optional[Finding] = field(default=None, repr=False, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        d = {
            "hypothesis": self.hypothesis.to_dict(),
            "disposition": self.disposition.value,
        }
        if self.gate_result is not None:
            d["gate_result"] = self.gate_result.to_dict()
        if self.reason:
            d["reason"] = self.reason
        if self.finding_id:
            d["finding_id"] = self.finding_id
        return d


@dataclass
class ReviewOutcome:
    """
    Result of one review pass.

    The record form (to_dict) binds:
    - corpus_hash, profile_hashes, evidence_hash, settings_hash: the inputs
    - outcome_hash: the results section
    """
    review_id: str
    pass_number: int
    records: List[HypothesisRecord]
    findings: List[Finding]
    unclassified: List[str]
    truncated: int
    deferred: List[Hypothesis]
    corpus_hash: str
    profile_hashes: Dict[str, str]
    evidence_hash: str
    settings: Dict[str, Any]
    issued_at: str = field(default_factory=lambda: format_time(datetime.now(timezone.utc)))

    def by_disposition(self, disposition: Disposition) -> List[HypothesisRecord]:
        return [r for r in self.records if r.disposition == disposition]

    @property
    def inconclusive(self) -> List[HypothesisRecord]:
        return self.by_disposition(Disposition.INCONCLUSIVE)

    @property
    def invalid(self) -> List[HypothesisRecord]:
        return self.by_disposition(Disposition.INVALID)

    @property
    def not_applicable(self) -> List[HypothesisRecord]:
        return self.by_disposition(Disposition.NOT_APPLICABLE)

    @property
    def suppressed(self) -> List[HypothesisRecord]:
        return self.by_disposition(Disposition.SUPPRESSED)

    def results_dict(self) -> Dict[str, Any]:
        return {
            "findings": [f.to_dict() for f in self.findings],
            "hypotheses": [r.to_dict() for r in self.records],
            "unclassified": [
                {
                    "unit_id": unit_id,
                    "disposition": Disposition.UNKNOWN.value,
                    "reason": "no phase labels; manual review required",
                }
                for unit_id in self.unclassified
            ],
            "truncated": self.truncated,
            "deferred": [h.hypothesis_id for h in self.deferred],
        }

    def summary(self) -> Dict[str, int]:
        counts = {d.value: 0 for d in Disposition}
        for record in self.records:
            counts[record.disposition.value] += 1
        counts[Disposition.UNKNOWN.value] += len(self.unclassified)
        counts["truncated"] = self.truncated
        return counts

    def outcome_hash(self) -> str:
        return content_hash(self.results_dict())

    def to_dict(self) -> Dict[str, Any]:
        """Review record, unsigned."""
        return {
            "phasegate_version": PHASEGATE_VERSION,
            "review_id": self.review_id,
            "issued_at": self.issued_at,
            "pass": self.pass_number,
            "inputs": {
                "corpus_hash": self.corpus_hash,
                "profile_hashes": dict(self.profile_hashes),
                "evidence_hash": self.evidence_hash,
                "settings": dict(self.settings),
                "settings_hash": content_hash(self.settings),
            },
            "results": self.results_dict(),
            "summary": self.summary(),
            "outcome_hash": self.outcome_hash(),
        }

    def render_report(self) -> str:
        return render_findings(self.findings)


def record_body(record: Dict[str, Any]) -> bytes:
    """Canonical bytes a review record's signatures cover."""
    return canonicalize({k: v for k, v in record.items() if k != "signatures"})


def sign_record(record: Dict[str, Any], signing_service: SigningService) -> Dict[str, Any]:
    """Return a copy of the record carrying an Ed25519 signature."""
    signed = dict(record)
    signed["signatures"] = [signing_service.sign(record_body(record))]
    return signed


class ReviewSession:
    """
    Orchestrates classification, generation and gating for one corpus.

    Args:
        corpus: Units under review
        registry: Ecosystem profiles (default: built-in profiles)
        feasibility_threshold: Economic realism threshold (None leaves it unknown)
        hypothesis_cap: Live hypotheses per pass; never more than 15
        evidence: Auditor evidence keyed by hypothesis id
        review_id: Identifier carried into logs and the record
    """

    def __init__(
        self,
        corpus: Corpus,
        registry: Optional[ProfileRegistry] = None,
        feasibility_threshold: Optional[str] = None,
        hypothesis_cap: int = MAX_LIVE_HYPOTHESES,
        evidence: Optional[Dict[str, Any]] = None,
        review_id: Optional[str] = None,
    ):
        self.corpus = corpus
        self.registry = registry or create_default_registry()
        self.feasibility_threshold = None if feasibility_threshold is None else str(feasibility_threshold)
        self.evidence: Dict[str, GateEvidence] = load_evidence(evidence)
        self.review_id = review_id or set_review_id()

        # Fail before any work when an auditor-supplied impact is unmapped
        for item in self.evidence.values():
            if item.impact:
                parse_impact(item.impact)

        self.classifier = PhaseClassifier(self.registry.active_profiles())
        self.generator = HypothesisGenerator(self.classifier, cap=hypothesis_cap)
        self.gate = ValidationGate(self.classifier, feasibility_threshold=self.feasibility_threshold)

        self.pass_number = 0
        self._classifications = None
        self._context = None
        self._deferred: List[Hypothesis] = []
        self._generation: Optional[GenerationResult] = None

    @property
    def cap(self) -> int:
        return self.generator.cap

    def settings(self) -> Dict[str, Any]:
        return {
            "hypothesis_cap": self.cap,
            "feasibility_threshold": self.feasibility_threshold,
        }

    def classify(self):
        """Classify every unit once; logs each classification."""
        if self._classifications is None:
            self._classifications = self.classifier.classify_all(self.corpus)
            for unit_id, labels in self._classifications.items():
                if labels:
                    review_log.classification(unit_id, sorted_labels(labels))
                else:
                    review_log.unclassified_unit(unit_id)
        return self._classifications

    def generate(self) -> GenerationResult:
        if self._generation is None:
            self._generation = self.generator.generate(self.corpus, self.classify())
            review_log.hypotheses_generated(
                len(self._generation.hypotheses),
                self._generation.truncated,
                len(self._generation.unclassified),
            )
        return self._generation

    def run(self) -> ReviewOutcome:
        """First pass: generate and gate the live hypotheses."""
        set_review_id(self.review_id)
        generation = self.generate()
        self.pass_number = 1
        self._deferred = list(generation.deferred)
        return self._run_pass(generation.hypotheses, generation.unclassified)

    def next_pass(self) -> ReviewOutcome:
        """Later pass: promote deferred hypotheses into the live set, up to the cap."""
        if self.pass_number == 0:
            return self.run()
        set_review_id(self.review_id)
        live, self._deferred = self._deferred[:self.cap], self._deferred[self.cap:]
        self.pass_number += 1
        review_log.hypotheses_generated(len(live), len(self._deferred), 0)
        return self._run_pass(live, [])

    @property
    def has_deferred(self) -> bool:
        return bool(self._deferred)

    def evaluate_hypothesis(self, hypothesis: Hypothesis) -> HypothesisRecord:
        """Gate one hypothesis and decide its disposition."""
        unit = self.corpus.get(hypothesis.unit_id)
        if unit is None:
            return HypothesisRecord(hypothesis, Disposition.NOT_APPLICABLE,
                                    reason=f"unit {hypothesis.unit_id} not in corpus")

        profile = self.registry.get_for_ecosystem(unit.ecosystem)
        if profile is None:
            return HypothesisRecord(hypothesis, Disposition.NOT_APPLICABLE,
                                    reason=f"no profile for ecosystem {unit.ecosystem.value}")
        if hypothesis.exploit_id and profile.get_exploit(hypothesis.exploit_id) is None:
            return HypothesisRecord(hypothesis, Disposition.NOT_APPLICABLE,
                                    reason=f"exploit {hypothesis.exploit_id} not in {profile.id}")

        if self._context is None:
            self._context = self.gate.build_context(self.corpus, self.classify())

        evidence = self.evidence.get(hypothesis.hypothesis_id, GateEvidence())
        result = self.gate.evaluate(hypothesis, self.corpus, evidence, self._context)
        verdict = result.verdict
        review_log.gate_verdict(hypothesis.hypothesis_id, verdict.value,
                                result.unknown_predicates(), result.failed_predicates())

        if verdict == Verdict.INCONCLUSIVE:
            return HypothesisRecord(hypothesis, Disposition.INCONCLUSIVE, result,
                                    reason="unknown: " + ", ".join(result.unknown_predicates()))
        if verdict == Verdict.INVALID:
            return HypothesisRecord(hypothesis, Disposition.INVALID, result,
                                    reason="failed: " + ", ".join(result.failed_predicates()))

        try:
            finding = promote(hypothesis, result, unit, profile.severity_classifier(), impact=evidence.impact)
        except MissingLocationError as e:
            review_log.finding_suppressed(hypothesis.hypothesis_id, str(e))
            return HypothesisRecord(hypothesis, Disposition.SUPPRESSED, result, reason=str(e))

        review_log.finding_emitted(finding.finding_id, finding.severity.value, finding.location)
        return HypothesisRecord(hypothesis, Disposition.FINDING, result,
                                finding_id=finding.finding_id, finding=finding)

    def _run_pass(self, live: List[Hypothesis], unclassified: List[str]) -> ReviewOutcome:
        records = [self.evaluate_hypothesis(h) for h in live]
        findings = [r.finding for r in records if r.disposition == Disposition.FINDING]

        return ReviewOutcome(
            review_id=self.review_id,
            pass_number=self.pass_number,
            records=records,
            findings=findings,
            unclassified=list(unclassified),
            truncated=len(self._deferred),
            deferred=list(self._deferred),
            corpus_hash=corpus_hash(self.corpus.to_dict()),
            profile_hashes=self.registry.profile_hashes(),
            evidence_hash=evidence_hash(evidence_to_dict(self.evidence)),
            settings=self.settings(),
        )


def run_review(
    corpus: Corpus,
    registry: Optional[ProfileRegistry] = None,
    feasibility_threshold: Optional[str] = None,
    hypothesis_cap: int = MAX_LIVE_HYPOTHESES,
    evidence: Optional[Dict[str, Any]] = None,
    passes: int = 1,
) -> ReviewOutcome:
    """Run a review for the given number of passes and return the last outcome."""
    session = ReviewSession(corpus, registry, feasibility_threshold, hypothesis_cap, evidence)
    outcome = session.run()
    for _ in range(passes - 1):
        outcome = session.next_pass()
    return outcome
