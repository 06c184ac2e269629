"""
PhaseGate Review Verification

Enables a third party to confirm a signed review record after the fact,
given the corpus and evidence it was computed from and a trust store.

Verification steps:
1. Verify record signature(s) against the trust store
2. Verify corpus_hash
3. Verify profile_hashes against the verifier's profiles
4. Verify evidence_hash
5. Verify settings_hash
6. Replay the review and compare outcome_hash
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from .evaluator import evidence_to_dict, load_evidence
from .hashing import content_hash, corpus_hash, evidence_hash
from .profiles import ProfileRegistry
from .profiles_builtin import create_default_registry
from .session import ReviewSession, record_body
from .signing import parse_time, verify_ed25519
from .units import Corpus


class VerificationOutcome(str, Enum):
    """
    VALID: Record is authentic and replays to the same results
    INVALID: Record is invalid; reason provided
    """
    VALID = "VALID"
    INVALID = "INVALID"


@dataclass
class VerificationResult:
    """Result of verifying a review record."""
    outcome: VerificationOutcome
    reason: Optional[str] = None
    details: Optional[Dict[str, Any]] = None

    def is_valid(self) -> bool:
        return self.outcome == VerificationOutcome.VALID

    def to_dict(self) -> Dict[str, Any]:
        d = {"outcome": self.outcome.value}
        if self.reason:
            d["reason"] = self.reason
        if self.details:
            d["details"] = self.details
        return d

    @classmethod
    def valid(cls) -> 'VerificationResult':
        return cls(outcome=VerificationOutcome.VALID)

    @classmethod
    def invalid(cls, reason: str, details: Dict[str, Any] = None) -> 'VerificationResult':
        return cls(outcome=VerificationOutcome.INVALID, reason=reason, details=details)


class ReviewVerifier:
    """
    Review record verifier.

    Args:
        registry: Profiles to replay with (default: built-in profiles)
    """

    def __init__(self, registry: Optional[ProfileRegistry] = None):
        self.registry = registry or create_default_registry()

    def verify(
        self,
        record: Dict[str, Any],
        corpus: Dict[str, Any],
        evidence: Optional[Dict[str, Any]],
        trust_store: Dict[str, Any]
    ) -> VerificationResult:
        """
        Verify a signed review record.

        Args:
            record: The signed review record
            corpus: The corpus in its JSON form
            evidence: Auditor evidence keyed by hypothesis id
            trust_store: Trust store holding the signer's public key

        Returns:
            VerificationResult indicating validity
        """
        sig_result = self._verify_signatures(record, trust_store)
        if not sig_result.is_valid():
            return sig_result

        inputs = record.get("inputs", {})

        try:
            corpus_obj = Corpus.from_dict(corpus)
        except ValueError as e:
            return VerificationResult.invalid(f"Corpus does not load: {e}")

        computed_corpus_hash = corpus_hash(corpus_obj.to_dict())
        if computed_corpus_hash != inputs.get("corpus_hash"):
            return VerificationResult.invalid(
                "Corpus hash mismatch",
                {"computed": computed_corpus_hash, "declared": inputs.get("corpus_hash")}
            )

        computed_profiles = self.registry.profile_hashes()
        if computed_profiles != inputs.get("profile_hashes"):
            return VerificationResult.invalid(
                "Profile hash mismatch",
                {"computed": computed_profiles, "declared": inputs.get("profile_hashes")}
            )

        try:
            parsed_evidence = load_evidence(evidence)
        except (TypeError, AttributeError) as e:
            return VerificationResult.invalid(f"Evidence does not load: {e}")

        computed_evidence_hash = evidence_hash(evidence_to_dict(parsed_evidence))
        if computed_evidence_hash != inputs.get("evidence_hash"):
            return VerificationResult.invalid(
                "Evidence hash mismatch",
                {"computed": computed_evidence_hash, "declared": inputs.get("evidence_hash")}
            )

        settings = inputs.get("settings", {})
        computed_settings_hash = content_hash(settings)
        if computed_settings_hash != inputs.get("settings_hash"):
            return VerificationResult.invalid(
                "Settings hash mismatch",
                {"computed": computed_settings_hash, "declared": inputs.get("settings_hash")}
            )

        replayed = self._replay(record, corpus_obj, evidence, settings)
        if replayed is None:
            return VerificationResult.invalid("Failed to replay review")

        if replayed != record.get("outcome_hash"):
            return VerificationResult.invalid(
                "Outcome hash mismatch - results do not replay",
                {"computed": replayed, "declared": record.get("outcome_hash")}
            )

        if content_hash(record.get("results", {})) != record.get("outcome_hash"):
            return VerificationResult.invalid("Results section does not match outcome_hash")

        return VerificationResult.valid()

    def _verify_signatures(
        self,
        record: Dict[str, Any],
        trust_store: Dict[str, Any]
    ) -> VerificationResult:
        """
        Step 1: Verify record signatures.

        - Key present in the trust store
        - Key valid at issued_at
        - Algorithm matches
        - Ed25519 signature over the canonical record body
        """
        signatures = record.get("signatures", [])
        if not signatures:
            return VerificationResult.invalid("No signatures present")

        body = record_body(record)
        issued_at = record.get("issued_at")

        for sig in signatures:
            key_id = sig.get("key_id")
            algorithm = sig.get("algorithm")
            signature = sig.get("sig")

            if not all([key_id, algorithm, signature]):
                return VerificationResult.invalid("Incomplete signature data")

            key = None
            for entry in trust_store.get("keys", []):
                if entry.get("key_id") == key_id:
                    key = entry
                    break

            if key is None:
                return VerificationResult.invalid("Key not found in trust store", {"key_id": key_id})

            valid_from = key.get("valid_from")
            valid_until = key.get("valid_until")
            if issued_at and valid_from and valid_until:
                try:
                    issue_time = parse_time(issued_at)
                    from_time = parse_time(valid_from)
                    until_time = parse_time(valid_until)
                except ValueError as e:
                    return VerificationResult.invalid(f"Invalid timestamp format: {e}")

                if issue_time < from_time or issue_time > until_time:
                    return VerificationResult.invalid(
                        "Key not valid at issuance time",
                        {"key_id": key_id, "issued_at": issued_at}
                    )

            if key.get("algorithm") != algorithm:
                return VerificationResult.invalid(
                    "Algorithm mismatch",
                    {"key_algorithm": key.get("algorithm"), "sig_algorithm": algorithm}
                )

            if not verify_ed25519(body, signature, key.get("public_key", "")):
                return VerificationResult.invalid("Signature verification failed", {"key_id": key_id})

        return VerificationResult.valid()

    def _replay(
        self,
        record: Dict[str, Any],
        corpus: Corpus,
        evidence: Optional[Dict[str, Any]],
        settings: Dict[str, Any]
    ) -> Optional[str]:
        """Step 6: Re-run the review to the recorded pass and hash the results."""
        passes = record.get("pass", 1)
        if not isinstance(passes, int) or passes < 1:
            return None

        try:
            session = ReviewSession(
                corpus,
                registry=self.registry,
                feasibility_threshold=settings.get("feasibility_threshold"),
                hypothesis_cap=settings.get("hypothesis_cap", 15),
                evidence=evidence,
                review_id=record.get("review_id"),
            )
        except (ValueError, LookupError):
            return None

        outcome = session.run()
        for _ in range(passes - 1):
            outcome = session.next_pass()
        return outcome.outcome_hash()


def verify_review(
    record: Dict[str, Any],
    corpus: Dict[str, Any],
    evidence: Optional[Dict[str, Any]],
    trust_store: Dict[str, Any],
    registry: Optional[ProfileRegistry] = None
) -> VerificationResult:
    """
    Convenience function to verify a review record.

    - VALID: Record is authentic and replays to the same results
    - INVALID(reason): Record is invalid; reason provided
    """
    return ReviewVerifier(registry).verify(record, corpus, evidence, trust_store)
