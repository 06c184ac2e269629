"""
PhaseGate Smart-Contract Review Kernel

Version: 1.0.0

Phase-aware vulnerability review for smart contracts across Solidity,
CosmWasm, Cosmos SDK, Cairo and PyTeal.

A review runs:
    classify -> generate hypotheses -> validation gate -> severity -> findings

The validation gate is a conservative AND over four predicates:
    reachability, state_freshness, execution_closure, economic_realism

Any predicate that cannot be decided is unknown, and an unknown makes the
hypothesis INCONCLUSIVE. It is never dropped and never promoted.

Usage:
    from phasegate import Corpus, ReviewSession, create_unit

    corpus = Corpus([
        create_unit(
            "x/bank/keeper/send.go::SubtractBalance", "cosmos_sdk",
            source_text, kind="entry_point",
            source_path="x/bank/keeper/send.go", start_line=112,
        ),
    ], complete=True)

    session = ReviewSession(corpus, feasibility_threshold="1000", evidence={...})
    outcome = session.run()

    for finding in outcome.findings:
        print(finding.severity.value, finding.location)

    # Every INCONCLUSIVE hypothesis is reported with its unknown predicates
    for record in outcome.inconclusive:
        print(record.hypothesis.hypothesis_id, record.reason)

    record = outcome.to_dict()
"""

__version__ = "1.0.0"
__license__ = "Apache-2.0"

# Units and corpus
from .units import (
    CodeUnit,
    Corpus,
    Ecosystem,
    EntryKind,
    create_unit,
)

# Canonicalization and hashing
from .canonicalization import canonicalize, canonicalize_str
from .hashing import (
    sha256_hash,
    content_hash,
    unit_hash,
    corpus_hash,
    profile_hash,
    evidence_hash,
    verify_hash,
)

# Phases
from .phases import PhaseClassifier, PhaseLabel, PHASE_ORDER, sorted_labels

# Profiles
from .profiles import (
    EcosystemProfile,
    ExploitReference,
    LexiconRule,
    CallPattern,
    ProfileRegistry,
    load_profile_file,
)
from .profiles_builtin import builtin_profiles, create_default_registry, create_configured_registry

# Hypotheses
from .hypotheses import (
    Hypothesis,
    HypothesisGenerator,
    GenerationResult,
    MAX_LIVE_HYPOTHESES,
    generate_hypotheses,
)

# Gates
from .gates import (
    Gate,
    GateEvaluation,
    GateEvidence,
    GateOutcome,
    FailureCode,
    AnalysisContext,
    create_gate,
    GATE_TYPES,
    PREDICATES,
    ReachabilityGate,
    StateFreshnessGate,
    ExecutionClosureGate,
    EconomicRealismGate,
)
from .evaluator import GateResult, ValidationGate, Verdict, compute_verdict

# Severity
from .severity import (
    Severity,
    ImpactDescriptor,
    SeverityClassifier,
    UnmappedImpactError,
    classify_severity,
    parse_impact,
    platform_mapping,
)

# Findings
from .findings import Finding, MissingLocationError, promote
from .report import render_finding, render_findings

# Roles
from .roles import (
    AgentRole,
    AuditStage,
    RoleSession,
    RoleTransitionError,
    UnknownRoleError,
    parse_invocation,
)

# Review session
from .session import (
    Disposition,
    HypothesisRecord,
    ReviewOutcome,
    ReviewSession,
    run_review,
    sign_record,
)

# Verifier
from .verifier import (
    ReviewVerifier,
    VerificationResult,
    VerificationOutcome,
    verify_review,
)

# Signing
from .signing import SigningService, KeyPair, verify_ed25519


__all__ = [
    # Version
    "__version__",

    # Units
    "CodeUnit",
    "Corpus",
    "Ecosystem",
    "EntryKind",
    "create_unit",

    # Canonicalization
    "canonicalize",
    "canonicalize_str",

    # Hashing
    "sha256_hash",
    "content_hash",
    "unit_hash",
    "corpus_hash",
    "profile_hash",
    "evidence_hash",
    "verify_hash",

    # Phases
    "PhaseClassifier",
    "PhaseLabel",
    "PHASE_ORDER",
    "sorted_labels",

    # Profiles
    "EcosystemProfile",
    "ExploitReference",
    "LexiconRule",
    "CallPattern",
    "ProfileRegistry",
    "load_profile_file",
    "builtin_profiles",
    "create_default_registry",
    "create_configured_registry",

    # Hypotheses
    "Hypothesis",
    "HypothesisGenerator",
    "GenerationResult",
    "MAX_LIVE_HYPOTHESES",
    "generate_hypotheses",

    # Gates
    "Gate",
    "GateEvaluation",
    "GateEvidence",
    "GateOutcome",
    "FailureCode",
    "AnalysisContext",
    "create_gate",
    "GATE_TYPES",
    "PREDICATES",
    "ReachabilityGate",
    "StateFreshnessGate",
    "ExecutionClosureGate",
    "EconomicRealismGate",
    "GateResult",
    "ValidationGate",
    "Verdict",
    "compute_verdict",

    # Severity
    "Severity",
    "ImpactDescriptor",
    "SeverityClassifier",
    "UnmappedImpactError",
    "classify_severity",
    "parse_impact",
    "platform_mapping",

    # Findings
    "Finding",
    "MissingLocationError",
    "promote",
    "render_finding",
    "render_findings",

    # Roles
    "AgentRole",
    "AuditStage",
    "RoleSession",
    "RoleTransitionError",
    "UnknownRoleError",
    "parse_invocation",

    # Session
    "Disposition",
    "HypothesisRecord",
    "ReviewOutcome",
    "ReviewSession",
    "run_review",
    "sign_record",

    # Verifier
    "ReviewVerifier",
    "VerificationResult",
    "VerificationOutcome",
    "verify_review",

    # Signing
    "SigningService",
    "KeyPair",
    "verify_ed25519",
]
