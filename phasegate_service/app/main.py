import os, logging, threading
from typing import Dict
from fastapi import FastAPI, HTTPException, Request

from phasegate import __version__
from phasegate import config
from phasegate.hypotheses import HypothesisGenerator
from phasegate.logging_config import configure_logging
from phasegate.phases import PhaseClassifier, sorted_labels
from phasegate.profiles_builtin import create_configured_registry
from phasegate.roles import RoleSession, RoleTransitionError, UnknownRoleError
from phasegate.session import ReviewSession, sign_record
from phasegate.severity import UnmappedImpactError, parse_impact, platform_mapping, SeverityClassifier
from phasegate.signing import SigningService, load_signing_service
from phasegate.units import Corpus
from phasegate.verifier import verify_review

from .models import (
    ChallengeRequest, CorpusRequest, HypothesesRequest, InvariantRequest, ResolutionRequest,
    ReviewRequest, RoleMessageRequest, SeverityRequest, VerifyRequest,
)
from .rate_limit import RateLimiter

configure_logging(config.LOG_LEVEL, json_format=config.LOG_JSON)
logger = logging.getLogger("phasegate.service")

app = FastAPI(title="PhaseGate Review Service")

review_limiter = RateLimiter(config.REVIEW_RPM)
REGISTRY = None
SIGNER = None
ROLE_SESSIONS: Dict[str, RoleSession] = {}
role_session_limit = config.ROLE_SESSION_LIMIT
_roles_lock = threading.RLock()


def get_signer() -> SigningService:
    if os.path.exists(config.SIGNING_KEY_PATH):
        return load_signing_service(config.SIGNING_KEY_PATH)
    if config.is_production():
        raise RuntimeError(f"Signing key not found: {config.SIGNING_KEY_PATH}")
    logger.warning("Signing key %s not found; using an ephemeral key", config.SIGNING_KEY_PATH)
    signer = SigningService()
    signer.generate_key_pair("kid:phasegate-ephemeral")
    return signer


@app.on_event("startup")
def _startup():
    global REGISTRY, SIGNER
    REGISTRY = create_configured_registry()
    SIGNER = get_signer()


def load_corpus(data: dict) -> Corpus:
    try:
        return Corpus.from_dict(data)
    except (ValueError, TypeError, KeyError) as e:
        raise HTTPException(400, f"INVALID_CORPUS: {e}")


def rate_limit(request: Request):
    client = request.client.host if request.client else "unknown"
    if not review_limiter.allow(client):
        raise HTTPException(429, "RATE_LIMIT")


def classifier() -> PhaseClassifier:
    return PhaseClassifier(REGISTRY.active_profiles())


@app.get("/health")
def health(request: Request):
    client = request.client.host if request.client else "unknown"
    return {
        "status": "ok",
        "version": __version__,
        "env": config.ENV,
        "checks": config.validate_config(),
        "review_rate_limit": review_limiter.get_stats(client),
    }


@app.get("/profiles")
def profiles():
    return {"profiles": [
        {"id": p.id, "version": p.version, "ecosystem": p.ecosystem.value,
         "exploits": len(p.exploits), "hash": p.get_hash()}
        for p in REGISTRY.active_profiles()
    ]}


@app.get("/trust_store")
def trust_store():
    return SIGNER.get_trust_store()


@app.post("/classify")
def classify(req: CorpusRequest):
    corpus = load_corpus(req.corpus)
    labels = classifier().classify_all(corpus)
    return {
        "classifications": {uid: sorted_labels(l) for uid, l in labels.items()},
        "unclassified": [uid for uid, l in labels.items() if not l],
    }


@app.post("/hypotheses")
def hypotheses(req: HypothesesRequest):
    corpus = load_corpus(req.corpus)
    return HypothesisGenerator(classifier(), cap=req.cap).generate(corpus).to_dict()


@app.post("/review")
def review(req: ReviewRequest, request: Request):
    rate_limit(request)
    corpus = load_corpus(req.corpus)
    threshold = req.feasibility_threshold
    if threshold is None:
        threshold = config.FEASIBILITY_THRESHOLD

    try:
        session = ReviewSession(
            corpus,
            registry=REGISTRY,
            feasibility_threshold=threshold,
            hypothesis_cap=req.hypothesis_cap,
            evidence=req.evidence,
        )
    except UnmappedImpactError as e:
        raise HTTPException(422, f"UNMAPPED_IMPACT: {e}")

    outcome = session.run()
    for _ in range(req.passes - 1):
        outcome = session.next_pass()

    record = outcome.to_dict()
    if req.sign:
        record = sign_record(record, SIGNER)
    return {
        "record": record,
        "summary": outcome.summary(),
        "inconclusive": len(outcome.inconclusive),
        "has_deferred": session.has_deferred,
        "report": outcome.render_report(),
    }


@app.post("/verify")
def verify(req: VerifyRequest, request: Request):
    rate_limit(request)
    result = verify_review(
        req.record,
        req.corpus,
        req.evidence,
        req.trust_store or SIGNER.get_trust_store(),
        REGISTRY,
    )
    return result.to_dict()


@app.post("/severity")
def severity(req: SeverityRequest):
    severity_classifier = SeverityClassifier()
    if req.ecosystem:
        try:
            profile = REGISTRY.get_for_ecosystem(req.ecosystem)
        except ValueError:
            profile = None
        if profile is None:
            raise HTTPException(404, "UNKNOWN_ECOSYSTEM")
        severity_classifier = profile.severity_classifier()

    try:
        descriptor = parse_impact(req.impact)
        result = severity_classifier.classify(descriptor)
    except UnmappedImpactError as e:
        raise HTTPException(422, f"UNMAPPED_IMPACT: {e.reason}")

    return {"impact": descriptor.to_dict(), "severity": result.value, "platforms": platform_mapping(result)}


# -------------------------------------------------------------------------
# Role sessions (in-memory, per process)
# -------------------------------------------------------------------------

def get_role_session(session_id: str, create: bool = False) -> RoleSession:
    with _roles_lock:
        session = ROLE_SESSIONS.get(session_id)
        if session is None:
            if not create:
                raise HTTPException(404, "NOT_FOUND")
            if len(ROLE_SESSIONS) >= role_session_limit:
                raise HTTPException(429, "ROLE_SESSION_LIMIT")
            session = ROLE_SESSIONS[session_id] = RoleSession(session_id)
        return session


def role_call(fn, *args):
    try:
        return fn(*args)
    except UnknownRoleError as e:
        raise HTTPException(422, f"UNKNOWN_ROLE: {e}")
    except RoleTransitionError as e:
        raise HTTPException(409, f"ROLE_TRANSITION: {e}")
    except KeyError as e:
        raise HTTPException(404, f"NOT_FOUND: {e.args[0]}")
    except ValueError as e:
        raise HTTPException(400, f"INVALID_INPUT: {e}")


@app.get("/roles/{session_id}")
def role_session(session_id: str):
    return get_role_session(session_id).to_dict()


@app.post("/roles/{session_id}/messages")
def role_message(session_id: str, req: RoleMessageRequest):
    session = get_role_session(session_id, create=True)
    with _roles_lock:
        role_call(session.handle_message, req.text, req.author)
        return session.to_dict()


@app.post("/roles/{session_id}/invariants")
def role_invariant(session_id: str, req: InvariantRequest):
    session = get_role_session(session_id)
    with _roles_lock:
        return role_call(session.record_invariant, req.statement).to_dict()


@app.post("/roles/{session_id}/contradictions")
def role_challenge(session_id: str, req: ChallengeRequest):
    session = get_role_session(session_id)
    with _roles_lock:
        return role_call(session.challenge, req.invariant_id, req.claim).to_dict()


@app.post("/roles/{session_id}/contradictions/{contradiction_id}/resolve")
def role_resolve(session_id: str, contradiction_id: str, req: ResolutionRequest):
    session = get_role_session(session_id)
    with _roles_lock:
        return role_call(session.resolve_contradiction, contradiction_id, req.resolution, req.resolved_by).to_dict()


@app.post("/roles/{session_id}/close")
def role_close(session_id: str):
    session = get_role_session(session_id)
    with _roles_lock:
        role_call(session.close)
        # closed sessions are released
        ROLE_SESSIONS.pop(session_id, None)
        return session.to_dict()
