from fastapi.testclient import TestClient
from app import main
from app.main import app
from app.rate_limit import RateLimiter
from phasegate import Corpus, create_unit

client = TestClient(app)

SEND_HANDLER = """func (k msgServer) Send(ctx context.Context, msg *MsgSend) error {
    return k.SubtractBalance(ctx, msg.From, msg.Amount)
}"""

SUBTRACT_BALANCE = """func (k Keeper) SubtractBalance(ctx sdk.Context, addr sdk.AccAddress, amt sdk.Coin) error {
    balance := k.GetBalance(ctx, addr, amt.Denom)
    balance = balance.Sub(amt)
    if balance.IsNegative() {
        return ErrInsufficientFunds
    }
    k.SetBalance(ctx, addr, balance)
    return nil
}"""


def bank_corpus():
    return Corpus([
        create_unit("msg_server.go::Send", "cosmos_sdk", SEND_HANDLER, kind="entry_point",
                    source_path="x/bank/keeper/msg_server.go", start_line=31),
        create_unit("send.go::SubtractBalance", "cosmos_sdk", SUBTRACT_BALANCE,
                    source_path="x/bank/keeper/send.go", start_line=112),
    ], complete=True).to_dict()

def first_hypothesis(corpus):
    r = client.post("/hypotheses", json={"corpus": corpus})
    assert r.status_code == 200
    return r.json()["hypotheses"][0]["hypothesis_id"]

def review(corpus, evidence=None, **kw):
    body = {"corpus": corpus, "evidence": evidence or {}, "feasibility_threshold": "1000"}
    body.update(kw)
    return client.post("/review", json=body)


# Service metadata
def test_health():
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"
    assert r.json()["review_rate_limit"]["current"] == 0

def test_profiles_lists_every_ecosystem():
    ecosystems = {p["ecosystem"] for p in client.get("/profiles").json()["profiles"]}
    assert {"solidity", "cosmwasm", "cosmos_sdk"} <= ecosystems

def test_trust_store_has_active_key():
    store = client.get("/trust_store").json()
    assert store["keys"]

# Classification
def test_classify():
    r = client.post("/classify", json={"corpus": bank_corpus()})
    assert r.status_code == 200
    labels = r.json()["classifications"]["send.go::SubtractBalance"]
    assert labels == ["SNAPSHOT", "VALIDATION", "MUTATION", "COMMIT"]

def test_classify_rejects_malformed_corpus():
    r = client.post("/classify", json={"corpus": {"units": [{"unit_id": "x"}]}})
    assert r.status_code == 400
    assert r.json()["detail"].startswith("INVALID_CORPUS")

def test_mistyped_unit_fields_rejected():
    corpus = bank_corpus()
    corpus["units"][0]["start_line"] = "31"
    r = client.post("/classify", json={"corpus": corpus})
    assert r.status_code == 400
    assert r.json()["detail"].startswith("INVALID_CORPUS")

    good = bank_corpus()
    record = review(good).json()["record"]
    v = client.post("/verify", json={"record": record, "corpus": corpus})
    assert v.status_code == 200
    assert v.json()["outcome"] == "INVALID"

def test_hypotheses_respect_cap():
    r = client.post("/hypotheses", json={"corpus": bank_corpus(), "cap": 1})
    assert r.status_code == 200
    assert len(r.json()["hypotheses"]) <= 1

def test_hypotheses_cap_must_be_positive():
    r = client.post("/hypotheses", json={"corpus": bank_corpus(), "cap": 0})
    assert r.status_code == 422

# Review without evidence stays INCONCLUSIVE
def test_review_without_evidence_is_inconclusive():
    r = review(bank_corpus())
    assert r.status_code == 200
    body = r.json()
    assert body["inconclusive"] == 1
    assert body["record"]["results"]["findings"] == []
    assert "signatures" in body["record"]

# Review with evidence yields a signed finding that verifies
def test_review_and_verify():
    corpus = bank_corpus()
    hid = first_hypothesis(corpus)
    evidence = {hid: {"cost_estimate": "25"}}

    r = review(corpus, evidence)
    assert r.status_code == 200
    body = r.json()
    assert body["inconclusive"] == 0
    findings = body["record"]["results"]["findings"]
    assert len(findings) == 1
    assert findings[0]["severity"] == "MEDIUM"

    v = client.post("/verify", json={"record": body["record"], "corpus": corpus, "evidence": evidence})
    assert v.status_code == 200
    assert v.json()["outcome"] == "VALID"

def test_verify_detects_changed_evidence():
    corpus = bank_corpus()
    hid = first_hypothesis(corpus)
    record = review(corpus, {hid: {"cost_estimate": "25"}}).json()["record"]

    v = client.post("/verify", json={"record": record, "corpus": corpus,
                                     "evidence": {hid: {"cost_estimate": "26"}}})
    assert v.json()["outcome"] == "INVALID"
    assert "Evidence hash mismatch" in v.json()["reason"]

def test_verify_unknown_key():
    corpus = bank_corpus()
    record = review(corpus).json()["record"]
    v = client.post("/verify", json={"record": record, "corpus": corpus,
                                     "trust_store": {"keys": []}})
    assert v.json()["outcome"] == "INVALID"

def test_unsigned_review_does_not_verify():
    corpus = bank_corpus()
    record = review(corpus, sign=False).json()["record"]
    assert "signatures" not in record
    v = client.post("/verify", json={"record": record, "corpus": corpus})
    assert v.json()["outcome"] == "INVALID"

def test_review_rejects_unmapped_evidence_impact():
    corpus = bank_corpus()
    hid = first_hypothesis(corpus)
    r = review(corpus, {hid: {"cost_estimate": "25", "impact": "reputational damage"}})
    assert r.status_code == 422
    assert r.json()["detail"].startswith("UNMAPPED_IMPACT")

def test_review_rate_limit(monkeypatch):
    monkeypatch.setattr(main, "review_limiter", RateLimiter(1))
    corpus = bank_corpus()
    assert review(corpus).status_code == 200
    r = review(corpus)
    assert r.status_code == 429
    assert r.json()["detail"] == "RATE_LIMIT"

# Severity
def test_severity_table():
    r = client.post("/severity", json={"impact": "direct fund loss, permissionless, no special conditions"})
    assert r.status_code == 200
    assert r.json()["severity"] == "CRITICAL/HIGH"

def test_severity_ecosystem_override():
    r = client.post("/severity", json={"impact": "temporary DoS, permissionless, no special conditions",
                                       "ecosystem": "cosmos_sdk"})
    assert r.json()["severity"] == "CRITICAL/HIGH"

def test_severity_unmapped():
    r = client.post("/severity", json={"impact": "reputational damage"})
    assert r.status_code == 422

def test_severity_unknown_ecosystem():
    r = client.post("/severity", json={"impact": "temporary DoS", "ecosystem": "fortran"})
    assert r.status_code == 404

# Role sessions
def test_role_session_flow():
    sid = "audit-1"
    r = client.post(f"/roles/{sid}/messages", json={"text": "[AUDIT AGENT: Protocol Mapper]"})
    assert r.status_code == 200
    assert r.json()["active_role"] == "Protocol Mapper"

    inv = client.post(f"/roles/{sid}/invariants", json={"statement": "supply is conserved"}).json()
    client.post(f"/roles/{sid}/messages", json={"text": "[AUDIT AGENT: Attack Hypothesis Generator]"})
    c = client.post(f"/roles/{sid}/contradictions",
                    json={"invariant_id": inv["invariant_id"], "claim": "mint skips the cap"}).json()
    assert c["open"] is True

    # Open contradictions block closing
    assert client.post(f"/roles/{sid}/close").status_code == 409

    r = client.post(f"/roles/{sid}/contradictions/{c['contradiction_id']}/resolve",
                    json={"resolution": "cap enforced in keeper", "resolved_by": "lead"})
    assert r.status_code == 200
    assert r.json()["open"] is False

    r = client.post(f"/roles/{sid}/close")
    assert r.status_code == 200
    assert r.json()["closed"] is True
    assert r.json()["stages"] == ["Hypothesis Generation"]

    # closed sessions are released
    assert sid not in main.ROLE_SESSIONS
    assert client.get(f"/roles/{sid}").status_code == 404

def test_role_session_limit(monkeypatch):
    monkeypatch.setattr(main, "role_session_limit", 1)
    mapper = {"text": "[AUDIT AGENT: Protocol Mapper]"}
    assert client.post("/roles/first/messages", json=mapper).status_code == 200
    assert client.post("/roles/first/messages", json={"text": "still here"}).status_code == 200

    r = client.post("/roles/second/messages", json=mapper)
    assert r.status_code == 429
    assert r.json()["detail"] == "ROLE_SESSION_LIMIT"
    assert list(main.ROLE_SESSIONS) == ["first"]

def test_role_session_must_start_with_mapper():
    r = client.post("/roles/s2/messages", json={"text": "[AUDIT AGENT: Adversarial Reviewer]"})
    assert r.status_code == 409

def test_unknown_role_tag():
    r = client.post("/roles/s3/messages", json={"text": "[AUDIT AGENT: Gas Golfer]"})
    assert r.status_code == 422

def test_unknown_session_and_invariant():
    assert client.get("/roles/missing").status_code == 404
    client.post("/roles/s4/messages", json={"text": "[AUDIT AGENT: Protocol Mapper]"})
    client.post("/roles/s4/messages", json={"text": "[AUDIT AGENT: Attack Hypothesis Generator]"})
    r = client.post("/roles/s4/contradictions", json={"invariant_id": "INV-nope", "claim": "x"})
    assert r.status_code == 404
