#!/usr/bin/env python3
"""
PhaseGate Example - Reviewing a Solidity Vault

This example walks a small ERC-4626 style vault through a complete review:
role session, classification, hypotheses, the validation gate with auditor
evidence, findings, and a signed record checked by a third-party verifier.

Run with: python examples/vault_review_example.py
"""

from typing import Dict, Any

from phasegate import (
    AgentRole,
    Corpus,
    Disposition,
    ReviewSession,
    RoleSession,
    SigningService,
    create_unit,
    render_finding,
    sign_record,
    sorted_labels,
    verify_review,
)


VAULT = "src/Vault.sol"


def vault_corpus() -> Corpus:
    """Units as an ingestion tool would extract them from src/Vault.sol."""
    return Corpus([
        create_unit(
            "Vault.sol::deposit", "solidity",
            "function deposit(uint256 assets) external returns (uint256 shares) {\n"
            "    shares = convertToShares(assets);\n"
            "    totalShares += shares;\n"
            "    require(shares > 0, \"zero shares\");\n"
            "    asset.safeTransferFrom(msg.sender, address(this), assets);\n"
            "    emit Deposit(msg.sender, assets, shares);\n"
            "}",
            kind="external", source_path=VAULT, start_line=41,
        ),
        create_unit(
            "Vault.sol::convertToShares", "solidity",
            "function convertToShares(uint256 assets) public view returns (uint256) {\n"
            "    uint256 supply = totalSupply();\n"
            "    return supply == 0 ? assets : assets * supply / totalAssets();\n"
            "}",
            kind="view", source_path=VAULT, start_line=60,
        ),
        create_unit(
            "Vault.sol::withdraw", "solidity",
            "function withdraw() external {\n"
            "    uint256 amount = balances[msg.sender];\n"
            "    (bool ok, ) = msg.sender.call{value: amount}(\"\");\n"
            "    require(ok);\n"
            "    balances[msg.sender] = 0;\n"
            "}",
            kind="external", source_path=VAULT, start_line=72,
        ),
        create_unit(
            "Vault.sol::setFeeRecipient", "solidity",
            "function setFeeRecipient(address recipient) external {\n"
            "    feeRecipient = recipient;\n"
            "}",
            kind="external", source_path=VAULT, start_line=88,
        ),
    ], complete=True)


def auditor_evidence(session: ReviewSession) -> Dict[str, Any]:
    """
    Evidence an auditor attaches after working each hypothesis by hand.

    Here every live hypothesis gets a cost estimate. The token transfer in
    deposit and the ether transfer in withdraw are attested as understood,
    so the withdraw reentrancy can be confirmed.
    """
    evidence = {}
    for hypothesis in session.generate().hypotheses:
        evidence[hypothesis.hypothesis_id] = {
            "cost_estimate": "5000",
            "resolved_calls": ["safeTransferFrom", "call"],
        }
    return evidence


def main():
    print("=" * 70)
    print("PhaseGate Example: Solidity Vault Review")
    print("=" * 70)

    # -------------------------------------------------------------------------
    # Role session
    # -------------------------------------------------------------------------
    print("\n[1] Role session")
    roles = RoleSession("vault-audit")
    roles.handle_message("[AUDIT AGENT: Protocol Mapper] map the vault", author="auditor")
    invariant = roles.record_invariant("Only the owner can change the fee recipient")
    roles.handle_message("[AUDIT AGENT: Attack Hypothesis Generator]", author="auditor")
    contradiction = roles.challenge(invariant.invariant_id, "setFeeRecipient has no modifier")
    print(f"  Active role: {roles.active_role.value}")
    print(f"  Open contradiction {contradiction.contradiction_id}: {contradiction.claim}")

    # -------------------------------------------------------------------------
    # Classification and hypotheses
    # -------------------------------------------------------------------------
    corpus = vault_corpus()
    first = ReviewSession(corpus, feasibility_threshold="1000000")

    print("\n[2] Classification")
    for unit_id, labels in first.classify().items():
        print(f"  {unit_id}: {', '.join(sorted_labels(labels)) or 'UNCLASSIFIED'}")

    print("\n[3] Hypotheses")
    for h in first.generate().hypotheses:
        print(f"  {h.hypothesis_id} [{h.phase.value}] {h.description}")

    # -------------------------------------------------------------------------
    # Gate with evidence
    # -------------------------------------------------------------------------
    signer = SigningService()
    signer.generate_key_pair("kid:vault-audit-001")

    evidence = auditor_evidence(first)
    session = ReviewSession(corpus, feasibility_threshold="1000000", evidence=evidence)
    outcome = session.run()

    print("\n[4] Gate results")
    for record in outcome.records:
        print(f"  {record.hypothesis.hypothesis_id} {record.disposition.value}"
              + (f" ({record.reason})" if record.reason else ""))

    print("\n[5] Findings")
    for finding in outcome.findings:
        print()
        print(render_finding(finding))

    inconclusive = outcome.by_disposition(Disposition.INCONCLUSIVE)
    if inconclusive:
        print(f"  {len(inconclusive)} hypothesis(es) need more evidence")

    # -------------------------------------------------------------------------
    # Signed record
    # -------------------------------------------------------------------------
    print("\n[6] Signed record")
    record = sign_record(outcome.to_dict(), signer)
    print(f"  outcome_hash: {record['outcome_hash']}")
    result = verify_review(record, corpus.to_dict(), evidence, signer.get_trust_store())
    print(f"  Verification: {result.outcome.value}")

    # -------------------------------------------------------------------------
    # Human closes the role session
    # -------------------------------------------------------------------------
    print("\n[7] Closing the role session")
    roles.resolve_contradiction(contradiction.contradiction_id,
                                "Confirmed: missing onlyOwner, reported as finding",
                                resolved_by="lead-auditor")
    roles.activate(AgentRole.CODE_PATH_EXPLORER)
    roles.activate(AgentRole.ADVERSARIAL_REVIEWER)
    roles.close()
    print(f"  Session closed with {len(roles.invariants)} invariant(s)")

    print("\n" + "=" * 70)
    print("Example Complete")
    print("=" * 70)


if __name__ == "__main__":
    main()
