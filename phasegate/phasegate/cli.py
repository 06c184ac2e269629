#!/usr/bin/env python3
"""
PhaseGate Command Line Interface

Usage:
    phasegate classify --corpus <file>
    phasegate hypotheses --corpus <file> [--cap N]
    phasegate review --corpus <file> [--evidence <file>] [--threshold X] [--key-file <file>]
    phasegate severity "<impact descriptor>" [--ecosystem <name>]
    phasegate verify --record <file> --corpus <file> [--evidence <file>] --trust-store <file>
    phasegate keygen --key-file <file> --output <file>
    phasegate hash --file <file>

Exit codes: 0 success, 1 inconclusive review or failed verification,
2 input error.
"""

import argparse
import json
import os
import sys
from datetime import datetime

from . import config
from .logging_config import configure_logging


EXIT_OK = 0
EXIT_INCONCLUSIVE = 1
EXIT_INPUT_ERROR = 2


def load_json(path: str) -> dict:
    """Load JSON from file."""
    with open(path, 'r', encoding='utf-8') as f:
        return json.load(f)


def save_json(data: dict, path: str):
    """Save JSON to file."""
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=2)


def emit(data: dict, output: str = None):
    if output:
        save_json(data, output)
        print(f"Saved to: {output}", file=sys.stderr)
    else:
        print(json.dumps(data, indent=2))


def load_corpus(path: str):
    from .units import Corpus
    return Corpus.from_dict(load_json(path))


def cmd_classify(args):
    """Classify every unit of a corpus."""
    from .phases import PhaseClassifier, sorted_labels
    from .profiles_builtin import create_configured_registry

    corpus = load_corpus(args.corpus)
    classifier = PhaseClassifier(create_configured_registry().active_profiles())
    labels = classifier.classify_all(corpus)

    emit({
        "classifications": {uid: sorted_labels(l) for uid, l in labels.items()},
        "unclassified": [uid for uid, l in labels.items() if not l],
    }, args.output)
    return EXIT_OK


def cmd_hypotheses(args):
    """Generate the capped hypothesis list for a corpus."""
    from .hypotheses import HypothesisGenerator
    from .phases import PhaseClassifier
    from .profiles_builtin import create_configured_registry

    corpus = load_corpus(args.corpus)
    classifier = PhaseClassifier(create_configured_registry().active_profiles())
    generator = HypothesisGenerator(classifier, cap=config.HYPOTHESIS_CAP if args.cap is None else args.cap)
    result = generator.generate(corpus)

    emit(result.to_dict(), args.output)
    if result.truncated:
        print(f"\n{result.truncated} hypotheses deferred to a later pass", file=sys.stderr)
    return EXIT_OK


def cmd_review(args):
    """Run a review and emit the (optionally signed) record."""
    from .profiles_builtin import create_configured_registry
    from .session import ReviewSession, sign_record
    from .signing import load_signing_service

    corpus = load_corpus(args.corpus)
    evidence = load_json(args.evidence) if args.evidence else {}
    threshold = args.threshold if args.threshold is not None else config.FEASIBILITY_THRESHOLD

    session = ReviewSession(
        corpus,
        registry=create_configured_registry(),
        feasibility_threshold=threshold,
        hypothesis_cap=config.HYPOTHESIS_CAP if args.cap is None else args.cap,
        evidence=evidence,
    )
    outcome = session.run()
    for _ in range(args.passes - 1):
        outcome = session.next_pass()

    record = outcome.to_dict()
    key_file = args.key_file or config.SIGNING_KEY_PATH
    if args.key_file or os.path.exists(key_file):
        record = sign_record(record, load_signing_service(key_file))
    else:
        print("No signing key; record is unsigned", file=sys.stderr)

    emit(record, args.output)

    if args.report:
        with open(args.report, 'w', encoding='utf-8') as f:
            f.write(outcome.render_report())
        print(f"Report saved to: {args.report}", file=sys.stderr)

    summary = outcome.summary()
    print(f"\nfindings={summary['FINDING']} invalid={summary['INVALID']} "
          f"inconclusive={summary['INCONCLUSIVE']} suppressed={summary['SUPPRESSED']} "
          f"unclassified={len(outcome.unclassified)} deferred={outcome.truncated}", file=sys.stderr)

    if outcome.inconclusive:
        for rec in outcome.inconclusive:
            print(f"  ? {rec.hypothesis.hypothesis_id}: {rec.reason}", file=sys.stderr)
        return EXIT_INCONCLUSIVE
    return EXIT_OK


def cmd_severity(args):
    """Classify an impact descriptor."""
    from .profiles_builtin import create_configured_registry
    from .severity import SeverityClassifier, parse_impact, platform_mapping

    classifier = SeverityClassifier()
    if args.ecosystem:
        profile = create_configured_registry().get_for_ecosystem(args.ecosystem)
        if profile is None:
            raise ValueError(f"No profile for ecosystem: {args.ecosystem}")
        classifier = profile.severity_classifier()

    descriptor = parse_impact(args.descriptor)
    severity = classifier.classify(descriptor)
    emit({
        "impact": descriptor.to_dict(),
        "severity": severity.value,
        "platforms": platform_mapping(severity),
    })
    return EXIT_OK


def cmd_verify(args):
    """Verify a signed review record."""
    from .profiles_builtin import create_configured_registry
    from .verifier import verify_review

    record = load_json(args.record)
    corpus = load_json(args.corpus)
    evidence = load_json(args.evidence) if args.evidence else {}
    trust_store = load_json(args.trust_store)

    result = verify_review(record, corpus, evidence, trust_store, create_configured_registry())

    if result.is_valid():
        print(f"✓ {result.outcome.value}")
        return EXIT_OK
    print(f"✗ INVALID: {result.reason}")
    if result.details:
        print(json.dumps(result.details, indent=2))
    return EXIT_INCONCLUSIVE


def cmd_hash(args):
    """Compute PhaseGate hashes."""
    from .hashing import content_hash, corpus_hash, profile_hash
    from .units import Corpus

    data = load_json(args.file)

    if "units" in data:
        print(f"corpus_hash: {corpus_hash(Corpus.from_dict(data).to_dict())}")
    elif "lexicon" in data and "version" in data:
        print(f"profile_hash: {profile_hash(data)}")
    elif "outcome_hash" in data and "results" in data:
        print(f"outcome_hash: {content_hash(data['results'])}")
    else:
        print(f"sha256: {content_hash(data)}")
    return EXIT_OK


def cmd_keygen(args):
    """Generate an Ed25519 review signing key and its trust store."""
    from .signing import SigningService, save_key_file

    service = SigningService()
    key_id = args.key_id or f"kid:phasegate-{datetime.now().strftime('%Y%m%d')}-001"

    key_pair = service.generate_key_pair(
        key_id=key_id,
        validity_days=args.validity_days or 90
    )

    key_file = args.key_file or config.SIGNING_KEY_PATH
    save_key_file(key_pair, key_file)
    print(f"Private key saved to: {key_file}", file=sys.stderr)

    emit(service.get_trust_store(), args.output)

    print(f"\nGenerated key: {key_id}", file=sys.stderr)
    print(f"Valid until: {key_pair.valid_until.isoformat()}", file=sys.stderr)
    return EXIT_OK


def cmd_demo(args):
    """Run a demonstration review over a small Cosmos SDK corpus."""
    from .report import render_finding
    from .session import ReviewSession, sign_record
    from .signing import SigningService
    from .units import Corpus, create_unit
    from .verifier import verify_review

    print("=" * 60)
    print("PhaseGate Demonstration")
    print("=" * 60)

    corpus = Corpus([
        create_unit(
            "x/bank/keeper/msg_server.go::Send", "cosmos_sdk",
            "func (k msgServer) Send(ctx context.Context, msg *MsgSend) error {\n"
            "    return k.SubtractBalance(ctx, msg.From, msg.Amount)\n"
            "}",
            kind="entry_point", source_path="x/bank/keeper/msg_server.go", start_line=31,
        ),
        create_unit(
            "x/bank/keeper/send.go::SubtractBalance", "cosmos_sdk",
            "func (k Keeper) SubtractBalance(ctx sdk.Context, addr sdk.AccAddress, amt sdk.Coin) error {\n"
            "    balance := k.GetBalance(ctx, addr, amt.Denom)\n"
            "    balance = balance.Sub(amt)\n"
            "    if balance.IsNegative() {\n"
            "        return ErrInsufficientFunds\n"
            "    }\n"
            "    k.SetBalance(ctx, addr, balance)\n"
            "    return nil\n"
            "}",
            source_path="x/bank/keeper/send.go", start_line=112,
        ),
        create_unit(
            "x/bank/keeper/legacy.go::migrateDust", "cosmos_sdk",
            "func migrateDust(store prefix.Store) {\n    // pending rewrite\n}",
        ),
    ], complete=True)

    session = ReviewSession(corpus, feasibility_threshold="1000")
    first = session.run()
    print(f"\nPass 1: {len(first.records)} hypotheses gated, {len(first.unclassified)} unclassified")
    for rec in first.records:
        print(f"  {rec.hypothesis.hypothesis_id} {rec.disposition.value}: {rec.hypothesis.description}")
        if rec.reason:
            print(f"    {rec.reason}")

    # Auditor attaches a cost estimate to each inconclusive hypothesis
    evidence = {rec.hypothesis.hypothesis_id: {"cost_estimate": "25"} for rec in first.inconclusive}

    signer = SigningService()
    signer.generate_key_pair("kid:phasegate-demo-001")

    session = ReviewSession(corpus, feasibility_threshold="1000", evidence=evidence)
    outcome = session.run()
    print(f"\nWith evidence: {len(outcome.findings)} finding(s)")
    for finding in outcome.findings:
        print()
        print(render_finding(finding))

    record = sign_record(outcome.to_dict(), signer)
    result = verify_review(record, corpus.to_dict(), evidence, signer.get_trust_store())
    print(f"Signed record verifies: {result.outcome.value}")

    print("\n" + "=" * 60)
    print("Demonstration complete.")
    print("=" * 60)
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="phasegate",
        description="PhaseGate smart-contract review CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  phasegate demo                                   Run demonstration
  phasegate classify -c corpus.json
  phasegate review -c corpus.json -e evidence.json --threshold 1000 -o record.json
  phasegate severity "direct fund loss, permissionless, no special conditions"
  phasegate verify -r record.json -c corpus.json -e evidence.json -t trust_store.json
  phasegate keygen -K secrets/key.json -o trust_store.json
        """
    )
    parser.add_argument("--log-level", default=config.LOG_LEVEL, help="Log level")
    parser.add_argument("--log-text", action="store_true", help="Plain-text logs instead of JSON")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    classify_parser = subparsers.add_parser("classify", help="Classify code units by phase")
    classify_parser.add_argument("-c", "--corpus", required=True, help="Corpus JSON file")
    classify_parser.add_argument("-o", "--output", help="Output file")

    hyp_parser = subparsers.add_parser("hypotheses", help="Generate hypotheses")
    hyp_parser.add_argument("-c", "--corpus", required=True, help="Corpus JSON file")
    hyp_parser.add_argument("--cap", type=int, help="Live hypothesis cap (max 15)")
    hyp_parser.add_argument("-o", "--output", help="Output file")

    review_parser = subparsers.add_parser("review", help="Run a full review")
    review_parser.add_argument("-c", "--corpus", required=True, help="Corpus JSON file")
    review_parser.add_argument("-e", "--evidence", help="Evidence JSON file keyed by hypothesis id")
    review_parser.add_argument("--threshold", help="Economic feasibility threshold")
    review_parser.add_argument("--cap", type=int, help="Live hypothesis cap (max 15)")
    review_parser.add_argument("--passes", type=int, default=1, help="Number of passes")
    review_parser.add_argument("-K", "--key-file", help="Private signing key file")
    review_parser.add_argument("-o", "--output", help="Output file for the record")
    review_parser.add_argument("--report", help="Output file for the markdown report")

    sev_parser = subparsers.add_parser("severity", help="Classify an impact descriptor")
    sev_parser.add_argument("descriptor", help="e.g. 'direct fund loss, permissionless, no special conditions'")
    sev_parser.add_argument("--ecosystem", help="Apply this ecosystem's severity overrides")

    verify_parser = subparsers.add_parser("verify", help="Verify a review record")
    verify_parser.add_argument("-r", "--record", required=True, help="Review record JSON file")
    verify_parser.add_argument("-c", "--corpus", required=True, help="Corpus JSON file")
    verify_parser.add_argument("-e", "--evidence", help="Evidence JSON file")
    verify_parser.add_argument("-t", "--trust-store", required=True, help="Trust store JSON file")

    hash_parser = subparsers.add_parser("hash", help="Compute PhaseGate hash")
    hash_parser.add_argument("-f", "--file", required=True, help="JSON file to hash")

    keygen_parser = subparsers.add_parser("keygen", help="Generate signing key pair")
    keygen_parser.add_argument("-o", "--output", help="Output file for trust store")
    keygen_parser.add_argument("-K", "--key-file", help="Output file for the private key")
    keygen_parser.add_argument("-k", "--key-id", help="Key identifier")
    keygen_parser.add_argument("-v", "--validity-days", type=int, help="Validity in days")

    subparsers.add_parser("demo", help="Run demonstration")

    return parser


COMMANDS = {
    "classify": cmd_classify,
    "hypotheses": cmd_hypotheses,
    "review": cmd_review,
    "severity": cmd_severity,
    "verify": cmd_verify,
    "hash": cmd_hash,
    "keygen": cmd_keygen,
    "demo": cmd_demo,
}


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(args.log_level, json_format=config.LOG_JSON and not args.log_text)

    handler = COMMANDS.get(args.command)
    if handler is None:
        parser.print_help()
        return EXIT_INPUT_ERROR

    try:
        return handler(args)
    except LookupError as e:
        if config.is_debug():
            raise
        print(f"✗ {e}", file=sys.stderr)
        return EXIT_INPUT_ERROR
    except (ValueError, OSError) as e:
        if config.is_debug():
            raise
        print(f"✗ Invalid input: {e}", file=sys.stderr)
        return EXIT_INPUT_ERROR


if __name__ == "__main__":
    sys.exit(main())
