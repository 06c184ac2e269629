"""
PhaseGate Conformance Test Suite

Checks the deterministic foundations every review depends on:
- Canonical JSON encoding and hashing
- Code unit and corpus validation, call graph and entry paths
- Ecosystem profile validation, hashing and registry behavior
- Severity table lookups and unmapped-impact failures
"""

import json
import os
import shutil
import tempfile
import unittest
from decimal import Decimal

from phasegate import (
    # Canonicalization
    canonicalize,
    canonicalize_str,

    # Hashing
    sha256_hash,
    content_hash,
    verify_hash,

    # Units
    CodeUnit,
    Corpus,
    Ecosystem,
    create_unit,

    # Profiles
    EcosystemProfile,
    ExploitReference,
    LexiconRule,
    PhaseLabel,
    ProfileRegistry,
    builtin_profiles,
    create_default_registry,

    # Severity
    Severity,
    SeverityClassifier,
    UnmappedImpactError,
    classify_severity,
    parse_impact,
    platform_mapping,
)
from phasegate import config
from phasegate.hashing import short_id
from phasegate.profiles_builtin import create_configured_registry, create_cosmos_sdk_profile


class TestCanonicalization(unittest.TestCase):
    """Canonical JSON encoding"""

    def test_key_ordering(self):
        """Key order of the input does not change the bytes."""
        a = {"units": [], "complete": True, "entry_points": ["b", "a"]}
        b = {"entry_points": ["b", "a"], "complete": True, "units": []}

        self.assertEqual(canonicalize(a), canonicalize(b))
        self.assertEqual(canonicalize(a), b'{"complete":true,"entry_points":["b","a"],"units":[]}')

    def test_nested_key_ordering(self):
        self.assertEqual(
            canonicalize({"b": 1, "a": {"d": 2, "c": 3}}),
            b'{"a":{"c":3,"d":2},"b":1}'
        )

    def test_decimal_as_string(self):
        self.assertEqual(canonicalize({"cost": Decimal("1.50")}), b'{"cost":"1.50"}')

    def test_sets_sorted(self):
        self.assertEqual(canonicalize({"labels": {"VALIDATION", "COMMIT"}}),
                         b'{"labels":["COMMIT","VALIDATION"]}')

    def test_utf8_not_escaped(self):
        self.assertEqual(canonicalize_str({"k": "é"}), '{"k":"é"}')

    def test_unsupported_type(self):
        with self.assertRaises(ValueError):
            canonicalize({"x": object()})

    def test_non_finite_rejected(self):
        with self.assertRaises(ValueError):
            canonicalize({"cost": float("nan")})

    def test_enum_as_value(self):
        self.assertEqual(canonicalize({"phase": PhaseLabel.COMMIT}), b'{"phase":"COMMIT"}')


class TestHashing(unittest.TestCase):
    """Hash format and determinism"""

    def test_hash_format(self):
        self.assertEqual(
            sha256_hash(b""),
            "sha256:e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
        )

    def test_content_hash_ignores_key_order(self):
        self.assertEqual(content_hash({"a": 1, "b": 2}), content_hash({"b": 2, "a": 1}))
        self.assertNotEqual(content_hash({"a": 1}), content_hash({"a": 2}))

    def test_short_id(self):
        sid = short_id("H", {"unit_id": "u", "rule": "r"})
        self.assertTrue(sid.startswith("H-"))
        self.assertEqual(len(sid), 14)
        self.assertEqual(sid, short_id("H", {"rule": "r", "unit_id": "u"}))

    def test_verify_hash(self):
        self.assertTrue(verify_hash(sha256_hash("data"), "data"))
        self.assertFalse(verify_hash(sha256_hash("data"), "other"))
        self.assertFalse(verify_hash("md5:abc", "data"))


class TestUnits(unittest.TestCase):
    """Code unit validation"""

    def test_name_derived_from_id(self):
        unit = create_unit("x/bank/keeper.go::Keeper.SendCoins", "cosmos_sdk", "func f() {}")
        self.assertEqual(unit.name, "SendCoins")
        self.assertEqual(unit.ecosystem, Ecosystem.COSMOS_SDK)

    def test_invalid_ecosystem(self):
        with self.assertRaises(ValueError):
            create_unit("u", "move", "fun f() {}")

    def test_empty_text(self):
        with self.assertRaises(ValueError):
            create_unit("u", "solidity", "   ")

    def test_invalid_kind(self):
        with self.assertRaises(ValueError):
            create_unit("u", "solidity", "function f() {}", kind="friend")

    def test_location(self):
        unit = create_unit("u", "solidity", "function f() {}", source_path="src/Vault.sol", start_line=42)
        self.assertEqual(unit.location(), "src/Vault.sol:42")
        self.assertIsNone(create_unit("v", "solidity", "function g() {}").location())

    def test_start_line_must_be_integer(self):
        for line in ("42", 4.2, True):
            with self.assertRaises(ValueError):
                create_unit("u", "solidity", "function f() {}", source_path="src/Vault.sol", start_line=line)
        with self.assertRaises(ValueError):
            CodeUnit.from_dict({"unit_id": "u", "ecosystem": "solidity", "text": "function f() {}",
                                "start_line": "42"})

    def test_entry_kinds(self):
        self.assertTrue(create_unit("u", "solidity", "x", kind="external").is_entry_point())
        self.assertFalse(create_unit("u", "solidity", "x", kind="internal").is_entry_point())


class TestCorpus(unittest.TestCase):
    """Corpus call graph and entry paths"""

    def setUp(self):
        self.corpus = Corpus([
            create_unit("m.go::Handle", "cosmos_sdk", "func Handle() {\n    Apply()\n}", kind="entry_point"),
            create_unit("m.go::Apply", "cosmos_sdk", "func Apply() {\n    Store()\n}"),
            create_unit("m.go::Store", "cosmos_sdk", "func Store() {}"),
            create_unit("m.go::Orphan", "cosmos_sdk", "func Orphan() {}"),
        ])

    def test_duplicate_ids_rejected(self):
        unit = create_unit("u", "solidity", "function f() {}")
        with self.assertRaises(ValueError):
            Corpus([unit, unit])

    def test_unknown_entry_point_rejected(self):
        with self.assertRaises(ValueError):
            Corpus([create_unit("u", "solidity", "function f() {}")], entry_points=["missing"])

    def test_lexical_calls(self):
        self.assertEqual(self.corpus.calls_of("m.go::Handle"), ("m.go::Apply",))
        self.assertEqual(self.corpus.callers_of("m.go::Store"), ("m.go::Apply",))

    def test_entry_path(self):
        self.assertEqual(
            self.corpus.entry_path("m.go::Store"),
            ["m.go::Handle", "m.go::Apply", "m.go::Store"]
        )
        self.assertEqual(self.corpus.entry_path("m.go::Handle"), ["m.go::Handle"])
        self.assertIsNone(self.corpus.entry_path("m.go::Orphan"))

    def test_registered_entry_point(self):
        corpus = Corpus(list(self.corpus), entry_points=["m.go::Orphan"])
        self.assertEqual(corpus.entry_path("m.go::Orphan"), ["m.go::Orphan"])

    def test_reachable_units(self):
        self.assertEqual(
            self.corpus.reachable_units("m.go::Handle"),
            ["m.go::Handle", "m.go::Apply", "m.go::Store"]
        )

    def test_complete_must_be_boolean(self):
        with self.assertRaises(ValueError):
            Corpus(list(self.corpus), complete="false")
        with self.assertRaises(ValueError):
            Corpus.from_dict(dict(self.corpus.to_dict(), complete=1))

    def test_from_dict(self):
        restored = Corpus.from_dict(self.corpus.to_dict())
        self.assertEqual(restored.to_dict(), self.corpus.to_dict())
        self.assertEqual(len(restored), 4)


class TestProfiles(unittest.TestCase):
    """Ecosystem profile validation and registry"""

    def _profile(self, **overrides):
        fields = dict(
            id="custom.test",
            version="1.0.0",
            ecosystem="solidity",
            lexicon=[LexiconRule(PhaseLabel.VALIDATION, r'\brequire\s*\(')],
        )
        fields.update(overrides)
        return EcosystemProfile(**fields)

    def test_builtin_profiles_cover_every_ecosystem(self):
        registry = create_default_registry()
        self.assertEqual(set(registry.profile_hashes()), {e.value for e in Ecosystem})
        self.assertEqual(len(builtin_profiles()), 5)

    def test_profile_hash_stable(self):
        first = create_cosmos_sdk_profile()
        second = EcosystemProfile.from_dict(first.to_dict())
        self.assertEqual(first.get_hash(), second.get_hash())
        self.assertTrue(first.get_hash().startswith("sha256:"))

    def test_invalid_version(self):
        with self.assertRaises(ValueError):
            self._profile(version="1.0")

    def test_invalid_pattern(self):
        with self.assertRaises(ValueError):
            self._profile(lexicon=[LexiconRule(PhaseLabel.VALIDATION, r'require(')])

    def test_empty_lexicon(self):
        with self.assertRaises(ValueError):
            self._profile(lexicon=[])

    def test_exploit_with_unmapped_impact(self):
        with self.assertRaises(ValueError):
            ExploitReference(
                id="custom.bad",
                title="Bad",
                phase=PhaseLabel.COMMIT,
                impact="reputational damage, permissionless, no special conditions",
            )

    def test_stale_read_flag_round_trips(self):
        solidity = create_default_registry().get_for_ecosystem("solidity")
        reentrancy = [e for e in solidity.exploits if e.id == "solidity.reentrancy"][0]
        self.assertTrue(reentrancy.stale_read)
        self.assertTrue(ExploitReference.from_dict(reentrancy.to_dict()).stale_read)

        plain = ExploitReference(id="custom.y", title="Y", phase=PhaseLabel.VALIDATION, impact="informational")
        self.assertNotIn("stale_read", plain.to_dict())

    def test_duplicate_exploit_ids(self):
        exploit = ExploitReference(id="custom.x", title="X", phase=PhaseLabel.VALIDATION,
                                   impact="informational")
        with self.assertRaises(ValueError):
            self._profile(exploits=[exploit, exploit])

    def test_override_with_unknown_severity(self):
        with self.assertRaises(ValueError):
            self._profile(severity_overrides={
                "direct fund loss, permissionless, no special conditions": "SEVERE"
            })

    def test_registry_latest_version(self):
        registry = ProfileRegistry()
        registry.register(self._profile(version="1.2.0"))
        registry.register(self._profile(version="1.10.0"))

        self.assertEqual(registry.get("custom.test").version, "1.10.0")
        self.assertEqual(registry.get("custom.test", "1.2.0").version, "1.2.0")
        self.assertIsNone(registry.get("missing"))

    def test_registry_default_for_ecosystem(self):
        registry = create_default_registry()
        registry.register(self._profile())
        self.assertEqual(registry.get_for_ecosystem(Ecosystem.SOLIDITY).id, "custom.test")

        registry.register(self._profile(id="custom.other"), set_as_default=False)
        self.assertEqual(registry.get_for_ecosystem("solidity").id, "custom.test")

    def test_configured_registry_loads_profile_files(self):
        tmp = tempfile.mkdtemp()
        path = os.path.join(tmp, "profile.json")
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self._profile(version="2.0.0").to_dict(), f)

        saved = config.PROFILE_PATH
        config.PROFILE_PATH = path
        config.invalidate_config_cache()
        try:
            registry = create_configured_registry()
        finally:
            config.PROFILE_PATH = saved
            config.invalidate_config_cache()
            shutil.rmtree(tmp)

        profile = registry.get_for_ecosystem("solidity")
        self.assertEqual((profile.id, profile.version), ("custom.test", "2.0.0"))


class TestSeverity(unittest.TestCase):
    """Severity table lookups"""

    def test_direct_loss_permissionless(self):
        self.assertEqual(
            classify_severity("direct fund loss, permissionless, no special conditions"),
            Severity.CRITICAL_HIGH
        )

    def test_privileged_lowers_severity(self):
        self.assertEqual(
            classify_severity("direct fund loss, privileged, special conditions"),
            Severity.LOW
        )

    def test_synonyms_and_separators(self):
        self.assertEqual(
            classify_severity("Theft of funds; any user; no preconditions"),
            Severity.CRITICAL_HIGH
        )

    def test_informational_ignores_modifiers(self):
        self.assertEqual(classify_severity("informational"), Severity.INFO)
        self.assertEqual(classify_severity("informational, privileged, special conditions"), Severity.INFO)

    def test_unmapped_category(self):
        with self.assertRaises(UnmappedImpactError):
            classify_severity("reputational damage, permissionless, no special conditions")

    def test_missing_modifiers(self):
        with self.assertRaises(UnmappedImpactError):
            classify_severity("direct fund loss")

    def test_repeated_dimension(self):
        with self.assertRaises(UnmappedImpactError):
            parse_impact("direct fund loss, permissionless, privileged, no special conditions")

    def test_empty_descriptor(self):
        with self.assertRaises(LookupError):
            classify_severity("")

    def test_overrides(self):
        descriptor = "temporary DoS, permissionless, no special conditions"
        self.assertEqual(classify_severity(descriptor), Severity.MEDIUM)

        classifier = SeverityClassifier({descriptor: "CRITICAL/HIGH"})
        self.assertEqual(classifier.classify(descriptor), Severity.CRITICAL_HIGH)
        self.assertEqual(create_cosmos_sdk_profile().severity_classifier().classify(descriptor),
                         Severity.CRITICAL_HIGH)

    def test_override_for_unknown_entry(self):
        with self.assertRaises(ValueError):
            SeverityClassifier({"bogus": "LOW"})

    def test_ranks(self):
        ranks = [s.rank for s in (Severity.CRITICAL_HIGH, Severity.MEDIUM, Severity.LOW, Severity.INFO)]
        self.assertEqual(ranks, sorted(ranks, reverse=True))

    def test_platform_mapping(self):
        mapping = platform_mapping(Severity.MEDIUM)
        self.assertEqual(mapping["Code4rena"], "Medium (2)")
        self.assertEqual(set(mapping), {"Immunefi", "Code4rena", "Sherlock", "Cantina"})


if __name__ == "__main__":
    unittest.main(verbosity=2)
