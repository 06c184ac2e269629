"""
PhaseGate Classifier and Hypothesis Generator Tests

- Lexicon classification per ecosystem, determinism, empty-set behavior
- External calls, stale reads and dead guards
- Hypothesis ordering, the live cap and deferral
"""

import unittest

from phasegate import (
    Corpus,
    HypothesisGenerator,
    MAX_LIVE_HYPOTHESES,
    PhaseClassifier,
    PhaseLabel,
    create_default_registry,
    create_unit,
    generate_hypotheses,
)
from phasegate.hypotheses import ORDERING_RULE


REENTRANT_WITHDRAW = """function withdraw() external {
    uint256 amount = balances[msg.sender];
    (bool ok, ) = msg.sender.call{value: amount}("");
    require(ok);
    balances[msg.sender] = 0;
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


def debit_unit(i: int, extra: str = ""):
    text = (
        f"func Debit{i}(ctx sdk.Context) error {{\n"
        f"    bal := k.GetBalance(ctx)\n"
        f"    bal = bal.Sub(fee)\n"
        f"    if bal.IsNegative() {{\n"
        f"        return ErrFunds\n"
        f"    }}\n"
        f"{extra}"
        f"    return nil\n"
        f"}}"
    )
    return create_unit(f"x/fees/keeper.go::Debit{i}", "cosmos_sdk", text)


class TestPhaseClassifier(unittest.TestCase):
    """Lexicon classification"""

    def setUp(self):
        self.classifier = PhaseClassifier(create_default_registry().active_profiles())

    def test_solidity_labels(self):
        unit = create_unit("Vault.sol::withdraw", "solidity", REENTRANT_WITHDRAW)
        self.assertEqual(
            self.classifier.classify(unit),
            frozenset({PhaseLabel.SNAPSHOT, PhaseLabel.VALIDATION, PhaseLabel.COMMIT})
        )

    def test_cosmos_sdk_labels(self):
        unit = create_unit("send.go::SubtractBalance", "cosmos_sdk", SUBTRACT_BALANCE)
        self.assertEqual(
            self.classifier.classify(unit),
            frozenset({PhaseLabel.SNAPSHOT, PhaseLabel.VALIDATION, PhaseLabel.MUTATION, PhaseLabel.COMMIT})
        )
        self.assertTrue(self.classifier.mutation_before_validation(unit))

    def test_cosmwasm_labels(self):
        unit = create_unit("contract.rs::execute_withdraw", "cosmwasm", (
            "pub fn execute_withdraw(deps: DepsMut, info: MessageInfo) -> Result<Response, ContractError> {\n"
            "    let mut state = STATE.load(deps.storage)?;\n"
            "    ensure!(info.sender == state.owner, ContractError::Unauthorized {});\n"
            "    state.total = state.total.checked_sub(amount)?;\n"
            "    STATE.save(deps.storage, &state)?;\n"
            "    Ok(Response::new().add_attribute(\"action\", \"withdraw\"))\n"
            "}"
        ))
        self.assertEqual(
            self.classifier.classify(unit),
            frozenset({PhaseLabel.SNAPSHOT, PhaseLabel.VALIDATION, PhaseLabel.MUTATION,
                       PhaseLabel.COMMIT, PhaseLabel.EVENTS})
        )
        self.assertFalse(self.classifier.mutation_before_validation(unit))

    def test_deterministic(self):
        unit = create_unit("send.go::SubtractBalance", "cosmos_sdk", SUBTRACT_BALANCE)
        self.assertEqual(self.classifier.classify(unit), self.classifier.classify(unit))
        self.assertEqual(self.classifier.occurrences(unit), self.classifier.occurrences(unit))

    def test_unclassified_is_empty_set(self):
        unit = create_unit("m.go::noop", "cosmos_sdk", "func noop() {}")
        self.assertEqual(self.classifier.classify(unit), frozenset())

    def test_ecosystem_without_profile(self):
        unit = create_unit("send.go::SubtractBalance", "cosmos_sdk", SUBTRACT_BALANCE)
        self.assertEqual(PhaseClassifier([]).classify(unit), frozenset())
        self.assertEqual(PhaseClassifier([]).external_calls(unit), [])

    def test_external_calls(self):
        unit = create_unit("Vault.sol::withdraw", "solidity", REENTRANT_WITHDRAW)
        calls = self.classifier.external_calls(unit)
        self.assertEqual(len(calls), 1)
        self.assertEqual(calls[0][2], "call")

    def test_keeper_call_callee(self):
        unit = create_unit("k.go::Pay", "cosmos_sdk", "func Pay() {\n    k.bankKeeper.SendCoins(ctx, a, b, amt)\n}")
        calls = self.classifier.external_calls(unit)
        self.assertEqual([c[2] for c in calls], ["SendCoins"])

    def test_stale_read_after_external_call(self):
        unit = create_unit("Vault.sol::withdraw", "solidity", REENTRANT_WITHDRAW)
        self.assertEqual(self.classifier.stale_reads(unit), {"uint256 amount = balances[msg.sender]"})

    def test_no_stale_read_without_external_call(self):
        unit = create_unit("send.go::SubtractBalance", "cosmos_sdk", SUBTRACT_BALANCE)
        self.assertEqual(self.classifier.stale_reads(unit), set())

    def test_dead_guard(self):
        unit = create_unit("m.go::legacy", "cosmos_sdk", "func legacy() {\n    if false {\n        k.SetX(ctx, v)\n    }\n}")
        self.assertTrue(self.classifier.has_dead_guard(unit))

    def test_dead_region_covers_guarded_block_only(self):
        text = "func legacy() {\n    if false {\n        k.SetX(ctx, v)\n    }\n    k.SetY(ctx, w)\n}"
        unit = create_unit("m.go::legacy", "cosmos_sdk", text)
        start = text.index("if false")
        end = text.index("}", text.index("SetX")) + 1
        self.assertEqual(self.classifier.dead_regions(unit), [(start, end)])
        self.assertTrue(self.classifier.in_dead_code(unit, [text.index("SetX")]))
        self.assertFalse(self.classifier.in_dead_code(unit, [text.index("SetX"), text.index("SetY")]))

    def test_failing_require_kills_rest_of_function(self):
        text = "function f() external {\n    require(false);\n    total += 1;\n}"
        unit = create_unit("A.sol::f", "solidity", text)
        self.assertEqual(self.classifier.dead_regions(unit), [(text.index("require"), len(text))])

    def test_statement_guard_without_braces(self):
        text = "function f() external {\n    if (false) total += 1;\n    count += 1;\n}"
        unit = create_unit("A.sol::f", "solidity", text)
        self.assertTrue(self.classifier.in_dead_code(unit, [text.index("total")]))
        self.assertFalse(self.classifier.in_dead_code(unit, [text.index("count")]))

    def test_no_offsets_is_not_dead(self):
        unit = create_unit("m.go::legacy", "cosmos_sdk", "func legacy() {\n    if false {\n    }\n}")
        self.assertFalse(self.classifier.in_dead_code(unit, []))


class TestHypothesisGenerator(unittest.TestCase):
    """Hypothesis ordering and the live cap"""

    def setUp(self):
        self.classifier = PhaseClassifier(create_default_registry().active_profiles())
        self.generator = HypothesisGenerator(self.classifier)

    def test_ordering_hypothesis(self):
        corpus = Corpus([create_unit("send.go::SubtractBalance", "cosmos_sdk", SUBTRACT_BALANCE)])
        result = self.generator.generate(corpus)

        self.assertEqual(len(result.hypotheses), 1)
        h = result.hypotheses[0]
        self.assertEqual(h.rule, ORDERING_RULE)
        self.assertEqual(h.phase, PhaseLabel.MUTATION)
        self.assertIn("validation after mutation", h.description)
        self.assertEqual(h.tier, 0)
        self.assertTrue(h.hypothesis_id.startswith("H-"))

    def test_balance_add_before_negative_check(self):
        text = (
            "func (k Keeper) AddBalance(ctx sdk.Context, addr sdk.AccAddress, delta sdk.Int) error {\n"
            "    balance := k.GetBalance(ctx, addr)\n"
            "    balance = balance.Add(delta)\n"
            "    if balance.IsNegative() {\n"
            "        return ErrNegativeBalance\n"
            "    }\n"
            "    k.SetBalance(ctx, addr, balance)\n"
            "    return nil\n"
            "}"
        )
        unit = create_unit("balance.go::AddBalance", "cosmos_sdk", text)
        self.assertTrue(self.classifier.mutation_before_validation(unit))

        result = self.generator.generate(Corpus([unit]))
        self.assertEqual(result.hypotheses[0].rule, ORDERING_RULE)
        self.assertIn("validation after mutation", result.hypotheses[0].description)

    def test_reentrancy_needs_stale_read(self):
        cei = create_unit("Vault.sol::withdraw", "solidity",
                          "function withdraw() external {\n"
                          "    uint256 amount = balances[msg.sender];\n"
                          "    balances[msg.sender] = 0;\n"
                          "    (bool ok, ) = msg.sender.call{value: amount}(\"\");\n"
                          "    require(ok);\n"
                          "}")
        self.assertEqual(self.classifier.stale_reads(cei), set())
        result = self.generator.generate(Corpus([cei]))
        self.assertNotIn("solidity.reentrancy", [h.exploit_id for h in result.hypotheses])

    def test_exploit_hypothesis(self):
        corpus = Corpus([create_unit("Vault.sol::withdraw", "solidity", REENTRANT_WITHDRAW)])
        result = self.generator.generate(corpus)

        self.assertEqual([h.exploit_id for h in result.hypotheses], ["solidity.reentrancy"])
        self.assertIn("The DAO", result.hypotheses[0].similar_exploit)
        self.assertEqual(result.hypotheses[0].tier, 1)

    def test_validation_and_mutation_units_first(self):
        corpus = Corpus([
            create_unit("Vault.sol::withdraw", "solidity", REENTRANT_WITHDRAW),
            create_unit("send.go::SubtractBalance", "cosmos_sdk", SUBTRACT_BALANCE),
        ])
        result = self.generator.generate(corpus)
        self.assertEqual([h.unit_id for h in result.hypotheses],
                         ["send.go::SubtractBalance", "Vault.sol::withdraw"])

    def test_declaration_order_breaks_ties(self):
        corpus = Corpus([debit_unit(2), debit_unit(1)])
        result = self.generator.generate(corpus)
        self.assertEqual([h.unit_id for h in result.hypotheses],
                         ["x/fees/keeper.go::Debit2", "x/fees/keeper.go::Debit1"])

    def test_ordering_hypothesis_precedes_exploits(self):
        corpus = Corpus([debit_unit(1, extra="    panic(\"unreachable\")\n")])
        result = self.generator.generate(corpus)
        self.assertEqual([h.rule for h in result.hypotheses], [ORDERING_RULE, "cosmos_sdk.panic-halt"])

    def test_cap_and_deferral(self):
        corpus = Corpus([debit_unit(i) for i in range(20)])
        result = self.generator.generate(corpus)

        self.assertEqual(len(result.hypotheses), MAX_LIVE_HYPOTHESES)
        self.assertEqual(result.truncated, 5)
        self.assertEqual(len(result.deferred), 5)
        self.assertEqual(result.deferred[0].unit_id, "x/fees/keeper.go::Debit15")

    def test_cap_never_exceeds_fifteen(self):
        self.assertEqual(HypothesisGenerator(self.classifier, cap=40).cap, 15)
        self.assertEqual(HypothesisGenerator(self.classifier, cap=3).cap, 3)
        with self.assertRaises(ValueError):
            HypothesisGenerator(self.classifier, cap=0)

    def test_unclassified_units_reported(self):
        corpus = Corpus([
            create_unit("m.go::noop", "cosmos_sdk", "func noop() {}"),
            create_unit("send.go::SubtractBalance", "cosmos_sdk", SUBTRACT_BALANCE),
        ])
        result = self.generator.generate(corpus)
        self.assertEqual(result.unclassified, ["m.go::noop"])
        self.assertEqual(len(result.hypotheses), 1)

    def test_deterministic(self):
        corpus = Corpus([debit_unit(i) for i in range(20)])
        first = generate_hypotheses(corpus, create_default_registry().active_profiles())
        second = generate_hypotheses(corpus, create_default_registry().active_profiles())
        self.assertEqual(first.to_dict(), second.to_dict())


if __name__ == "__main__":
    unittest.main(verbosity=2)
