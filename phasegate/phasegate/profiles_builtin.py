"""
PhaseGate Built-in Ecosystem Profiles

Curated lexicons and exploit tables for the five supported ecosystems:

Solidity / EVM, Rust / CosmWasm, Go / Cosmos SDK, Cairo / StarkNet and
Algorand / PyTeal.

Patterns are lexical. They flag text worth reviewing; they do not parse the
language, and a unit none of them match is reported as unclassified.
"""

from .phases import PhaseLabel
from .profiles import CallPattern, EcosystemProfile, ExploitReference, LexiconRule, ProfileRegistry
from .units import Ecosystem


S = PhaseLabel.SNAPSHOT
A = PhaseLabel.ACCOUNTING
V = PhaseLabel.VALIDATION
M = PhaseLabel.MUTATION
C = PhaseLabel.COMMIT
E = PhaseLabel.EVENTS
X = PhaseLabel.ERROR


# =============================================================================
# GO / COSMOS SDK
# =============================================================================

def create_cosmos_sdk_profile() -> EcosystemProfile:
    """
    Go / Cosmos SDK keeper code.

    Keeper getters (Get*/Load*) are snapshots, setters (Set*/Save*) commit to
    the KV store. Calls into another module's keeper or into hooks cross a
    module boundary.
    """
    return EcosystemProfile(
        id="cosmos_sdk.default",
        version="1.0.0",
        ecosystem=Ecosystem.COSMOS_SDK,
        lexicon=[
            LexiconRule(S, r'\b(?:Get|Load)[A-Z]\w*\s*\('),
            LexiconRule(A, r'\.(?:Mul|Quo|Truncate|Round|Ceil|Floor)\w*\('),
            LexiconRule(V, r'\.(?:IsNegative|IsZero|IsPositive|IsNil|IsValid|IsAllPositive|IsAnyNegative|LT|LTE|GT|GTE|Equal)\('),
            LexiconRule(V, r'\bValidate\w*\('),
            LexiconRule(M, r'\.(?:Add|Sub)\w*\('),
            LexiconRule(C, r'\b(?:Set|Save)[A-Z]\w*\s*\('),
            LexiconRule(E, r'\bEmit(?:Typed)?Events?\('),
            LexiconRule(X, r'\bpanic\('),
            LexiconRule(X, r',\s*_\s*:?=(?!=)'),
            LexiconRule(X, r'^\s*_\s*=(?!=)'),
        ],
        external_calls=[
            CallPattern(r'\b(?:k|keeper|app)\.(?P<module>\w+Keeper)\.(?P<callee>[A-Z]\w*)\(',
                        "call into another module's keeper"),
            CallPattern(r'\bk\.hooks\.(?P<callee>\w+)\(', "module hooks"),
        ],
        dead_guards=[
            r'\bif\s+false\s*\{',
        ],
        exploits=[
            ExploitReference(
                id="cosmos_sdk.proof-verification",
                title="Insufficient ICS-23 proof verification",
                phase=V,
                trigger=r'\b(?:VerifyMembership|VerifyNonMembership|ics23)\b',
                incident="Dragonberry (2022)",
                impact="direct fund loss, permissionless, no special conditions",
                description="Proof verification accepts crafted proofs; cross-chain state can be forged.",
            ),
            ExploitReference(
                id="cosmos_sdk.iavl-proof-forgery",
                title="Forged IAVL range proof accepted by bridge",
                phase=V,
                trigger=r'\b(?:RangeProof|ValueOp|iavl)\b',
                incident="BNB Bridge (2022)",
                impact="direct fund loss, permissionless, no special conditions",
                description="Merkle proof verification does not bind every path node; attacker mints against a forged leaf.",
            ),
            ExploitReference(
                id="cosmos_sdk.lp-share-rounding",
                title="LP share calculation rounds in favour of the user",
                phase=A,
                requires=frozenset({A, M}),
                trigger=r'[Ss]hares?\b',
                incident="Osmosis LP share rounding (2022)",
                impact="direct fund loss, permissionless, special conditions",
                description="Join/exit share math rounds the wrong way; repeated joins and exits drain the pool.",
            ),
            ExploitReference(
                id="cosmos_sdk.panic-halt",
                title="Panic reachable from block processing halts the chain",
                phase=X,
                trigger=r'\bpanic\(',
                impact="temporary DoS, permissionless, no special conditions",
                description="A user-reachable panic in a message handler or BeginBlocker/EndBlocker stops consensus.",
            ),
            ExploitReference(
                id="cosmos_sdk.discarded-error",
                title="Error discarded with blank identifier",
                phase=X,
                trigger=r',\s*_\s*:?=(?!=)|^\s*_\s*=(?!=)',
                impact="indirect fund loss, permissionless, special conditions",
                description="A failed keeper call is ignored and execution continues on a partial state transition.",
            ),
        ],
        # A chain halt stops every account on the network.
        severity_overrides={
            "temporary DoS, permissionless, no special conditions": "CRITICAL/HIGH",
        },
        ordering_reference="Balance checked for negativity after the keeper already applied the delta",
    )


# =============================================================================
# SOLIDITY / EVM
# =============================================================================

def create_solidity_profile() -> EcosystemProfile:
    """
    Solidity contracts.

    Mapping loads into typed locals and ERC-20 / AMM getters are snapshots;
    mapping writes, plain state assignments and deletes commit.
    """
    return EcosystemProfile(
        id="solidity.default",
        version="1.0.0",
        ecosystem=Ecosystem.SOLIDITY,
        lexicon=[
            LexiconRule(S, r'\b(?:uint\d*|int\d*|address|bool|bytes\d*)\s+(?:memory\s+|storage\s+)?\w+\s*=\s*\w+(?:\[[^\]\n]+\])+'),
            LexiconRule(S, r'\b\w+\s+(?:memory|storage)\s+\w+\s*='),
            LexiconRule(S, r'\.(?:balanceOf|totalSupply|getReserves)\s*\('),
            LexiconRule(A, r'\bmulDiv\w*\s*\('),
            LexiconRule(A, r'\bconvertTo(?:Shares|Assets)\s*\('),
            LexiconRule(A, r'\bpreview(?:Deposit|Mint|Withdraw|Redeem)\s*\('),
            LexiconRule(A, r'\b\w+(?:\.\w+)*\s*\*\s*\w+(?:\.\w+)*\s*/\s*\w+'),
            LexiconRule(V, r'\brequire\s*\('),
            LexiconRule(V, r'\bassert\s*\('),
            LexiconRule(V, r'\bif\s*\([^)\n]*\)\s*\{?\s*revert\b'),
            LexiconRule(V, r'\bonly[A-Z]\w*\b'),
            LexiconRule(M, r'(?:\+=|-=|\*=|/=)'),
            LexiconRule(M, r'(?:\+\+|--)'),
            LexiconRule(C, r'\b\w+(?:\[[^\]\n]+\])+\s*[+\-*/]?=(?!=)'),
            LexiconRule(C, r'^\s*[A-Za-z_]\w*(?:\.\w+)*\s*=(?!=)'),
            LexiconRule(C, r'\bdelete\s+\w+'),
            LexiconRule(E, r'\bemit\s+[A-Z]\w*\s*\('),
            LexiconRule(X, r'\brevert\b'),
            LexiconRule(X, r'\bcatch\b'),
        ],
        external_calls=[
            CallPattern(r'\.(?P<callee>call|delegatecall|staticcall)\s*(?:\{[^}]*\})?\s*\(',
                        "low-level call"),
            CallPattern(r'\bI[A-Z]\w*\s*\([^)\n]*\)\s*\.\s*(?P<callee>\w+)\s*\(',
                        "interface call on another contract"),
            CallPattern(r'\.(?P<callee>transfer|send|safeTransfer|safeTransferFrom|transferFrom)\s*\(',
                        "token or ether transfer"),
        ],
        dead_guards=[
            r'\bif\s*\(\s*false\s*\)',
            r'\brequire\s*\(\s*false\b',
        ],
        exploits=[
            ExploitReference(
                id="solidity.reentrancy",
                title="Reentrancy through external call before state update",
                phase=S,
                requires=frozenset({S, C}),
                trigger=r'\.call\s*\{',
                incident="The DAO (2016)",
                impact="direct fund loss, permissionless, no special conditions",
                description="Balance is read, ether is sent, and only then is the balance cleared; the callee re-enters.",
                stale_read=True,
            ),
            ExploitReference(
                id="solidity.missing-access-control",
                title="Privileged state change without access control",
                phase=C,
                excludes=frozenset({V}),
                trigger=r'\bfunction\s+(?:init\w*|set[A-Z]\w*|kill|destroy|upgradeTo)\s*\(',
                incident="Parity multisig wallet (2017)",
                impact="access-control bypass, permissionless, no special conditions",
                description="Initializer or admin setter is callable by anyone.",
            ),
            ExploitReference(
                id="solidity.spot-price-oracle",
                title="Price derived from manipulable spot reserves",
                phase=A,
                requires=frozenset({S, A}),
                trigger=r'\bgetReserves\s*\(|\bbalanceOf\s*\(\s*address\s*\(\s*this\s*\)\s*\)',
                incident="bZx (2020), Harvest Finance (2020)",
                impact="direct fund loss, permissionless, special conditions",
                description="A flash loan moves the spot price inside one transaction.",
            ),
            ExploitReference(
                id="solidity.share-inflation",
                title="First-depositor share inflation",
                phase=A,
                trigger=r'\btotalSupply\s*\(\s*\)|\bconvertToShares\s*\(',
                incident="Hundred Finance (2023)",
                impact="direct fund loss, permissionless, special conditions",
                description="Donating to an empty vault inflates the share price so later deposits round to zero shares.",
            ),
            ExploitReference(
                id="solidity.unchecked-send",
                title="Return value of low-level send ignored",
                phase=C,
                excludes=frozenset({X}),
                trigger=r'^\s*(?:payable\s*\()?[\w.\[\]]+\)?\.(?:send|call)\b',
                incident="King of the Ether (2016)",
                impact="indirect fund loss, permissionless, special conditions",
                description="A failed send is ignored and the state update proceeds as if payment succeeded.",
            ),
        ],
        ordering_reference="State updated before the require guarding it",
    )


# =============================================================================
# RUST / COSMWASM
# =============================================================================

def create_cosmwasm_profile() -> EcosystemProfile:
    """
    CosmWasm contracts (cw-storage-plus items and maps).
    """
    return EcosystemProfile(
        id="cosmwasm.default",
        version="1.0.0",
        ecosystem=Ecosystem.COSMWASM,
        lexicon=[
            LexiconRule(S, r'\.(?:load|may_load)\s*\('),
            LexiconRule(S, r'\.query_(?:balance|all_balances)\s*\('),
            LexiconRule(A, r'\.multiply_ratio\s*\('),
            LexiconRule(A, r'\.checked_(?:mul|div)\s*\('),
            LexiconRule(A, r'\bDecimal(?:256)?::'),
            LexiconRule(V, r'\bensure(?:_eq|_ne)?!\s*\('),
            LexiconRule(V, r'\bif\b[^{\n]*\{\s*return\s+Err\('),
            LexiconRule(V, r'\b(?:must_pay|nonpayable|assert_\w+)\s*\('),
            LexiconRule(V, r'\.addr_validate\s*\('),
            LexiconRule(M, r'\.(?:checked|saturating|wrapping)_(?:add|sub)\s*\('),
            LexiconRule(M, r'(?:\+=|-=)'),
            LexiconRule(C, r'\.(?:save|update|remove)\s*\('),
            LexiconRule(E, r'\.add_event\s*\('),
            LexiconRule(E, r'\.add_attributes?\s*\('),
            LexiconRule(E, r'\bEvent::new\s*\('),
            LexiconRule(X, r'\.unwrap\s*\(\s*\)'),
            LexiconRule(X, r'\.expect\s*\('),
            LexiconRule(X, r'\bpanic!\s*\('),
            LexiconRule(X, r'\bunreachable!\s*\('),
        ],
        external_calls=[
            CallPattern(r'\bWasmMsg::(?P<callee>Execute|Instantiate|Migrate)\b', "message to another contract"),
            CallPattern(r'\bBankMsg::(?P<callee>Send|Burn)\b', "bank module message"),
            CallPattern(r'\.(?P<callee>query_wasm_smart)\s*\(', "smart query to another contract"),
            CallPattern(r'\bSubMsg::(?P<callee>\w+)\s*\(', "submessage with reply"),
        ],
        dead_guards=[
            r'\bif\s+false\s*\{',
            r'#\[cfg\(test\)\]',
        ],
        exploits=[
            ExploitReference(
                id="cosmwasm.duplicate-ids",
                title="Duplicate identifiers processed more than once",
                phase=C,
                requires=frozenset({S, C}),
                trigger=r'\bfor\s+\w+\s+in\s+\w*ids\b',
                incident="Mirror Protocol (2021)",
                impact="direct fund loss, permissionless, no special conditions",
                description="A caller-supplied id list is not deduplicated; the same position is unlocked repeatedly.",
            ),
            ExploitReference(
                id="cosmwasm.missing-sender-check",
                title="State update without sender authorization",
                phase=C,
                excludes=frozenset({V}),
                trigger=r'\bExecuteMsg::|\binfo\b',
                impact="access-control bypass, permissionless, no special conditions",
                description="Execute handler writes state without checking info.sender against the owner.",
            ),
            ExploitReference(
                id="cosmwasm.ratio-rounding",
                title="Share ratio rounds in favour of the user",
                phase=A,
                trigger=r'\.multiply_ratio\s*\(',
                impact="indirect fund loss, permissionless, special conditions",
                description="multiply_ratio floors; mint and burn paths must round against the caller.",
            ),
            ExploitReference(
                id="cosmwasm.unwrap-panic",
                title="Panicking unwrap on caller-controlled data",
                phase=X,
                trigger=r'\.unwrap\s*\(\s*\)',
                impact="temporary DoS, permissionless, no special conditions",
                description="An unwrap on user input aborts the transaction and can block a shared queue.",
            ),
        ],
        ordering_reference="Storage updated before ensure! checks the new value",
    )


# =============================================================================
# CAIRO / STARKNET
# =============================================================================

def create_cairo_profile() -> EcosystemProfile:
    """
    Cairo 1 StarkNet contracts (storage variables accessed with read/write).
    """
    return EcosystemProfile(
        id="cairo.default",
        version="1.0.0",
        ecosystem=Ecosystem.CAIRO,
        lexicon=[
            LexiconRule(S, r'\.read\s*\('),
            LexiconRule(A, r'\bu256_(?:mul|div)\w*\s*\('),
            LexiconRule(A, r'\bmul_div\w*\s*\('),
            LexiconRule(A, r'\b(?:total_)?shares\b'),
            LexiconRule(V, r'\bassert\s*\('),
            LexiconRule(V, r'\bassert!\s*\('),
            LexiconRule(V, r'\bassert_\w+\s*\('),
            LexiconRule(M, r'(?:\+=|-=)'),
            LexiconRule(M, r'\blet\s+(?:mut\s+)?\w+(?:\s*:\s*\w+)?\s*=\s*[\w.()]+\s*[+\-]\s*[\w.()]+'),
            LexiconRule(C, r'\.write\s*\('),
            LexiconRule(E, r'\bself\.emit\s*\('),
            LexiconRule(E, r'\bemit_event_syscall\s*\('),
            LexiconRule(X, r'\bpanic_with_felt252\s*\('),
            LexiconRule(X, r'\bpanic!\s*\('),
            LexiconRule(X, r'\.unwrap\s*\(\s*\)'),
            LexiconRule(X, r'\.expect\s*\('),
        ],
        external_calls=[
            CallPattern(r'\b(?P<callee>call_contract_syscall)\s*\(', "raw contract call"),
            CallPattern(r'\b(?P<callee>library_call_syscall)\s*\(', "library call"),
            CallPattern(r'\b\w*Dispatcher\s*\{[^}]*\}\s*\.(?P<callee>\w+)\s*\(', "dispatcher call"),
        ],
        dead_guards=[
            r'\bif\s+false\s*\{',
        ],
        exploits=[
            ExploitReference(
                id="cairo.accumulator-rounding",
                title="Lending accumulator manipulated through rounding",
                phase=A,
                trigger=r'\b\w*accumulator\w*\b|\bmul_div\w*\s*\(',
                incident="zkLend (2025)",
                impact="direct fund loss, permissionless, special conditions",
                description="Repeated tiny deposits and withdrawals inflate the accumulator through rounding.",
            ),
            ExploitReference(
                id="cairo.missing-caller-check",
                title="Storage write without caller check",
                phase=C,
                excludes=frozenset({V}),
                trigger=r'\bfn\s+(?:set_\w+|initialize\w*|upgrade)\s*\(',
                impact="access-control bypass, permissionless, no special conditions",
                description="Admin entry point does not compare get_caller_address() with the owner.",
            ),
        ],
        ordering_reference="Storage variable decreased before the assert bounding it",
    )


# =============================================================================
# ALGORAND / PYTEAL
# =============================================================================

def create_pyteal_profile() -> EcosystemProfile:
    """
    PyTeal expressions for Algorand smart contracts.
    """
    return EcosystemProfile(
        id="pyteal.default",
        version="1.0.0",
        ecosystem=Ecosystem.PYTEAL,
        lexicon=[
            LexiconRule(S, r'\bApp\.(?:globalGet|localGet)(?:Ex)?\s*\('),
            LexiconRule(S, r'\bAssetHolding\.\w+\s*\('),
            LexiconRule(S, r'\bBalance\s*\('),
            LexiconRule(A, r'\b(?:Mul|Div|WideRatio)\s*\('),
            LexiconRule(V, r'\bAssert\s*\('),
            LexiconRule(V, r'\bTxn\.sender\s*\(\s*\)\s*=='),
            LexiconRule(M, r'\.store\s*\('),
            LexiconRule(M, r'\b(?:Add|Minus)\s*\('),
            LexiconRule(C, r'\bApp\.(?:globalPut|localPut|globalDel|localDel|box_put|box_delete)\s*\('),
            LexiconRule(E, r'\bLog\s*\('),
            LexiconRule(X, r'\bReject\s*\(\s*\)'),
            LexiconRule(X, r'\bErr\s*\(\s*\)'),
        ],
        external_calls=[
            CallPattern(r'\bInnerTxnBuilder\.(?P<callee>Execute|Submit|MethodCall)\s*\(', "inner transaction"),
            CallPattern(r'\bApp\.(?P<callee>globalGetEx|localGetEx)\s*\(', "read of another application's state"),
        ],
        dead_guards=[
            r'\bIf\s*\(\s*Int\s*\(\s*0\s*\)',
        ],
        exploits=[
            ExploitReference(
                id="pyteal.unvalidated-asset-id",
                title="Asset id in grouped transaction not validated",
                phase=S,
                trigger=r'\bxfer_asset\s*\(\s*\)|\bTxn\.assets\[',
                incident="Tinyman (2022)",
                impact="direct fund loss, permissionless, no special conditions",
                description="Burn returns the asset named by the caller instead of the pool's asset.",
            ),
            ExploitReference(
                id="pyteal.missing-sender-check",
                title="Global state written without sender check",
                phase=C,
                excludes=frozenset({V}),
                impact="access-control bypass, permissionless, no special conditions",
                description="Application call updates global state for any sender.",
            ),
        ],
        ordering_reference="Scratch value stored before the Assert bounding it",
    )


# =============================================================================
# REGISTRY FACTORY
# =============================================================================

def builtin_profiles():
    """All built-in profiles, in ecosystem order."""
    return [
        create_solidity_profile(),
        create_cosmwasm_profile(),
        create_cosmos_sdk_profile(),
        create_cairo_profile(),
        create_pyteal_profile(),
    ]


def create_default_registry() -> ProfileRegistry:
    """
    Create a registry pre-loaded with the built-in profile of every ecosystem.

    Returns:
        ProfileRegistry with all built-in profiles registered
    """
    registry = ProfileRegistry()
    for profile in builtin_profiles():
        registry.register(profile)
    return registry


def create_configured_registry() -> ProfileRegistry:
    """
    Built-in profiles plus the custom profile files named by
    PHASEGATE_PROFILE_PATH. A custom profile becomes the default for its
    ecosystem.
    """
    from . import config

    registry = create_default_registry()
    for data in config.load_custom_profiles():
        registry.register(EcosystemProfile.from_dict(data))
    return registry
