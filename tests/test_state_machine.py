import hashlib
import json

import pytest

from app.modules.trades.state_machine import (
    TradeState, ActorRole, STATE_ORDER, TRANSITIONS,
    allowed_next_states, is_valid_transition, resolve_actor_role, role_allows,
    validate_consensus, build_signature, to_base36, can_sign, signature_party,
    merge_signatures, generate_trade_dna, parse_state,
)


def test_happy_path_is_a_chain():
    happy = [s for s in STATE_ORDER if s is not TradeState.CLOSED]
    for current, nxt in zip(happy, happy[1:]):
        assert is_valid_transition(current, nxt), f"{current} -> {nxt}"


def test_closed_is_terminal():
    assert allowed_next_states(TradeState.CLOSED) == []
    assert TRANSITIONS[TradeState.CLOSED] == ()


@pytest.mark.parametrize("state", [
    TradeState.DRAFT, TradeState.RFQ_OPEN, TradeState.QUOTED,
    TradeState.CONTRACTED, TradeState.ESCROW_REQUIRED,
])
def test_pre_escrow_states_can_close_but_not_dispute(state):
    assert is_valid_transition(state, TradeState.CLOSED)
    assert not is_valid_transition(state, TradeState.DISPUTED)


@pytest.mark.parametrize("state", [
    TradeState.ESCROW_FUNDED, TradeState.PRODUCTION, TradeState.PICKUP_SCHEDULED,
    TradeState.IN_TRANSIT, TradeState.DELIVERED, TradeState.ACCEPTED,
])
def test_post_escrow_states_can_dispute_but_not_close(state):
    assert is_valid_transition(state, TradeState.DISPUTED)
    assert not is_valid_transition(state, TradeState.CLOSED)


def test_dispute_resolves_to_settled_or_closed():
    assert set(allowed_next_states(TradeState.DISPUTED)) == {TradeState.SETTLED, TradeState.CLOSED}


def test_skipping_states_is_illegal():
    assert not is_valid_transition(TradeState.RFQ_OPEN, TradeState.CONTRACTED)
    assert not is_valid_transition(TradeState.ESCROW_FUNDED, TradeState.IN_TRANSIT)


def test_parse_state():
    assert parse_state("quoted") is TradeState.QUOTED
    assert parse_state(None, TradeState.DRAFT) is TradeState.DRAFT
    assert parse_state("shipped") is None


def test_resolve_actor_role():
    trade = {"buyer_id": "b", "seller_id": "s"}
    assert resolve_actor_role({"company_id": "b"}, trade) is ActorRole.BUYER
    assert resolve_actor_role({"company_id": "s"}, trade) is ActorRole.SELLER
    assert resolve_actor_role({"company_id": "x", "is_admin": True}, trade) is ActorRole.ADMIN
    assert resolve_actor_role({"company_id": "x"}, trade) is ActorRole.UNKNOWN
    assert resolve_actor_role(None, trade) is ActorRole.UNKNOWN


def test_role_guards():
    assert role_allows(ActorRole.SELLER, TradeState.PRODUCTION)
    assert not role_allows(ActorRole.BUYER, TradeState.PRODUCTION)
    assert role_allows(ActorRole.BUYER, TradeState.ACCEPTED)
    assert not role_allows(ActorRole.SELLER, TradeState.ACCEPTED)
    # Unguarded targets accept any resolved role
    assert role_allows(ActorRole.SELLER, TradeState.DISPUTED)


def test_consensus_requires_three_keys():
    check = validate_consensus({"signatures": ["BUYER_SIG_abc_1234"]}, None)
    assert not check.compliant
    assert set(check.missing) == {"AI_SENTINEL_SIG", "LOGISTICS_ORACLE_SIG"}

    check = validate_consensus(
        {"signatures": ["BUYER_SIG_abc_1234"]},
        {"signatures": ["AI_SENTINEL_SIG_x_1234", "LOGISTICS_ORACLE_SIG_y_1234"]},
    )
    assert check.compliant
    assert check.missing == []
    assert len(check.signatures) == 3


def test_merge_signatures_keeps_order_and_drops_duplicates():
    assert merge_signatures(["a", "b"], ["b", "c"], None) == ["a", "b", "c"]


def test_build_signature_format():
    assert to_base36(0) == "0"
    assert to_base36(35) == "Z"
    assert to_base36(36) == "10"
    sig = build_signature("buyer", "abcd-1234", now_ms=36)
    assert sig == "BUYER_SIG_10_abcd"
    assert build_signature("seller", "f00d", now_ms=1767225600000) == "SELLER_SIG_MJUOHS00_f00d"
    assert build_signature("unknown", "abcd", now_ms=1).startswith("HUMAN_SIG_")


def test_signing_rights_follow_role():
    assert signature_party("LOGISTICS_ORACLE_SIG_x_1") == "LOGISTICS"
    assert can_sign(ActorRole.BUYER, "BUYER_SIG_x_1")
    assert not can_sign(ActorRole.BUYER, "SELLER_SIG_x_1")
    assert not can_sign(ActorRole.SELLER, "AI_SENTINEL_SIG_x_1")
    assert can_sign(ActorRole.ADMIN, "AI_SENTINEL_SIG_x_1")
    assert not can_sign(ActorRole.ADMIN, "forged")


def test_trade_dna_is_deterministic_sha256_prefix():
    ts = "2026-01-01T00:00:00.000Z"
    dna = generate_trade_dna("t1", "quoted", "contracted", "u1", {"k": 1}, "salt", ts)
    data = json.dumps({
        "tradeId": "t1", "fromState": "quoted", "toState": "contracted",
        "actorId": "u1", "payload": {"k": 1}, "salt": "salt", "timestamp": ts,
    }, separators=(",", ":"))
    assert dna == "AFK-DNA-" + hashlib.sha256(data.encode()).hexdigest()[:16].upper()
    assert dna == generate_trade_dna("t1", "quoted", "contracted", "u1", {"k": 1}, "salt", ts)
    assert dna != generate_trade_dna("t1", "quoted", "contracted", "u1", {"k": 1}, "other", ts)
