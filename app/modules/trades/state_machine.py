"""
Trade kernel state machine - pure rules, no database access.

State flow:
    draft → rfq_open → quoted → contracted → escrow_required → escrow_funded
          → production → pickup_scheduled → in_transit → delivered → accepted
          → settled → closed

    Any pre-escrow state may be closed; any post-escrow state may be disputed.
    A dispute ends settled or closed.

Settlement needs three signatures in trade.metadata.signatures:
AI_SENTINEL_*, LOGISTICS_ORACLE_* and BUYER_SIG_*.
"""

import hashlib
import json
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional


class TradeState(str, Enum):
    DRAFT = "draft"
    RFQ_OPEN = "rfq_open"
    QUOTED = "quoted"
    CONTRACTED = "contracted"
    ESCROW_REQUIRED = "escrow_required"
    ESCROW_FUNDED = "escrow_funded"
    PRODUCTION = "production"
    PICKUP_SCHEDULED = "pickup_scheduled"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    ACCEPTED = "accepted"
    SETTLED = "settled"
    DISPUTED = "disputed"
    CLOSED = "closed"


class ActorRole(str, Enum):
    BUYER = "buyer"
    SELLER = "seller"
    ADMIN = "admin"
    UNKNOWN = "unknown"


STATE_LABELS = {
    TradeState.DRAFT: "Draft",
    TradeState.RFQ_OPEN: "RFQ Open",
    TradeState.QUOTED: "Quoted",
    TradeState.CONTRACTED: "Contracted",
    TradeState.ESCROW_REQUIRED: "Escrow Required",
    TradeState.ESCROW_FUNDED: "Escrow Funded",
    TradeState.PRODUCTION: "In Production",
    TradeState.PICKUP_SCHEDULED: "Pickup Scheduled",
    TradeState.IN_TRANSIT: "In Transit",
    TradeState.DELIVERED: "Delivered",
    TradeState.ACCEPTED: "Accepted",
    TradeState.SETTLED: "Settled",
    TradeState.DISPUTED: "Disputed",
    TradeState.CLOSED: "Closed",
}

# Display order for progress bars; disputed sits outside the happy path
STATE_ORDER = [s for s in TradeState if s is not TradeState.DISPUTED]

TRANSITIONS = {
    TradeState.DRAFT: (TradeState.RFQ_OPEN, TradeState.CLOSED),
    TradeState.RFQ_OPEN: (TradeState.QUOTED, TradeState.CLOSED),
    TradeState.QUOTED: (TradeState.CONTRACTED, TradeState.CLOSED),
    TradeState.CONTRACTED: (TradeState.ESCROW_REQUIRED, TradeState.CLOSED),
    TradeState.ESCROW_REQUIRED: (TradeState.ESCROW_FUNDED, TradeState.CLOSED),
    TradeState.ESCROW_FUNDED: (TradeState.PRODUCTION, TradeState.DISPUTED),
    TradeState.PRODUCTION: (TradeState.PICKUP_SCHEDULED, TradeState.DISPUTED),
    TradeState.PICKUP_SCHEDULED: (TradeState.IN_TRANSIT, TradeState.DISPUTED),
    TradeState.IN_TRANSIT: (TradeState.DELIVERED, TradeState.DISPUTED),
    TradeState.DELIVERED: (TradeState.ACCEPTED, TradeState.DISPUTED),
    TradeState.ACCEPTED: (TradeState.SETTLED, TradeState.DISPUTED),
    TradeState.SETTLED: (TradeState.CLOSED,),
    TradeState.DISPUTED: (TradeState.SETTLED, TradeState.CLOSED),
    TradeState.CLOSED: (),
}

# Target state -> roles allowed to move a trade into it. Unlisted targets accept any resolved role.
ROLE_GUARDS = {
    TradeState.RFQ_OPEN: {ActorRole.BUYER, ActorRole.ADMIN},
    TradeState.QUOTED: {ActorRole.BUYER, ActorRole.SELLER, ActorRole.ADMIN},
    TradeState.CONTRACTED: {ActorRole.BUYER, ActorRole.ADMIN},
    TradeState.ESCROW_FUNDED: {ActorRole.BUYER, ActorRole.ADMIN},
    TradeState.PRODUCTION: {ActorRole.SELLER, ActorRole.ADMIN},
    TradeState.PICKUP_SCHEDULED: {ActorRole.SELLER, ActorRole.ADMIN},
    TradeState.IN_TRANSIT: {ActorRole.SELLER, ActorRole.ADMIN},
    TradeState.DELIVERED: {ActorRole.SELLER, ActorRole.ADMIN},
    TradeState.ACCEPTED: {ActorRole.BUYER, ActorRole.ADMIN},
    TradeState.SETTLED: {ActorRole.BUYER, ActorRole.ADMIN},
}

TERMINAL_STATES = {TradeState.CLOSED}

SIGNATURE_PREFIXES = {
    "BUYER": "BUYER_SIG_",
    "SELLER": "SELLER_SIG_",
    "PROTOCOL": "PROTOCOL_SIG_",
    "LOGISTICS": "LOGISTICS_ORACLE_SIG_",
    "AI": "AI_SENTINEL_SIG_",
}
DEFAULT_SIGNATURE_PREFIX = "HUMAN_SIG_"

# Missing-key label -> signature prefix that satisfies it
CONSENSUS_KEYS = {
    "AI_SENTINEL_SIG": "AI_SENTINEL_",
    "LOGISTICS_ORACLE_SIG": "LOGISTICS_ORACLE_",
    "BUYER_SIG": "BUYER_SIG_",
}

# Parties each actor role may sign for
SIGNING_PARTIES = {
    ActorRole.BUYER: {"BUYER"},
    ActorRole.SELLER: {"SELLER"},
    ActorRole.ADMIN: set(SIGNATURE_PREFIXES) | {"HUMAN"},
}

_PARTY_BY_PREFIX = (
    ("BUYER_SIG_", "BUYER"),
    ("SELLER_SIG_", "SELLER"),
    ("PROTOCOL_SIG_", "PROTOCOL"),
    ("LOGISTICS_ORACLE_", "LOGISTICS"),
    ("AI_SENTINEL_", "AI"),
    (DEFAULT_SIGNATURE_PREFIX, "HUMAN"),
)


def signature_party(signature: str) -> Optional[str]:
    for prefix, party in _PARTY_BY_PREFIX:
        if signature.startswith(prefix):
            return party
    return None


def can_sign(role: ActorRole, signature: str) -> bool:
    party = signature_party(signature)
    return party is not None and party in SIGNING_PARTIES.get(role, set())


def parse_state(value: Optional[str], default: Optional[TradeState] = None) -> Optional[TradeState]:
    if value is None or value == "":
        return default
    try:
        return TradeState(value)
    except ValueError:
        return None


def allowed_next_states(state: TradeState) -> List[TradeState]:
    return list(TRANSITIONS.get(state, ()))


def is_valid_transition(from_state: TradeState, to_state: TradeState) -> bool:
    return to_state in TRANSITIONS.get(from_state, ())


def resolve_actor_role(profile: Optional[Dict[str, Any]], trade: Dict[str, Any]) -> ActorRole:
    """Role of the acting user on this particular trade."""
    profile = profile or {}
    if profile.get("is_admin"):
        return ActorRole.ADMIN
    company_id = profile.get("company_id")
    if company_id and company_id == trade.get("buyer_id"):
        return ActorRole.BUYER
    if company_id and company_id == trade.get("seller_id"):
        return ActorRole.SELLER
    return ActorRole.UNKNOWN


def role_allows(role: ActorRole, target: TradeState) -> bool:
    allowed = ROLE_GUARDS.get(target)
    return allowed is None or role in allowed


def merge_signatures(*groups: Optional[Iterable[str]]) -> List[str]:
    """Order-preserving union of signature lists."""
    merged = []
    for group in groups:
        for sig in group or []:
            if sig not in merged:
                merged.append(sig)
    return merged


@dataclass
class ConsensusCheck:
    compliant: bool
    missing: List[str] = field(default_factory=list)
    signatures: List[str] = field(default_factory=list)


def validate_consensus(trade_metadata: Optional[Dict[str, Any]], metadata: Optional[Dict[str, Any]]) -> ConsensusCheck:
    signatures = merge_signatures(
        (trade_metadata or {}).get("signatures"),
        (metadata or {}).get("signatures"),
    )
    missing = [
        key for key, prefix in CONSENSUS_KEYS.items()
        if not any(s.startswith(prefix) for s in signatures)
    ]
    return ConsensusCheck(compliant=not missing, missing=missing, signatures=signatures)


def to_base36(number: int) -> str:
    digits = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
    if number == 0:
        return "0"
    out = []
    while number:
        number, rem = divmod(number, 36)
        out.append(digits[rem])
    return "".join(reversed(out))


def build_signature(party: str, trade_id: str, now_ms: Optional[int] = None) -> str:
    """<PREFIX><base36 ms timestamp>_<first 4 chars of trade id>"""
    prefix = SIGNATURE_PREFIXES.get(party.upper(), DEFAULT_SIGNATURE_PREFIX)
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{prefix}{to_base36(now_ms)}_{trade_id[:4]}"


def utc_timestamp() -> str:
    """ISO-8601 UTC with millisecond precision and Z suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def generate_trade_dna(
    trade_id: str,
    from_state: str,
    to_state: str,
    actor_id: str,
    payload: Dict[str, Any],
    salt: str,
    timestamp: Optional[str] = None,
) -> str:
    """Fingerprint of a transition: AFK-DNA- + first 16 hex chars of its SHA-256, upper-cased."""
    data = json.dumps({
        "tradeId": trade_id,
        "fromState": from_state,
        "toState": to_state,
        "actorId": actor_id,
        "payload": payload,
        "salt": salt,
        "timestamp": timestamp or utc_timestamp(),
    }, separators=(",", ":"), default=str)
    digest = hashlib.sha256(data.encode("utf-8")).hexdigest()
    return f"AFK-DNA-{digest[:16].upper()}"
