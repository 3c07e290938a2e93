"""Contract ABIs and log-argument translation for both ledgers."""

from typing import Any, Dict, List, Mapping

from ..core.enums import EventKind, LedgerSide
from ..domain.events import EVENT_MODELS, BaseEvent


def _param(name: str, type_: str, indexed: bool = False) -> Dict[str, Any]:
    return {"name": name, "type": type_, "indexed": indexed}


def _event(name: str, *inputs: Dict[str, Any]) -> Dict[str, Any]:
    return {"type": "event", "name": name, "anonymous": False, "inputs": list(inputs)}


def _function(
    name: str, inputs: List[Dict[str, Any]], outputs: List[Dict[str, Any]], view: bool = True
) -> Dict[str, Any]:
    return {
        "type": "function",
        "name": name,
        "stateMutability": "view" if view else "nonpayable",
        "inputs": [{"name": i["name"], "type": i["type"]} for i in inputs],
        "outputs": [{"name": o["name"], "type": o["type"]} for o in outputs],
    }


LIFE_SIGNAL_REGISTRY_ABI: List[Dict[str, Any]] = [
    # Events
    _event("OwnerRegistered", _param("owner", "address", True), _param("firstName", "string"), _param("lastName", "string")),
    _event("ContactAdded", _param("owner", "address", True), _param("contact", "address", True), _param("hasVotingRight", "bool")),
    _event("ContactVerified", _param("owner", "address", True), _param("contact", "address", True)),
    _event("HeartbeatSent", _param("owner", "address", True), _param("timestamp", "uint256")),
    _event("DeathDeclared", _param("owner", "address", True), _param("declaredBy", "address", True), _param("timestamp", "uint256")),
    _event("VoteCast", _param("owner", "address", True), _param("voter", "address", True), _param("vote", "bool")),
    _event("ConsensusReached", _param("owner", "address", True), _param("isDeceased", "bool"), _param("timestamp", "uint256")),
    # Functions
    _function(
        "getOwnerInfo",
        [_param("_owner", "address")],
        [
            _param("firstName", "string"),
            _param("lastName", "string"),
            _param("lastHeartbeat", "uint256"),
            _param("graceInterval", "uint256"),
            _param("isDeceased", "bool"),
            _param("exists", "bool"),
        ],
    ),
    _function(
        "getDeathDeclarationStatus",
        [_param("_owner", "address")],
        [
            _param("isActive", "bool"),
            _param("startTime", "uint256"),
            _param("votesFor", "uint256"),
            _param("votesAgainst", "uint256"),
            _param("totalVotingContacts", "uint256"),
            _param("consensusReached", "bool"),
        ],
    ),
    _function(
        "getContactInfo",
        [_param("_owner", "address"), _param("_contact", "address")],
        [_param("hasVotingRight", "bool"), _param("isVerified", "bool"), _param("exists", "bool")],
    ),
    _function("getContactList", [_param("_owner", "address")], [_param("", "address[]")]),
    _function("hasVoted", [_param("_owner", "address"), _param("_voter", "address")], [_param("", "bool")]),
    _function("getVote", [_param("_owner", "address"), _param("_voter", "address")], [_param("", "bool")]),
]


GRACE_PERIOD_AUTOMATION_ABI: List[Dict[str, Any]] = [
    # Events
    _event("GracePeriodStarted", _param("ownerAddress", "address", True), _param("startTime", "uint256"), _param("graceInterval", "uint256")),
    _event("OwnerPinged", _param("ownerAddress", "address", True), _param("pingTime", "uint256")),
    _event("GracePeriodProcessed", _param("ownerAddress", "address", True), _param("isDead", "bool"), _param("processTime", "uint256")),
    _event("OwnerDataUpdated", _param("ownerAddress", "address", True), _param("graceInterval", "uint256"), _param("isDeceased", "bool")),
    _event("RelayAddressUpdated", _param("oldRelay", "address", True), _param("newRelay", "address", True)),
    # Functions
    _function(
        "updateOwnerData",
        [
            _param("ownerAddress", "address"),
            _param("graceInterval", "uint256"),
            _param("isDeceased", "bool"),
            _param("exists", "bool"),
        ],
        [],
        view=False,
    ),
    _function("startGracePeriod", [_param("ownerAddress", "address")], [], view=False),
    _function("recordPing", [_param("ownerAddress", "address")], [], view=False),
    _function(
        "getGracePeriodInfo",
        [_param("ownerAddress", "address")],
        [
            _param("startTime", "uint256"),
            _param("hasPinged", "bool"),
            _param("processed", "bool"),
            _param("graceInterval", "uint256"),
            _param("isDeceased", "bool"),
        ],
    ),
    _function(
        "getOwnerData",
        [_param("ownerAddress", "address")],
        [
            _param("graceInterval", "uint256"),
            _param("isDeceased", "bool"),
            _param("exists", "bool"),
            _param("lastUpdate", "uint256"),
        ],
    ),
    _function("relayAddress", [], [_param("", "address")]),
]


# Contract argument name -> event model field
_ARG_FIELDS = {
    "owner": "owner",
    "ownerAddress": "owner",
    "firstName": "first_name",
    "lastName": "last_name",
    "contact": "contact",
    "hasVotingRight": "has_voting_right",
    "timestamp": "timestamp",
    "declaredBy": "declared_by",
    "voter": "voter",
    "vote": "vote",
    "isDeceased": "is_deceased",
    "isDead": "is_dead",
    "processTime": "process_time",
    "startTime": "start_time",
    "graceInterval": "grace_interval",
    "pingTime": "ping_time",
    "oldRelay": "old_relay",
    "newRelay": "new_relay",
}


def event_signature(abi: List[Dict[str, Any]], name: str) -> str:
    """Canonical signature such as ``HeartbeatSent(address,uint256)``."""
    for entry in abi:
        if entry["type"] == "event" and entry["name"] == name:
            types = ",".join(i["type"] for i in entry["inputs"])
            return f"{name}({types})"
    raise KeyError(f"Event {name} not in ABI")


def event_from_log_args(
    kind: EventKind,
    ledger: LedgerSide,
    args: Mapping[str, Any],
    tx_hash: str,
    block_number: int,
    log_index: int,
) -> BaseEvent:
    """Build a domain event from decoded contract log arguments."""
    fields = {_ARG_FIELDS[name]: value for name, value in args.items() if name in _ARG_FIELDS}
    model = EVENT_MODELS[kind]
    return model(
        ledger=ledger,
        tx_hash=tx_hash,
        block_number=block_number,
        log_index=log_index,
        **fields,
    )
