"""ABI of the DonorVerification contract (contracts/DonorVerification.sol)."""


def _input(name: str, type_: str, indexed: bool = None) -> dict:
    item = {"name": name, "type": type_, "internalType": type_}
    if indexed is not None:
        item["indexed"] = indexed
    return item


def _function(name: str, inputs: list, outputs: list, mutability: str) -> dict:
    return {
        "type": "function",
        "name": name,
        "inputs": inputs,
        "outputs": outputs,
        "stateMutability": mutability,
    }


def _event(name: str, inputs: list) -> dict:
    return {"type": "event", "name": name, "inputs": inputs, "anonymous": False}


DONOR_VERIFICATION_ABI = [
    _function(
        "storeVerification",
        [_input("_donor", "address"), _input("_certHash", "bytes32"), _input("_eligible", "bool")],
        [],
        "nonpayable",
    ),
    _function(
        "verify",
        [_input("_donor", "address"), _input("_certHash", "bytes32")],
        [_input("eligible", "bool"), _input("timestamp", "uint256"), _input("matches", "bool")],
        "view",
    ),
    _function(
        "getRecord",
        [_input("_donor", "address")],
        [
            _input("certHash", "bytes32"),
            _input("eligible", "bool"),
            _input("timestamp", "uint256"),
            _input("exists", "bool"),
        ],
        "view",
    ),
    _function("hasRecord", [_input("_donor", "address")], [_input("", "bool")], "view"),
    _function("transferAdmin", [_input("_newAdmin", "address")], [], "nonpayable"),
    _function("admin", [], [_input("", "address")], "view"),
    _event(
        "VerificationCreated",
        [
            _input("donor", "address", True),
            _input("certHash", "bytes32", False),
            _input("eligible", "bool", False),
            _input("timestamp", "uint256", False),
            _input("writer", "address", True),
        ],
    ),
    _event(
        "VerificationUpdated",
        [
            _input("donor", "address", True),
            _input("oldHash", "bytes32", False),
            _input("newHash", "bytes32", False),
            _input("eligible", "bool", False),
            _input("timestamp", "uint256", False),
        ],
    ),
    _event(
        "AdminTransferred",
        [_input("oldAdmin", "address", True), _input("newAdmin", "address", True)],
    ),
]
