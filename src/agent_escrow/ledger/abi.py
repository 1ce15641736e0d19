"""ABI of the deployed escrow contract (only the members we call)."""

from agent_escrow.domain.enums import EscrowAction


def _job_id_only(name: str) -> dict:
    return {
        "inputs": [{"type": "uint256", "name": "jobId"}],
        "name": name,
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    }


ESCROW_ABI: list[dict] = [
    {
        "inputs": [
            {"type": "address", "name": "worker"},
            {"type": "uint256", "name": "deadline"},
        ],
        "name": "createJob",
        "outputs": [{"type": "uint256", "name": "jobId"}],
        "stateMutability": "payable",
        "type": "function",
    },
    {
        "inputs": [
            {"type": "uint256", "name": "jobId"},
            {"type": "string", "name": "deliverable"},
        ],
        "name": "submitWork",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    _job_id_only("approveWork"),
    _job_id_only("cancelJob"),
    _job_id_only("disputeJob"),
    _job_id_only("resolveDispute"),
    {
        "inputs": [{"type": "uint256", "name": ""}],
        "name": "jobs",
        "outputs": [
            {"type": "address", "name": "employer"},
            {"type": "address", "name": "worker"},
            {"type": "uint256", "name": "amount"},
            {"type": "uint256", "name": "deadline"},
            {"type": "uint8", "name": "status"},
            {"type": "string", "name": "deliverable"},
            {"type": "uint256", "name": "disputeTime"},
        ],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "jobCount",
        "outputs": [{"type": "uint256", "name": ""}],
        "stateMutability": "view",
        "type": "function",
    },
]

# Contract function invoked for each action.
FUNCTION_NAMES: dict[EscrowAction, str] = {action: action.value for action in EscrowAction}

ZERO_ADDRESS = "0x" + "0" * 40
