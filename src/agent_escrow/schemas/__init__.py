"""Pydantic API schemas."""

from agent_escrow.schemas.jobs import (
    CreateJobRequest,
    ErrorResponse,
    HealthResponse,
    JobCountResponse,
    JobResponse,
    ServiceInfoResponse,
    SubmitWorkRequest,
    TransactionResponse,
)

__all__ = [
    "CreateJobRequest",
    "ErrorResponse",
    "HealthResponse",
    "JobCountResponse",
    "JobResponse",
    "ServiceInfoResponse",
    "SubmitWorkRequest",
    "TransactionResponse",
]
