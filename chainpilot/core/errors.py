"""Domain error taxonomy.

Every failure the core raises carries a stable ``ErrorCode`` plus a
human-readable message. The API layer turns these into the structured
error envelope; library callers can match on the subclass.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Standard error codes for domain failures."""

    INVALID_ADDRESS = "INVALID_ADDRESS"
    NO_CONTRACT = "NO_CONTRACT"
    SIGNER_REQUIRED = "SIGNER_REQUIRED"
    MISSING_DEPENDENCY = "MISSING_DEPENDENCY"
    CONDITION_FAILED = "CONDITION_FAILED"
    FUNCTION_NOT_FOUND = "FUNCTION_NOT_FOUND"
    STEP_EXECUTION_FAILED = "STEP_EXECUTION_FAILED"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    WORKFLOW_NOT_FOUND = "WORKFLOW_NOT_FOUND"
    SCHEMA_INVALID = "SCHEMA_INVALID"
    CHAIN_RPC_ERROR = "CHAIN_RPC_ERROR"
    TASK_UNRESOLVED = "TASK_UNRESOLVED"


class ChainPilotError(Exception):
    """Base class for domain errors with a structured code + message."""

    code: ErrorCode = ErrorCode.STEP_EXECUTION_FAILED

    def __init__(
        self,
        message: str,
        details: list[dict[str, Any]] | None = None,
    ) -> None:
        self.message = message
        self.details = details
        super().__init__(message)


class InvalidAddressError(ChainPilotError):
    """Raised when an address is not a 20-byte hex string."""

    code = ErrorCode.INVALID_ADDRESS

    def __init__(self, address: str) -> None:
        super().__init__("Invalid contract address format")
        self.address = address


class NoContractError(ChainPilotError):
    """Raised when the chain reports empty code at an address."""

    code = ErrorCode.NO_CONTRACT

    def __init__(self, address: str) -> None:
        super().__init__("No contract found at this address")
        self.address = address


class SignerRequiredError(ChainPilotError):
    """Raised before any chain write when no signer is connected."""

    code = ErrorCode.SIGNER_REQUIRED

    def __init__(self, message: str = "Wallet not connected - required for write operations") -> None:
        super().__init__(message)


class MissingDependencyError(ChainPilotError):
    code = ErrorCode.MISSING_DEPENDENCY

    def __init__(self, step_id: str, dependencies: list[str]) -> None:
        super().__init__(f"Missing dependencies for step: {step_id}")
        self.step_id = step_id
        self.dependencies = dependencies


class ConditionFailedError(ChainPilotError):
    code = ErrorCode.CONDITION_FAILED


class FunctionNotFoundError(ChainPilotError):
    code = ErrorCode.FUNCTION_NOT_FOUND


class StepExecutionError(ChainPilotError):
    code = ErrorCode.STEP_EXECUTION_FAILED


class ValidationFailedError(ChainPilotError):
    """Pre-flight checks (signer, balance) did not pass."""

    code = ErrorCode.VALIDATION_FAILED


class WorkflowNotFoundError(ChainPilotError):
    code = ErrorCode.WORKFLOW_NOT_FOUND

    def __init__(self, workflow_id: str) -> None:
        super().__init__(f"Workflow {workflow_id} not found")
        self.workflow_id = workflow_id


class SchemaValidationError(ChainPilotError):
    """Tool arguments rejected by the tool's input schema.

    Attributes:
        path: Dotted path to the invalid field (if applicable)
        schema_path: Path within the schema that was violated
    """

    code = ErrorCode.SCHEMA_INVALID

    def __init__(self, message: str, path: str = "", schema_path: str = "") -> None:
        super().__init__(message)
        self.path = path
        self.schema_path = schema_path


class ChainRPCError(ChainPilotError):
    """Transport or remote JSON-RPC failure."""

    code = ErrorCode.CHAIN_RPC_ERROR

    def __init__(self, message: str, rpc_code: int | None = None) -> None:
        super().__init__(message)
        self.rpc_code = rpc_code


class TaskInterpretationError(ChainPilotError):
    """An instruction lacks an entity its action builder requires."""

    code = ErrorCode.TASK_UNRESOLVED
