"""Shared enums used across the engine."""

from __future__ import annotations

import enum


# ── Contract model ───────────────────────────────────────────────────────────


class FunctionType(str, enum.Enum):
    """Kind of ABI entry a function record was built from."""

    FUNCTION = "function"
    CONSTRUCTOR = "constructor"
    FALLBACK = "fallback"
    RECEIVE = "receive"


class StateMutability(str, enum.Enum):
    """Solidity state mutability."""

    PURE = "pure"
    VIEW = "view"
    NONPAYABLE = "nonpayable"
    PAYABLE = "payable"

    @property
    def is_read(self) -> bool:
        return self in (StateMutability.PURE, StateMutability.VIEW)


class ToolCategory(str, enum.Enum):
    """How a generated tool touches the chain."""

    READ = "read"
    WRITE = "write"
    PAYABLE = "payable"

    @classmethod
    def for_mutability(cls, mutability: StateMutability) -> "ToolCategory":
        if mutability.is_read:
            return cls.READ
        if mutability == StateMutability.PAYABLE:
            return cls.PAYABLE
        return cls.WRITE


class RiskLevel(str, enum.Enum):
    """Contract risk classification."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# ── Task interpretation ──────────────────────────────────────────────────────


class Intent(str, enum.Enum):
    """User intent recognised in a free-form instruction."""

    DEPLOY = "deploy"
    CALL = "call"
    QUERY = "query"
    UPLOAD = "upload"
    ANALYZE = "analyze"
    TRANSFER = "transfer"
    APPROVE = "approve"
    MONITOR = "monitor"


class ActionType(str, enum.Enum):
    """Type of an executable action plan."""

    DEPLOY = "deploy_contract"
    CALL = "call_function"
    QUERY = "query_blockchain"
    UPLOAD = "upload_storage"
    ANALYZE = "analyze_contract"
    TRANSFER = "transfer_value"
    CUSTOM = "custom"


class TaskPriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# ── Workflows ────────────────────────────────────────────────────────────────


class WorkflowStatus(str, enum.Enum):
    """Lifecycle of a workflow execution."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class StepType(str, enum.Enum):
    """Workflow step kinds."""

    CONTRACT_CALL = "contract_call"
    VALUE_TRANSFER = "value_transfer"
    APPROVAL = "approval"
    VERIFICATION = "verification"
    WAIT = "wait"


class ConditionType(str, enum.Enum):
    """Gate checks evaluated before a workflow step runs."""

    BALANCE_CHECK = "balance_check"
    ALLOWANCE_CHECK = "allowance_check"
    OWNERSHIP_CHECK = "ownership_check"
    CUSTOM = "custom"


class WorkflowCategory(str, enum.Enum):
    DEFI = "defi"
    NFT = "nft"
    TOKEN = "token"
    GOVERNANCE = "governance"
    CUSTOM = "custom"
