"""
Models for upgrade run reporting.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from diamond_cutter.domain.models.cut import CutPayload


class UpgradeState(str, Enum):
    """Orchestrator state machine."""

    IDLE = "idle"
    MODULES_DEPLOYED = "modules_deployed"
    SELECTORS_RESOLVED = "selectors_resolved"
    CUT_SUBMITTED = "cut_submitted"
    INITIALIZED = "initialized"
    CONFIGURED = "configured"
    VERIFIED = "verified"
    COMPLETE = "complete"
    FAILED = "failed"


class StepStatus(str, Enum):
    """Outcome of one reported step."""

    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class StepResult(BaseModel):
    """Result of one step of the run."""

    step: str = Field(..., description="Step name, e.g. deploy:AdminFacet")
    status: StepStatus
    detail: Optional[str] = None


class TransactionOutcome(BaseModel):
    """What the ledger reported for one submitted transaction."""

    success: bool
    tx_hash: Optional[str] = None
    contract_address: Optional[str] = None
    error: Optional[str] = None
    timed_out: bool = False


class CallResult(BaseModel):
    """What the ledger returned for one read-only call."""

    success: bool
    data: bytes = b""
    error: Optional[str] = None


class FailureReport(BaseModel):
    """Details of the fatal error that halted a run."""

    step: str
    error_code: str
    message: str
    payload: Optional[Any] = None
    details: Dict[str, Any] = Field(default_factory=dict)


class DeploymentManifest(BaseModel):
    """External-facing record of a completed run. Field set is additive-only."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    proxy_address: str = Field(..., alias="proxyAddress")
    modules: Dict[str, str] = Field(..., description="Module label to address")
    deployer: str
    timestamp_utc: datetime = Field(..., alias="timestampUTC")
    facet_address_list: List[str] = Field(..., alias="facetAddressList")
    network: Optional[str] = None
    chain_id: Optional[int] = Field(None, alias="chainId")
    warnings: List[str] = Field(default_factory=list)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)


class UpgradeReport(BaseModel):
    """Everything a run produced, successful or not."""

    state: UpgradeState
    steps: List[StepResult] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    cut: Optional[CutPayload] = None
    manifest: Optional[DeploymentManifest] = None
    failure: Optional[FailureReport] = None

    @property
    def succeeded(self) -> bool:
        return self.state == UpgradeState.COMPLETE

    def step(self, name: str) -> Optional[StepResult]:
        return next((s for s in self.steps if s.step == name), None)
