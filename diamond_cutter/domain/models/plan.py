"""
Models for upgrade plans.

``UpgradePlan`` is the declarative file format (artifact names and call
lists). ``UpgradeSession`` is the resolved form the orchestrator runs, with
every module turned into a ModuleDescriptor.
"""

from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from diamond_cutter.core.exceptions import PlanValidationError
from diamond_cutter.domain.models.cut import CutAction
from diamond_cutter.domain.models.module import ModuleDescriptor


class ContractCall(BaseModel):
    """A call routed through the proxy."""

    label: Optional[str] = Field(None, description="Display name for reports")
    signature: str = Field(..., description="Canonical signature, e.g. setTreasury(address)")
    args: List[Any] = Field(default_factory=list, description="Arguments; ${...} placeholders allowed")

    @property
    def display_name(self) -> str:
        return self.label or self.signature


class ReadCall(ContractCall):
    """A read-only smoke test call."""

    output_types: List[str] = Field(default_factory=list, description="Return types to decode")


class CutInitializer(BaseModel):
    """Init delegate executed inside the cut transaction."""

    module: str = Field(..., description="Label of a module declared in the plan")
    call: ContractCall


class ProxyDeclaration(BaseModel):
    """Proxy to deploy when no existing proxy address is configured."""

    name: str
    bytecode: str
    constructor_types: List[str] = Field(default_factory=list)
    constructor_args: List[Any] = Field(default_factory=list)


def check_module_labels(names: List[str], cut_initializer: Optional[CutInitializer]) -> None:
    """Module labels must be unique and name the cut initializer's module."""
    duplicates = sorted({name for name in names if names.count(name) > 1})
    if duplicates:
        raise PlanValidationError(
            f"Duplicate module labels: {', '.join(duplicates)}",
            {"duplicates": duplicates},
        )
    if cut_initializer and cut_initializer.module not in names:
        raise PlanValidationError(f"Cut initializer module not declared: {cut_initializer.module}")


# Plan file format

class PlannedModule(BaseModel):
    """Module entry of a plan file."""

    artifact: str = Field(..., description="Contract name of the compiled artifact")
    label: Optional[str] = Field(None, description="Module label, defaults to the artifact name")
    address: Optional[str] = Field(None, description="Existing deployment; skips step 1 for this module")
    initializer: Optional[ContractCall] = None
    smoke_checks: List[ReadCall] = Field(default_factory=list)

    @property
    def name(self) -> str:
        return self.label or self.artifact


class PlannedProxy(BaseModel):
    """Proxy entry of a plan file."""

    artifact: str
    constructor_types: List[str] = Field(default_factory=list)
    constructor_args: List[Any] = Field(default_factory=list)


class UpgradePlan(BaseModel):
    """Declarative description of one upgrade run."""

    action: CutAction = Field(CutAction.ADD, description="Cut action for every module")
    proxy: Optional[PlannedProxy] = None
    modules: List[PlannedModule] = Field(..., min_length=1)
    cut_initializer: Optional[CutInitializer] = None
    configuration: List[ContractCall] = Field(default_factory=list)

    @field_validator("action", mode="before")
    @classmethod
    def parse_action(cls, v):
        """Parse action names as well as wire values."""
        try:
            return CutAction.parse(v)
        except (KeyError, ValueError) as e:
            raise ValueError(f"Unknown cut action: {v}") from e

    @model_validator(mode="after")
    def check_labels(self):
        check_module_labels([module.name for module in self.modules], self.cut_initializer)
        return self


# Resolved session

class ModuleDeclaration(BaseModel):
    """A module as the orchestrator sees it."""

    descriptor: ModuleDescriptor
    initializer: Optional[ContractCall] = None
    smoke_checks: List[ReadCall] = Field(default_factory=list)

    @property
    def name(self) -> str:
        return self.descriptor.name


class UpgradeSession(BaseModel):
    """Everything one orchestration run needs, in declaration order."""

    action: CutAction = CutAction.ADD
    modules: List[ModuleDeclaration] = Field(..., min_length=1)
    proxy_address: Optional[str] = None
    proxy: Optional[ProxyDeclaration] = None
    cut_initializer: Optional[CutInitializer] = None
    configuration: List[ContractCall] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_session(self):
        if not self.proxy_address and not self.proxy:
            raise PlanValidationError("Either a proxy address or a proxy artifact is required")
        check_module_labels([module.name for module in self.modules], self.cut_initializer)
        return self
