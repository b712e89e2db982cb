"""
Models for diamond cut batches.
"""

from enum import IntEnum
from typing import Any, Dict, List, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator

from diamond_cutter.core.exceptions import DuplicateSelectorError, EmptyCutEntryError
from diamond_cutter.domain.models.module import Selector

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


class CutAction(IntEnum):
    """Routing table mutation applied to every selector of an entry."""

    ADD = 0
    REPLACE = 1
    REMOVE = 2

    @classmethod
    def parse(cls, value: Any) -> "CutAction":
        """Parse ``"add"``, ``"Replace"``, ``2`` or a CutAction."""
        if isinstance(value, CutAction):
            return value
        if isinstance(value, int):
            return cls(value)
        return cls[str(value).strip().upper()]


class CutEntry(BaseModel):
    """One facet's share of a cut batch."""

    model_config = ConfigDict(frozen=True)

    module_name: str = Field(..., description="Module label")
    module_address: str = Field(..., description="Module address")
    action: CutAction = Field(..., description="Add, Replace or Remove")
    selectors: Tuple[Selector, ...] = Field(..., description="Ordered, unique selectors")

    @model_validator(mode="after")
    def check_selectors(self):
        if not self.selectors:
            raise EmptyCutEntryError(self.module_name)
        seen = set()
        for selector in self.selectors:
            if selector in seen:
                raise DuplicateSelectorError(self.module_name, selector.hex)
            seen.add(selector)
        return self

    @property
    def wire_address(self) -> str:
        # Remove entries carry the zero address on the wire
        if self.action == CutAction.REMOVE:
            return ZERO_ADDRESS
        return self.module_address

    def to_wire(self) -> Dict[str, Any]:
        return {
            "moduleAddress": self.wire_address,
            "action": int(self.action),
            "selectors": [s.hex for s in self.selectors],
        }


class CutPayload(BaseModel):
    """The exact batch submitted as one atomic mutation."""

    model_config = ConfigDict(frozen=True)

    entries: Tuple[CutEntry, ...] = Field(default=())
    init_address: str = Field(ZERO_ADDRESS, description="Init delegate, zero for none")
    init_calldata: bytes = Field(b"", description="Init calldata, empty for none")

    @property
    def has_initializer(self) -> bool:
        return self.init_address != ZERO_ADDRESS

    @property
    def module_addresses(self) -> List[str]:
        """Distinct module addresses in entry order."""
        addresses: List[str] = []
        for entry in self.entries:
            if entry.module_address not in addresses:
                addresses.append(entry.module_address)
        return addresses

    def to_wire(self) -> Dict[str, Any]:
        return {
            "cut": [entry.to_wire() for entry in self.entries],
            "initModuleAddress": self.init_address,
            "initCalldata": "0x" + self.init_calldata.hex(),
        }
