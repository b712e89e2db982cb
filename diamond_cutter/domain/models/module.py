"""
Models for facet modules and their routable surface.
"""

from enum import Enum
from typing import FrozenSet, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from diamond_cutter.core.exceptions import InvalidModuleDescriptorError


class Mutability(str, Enum):
    """State mutability of a function fragment."""

    PURE = "pure"
    VIEW = "view"
    NONPAYABLE = "nonpayable"
    PAYABLE = "payable"

    @property
    def is_read_only(self) -> bool:
        return self in (Mutability.PURE, Mutability.VIEW)


class Selector(BaseModel):
    """4-byte routing key derived from a canonical function signature."""

    model_config = ConfigDict(frozen=True)

    value: bytes = Field(..., description="Raw 4-byte selector")

    @field_validator("value", mode="before")
    @classmethod
    def parse_value(cls, v):
        """Accept raw bytes or 0x-prefixed hex."""
        if isinstance(v, str):
            v = bytes.fromhex(v[2:] if v.startswith("0x") else v)
        if not isinstance(v, (bytes, bytearray)) or len(v) != 4:
            raise ValueError("selector must be exactly 4 bytes")
        return bytes(v)

    @classmethod
    def from_hex(cls, value: str) -> "Selector":
        return cls(value=value)

    @property
    def hex(self) -> str:
        return "0x" + self.value.hex()

    def __str__(self) -> str:
        return self.hex

    def __repr__(self) -> str:
        return f"Selector({self.hex})"


class FunctionFragment(BaseModel):
    """One function of a module interface."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Function name")
    inputs: Tuple[str, ...] = Field(default=(), description="Canonical parameter types")
    outputs: Tuple[str, ...] = Field(default=(), description="Canonical return types")
    mutability: Mutability = Field(Mutability.NONPAYABLE, description="State mutability")

    @property
    def signature(self) -> str:
        """Canonical signature, e.g. ``transfer(address,uint256)``."""
        return f"{self.name}({','.join(self.inputs)})"


class ExclusionPolicy(BaseModel):
    """Functions that must never be routed through the proxy."""

    model_config = ConfigDict(frozen=True)

    excluded_names: FrozenSet[str] = Field(default=frozenset())
    exclude_pure: bool = True
    exclude_init_function: bool = True
    init_function_name: str = "init"

    def excludes(self, fragment: FunctionFragment) -> bool:
        if fragment.name in self.excluded_names:
            return True
        if self.exclude_init_function and fragment.name == self.init_function_name:
            return True
        return self.exclude_pure and fragment.mutability == Mutability.PURE


class ModuleDescriptor(BaseModel):
    """
    Identifies one facet: its label, interface and (once deployed) address.

    The descriptor is immutable. ``with_address`` returns the deployed copy and
    refuses to overwrite an address that is already set.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Module label")
    functions: Tuple[FunctionFragment, ...] = Field(default=(), description="Interface in declaration order")
    bytecode: Optional[str] = Field(None, description="Creation bytecode (0x-prefixed)")
    address: Optional[str] = Field(None, description="Deployed module address")

    @model_validator(mode="after")
    def check_unique_names(self):
        seen = set()
        for fragment in self.functions:
            if fragment.name in seen:
                raise InvalidModuleDescriptorError(
                    self.name,
                    f"function {fragment.name} declared more than once",
                    {"function": fragment.name},
                )
            seen.add(fragment.name)
        return self

    @property
    def is_deployed(self) -> bool:
        return self.address is not None

    def with_address(self, address: str) -> "ModuleDescriptor":
        if self.address is not None:
            raise InvalidModuleDescriptorError(
                self.name,
                f"address already set to {self.address}",
                {"address": self.address, "new_address": address},
            )
        return self.model_copy(update={"address": address})

    def function(self, name: str) -> Optional[FunctionFragment]:
        return next((f for f in self.functions if f.name == name), None)
