import os
import sys

import pytest

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from diamond_cutter.domain.models.module import (  # noqa: E402
    ExclusionPolicy,
    FunctionFragment,
    ModuleDescriptor,
    Mutability,
)
from diamond_cutter.domain.models.plan import (  # noqa: E402
    ContractCall,
    ModuleDeclaration,
    ProxyDeclaration,
    ReadCall,
    UpgradeSession,
)
from diamond_cutter.infrastructure.blockchain.simulated_ledger import (  # noqa: E402
    InMemoryDiamondGateway,
)


def fn(name, *inputs, mutability=Mutability.NONPAYABLE, outputs=()):
    return FunctionFragment(name=name, inputs=inputs, outputs=outputs, mutability=mutability)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def policy() -> ExclusionPolicy:
    """Policy used across tests: two inherited names, pure getters and init() dropped."""
    return ExclusionPolicy(
        excluded_names=frozenset({"owner", "supportsInterface"}),
        exclude_pure=True,
        exclude_init_function=True,
    )


@pytest.fixture
def admin_module() -> ModuleDescriptor:
    return ModuleDescriptor(
        name="AdminFacet",
        functions=(
            fn("initializeAdminFacet", "address"),
            fn("setTreasury", "address"),
            fn("getTreasury", mutability=Mutability.VIEW, outputs=("address",)),
            fn("updateSlot", "uint256", "uint256", "uint256"),
            fn("setSlotActive", "uint256", "bool"),
            fn("paused", mutability=Mutability.VIEW, outputs=("bool",)),
            fn("owner", mutability=Mutability.VIEW, outputs=("address",)),
            fn("ADMIN_FEE_PERCENT", mutability=Mutability.PURE, outputs=("uint256",)),
            fn("init"),
        ),
        bytecode="0x6080604052",
    )


@pytest.fixture
def registration_module() -> ModuleDescriptor:
    return ModuleDescriptor(
        name="RegistrationFacet",
        functions=(
            fn("register", "address"),
            fn("isRegistered", "address", mutability=Mutability.VIEW, outputs=("bool",)),
            fn("paused", mutability=Mutability.VIEW, outputs=("bool",)),
            fn("supportsInterface", "bytes4", mutability=Mutability.VIEW, outputs=("bool",)),
        ),
        bytecode="0x6080604052",
    )


@pytest.fixture
def gateway() -> InMemoryDiamondGateway:
    return InMemoryDiamondGateway()


@pytest.fixture
def session(admin_module, registration_module) -> UpgradeSession:
    """First deployment of two facets behind a freshly deployed proxy."""
    return UpgradeSession(
        modules=[
            ModuleDeclaration(
                descriptor=admin_module,
                initializer=ContractCall(
                    signature="initializeAdminFacet(address)", args=["${deployer}"]
                ),
                smoke_checks=[
                    ReadCall(label="treasury", signature="getTreasury()", output_types=["address"])
                ],
            ),
            ModuleDeclaration(descriptor=registration_module),
        ],
        proxy=ProxyDeclaration(name="FortuneNXTDiamond", bytecode="0x6080604052"),
        configuration=[
            ContractCall(label="treasury", signature="setTreasury(address)", args=["${deployer}"]),
            ContractCall(
                label="slot-1",
                signature="updateSlot(uint256,uint256,uint256)",
                args=[1, "0.01 ether", 10],
            ),
        ],
    )


@pytest.fixture
def make_module():
    """Factory for descriptors declared by canonical signature."""
    from diamond_cutter.infrastructure.blockchain.selectors import parse_signature

    def _make(name, *signatures, address=None, mutability=Mutability.NONPAYABLE):
        functions = []
        for signature in signatures:
            fn_name, types = parse_signature(signature)
            functions.append(fn(fn_name, *types, mutability=mutability))
        return ModuleDescriptor(
            name=name, functions=tuple(functions), bytecode="0x6080604052", address=address
        )

    return _make
