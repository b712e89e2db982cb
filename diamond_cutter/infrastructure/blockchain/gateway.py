"""
Ledger gateway interface.

The orchestrator only talks to the ledger through this interface. Transactions
report their outcome as values; read-only calls return a CallResult.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from diamond_cutter.domain.models.cut import CutPayload
from diamond_cutter.domain.models.manifest import CallResult, TransactionOutcome
from diamond_cutter.domain.models.module import ModuleDescriptor, Selector


class DiamondGateway(ABC):
    """Submits transactions to and queries a diamond proxy."""

    proxy_address: Optional[str] = None

    @property
    @abstractmethod
    def deployer_address(self) -> str:
        """Address of the signing account."""

    @abstractmethod
    async def deploy_module(self, descriptor: ModuleDescriptor) -> TransactionOutcome:
        """Create a module instance and wait for its address."""

    @abstractmethod
    async def deploy_proxy(self, name: str, bytecode: str, constructor_args: bytes = b"") -> TransactionOutcome:
        """Create a proxy instance and wait for its address."""

    @abstractmethod
    async def submit_cut(self, payload: CutPayload) -> TransactionOutcome:
        """Submit a cut batch as one atomic mutation and wait for confirmation."""

    @abstractmethod
    async def transact(self, calldata: bytes) -> TransactionOutcome:
        """Send a state-changing call through the proxy."""

    @abstractmethod
    async def call(self, calldata: bytes) -> CallResult:
        """Execute a read-only call through the proxy."""

    @abstractmethod
    async def facet_addresses(self) -> List[str]:
        """Distinct module addresses holding at least one selector."""

    @abstractmethod
    async def facet_address(self, selector: Selector) -> str:
        """Module address a selector routes to, zero address when unassigned."""

    def bind_proxy(self, address: str) -> None:
        self.proxy_address = address
