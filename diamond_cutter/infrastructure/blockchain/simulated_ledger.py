"""
In-memory diamond ledger.

Simulates a diamond proxy closely enough to dry-run an upgrade plan: modules
get deterministic addresses, cut batches go through the real calldata codec
and are applied atomically with the routing rules of LibDiamond, and proxy
calls are dispatched by selector to per-signature behaviours.
"""

from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

from eth_abi import encode as abi_encode
from eth_utils import to_checksum_address
from web3 import Web3

from diamond_cutter.core.exceptions import ExecutionReverted
from diamond_cutter.core.logging import get_logger
from diamond_cutter.domain.models.cut import ZERO_ADDRESS, CutAction, CutPayload
from diamond_cutter.domain.models.manifest import CallResult, TransactionOutcome
from diamond_cutter.domain.models.module import FunctionFragment, ModuleDescriptor, Selector
from diamond_cutter.infrastructure.blockchain.calldata import decode_diamond_cut, encode_diamond_cut
from diamond_cutter.infrastructure.blockchain.gateway import DiamondGateway
from diamond_cutter.infrastructure.blockchain.selectors import selector_for

logger = get_logger(__name__)

DEFAULT_DEPLOYER = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"

# (argument data, proxy storage) -> return data; raise ExecutionReverted to revert
FacetBehaviour = Callable[[bytes, Dict[str, Any]], bytes]


class InMemoryDiamondGateway(DiamondGateway):
    """Deterministic simulated ledger hosting diamond proxies."""

    def __init__(self, deployer: str = DEFAULT_DEPLOYER):
        self._deployer = to_checksum_address(deployer)
        self._nonce = 0
        self._contracts: Dict[str, Dict[Selector, FunctionFragment]] = {}
        self._tables: Dict[str, Dict[Selector, str]] = {}
        self._storage: Dict[str, Dict[str, Any]] = {}
        self._behaviours: Dict[str, FacetBehaviour] = {}
        self._failed_deployments: Dict[str, str] = {}
        self._stalled: Set[str] = set()
        self._stalled_deployments: Set[str] = set()
        self._stall_next_cut = False
        self._cut_rejection: Optional[str] = None
        self.transactions: List[Tuple[str, bytes]] = []

    @property
    def deployer_address(self) -> str:
        return self._deployer

    # Test and dry-run hooks

    def fail_deployment(self, name: str, reason: str = "out of gas") -> None:
        self._failed_deployments[name] = reason

    def reject_next_cut(self, reason: str) -> None:
        self._cut_rejection = reason

    def revert_on(self, signature: str, reason: str = "execution reverted") -> None:
        def _revert(data: bytes, storage: Dict[str, Any]) -> bytes:
            raise ExecutionReverted(reason)

        self._behaviours[signature] = _revert

    def stall_on(self, signature: str) -> None:
        self._stalled.add(signature)

    def stall_deployment(self, name: str) -> None:
        self._stalled_deployments.add(name)

    def stall_next_cut(self) -> None:
        self._stall_next_cut = True

    def stub_return(self, signature: str, output_types: Sequence[str], values: Sequence[Any]) -> None:
        encoded = abi_encode(list(output_types), list(values))
        self._behaviours[signature] = lambda data, storage: encoded

    @property
    def routing_table(self) -> Dict[Selector, str]:
        return dict(self._tables.get(self.proxy_address, {}))

    # DiamondGateway

    async def deploy_module(self, descriptor: ModuleDescriptor) -> TransactionOutcome:
        if descriptor.name in self._failed_deployments:
            return TransactionOutcome(success=False, error=self._failed_deployments[descriptor.name])
        if descriptor.name in self._stalled_deployments:
            return self._unconfirmed(self._tx_hash(descriptor.name))
        address = self._create_address()
        self._contracts[address] = {selector_for(f.signature): f for f in descriptor.functions}
        return TransactionOutcome(success=True, tx_hash=self._tx_hash(address), contract_address=address)

    async def deploy_proxy(self, name: str, bytecode: str, constructor_args: bytes = b"") -> TransactionOutcome:
        if name in self._failed_deployments:
            return TransactionOutcome(success=False, error=self._failed_deployments[name])
        address = self._create_address()
        self._contracts[address] = {}
        self._tables[address] = {}
        self._storage[address] = {}
        return TransactionOutcome(success=True, tx_hash=self._tx_hash(address), contract_address=address)

    def bind_proxy(self, address: str) -> None:
        address = to_checksum_address(address)
        self._tables.setdefault(address, {})
        self._storage.setdefault(address, {})
        self.proxy_address = address

    async def submit_cut(self, payload: CutPayload) -> TransactionOutcome:
        calldata = encode_diamond_cut(payload)
        tx_hash = self._tx_hash(calldata.hex())
        if self._cut_rejection:
            reason, self._cut_rejection = self._cut_rejection, None
            return TransactionOutcome(success=False, tx_hash=tx_hash, error=reason)
        if self._stall_next_cut:
            self._stall_next_cut = False
            return self._unconfirmed(tx_hash)

        proxy = self._require_proxy()
        decoded = decode_diamond_cut(calldata)
        table = dict(self._tables[proxy])
        storage = dict(self._storage[proxy])
        try:
            for entry in decoded.entries:
                self._apply_entry(table, entry.module_address, entry.action, entry.selectors)
            if decoded.init_address != ZERO_ADDRESS:
                self._run_init(decoded.init_address, decoded.init_calldata, storage)
        except ExecutionReverted as e:
            # Nothing was written: the working copies are discarded
            return TransactionOutcome(success=False, tx_hash=tx_hash, error=e.message)

        self._tables[proxy] = table
        self._storage[proxy] = storage
        self.transactions.append(("diamondCut", calldata))
        return TransactionOutcome(success=True, tx_hash=tx_hash)

    async def transact(self, calldata: bytes) -> TransactionOutcome:
        tx_hash = self._tx_hash(calldata.hex() + str(len(self.transactions)))
        proxy = self._require_proxy()
        try:
            fragment = self._route(proxy, calldata)
        except ExecutionReverted as e:
            return TransactionOutcome(success=False, tx_hash=tx_hash, error=e.message)
        if fragment.signature in self._stalled:
            return self._unconfirmed(tx_hash)

        storage = dict(self._storage[proxy])
        try:
            self._execute(fragment, calldata[4:], storage)
        except ExecutionReverted as e:
            return TransactionOutcome(success=False, tx_hash=tx_hash, error=e.message)
        self._storage[proxy] = storage
        self.transactions.append((fragment.signature, calldata))
        return TransactionOutcome(success=True, tx_hash=tx_hash)

    async def call(self, calldata: bytes) -> CallResult:
        proxy = self._require_proxy()
        try:
            fragment = self._route(proxy, calldata)
            data = self._execute(fragment, calldata[4:], dict(self._storage[proxy]))
        except ExecutionReverted as e:
            return CallResult(success=False, error=e.message)
        return CallResult(success=True, data=data)

    async def facet_addresses(self) -> List[str]:
        addresses: List[str] = []
        for address in self._tables.get(self._require_proxy(), {}).values():
            if address not in addresses:
                addresses.append(address)
        return addresses

    async def facet_address(self, selector: Selector) -> str:
        return self._tables.get(self._require_proxy(), {}).get(selector, ZERO_ADDRESS)

    # Internals

    def _require_proxy(self) -> str:
        if not self.proxy_address or self.proxy_address not in self._tables:
            raise ValueError("No proxy bound to the simulated ledger")
        return self.proxy_address

    def _create_address(self) -> str:
        seed = bytes.fromhex(self._deployer[2:]) + self._nonce.to_bytes(8, "big")
        self._nonce += 1
        return to_checksum_address(Web3.keccak(seed)[12:])

    @staticmethod
    def _tx_hash(seed: str) -> str:
        return Web3.to_hex(Web3.keccak(text=seed))

    @staticmethod
    def _unconfirmed(tx_hash: str) -> TransactionOutcome:
        return TransactionOutcome(success=False, tx_hash=tx_hash, error="not confirmed", timed_out=True)

    def _apply_entry(
        self,
        table: Dict[Selector, str],
        address: str,
        action: CutAction,
        selectors: Sequence[Selector],
    ) -> None:
        if not selectors:
            raise ExecutionReverted("LibDiamondCut: No selectors in facet to cut")
        if action == CutAction.ADD:
            self._require_code(address, "Add")
            for selector in selectors:
                if selector in table:
                    raise ExecutionReverted("LibDiamondCut: Can't add function that already exists")
                table[selector] = address
        elif action == CutAction.REPLACE:
            self._require_code(address, "Replace")
            for selector in selectors:
                if selector not in table:
                    raise ExecutionReverted("LibDiamondCut: Can't replace function that doesn't exist")
                if table[selector] == address:
                    raise ExecutionReverted("LibDiamondCut: Can't replace function with same function")
                table[selector] = address
        else:
            if address != ZERO_ADDRESS:
                raise ExecutionReverted("LibDiamondCut: Remove facet address must be address(0)")
            for selector in selectors:
                if selector not in table:
                    raise ExecutionReverted("LibDiamondCut: Can't remove function that doesn't exist")
                del table[selector]

    def _require_code(self, address: str, action: str) -> None:
        if address == ZERO_ADDRESS:
            raise ExecutionReverted(f"LibDiamondCut: {action} facet can't be address(0)")
        if address not in self._contracts:
            raise ExecutionReverted("LibDiamondCut: New facet has no code")

    def _run_init(self, address: str, calldata: bytes, storage: Dict[str, Any]) -> None:
        if address not in self._contracts:
            raise ExecutionReverted("LibDiamondCut: _init address has no code")
        fragment = self._contracts[address].get(Selector(value=calldata[:4]))
        if fragment is None:
            raise ExecutionReverted("LibDiamondCut: _init function reverted")
        self._execute(fragment, calldata[4:], storage)

    def _route(self, proxy: str, calldata: bytes) -> FunctionFragment:
        if len(calldata) < 4:
            raise ExecutionReverted("Diamond: Function does not exist")
        selector = Selector(value=calldata[:4])
        facet = self._tables[proxy].get(selector)
        if facet is None:
            raise ExecutionReverted("Diamond: Function does not exist")
        return self._contracts[facet][selector]

    def _execute(self, fragment: FunctionFragment, data: bytes, storage: Dict[str, Any]) -> bytes:
        behaviour = self._behaviours.get(fragment.signature)
        if behaviour is not None:
            return behaviour(data, storage)
        if not fragment.mutability.is_read_only:
            storage[fragment.signature] = data
        return b""
