"""
Web3 gateway for a diamond proxy.
Handles contract deployment, signed transactions and loupe queries.
"""

from typing import Any, Dict, List, Optional

from eth_abi import decode as abi_decode
from eth_account import Account
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception

from diamond_cutter.core.config import settings
from diamond_cutter.core.exceptions import ExecutionReverted, LedgerConnectionError
from diamond_cutter.core.logging import get_logger
from diamond_cutter.domain.models.cut import CutPayload
from diamond_cutter.domain.models.manifest import CallResult, TransactionOutcome
from diamond_cutter.domain.models.module import ModuleDescriptor, Selector
from diamond_cutter.infrastructure.blockchain.calldata import encode_call, encode_diamond_cut
from diamond_cutter.infrastructure.blockchain.gateway import DiamondGateway
from diamond_cutter.infrastructure.blockchain.selectors import (
    FACET_ADDRESS_SIGNATURE,
    FACET_ADDRESSES_SIGNATURE,
)

logger = get_logger(__name__)


class Web3DiamondGateway(DiamondGateway):
    """Gateway backed by a JSON-RPC node."""

    def __init__(
        self,
        rpc_url: Optional[str] = None,
        private_key: Optional[str] = None,
        proxy_address: Optional[str] = None,
        confirmation_timeout: Optional[int] = None,
    ):
        """
        Initialize the gateway.

        Args:
            rpc_url: JSON-RPC endpoint (defaults to the active RPC URL)
            private_key: Signing key (defaults to EVM_PRIVATE_KEY)
            proxy_address: Existing proxy address
            confirmation_timeout: Receipt wait budget in seconds
        """
        rpc_url = rpc_url or settings.ACTIVE_RPC_URL
        self.w3 = Web3(Web3.HTTPProvider(rpc_url))
        logger.info(f"Connecting to RPC: {rpc_url}")

        if not self.w3.is_connected():
            logger.error("Failed to connect to Web3 provider")
            raise LedgerConnectionError("Cannot connect to blockchain RPC", {"rpc_url": rpc_url})

        private_key = private_key or settings.EVM_PRIVATE_KEY
        if not private_key:
            raise LedgerConnectionError("EVM_PRIVATE_KEY not configured")
        self.account = Account.from_key(private_key)

        self.confirmation_timeout = confirmation_timeout or settings.CONFIRMATION_TIMEOUT
        if proxy_address:
            self.bind_proxy(proxy_address)

        logger.info(f"Gateway initialized for deployer {self.account.address}")

    @property
    def deployer_address(self) -> str:
        return self.account.address

    def bind_proxy(self, address: str) -> None:
        self.proxy_address = Web3.to_checksum_address(address)

    async def deploy_module(self, descriptor: ModuleDescriptor) -> TransactionOutcome:
        if not descriptor.bytecode:
            return TransactionOutcome(success=False, error=f"{descriptor.name} has no bytecode")
        return await self._send({"data": descriptor.bytecode}, label=f"deploy {descriptor.name}")

    async def deploy_proxy(self, name: str, bytecode: str, constructor_args: bytes = b"") -> TransactionOutcome:
        data = bytecode + constructor_args.hex()
        return await self._send({"data": data}, label=f"deploy {name}")

    async def submit_cut(self, payload: CutPayload) -> TransactionOutcome:
        return await self.transact(encode_diamond_cut(payload))

    async def transact(self, calldata: bytes) -> TransactionOutcome:
        tx = {"to": self._require_proxy(), "data": "0x" + calldata.hex()}
        return await self._send(tx, label=f"call {calldata[:4].hex()}")

    async def call(self, calldata: bytes) -> CallResult:
        try:
            data = self.w3.eth.call(
                {"to": self._require_proxy(), "data": "0x" + calldata.hex(), "from": self.account.address}
            )
            return CallResult(success=True, data=bytes(data))
        except ContractLogicError as e:
            logger.warning(f"Call reverted: {e}")
            return CallResult(success=False, error=str(e))
        except (Web3Exception, OSError, ValueError) as e:
            logger.warning(f"Call failed: {e}")
            return CallResult(success=False, error=str(e))

    async def facet_addresses(self) -> List[str]:
        result = await self.call(encode_call(FACET_ADDRESSES_SIGNATURE))
        if not result.success:
            raise ExecutionReverted(result.error or "facetAddresses() reverted")
        (addresses,) = abi_decode(["address[]"], result.data)
        return [Web3.to_checksum_address(a) for a in addresses]

    async def facet_address(self, selector: Selector) -> str:
        result = await self.call(encode_call(FACET_ADDRESS_SIGNATURE, [selector.value]))
        if not result.success:
            raise ExecutionReverted(result.error or "facetAddress(bytes4) reverted")
        (address,) = abi_decode(["address"], result.data)
        return Web3.to_checksum_address(address)

    def _require_proxy(self) -> str:
        if not self.proxy_address:
            raise ValueError("PROXY_ADDRESS not configured")
        return self.proxy_address

    async def _send(self, tx: Dict[str, Any], label: str) -> TransactionOutcome:
        """
        Sign, send and wait for one transaction.

        Args:
            tx: Partial transaction (``to`` omitted for deployments)
            label: Description used in logs

        Returns:
            TransactionOutcome with the receipt status
        """
        tx_hash = None
        try:
            from_address = self.account.address
            tx = dict(tx, **{"from": from_address})

            logger.info(f"Sending transaction: {label} from {from_address}")

            # Estimate gas with a buffer, fall back to the default limit
            try:
                gas_limit = self.w3.eth.estimate_gas(tx)
                gas_limit = int(gas_limit * (100 + settings.GAS_BUFFER_PERCENT) / 100)
            except ContractLogicError as e:
                return TransactionOutcome(success=False, error=str(e))
            except Exception as e:
                logger.warning(f"Gas estimation failed: {e}, using default")
                gas_limit = settings.DEFAULT_GAS_LIMIT

            tx.update(
                {
                    "nonce": self.w3.eth.get_transaction_count(from_address),
                    "gas": gas_limit,
                    "gasPrice": self.w3.eth.gas_price,
                    "chainId": self.w3.eth.chain_id,
                }
            )

            signed_txn = self.account.sign_transaction(tx)
            tx_hash = self.w3.eth.send_raw_transaction(signed_txn.raw_transaction)

            logger.info(f"Transaction sent: {Web3.to_hex(tx_hash)}")

            receipt = self.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self.confirmation_timeout
            )
        except TimeExhausted:
            logger.warning(f"Transaction {label} not confirmed within {self.confirmation_timeout}s")
            return TransactionOutcome(
                success=False,
                tx_hash=Web3.to_hex(tx_hash) if tx_hash else None,
                error=f"not confirmed within {self.confirmation_timeout}s",
                timed_out=True,
            )
        except Exception as e:
            logger.error(f"Error sending transaction: {e}", exc_info=True)
            return TransactionOutcome(
                success=False, tx_hash=Web3.to_hex(tx_hash) if tx_hash else None, error=str(e)
            )

        confirmed_hash = Web3.to_hex(receipt["transactionHash"])
        if receipt["status"] != 1:
            logger.warning(f"Transaction reverted: {confirmed_hash}")
            return TransactionOutcome(success=False, tx_hash=confirmed_hash, error="transaction reverted")

        logger.info(f"Transaction confirmed: {confirmed_hash}")
        return TransactionOutcome(
            success=True,
            tx_hash=confirmed_hash,
            contract_address=receipt.get("contractAddress"),
        )
