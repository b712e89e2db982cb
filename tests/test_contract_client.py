from types import SimpleNamespace

import pytest
from web3 import Web3

from diamond_cutter import main as entrypoint
from diamond_cutter.core.config import settings
from diamond_cutter.core.exceptions import ExecutionReverted, LedgerConnectionError
from diamond_cutter.domain.models.module import Selector
from diamond_cutter.infrastructure.blockchain.calldata import encode_call
from diamond_cutter.infrastructure.blockchain.contract_client import Web3DiamondGateway

pytestmark = pytest.mark.anyio

PROXY = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
DEPLOYER = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
TEST_KEY = "0x" + "11" * 32


def offline_gateway(error: Exception) -> Web3DiamondGateway:
    """Gateway whose node fails every eth_call."""

    def failing_call(tx):
        raise error

    gateway = Web3DiamondGateway.__new__(Web3DiamondGateway)
    gateway.w3 = SimpleNamespace(eth=SimpleNamespace(call=failing_call))
    gateway.account = SimpleNamespace(address=DEPLOYER)
    gateway.confirmation_timeout = 5
    gateway.proxy_address = PROXY
    return gateway


@pytest.mark.parametrize(
    "error",
    [ConnectionError("RPC dropped"), ValueError({"code": -32000, "message": "header not found"})],
)
async def test_node_failures_become_failed_calls(error):
    gateway = offline_gateway(error)

    result = await gateway.call(encode_call("getTreasury()"))

    assert not result.success
    assert result.error


async def test_loupe_queries_raise_ledger_errors_when_the_node_fails():
    gateway = offline_gateway(ConnectionError("RPC dropped"))

    with pytest.raises(ExecutionReverted):
        await gateway.facet_addresses()
    with pytest.raises(ExecutionReverted):
        await gateway.facet_address(Selector.from_hex("0x1f931c1c"))


def test_unreachable_node(monkeypatch):
    monkeypatch.setattr(Web3, "is_connected", lambda self, show_traceback=False: False)

    with pytest.raises(LedgerConnectionError) as exc:
        Web3DiamondGateway(rpc_url="http://127.0.0.1:8545", private_key=TEST_KEY)

    assert exc.value.error_code == "LEDGER_UNAVAILABLE"
    assert exc.value.details == {"rpc_url": "http://127.0.0.1:8545"}


def test_missing_signing_key(monkeypatch):
    monkeypatch.setattr(Web3, "is_connected", lambda self, show_traceback=False: True)
    monkeypatch.setattr(settings, "EVM_PRIVATE_KEY", None)

    with pytest.raises(LedgerConnectionError):
        Web3DiamondGateway(rpc_url="http://127.0.0.1:8545")


def test_entry_point_reports_gateway_errors(monkeypatch):
    monkeypatch.setattr(entrypoint, "setup_logging", lambda: None)
    monkeypatch.setattr(entrypoint, "load_plan", lambda path: None)
    monkeypatch.setattr(entrypoint, "build_session", lambda plan, store, proxy_address: None)
    monkeypatch.setattr(settings, "DRY_RUN", False)
    monkeypatch.setattr(Web3, "is_connected", lambda self, show_traceback=False: False)

    assert entrypoint.main() == 1
