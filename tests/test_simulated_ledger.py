import pytest

from diamond_cutter.domain.models.cut import ZERO_ADDRESS, CutAction, CutEntry, CutPayload
from diamond_cutter.domain.models.module import ModuleDescriptor, Selector
from diamond_cutter.infrastructure.blockchain.calldata import encode_call
from diamond_cutter.infrastructure.blockchain.selectors import selector_for
from diamond_cutter.services.collision_resolver import resolve_collisions
from diamond_cutter.services.cut_builder import build_cut

pytestmark = pytest.mark.anyio


async def _deploy(gateway, descriptor: ModuleDescriptor) -> ModuleDescriptor:
    outcome = await gateway.deploy_module(descriptor)
    assert outcome.success
    return descriptor.with_address(outcome.contract_address)


@pytest.fixture
async def proxy(gateway):
    outcome = await gateway.deploy_proxy("Diamond", "0x6080604052")
    gateway.bind_proxy(outcome.contract_address)
    return outcome.contract_address


async def test_two_module_add_routes_each_selector(gateway, proxy):
    """Admin and Registration added in one batch, no collisions."""
    admin = await _deploy(gateway, ModuleDescriptor(name="Admin"))
    registration = await _deploy(gateway, ModuleDescriptor(name="Registration"))
    s_admin, s_reg = Selector.from_hex("0xaaaa0001"), Selector.from_hex("0xbbbb0001")

    resolution = resolve_collisions([(admin, [s_admin]), (registration, [s_reg])])
    payload = build_cut(resolution.assignments, CutAction.ADD)
    outcome = await gateway.submit_cut(payload)

    assert outcome.success
    assert len(payload.entries) == 2
    assert await gateway.facet_address(s_admin) == admin.address
    assert await gateway.facet_address(s_reg) == registration.address
    assert await gateway.facet_addresses() == [admin.address, registration.address]


async def test_invalid_entry_discards_the_whole_batch(gateway, proxy):
    admin = await _deploy(gateway, ModuleDescriptor(name="Admin"))
    other = await _deploy(gateway, ModuleDescriptor(name="Other"))
    taken = Selector.from_hex("0xaaaa0001")
    assert (await gateway.submit_cut(
        CutPayload(entries=(CutEntry(module_name="Admin", module_address=admin.address, action=CutAction.ADD, selectors=(taken,)),))
    )).success
    before = gateway.routing_table

    outcome = await gateway.submit_cut(
        CutPayload(
            entries=(
                CutEntry(
                    module_name="Other",
                    module_address=other.address,
                    action=CutAction.ADD,
                    selectors=(Selector.from_hex("0xcccc0001"),),
                ),
                CutEntry(
                    module_name="Admin2",
                    module_address=other.address,
                    action=CutAction.ADD,
                    selectors=(taken,),
                ),
            )
        )
    )

    assert not outcome.success
    assert "already exists" in outcome.error
    assert gateway.routing_table == before
    assert await gateway.facet_address(Selector.from_hex("0xcccc0001")) == ZERO_ADDRESS


async def test_replace_and_remove_preconditions(gateway, proxy):
    admin = await _deploy(gateway, ModuleDescriptor(name="Admin"))
    upgraded = await _deploy(gateway, ModuleDescriptor(name="AdminV2"))
    selector = Selector.from_hex("0xaaaa0001")

    def entry(address, action):
        return CutPayload(
            entries=(CutEntry(module_name="x", module_address=address, action=action, selectors=(selector,)),)
        )

    replace_missing = await gateway.submit_cut(entry(upgraded.address, CutAction.REPLACE))
    assert "doesn't exist" in replace_missing.error

    assert (await gateway.submit_cut(entry(admin.address, CutAction.ADD))).success
    same = await gateway.submit_cut(entry(admin.address, CutAction.REPLACE))
    assert "same function" in same.error

    assert (await gateway.submit_cut(entry(upgraded.address, CutAction.REPLACE))).success
    assert await gateway.facet_address(selector) == upgraded.address

    assert (await gateway.submit_cut(entry(upgraded.address, CutAction.REMOVE))).success
    assert await gateway.facet_addresses() == []


async def test_add_requires_deployed_code(gateway, proxy):
    payload = CutPayload(
        entries=(
            CutEntry(
                module_name="Ghost",
                module_address="0x000000000000000000000000000000000000dEaD",
                action=CutAction.ADD,
                selectors=(Selector.from_hex("0xaaaa0001"),),
            ),
        )
    )

    outcome = await gateway.submit_cut(payload)

    assert not outcome.success
    assert "no code" in outcome.error


async def test_init_revert_rolls_back_the_cut(gateway, proxy, admin_module):
    admin = await _deploy(gateway, admin_module)
    gateway.revert_on("initializeAdminFacet(address)", "AdminFacet: already initialized")
    resolution = resolve_collisions([(admin, [Selector.from_hex("0xaaaa0001")])])
    payload = build_cut(
        resolution.assignments,
        CutAction.ADD,
        init_address=admin.address,
        init_calldata=encode_call("initializeAdminFacet(address)", [gateway.deployer_address]),
    )

    outcome = await gateway.submit_cut(payload)

    assert not outcome.success
    assert outcome.error == "AdminFacet: already initialized"
    assert gateway.routing_table == {}


async def test_calls_are_dispatched_by_selector(gateway, proxy, admin_module):
    admin = await _deploy(gateway, admin_module)
    signatures = ["setTreasury(address)", "getTreasury()"]
    await gateway.submit_cut(
        build_cut(
            resolve_collisions([(admin, [selector_for(s) for s in signatures])]).assignments,
            CutAction.ADD,
        )
    )
    gateway.stub_return("getTreasury()", ["address"], [gateway.deployer_address])

    sent = await gateway.transact(encode_call("setTreasury(address)", [gateway.deployer_address]))
    read = await gateway.call(encode_call("getTreasury()"))
    missing = await gateway.call(encode_call("paused()"))

    assert sent.success
    assert read.success and len(read.data) == 32
    assert not missing.success
    assert missing.error == "Diamond: Function does not exist"
