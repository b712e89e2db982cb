import json
import os

import pytest

from diamond_cutter.core.exceptions import ArtifactNotFoundError, PlanValidationError
from diamond_cutter.domain.models.cut import CutAction
from diamond_cutter.domain.models.module import Mutability
from diamond_cutter.infrastructure.blockchain.artifacts import ArtifactStore, build_session, load_plan

PLAN_PATH = os.path.join(os.path.dirname(__file__), "..", "plans", "fortunity-nxt.json")

ADMIN_ABI = [
    {"type": "constructor", "inputs": []},
    {"type": "event", "name": "TreasuryUpdated", "inputs": [{"name": "treasury", "type": "address"}]},
    {
        "type": "function",
        "name": "setTreasury",
        "inputs": [{"name": "treasury", "type": "address"}],
        "outputs": [],
        "stateMutability": "nonpayable",
    },
    {
        "type": "function",
        "name": "getTreasury",
        "inputs": [],
        "outputs": [{"name": "", "type": "address"}],
        "stateMutability": "view",
    },
]


def write_artifact(root, name, abi, bytecode="0x6080604052"):
    folder = root / "contracts" / "facets" / f"{name}.sol"
    folder.mkdir(parents=True, exist_ok=True)
    (folder / f"{name}.json").write_text(json.dumps({"contractName": name, "abi": abi, "bytecode": bytecode}))
    (folder / f"{name}.dbg.json").write_text(json.dumps({"buildInfo": "../build-info/x.json"}))


@pytest.fixture
def store(tmp_path):
    write_artifact(tmp_path, "AdminFacet", ADMIN_ABI)
    write_artifact(tmp_path, "RegistrationFacet", ADMIN_ABI[2:3])
    write_artifact(tmp_path, "Diamond", [])
    write_artifact(tmp_path, "IDiamondLoupe", [], bytecode="0x")
    return ArtifactStore(str(tmp_path))


def test_descriptor_from_hardhat_artifact(store):
    descriptor = store.descriptor("AdminFacet")

    assert descriptor.name == "AdminFacet"
    assert [f.signature for f in descriptor.functions] == ["setTreasury(address)", "getTreasury()"]
    assert descriptor.function("getTreasury").mutability == Mutability.VIEW
    assert descriptor.bytecode == "0x6080604052"
    assert not descriptor.is_deployed


def test_interface_artifact_has_no_bytecode(store):
    assert store.descriptor("IDiamondLoupe").bytecode is None


def test_missing_artifact(store):
    with pytest.raises(ArtifactNotFoundError) as exc:
        store.load("VaultFacet")

    assert exc.value.error_code == "ARTIFACT_NOT_FOUND"


def test_repository_plan_is_valid():
    plan = load_plan(PLAN_PATH)

    assert plan.action == CutAction.ADD
    assert [m.name for m in plan.modules][:2] == ["AdminFacet", "RegistrationFacet"]
    assert plan.modules[0].initializer.args == ["${deployer}"]
    assert plan.proxy.artifact == "FortuneNXTDiamond"


def test_duplicate_module_labels_are_rejected(tmp_path):
    path = tmp_path / "plan.json"
    path.write_text(json.dumps({"modules": [{"artifact": "AdminFacet"}, {"artifact": "AdminFacet"}]}))

    with pytest.raises(PlanValidationError):
        load_plan(str(path))


def test_build_session_resolves_modules_and_proxy(store, tmp_path):
    path = tmp_path / "plan.json"
    path.write_text(
        json.dumps(
            {
                "action": "replace",
                "proxy": {"artifact": "Diamond"},
                "modules": [
                    {"artifact": "AdminFacet", "label": "AdminV2"},
                    {"artifact": "RegistrationFacet", "address": "0xe7f1725E7734CE288F8367e1Bb143E90bb3F0512"},
                ],
            }
        )
    )

    session = build_session(load_plan(str(path)), store)

    assert session.action == CutAction.REPLACE
    assert [m.name for m in session.modules] == ["AdminV2", "RegistrationFacet"]
    assert session.modules[1].descriptor.is_deployed
    assert session.proxy.name == "Diamond"
    assert session.proxy.bytecode == "0x6080604052"


def test_existing_proxy_skips_the_proxy_artifact(store, tmp_path):
    path = tmp_path / "plan.json"
    path.write_text(json.dumps({"proxy": {"artifact": "IDiamondLoupe"}, "modules": [{"artifact": "AdminFacet"}]}))

    session = build_session(
        load_plan(str(path)), store, proxy_address="0x5FbDB2315678afecb367f032d93F642f64180aa3"
    )

    assert session.proxy is None
    assert session.proxy_address == "0x5FbDB2315678afecb367f032d93F642f64180aa3"


def test_proxy_artifact_without_bytecode(store, tmp_path):
    path = tmp_path / "plan.json"
    path.write_text(json.dumps({"proxy": {"artifact": "IDiamondLoupe"}, "modules": [{"artifact": "AdminFacet"}]}))

    with pytest.raises(PlanValidationError):
        build_session(load_plan(str(path)), store)
