"""
Hardhat artifact loading.
Turns compiled contract artifacts and a plan file into an UpgradeSession.
"""

import json
from pathlib import Path
from typing import Any, Dict, Optional

from diamond_cutter.core.exceptions import ArtifactNotFoundError, PlanValidationError
from diamond_cutter.core.logging import get_logger
from diamond_cutter.domain.models.module import ModuleDescriptor
from diamond_cutter.domain.models.plan import (
    ModuleDeclaration,
    ProxyDeclaration,
    UpgradePlan,
    UpgradeSession,
)
from diamond_cutter.infrastructure.blockchain.selectors import fragments_from_abi

logger = get_logger(__name__)


class ArtifactStore:
    """Looks up compiled artifacts by contract name."""

    def __init__(self, artifacts_dir: str):
        self.root = Path(artifacts_dir)
        self._cache: Dict[str, Dict[str, Any]] = {}

    def load(self, contract_name: str) -> Dict[str, Any]:
        """
        Load the artifact JSON of a contract.

        Hardhat lays artifacts out as ``<root>/contracts/**/Name.sol/Name.json``;
        a flat ``<root>/Name.json`` is accepted too.

        Args:
            contract_name: Contract name

        Returns:
            Artifact dict with at least ``abi``
        """
        if contract_name in self._cache:
            return self._cache[contract_name]

        candidates = [
            path
            for path in self.root.rglob(f"{contract_name}.json")
            if not path.name.endswith(".dbg.json")
        ]
        if not candidates:
            raise ArtifactNotFoundError(contract_name, {"artifacts_dir": str(self.root)})
        if len(candidates) > 1:
            logger.warning(
                f"Multiple artifacts for {contract_name}, using {sorted(candidates)[0]}"
            )

        with open(sorted(candidates)[0], "r") as f:
            artifact = json.load(f)

        if "abi" not in artifact:
            raise ArtifactNotFoundError(contract_name, {"reason": "artifact has no abi"})

        self._cache[contract_name] = artifact
        return artifact

    def descriptor(self, contract_name: str, label: Optional[str] = None, address: Optional[str] = None) -> ModuleDescriptor:
        """Build a ModuleDescriptor from a contract artifact."""
        artifact = self.load(contract_name)
        bytecode = artifact.get("bytecode") or None
        if bytecode == "0x":
            bytecode = None
        return ModuleDescriptor(
            name=label or contract_name,
            functions=tuple(fragments_from_abi(artifact["abi"])),
            bytecode=bytecode,
            address=address,
        )


def load_plan(plan_path: str) -> UpgradePlan:
    """Read and validate a plan file."""
    with open(plan_path, "r") as f:
        return UpgradePlan.model_validate(json.load(f))


def build_session(
    plan: UpgradePlan,
    store: ArtifactStore,
    proxy_address: Optional[str] = None,
) -> UpgradeSession:
    """
    Resolve a plan against compiled artifacts.

    Args:
        plan: Validated plan
        store: Artifact store
        proxy_address: Existing proxy; the plan's proxy artifact is ignored when set

    Returns:
        UpgradeSession ready for the orchestrator
    """
    modules = [
        ModuleDeclaration(
            descriptor=store.descriptor(entry.artifact, entry.name, entry.address),
            initializer=entry.initializer,
            smoke_checks=entry.smoke_checks,
        )
        for entry in plan.modules
    ]

    proxy = None
    if not proxy_address and plan.proxy:
        artifact = store.load(plan.proxy.artifact)
        if not artifact.get("bytecode") or artifact["bytecode"] == "0x":
            raise PlanValidationError(f"Proxy artifact {plan.proxy.artifact} has no bytecode")
        proxy = ProxyDeclaration(
            name=plan.proxy.artifact,
            bytecode=artifact["bytecode"],
            constructor_types=plan.proxy.constructor_types,
            constructor_args=plan.proxy.constructor_args,
        )

    return UpgradeSession(
        action=plan.action,
        modules=modules,
        proxy_address=proxy_address,
        proxy=proxy,
        cut_initializer=plan.cut_initializer,
        configuration=plan.configuration,
    )
