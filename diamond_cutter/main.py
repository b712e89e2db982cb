"""
Diamond Cutter - upgrade session entry point.
Runs one upgrade session described by UPGRADE_PLAN_PATH and writes the
deployment manifest to MANIFEST_PATH.

Usage: ``python -m diamond_cutter.main`` (configuration comes from the
environment or ``.env``).
"""

import asyncio
import sys
from pathlib import Path

from diamond_cutter.core.config import settings
from diamond_cutter.core.exceptions import DiamondCutterException
from diamond_cutter.core.logging import get_logger, log_error, setup_logging
from diamond_cutter.domain.models.manifest import DeploymentManifest, UpgradeReport
from diamond_cutter.infrastructure.blockchain.artifacts import ArtifactStore, build_session, load_plan
from diamond_cutter.infrastructure.blockchain.contract_client import Web3DiamondGateway
from diamond_cutter.infrastructure.blockchain.gateway import DiamondGateway
from diamond_cutter.infrastructure.blockchain.simulated_ledger import InMemoryDiamondGateway
from diamond_cutter.services.upgrade_orchestrator import UpgradeOrchestrator

logger = get_logger(__name__)


def create_gateway() -> DiamondGateway:
    """
    Create the ledger gateway for this session.

    Returns:
        DiamondGateway: simulated ledger when DRY_RUN is set, Web3 otherwise
    """
    if settings.DRY_RUN:
        logger.info("DRY_RUN enabled, using the in-memory ledger")
        return InMemoryDiamondGateway()
    evm_config = settings.get_evm_config()
    return Web3DiamondGateway(rpc_url=evm_config["rpc_url"], proxy_address=evm_config["proxy_address"])


def write_manifest(manifest: DeploymentManifest, path: str) -> None:
    """Persist the manifest for downstream tooling."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(manifest.to_json())
    logger.info(f"Deployment manifest written to {target}")


async def run_upgrade() -> UpgradeReport:
    """Load the plan, run the session and persist the manifest."""
    evm_config = settings.get_evm_config()
    logger.info(f"Starting {settings.APP_NAME} on {evm_config['name']} (chain {evm_config['chain_id']})")

    plan = load_plan(settings.UPGRADE_PLAN_PATH)
    session = build_session(plan, ArtifactStore(settings.ARTIFACTS_DIR), settings.PROXY_ADDRESS)

    gateway = create_gateway()
    logger.info(f"Deploying with account: {gateway.deployer_address}")

    orchestrator = UpgradeOrchestrator(
        gateway, network=evm_config["name"], chain_id=evm_config["chain_id"]
    )
    report = await orchestrator.run(session)

    for step in report.steps:
        logger.info(f"{step.step}: {step.status.value}", detail=step.detail)

    if report.manifest is None:
        logger.error(
            "Deployment failed",
            step=report.failure.step,
            error=report.failure.message,
        )
        return report

    for warning in report.warnings:
        logger.warning(warning)
    write_manifest(report.manifest, settings.MANIFEST_PATH)
    return report


def main() -> int:
    setup_logging()
    try:
        report = asyncio.run(run_upgrade())
    except DiamondCutterException as e:
        log_error(e, {"error_code": e.error_code, "details": e.details})
        return 1
    return 0 if report.succeeded else 1


if __name__ == "__main__":
    sys.exit(main())
