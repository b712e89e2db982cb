"""
Verification Reporter.
Reads the confirmed routing table and sampled module state after a cut and
assembles the deployment manifest. Never mutates state.
"""

from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence

from eth_abi.exceptions import DecodingError
from pydantic import BaseModel, Field

from diamond_cutter.core.exceptions import DiamondCutterException
from diamond_cutter.core.logging import get_logger
from diamond_cutter.domain.models.cut import CutAction, CutPayload
from diamond_cutter.domain.models.manifest import DeploymentManifest, StepResult, StepStatus
from diamond_cutter.domain.models.plan import ModuleDeclaration
from diamond_cutter.infrastructure.blockchain.calldata import decode_output, encode_call, resolve_args
from diamond_cutter.infrastructure.blockchain.gateway import DiamondGateway

logger = get_logger(__name__)


class VerificationResult(BaseModel):
    """Routing table snapshot plus every check that ran against it."""

    facet_addresses: List[str] = Field(default_factory=list)
    steps: List[StepResult] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class VerificationReporter:
    """Post-cut routing and smoke checks."""

    def __init__(
        self,
        gateway: DiamondGateway,
        smoke_check_limit: int = 3,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.gateway = gateway
        self.smoke_check_limit = smoke_check_limit
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    async def facet_address_list(self) -> List[str]:
        """Distinct module addresses of the routing table, in loupe order."""
        return list(await self.gateway.facet_addresses())

    async def verify(
        self,
        payload: CutPayload,
        baseline: Sequence[str],
        modules: Sequence[ModuleDeclaration],
        context: Dict[str, str],
    ) -> VerificationResult:
        """
        Compare the routing table with the submitted cut and run smoke checks.

        Args:
            payload: The confirmed cut batch
            baseline: Facet addresses before the cut
            modules: Declared modules with their smoke checks
            context: Placeholder values for smoke check arguments

        Returns:
            VerificationResult; mismatches are warnings, never errors
        """
        result = VerificationResult()

        try:
            result.facet_addresses = await self.facet_address_list()
            mismatches = await self._check_routing(payload, baseline, result.facet_addresses)
        except DiamondCutterException as e:
            message = f"Routing table query failed: {e.message}"
            result.warnings.append(message)
            result.steps.append(StepResult(step="verify_routing", status=StepStatus.FAILED, detail=message))
        else:
            result.warnings.extend(mismatches)
            result.steps.append(
                StepResult(
                    step="verify_routing",
                    status=StepStatus.FAILED if mismatches else StepStatus.SUCCESS,
                    detail=f"{len(result.facet_addresses)} facets",
                )
            )
            logger.info(f"Number of facets: {len(result.facet_addresses)}")

        for module in modules:
            for check in module.smoke_checks[: self.smoke_check_limit]:
                step = await self._smoke_check(module.name, check, context)
                if step.status == StepStatus.FAILED:
                    result.warnings.append(f"Smoke check {step.step} failed: {step.detail}")
                result.steps.append(step)

        return result

    async def _check_routing(
        self, payload: CutPayload, baseline: Sequence[str], facets: Sequence[str]
    ) -> List[str]:
        warnings: List[str] = []
        cut_modules = payload.module_addresses

        if payload.entries and payload.entries[0].action == CutAction.ADD:
            expected = len(set(baseline) | set(cut_modules))
            if len(facets) != expected:
                warnings.append(
                    f"Facet count mismatch: expected {expected}, routing table has {len(facets)}"
                )

        for entry in payload.entries:
            expected_address = entry.wire_address
            for selector in entry.selectors:
                actual = await self.gateway.facet_address(selector)
                if actual != expected_address:
                    warnings.append(
                        f"Selector {selector.hex} of {entry.module_name} routes to {actual}, expected {expected_address}"
                    )
            if entry.action != CutAction.REMOVE and entry.module_address not in facets:
                warnings.append(f"{entry.module_name} missing from facet list")

        for message in warnings:
            logger.warning(message)
        return warnings

    async def _smoke_check(self, module_name: str, check, context: Dict[str, str]) -> StepResult:
        step = f"smoke:{module_name}:{check.display_name}"
        try:
            calldata = encode_call(check.signature, resolve_args(check.args, context))
        except DiamondCutterException as e:
            return StepResult(step=step, status=StepStatus.FAILED, detail=e.message)

        result = await self.gateway.call(calldata)
        if not result.success:
            logger.warning(f"Smoke check {check.display_name} failed: {result.error}")
            return StepResult(step=step, status=StepStatus.FAILED, detail=result.error)

        try:
            values = decode_output(check.output_types, result.data)
        except DecodingError as e:
            return StepResult(step=step, status=StepStatus.FAILED, detail=f"cannot decode output: {e}")

        logger.info(f"Smoke check {check.display_name}: {values}")
        return StepResult(step=step, status=StepStatus.SUCCESS, detail=str(list(values)))

    def build_manifest(
        self,
        proxy_address: str,
        modules: Dict[str, str],
        deployer: str,
        facet_addresses: Sequence[str],
        warnings: Sequence[str] = (),
        network: Optional[str] = None,
        chain_id: Optional[int] = None,
    ) -> DeploymentManifest:
        """Assemble the manifest of a completed run."""
        return DeploymentManifest(
            proxy_address=proxy_address,
            modules=dict(modules),
            deployer=deployer,
            timestamp_utc=self.clock(),
            facet_address_list=list(facet_addresses),
            network=network,
            chain_id=chain_id,
            warnings=list(warnings),
        )
