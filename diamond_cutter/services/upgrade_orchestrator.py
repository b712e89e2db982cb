"""
Upgrade Orchestrator.

Drives one upgrade session through the state machine

    Idle -> ModulesDeployed -> SelectorsResolved -> CutSubmitted
         -> Initialized -> Configured -> Verified -> Complete

Deployment, selector resolution and cut submission are fatal on failure and
move the run to Failed without a manifest. Everything after a confirmed cut is
best effort: failures become failed steps plus warnings on the manifest.
Every transaction is confirmed before the next one is sent.
"""

from typing import Dict, List, Optional

from eth_utils import to_checksum_address

from diamond_cutter.core.config import get_exclusion_policy, settings
from diamond_cutter.core.exceptions import (
    ConfirmationTimeoutError,
    CutSubmissionError,
    DiamondCutterException,
    ModuleDeploymentError,
    PlanValidationError,
    UpgradeAbortedError,
)
from diamond_cutter.core.logging import (
    get_logger,
    log_cut_submission,
    log_error,
    log_module_deployment,
    log_upgrade_step,
)
from diamond_cutter.domain.models.cut import ZERO_ADDRESS, CutPayload
from diamond_cutter.domain.models.manifest import (
    FailureReport,
    StepResult,
    StepStatus,
    TransactionOutcome,
    UpgradeReport,
    UpgradeState,
)
from diamond_cutter.domain.models.module import ExclusionPolicy
from diamond_cutter.domain.models.plan import ContractCall, ModuleDeclaration, UpgradeSession
from diamond_cutter.infrastructure.blockchain.calldata import encode_arguments, encode_call, resolve_args
from diamond_cutter.infrastructure.blockchain.gateway import DiamondGateway
from diamond_cutter.services.collision_resolver import ResolutionResult, resolve_collisions
from diamond_cutter.services.cut_builder import build_cut
from diamond_cutter.services.selector_extractor import extract_selectors
from diamond_cutter.services.verification_reporter import VerificationReporter

logger = get_logger(__name__)

# Stage names reported as skipped when a fatal step aborts the run
STAGES = [
    "deploy",
    "resolve_selectors",
    "build_cut",
    "submit_cut",
    "initialize",
    "configure",
    "verify_routing",
    "manifest",
]


class UpgradeOrchestrator:
    """Runs one upgrade session against a diamond proxy."""

    def __init__(
        self,
        gateway: DiamondGateway,
        policy: Optional[ExclusionPolicy] = None,
        collision_policy: Optional[str] = None,
        reporter: Optional[VerificationReporter] = None,
        network: Optional[str] = None,
        chain_id: Optional[int] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            gateway: Ledger gateway used for every transaction and query
            policy: Exclusion policy (defaults to the configured one)
            collision_policy: "first_wins" or "strict" (defaults to settings)
            reporter: Verification reporter (defaults to one on the same gateway)
            network: Network name written to the manifest
            chain_id: Chain id written to the manifest
        """
        self.gateway = gateway
        self.policy = policy or get_exclusion_policy()
        self.strict = (collision_policy or settings.COLLISION_POLICY) == "strict"
        self.reporter = reporter or VerificationReporter(gateway)
        self.network = network or settings.NETWORK_NAME
        self.chain_id = chain_id if chain_id is not None else settings.EVM_CHAIN_ID

        self.state = UpgradeState.IDLE
        self._steps: List[StepResult] = []
        self._warnings: List[str] = []
        self._context: Dict[str, str] = {}

    async def run(self, session: UpgradeSession) -> UpgradeReport:
        """
        Execute the session end to end.

        Args:
            session: Resolved modules, action and call lists

        Returns:
            UpgradeReport; ``manifest`` is None when the run failed
        """
        if self.state != UpgradeState.IDLE:
            raise RuntimeError("An orchestrator runs exactly one upgrade session")

        self._context = {"deployer": self.gateway.deployer_address}
        payload: Optional[CutPayload] = None

        try:
            modules = await self._deploy(session)
            self._transition(UpgradeState.MODULES_DEPLOYED)

            resolution = self._resolve_selectors(modules)
            self._transition(UpgradeState.SELECTORS_RESOLVED)

            payload = self._build_cut(session, modules, resolution)
            baseline = await self._submit_cut(payload)
            self._transition(UpgradeState.CUT_SUBMITTED)
        except UpgradeAbortedError as e:
            return self._fail(e, payload)

        await self._initialize(modules)
        self._transition(UpgradeState.INITIALIZED)

        await self._configure(session.configuration)
        self._transition(UpgradeState.CONFIGURED)

        verification = await self.reporter.verify(payload, baseline, modules, self._context)
        self._steps.extend(verification.steps)
        self._warnings.extend(verification.warnings)
        self._transition(UpgradeState.VERIFIED)

        manifest = self.reporter.build_manifest(
            proxy_address=self.gateway.proxy_address,
            modules={m.name: m.descriptor.address for m in modules},
            deployer=self.gateway.deployer_address,
            facet_addresses=verification.facet_addresses,
            warnings=self._warnings,
            network=self.network,
            chain_id=self.chain_id,
        )
        self._record("manifest", StepStatus.SUCCESS, f"{len(manifest.modules)} modules")
        self._transition(UpgradeState.COMPLETE)

        return UpgradeReport(
            state=self.state,
            steps=list(self._steps),
            warnings=list(self._warnings),
            cut=payload,
            manifest=manifest,
        )

    # Fatal stages

    async def _deploy(self, session: UpgradeSession) -> List[ModuleDeclaration]:
        await self._bind_proxy(session)

        deployed: List[ModuleDeclaration] = []
        for declaration in session.modules:
            descriptor = declaration.descriptor
            step = f"deploy:{descriptor.name}"

            if descriptor.is_deployed:
                address = to_checksum_address(descriptor.address)
                self._record(step, StepStatus.SKIPPED, f"existing deployment at {address}")
                self._context[f"module:{descriptor.name}"] = address
                deployed.append(declaration)
                continue

            outcome = await self.gateway.deploy_module(descriptor)
            if not outcome.success:
                log_module_deployment(descriptor.name, tx_hash=outcome.tx_hash, status="failed", error=outcome.error)
                self._abort(step, self._transaction_error(outcome, ModuleDeploymentError(descriptor.name, outcome.error)))

            address = to_checksum_address(outcome.contract_address)
            log_module_deployment(descriptor.name, address=address, tx_hash=outcome.tx_hash)
            self._record(step, StepStatus.SUCCESS, address)
            self._context[f"module:{descriptor.name}"] = address
            deployed.append(
                declaration.model_copy(update={"descriptor": descriptor.with_address(address)})
            )

        return deployed

    async def _bind_proxy(self, session: UpgradeSession) -> None:
        if session.proxy_address:
            address = to_checksum_address(session.proxy_address)
            self.gateway.bind_proxy(address)
            self._record("deploy:proxy", StepStatus.SKIPPED, f"existing proxy at {address}")
            self._context["proxy"] = address
            return

        proxy = session.proxy
        step = f"deploy:proxy:{proxy.name}"
        try:
            constructor_args = encode_arguments(
                proxy.constructor_types, resolve_args(proxy.constructor_args, self._context)
            )
        except DiamondCutterException as e:
            self._abort(step, e)

        outcome = await self.gateway.deploy_proxy(proxy.name, proxy.bytecode, constructor_args)
        if not outcome.success:
            log_module_deployment(proxy.name, tx_hash=outcome.tx_hash, status="failed", error=outcome.error)
            self._abort(step, self._transaction_error(outcome, ModuleDeploymentError(proxy.name, outcome.error)))

        address = to_checksum_address(outcome.contract_address)
        self.gateway.bind_proxy(address)
        log_module_deployment(proxy.name, address=address, tx_hash=outcome.tx_hash)
        self._record(step, StepStatus.SUCCESS, address)
        self._context["proxy"] = address

    def _resolve_selectors(self, modules: List[ModuleDeclaration]) -> ResolutionResult:
        try:
            proposals = [
                (m.descriptor, [selector for _, selector in extract_selectors(m.descriptor, self.policy)])
                for m in modules
            ]
            resolution = resolve_collisions(proposals, strict=self.strict)
        except DiamondCutterException as e:
            self._abort("resolve_selectors", e)

        for collision in resolution.collisions:
            self._warnings.append(collision.describe())

        total = sum(len(a.selectors) for a in resolution.assignments)
        self._record(
            "resolve_selectors",
            StepStatus.SUCCESS,
            f"{total} selectors, {len(resolution.collisions)} collisions dropped",
        )
        return resolution

    def _build_cut(
        self,
        session: UpgradeSession,
        modules: List[ModuleDeclaration],
        resolution: ResolutionResult,
    ) -> CutPayload:
        init_address, init_calldata = ZERO_ADDRESS, b""
        try:
            if session.cut_initializer:
                key = f"module:{session.cut_initializer.module}"
                if key not in self._context:
                    raise PlanValidationError(
                        f"Cut initializer module not declared: {session.cut_initializer.module}"
                    )
                init_address = self._context[key]
                call = session.cut_initializer.call
                init_calldata = encode_call(call.signature, resolve_args(call.args, self._context))

            payload = build_cut(resolution.assignments, session.action, init_address, init_calldata)
            if not payload.entries and not payload.has_initializer:
                raise PlanValidationError("Cut batch is empty: no module contributes a selector")
        except DiamondCutterException as e:
            self._abort("build_cut", e)

        self._record("build_cut", StepStatus.SUCCESS, f"{len(payload.entries)} entries, action {session.action.name}")
        return payload

    async def _submit_cut(self, payload: CutPayload) -> List[str]:
        """Submit the cut and return the facet list observed before it."""
        try:
            baseline = await self.gateway.facet_addresses()
        except DiamondCutterException as e:
            self._warnings.append(f"Routing table snapshot before cut failed: {e.message}")
            baseline = []

        wire = payload.to_wire()
        outcome = await self.gateway.submit_cut(payload)
        if not outcome.success:
            log_cut_submission(wire["cut"], tx_hash=outcome.tx_hash, status="failed", error=outcome.error)
            self._abort(
                "submit_cut",
                self._transaction_error(outcome, CutSubmissionError(outcome.error or "unknown error")),
                wire,
            )

        log_cut_submission(wire["cut"], tx_hash=outcome.tx_hash)
        self._record("submit_cut", StepStatus.SUCCESS, outcome.tx_hash)
        return baseline

    # Best-effort stages

    async def _initialize(self, modules: List[ModuleDeclaration]) -> None:
        for module in modules:
            step = f"initialize:{module.name}"
            if module.initializer is None:
                self._record(step, StepStatus.SKIPPED, "no initializer declared")
                continue
            await self._best_effort_call(step, module.initializer, f"Initializer of {module.name}")

    async def _configure(self, calls: List[ContractCall]) -> None:
        for call in calls:
            await self._best_effort_call(f"configure:{call.display_name}", call, f"Configuration {call.display_name}")

    async def _best_effort_call(self, step: str, call: ContractCall, description: str) -> None:
        try:
            calldata = encode_call(call.signature, resolve_args(call.args, self._context))
        except DiamondCutterException as e:
            self._record(step, StepStatus.FAILED, e.message)
            self._warnings.append(f"{description} failed: {e.message}")
            return

        outcome = await self.gateway.transact(calldata)
        if outcome.success:
            self._record(step, StepStatus.SUCCESS, outcome.tx_hash)
            return

        reason = outcome.error or "unknown error"
        if outcome.timed_out:
            reason = f"not confirmed within {settings.CONFIRMATION_TIMEOUT}s"
        self._record(step, StepStatus.FAILED, reason)
        self._warnings.append(f"{description} failed: {reason}")

    # Helpers

    @staticmethod
    def _transaction_error(
        outcome: TransactionOutcome, default: DiamondCutterException
    ) -> DiamondCutterException:
        if outcome.timed_out:
            return ConfirmationTimeoutError(outcome.tx_hash, settings.CONFIRMATION_TIMEOUT)
        return default

    def _abort(self, step: str, cause: DiamondCutterException, payload=None) -> None:
        self._record(step, StepStatus.FAILED, cause.message)
        raise UpgradeAbortedError(step, cause, payload)

    def _fail(self, error: UpgradeAbortedError, payload: Optional[CutPayload]) -> UpgradeReport:
        log_error(error, {"step": error.step, "payload": error.payload})

        failed_stage = error.step.split(":")[0]
        for stage in STAGES[STAGES.index(failed_stage) + 1:]:
            self._record(stage, StepStatus.SKIPPED, f"aborted at {error.step}")

        self._transition(UpgradeState.FAILED)
        return UpgradeReport(
            state=self.state,
            steps=list(self._steps),
            warnings=list(self._warnings),
            cut=payload,
            failure=FailureReport(
                step=error.step,
                error_code=error.cause.error_code,
                message=error.cause.message,
                payload=error.payload,
                details=error.details,
            ),
        )

    def _record(self, step: str, status: StepStatus, detail: Optional[str] = None) -> None:
        self._steps.append(StepResult(step=step, status=status, detail=detail))
        log_upgrade_step(step, status.value, detail)

    def _transition(self, state: UpgradeState) -> None:
        logger.info(f"Upgrade state {self.state.value} -> {state.value}")
        self.state = state
