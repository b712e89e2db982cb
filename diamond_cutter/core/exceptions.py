"""
Custom exceptions for the Diamond Cutter.
Provides structured error handling for selector routing and upgrade runs.
"""

from typing import Any, Dict, Optional


class DiamondCutterException(Exception):
    """Base exception for the Diamond Cutter."""

    def __init__(
        self,
        message: str,
        error_code: str = "DIAMOND_CUTTER_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


# Module descriptors & selectors
class InvalidModuleDescriptorError(DiamondCutterException):
    """Raised when a module interface descriptor is malformed."""

    def __init__(self, module_name: str, reason: str, details: Optional[Dict[str, Any]] = None):
        message = f"Invalid module descriptor {module_name}: {reason}"
        super().__init__(message, "INVALID_MODULE_DESCRIPTOR", details)


class DuplicateSelectorError(DiamondCutterException):
    """Raised when two functions of the same module hash to one selector."""

    def __init__(self, module_name: str, selector: str, details: Optional[Dict[str, Any]] = None):
        message = f"Duplicate selector {selector} inside module {module_name}"
        super().__init__(message, "DUPLICATE_SELECTOR", details)


class SelectorCollisionError(DiamondCutterException):
    """Raised in strict mode when two modules offer the same selector."""

    def __init__(
        self,
        selector: str,
        owner: str,
        contender: str,
        details: Optional[Dict[str, Any]] = None
    ):
        message = f"Selector {selector} of {contender} already claimed by {owner}"
        details = {"selector": selector, "owner": owner, "contender": contender, **(details or {})}
        super().__init__(message, "SELECTOR_COLLISION", details)


class EmptyCutEntryError(DiamondCutterException):
    """Raised when a cut entry without selectors reaches the builder."""

    def __init__(self, module_name: str, details: Optional[Dict[str, Any]] = None):
        message = f"Cut entry for {module_name} has no selectors"
        super().__init__(message, "EMPTY_CUT_ENTRY", details)


# Inputs
class ArtifactNotFoundError(DiamondCutterException):
    """Raised when a compiled contract artifact cannot be located."""

    def __init__(self, contract_name: str, details: Optional[Dict[str, Any]] = None):
        message = f"Artifact not found: {contract_name}"
        super().__init__(message, "ARTIFACT_NOT_FOUND", details)


class PlanValidationError(DiamondCutterException):
    """Raised when an upgrade plan is inconsistent."""

    def __init__(self, message: str = "Upgrade plan is invalid", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "PLAN_VALIDATION_ERROR", details)


# Ledger operations
class LedgerConnectionError(DiamondCutterException):
    """Raised when the ledger gateway cannot be set up."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "LEDGER_UNAVAILABLE", details)


class ExecutionReverted(DiamondCutterException):
    """Raised by a ledger when a call or transaction reverts."""

    def __init__(self, reason: str = "execution reverted", details: Optional[Dict[str, Any]] = None):
        super().__init__(reason, "EXECUTION_REVERTED", details)


class ModuleDeploymentError(DiamondCutterException):
    """Raised when a module deployment is not confirmed."""

    def __init__(self, module_name: str, reason: str, details: Optional[Dict[str, Any]] = None):
        message = f"Deployment of {module_name} failed: {reason}"
        super().__init__(message, "MODULE_DEPLOYMENT_FAILED", details)


class CutSubmissionError(DiamondCutterException):
    """Raised when the cut batch is rejected, reverted or unconfirmed."""

    def __init__(self, reason: str, details: Optional[Dict[str, Any]] = None):
        message = f"Diamond cut rejected: {reason}"
        super().__init__(message, "CUT_SUBMISSION_FAILED", details)


class ConfirmationTimeoutError(DiamondCutterException):
    """Raised when a transaction is not confirmed within the budget."""

    def __init__(self, tx_hash: Optional[str], timeout: int, details: Optional[Dict[str, Any]] = None):
        message = f"Transaction {tx_hash} not confirmed within {timeout}s"
        super().__init__(message, "CONFIRMATION_TIMEOUT", details)


class UpgradeAbortedError(DiamondCutterException):
    """Raised when a fatal step halts the upgrade run."""

    def __init__(
        self,
        step: str,
        cause: DiamondCutterException,
        payload: Any = None,
    ):
        self.step = step
        self.cause = cause
        self.payload = payload
        details = {
            "step": step,
            "cause_code": cause.error_code,
            "ledger_error": cause.message,
        }
        details.update(cause.details)
        super().__init__(f"Upgrade aborted at {step}: {cause.message}", "UPGRADE_ABORTED", details)
