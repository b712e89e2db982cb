"""
Cut Builder.
Turns a resolved selector assignment into the ordered cut batch.
"""

from typing import Sequence

from diamond_cutter.core.exceptions import InvalidModuleDescriptorError
from diamond_cutter.core.logging import get_logger
from diamond_cutter.domain.models.cut import ZERO_ADDRESS, CutAction, CutEntry, CutPayload
from diamond_cutter.services.collision_resolver import SelectorAssignment

logger = get_logger(__name__)


def build_cut(
    assignments: Sequence[SelectorAssignment],
    action: CutAction,
    init_address: str = ZERO_ADDRESS,
    init_calldata: bytes = b"",
) -> CutPayload:
    """
    Build the cut batch, one entry per module with at least one selector.

    Args:
        assignments: Resolved selectors in module declaration order
        action: Add, Replace or Remove for every entry
        init_address: Init delegate executed inside the cut, zero for none
        init_calldata: Calldata for the init delegate

    Returns:
        CutPayload submitted as one atomic mutation
    """
    entries = []
    for assignment in assignments:
        module = assignment.module
        if not assignment.selectors:
            logger.info(f"{module.name} contributes no cut entry")
            continue
        if not module.address:
            raise InvalidModuleDescriptorError(module.name, "module has no address")
        entries.append(
            CutEntry(
                module_name=module.name,
                module_address=module.address,
                action=action,
                selectors=tuple(assignment.selectors),
            )
        )

    payload = CutPayload(
        entries=tuple(entries), init_address=init_address, init_calldata=init_calldata
    )
    logger.info(f"Diamond cut prepared with {len(entries)} facets")
    return payload
