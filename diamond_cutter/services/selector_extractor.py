"""
Selector Extractor.
Derives the externally routable selectors of a module.
"""

from typing import Dict, List, Tuple

from diamond_cutter.core.exceptions import DuplicateSelectorError
from diamond_cutter.core.logging import get_logger
from diamond_cutter.domain.models.module import ExclusionPolicy, ModuleDescriptor, Selector
from diamond_cutter.infrastructure.blockchain.selectors import selector_for

logger = get_logger(__name__)


def extract_selectors(
    descriptor: ModuleDescriptor, policy: ExclusionPolicy
) -> List[Tuple[str, Selector]]:
    """
    Compute the routable surface of a module.

    Args:
        descriptor: Module interface
        policy: Functions that must never be routed

    Returns:
        (function name, selector) pairs in interface declaration order

    Raises:
        DuplicateSelectorError: two fragments of the module share a selector
    """
    extracted: List[Tuple[str, Selector]] = []
    owners: Dict[Selector, str] = {}

    for fragment in descriptor.functions:
        if policy.excludes(fragment):
            continue
        selector = selector_for(fragment.signature)
        if selector in owners:
            logger.error(
                f"{descriptor.name}: {fragment.signature} and {owners[selector]} share selector {selector.hex}"
            )
            raise DuplicateSelectorError(
                descriptor.name,
                selector.hex,
                {"functions": [owners[selector], fragment.signature]},
            )
        owners[selector] = fragment.signature
        extracted.append((fragment.name, selector))

    logger.info(
        f"{descriptor.name} functions ({len(extracted)} of {len(descriptor.functions)} routable)"
    )
    for name, selector in extracted:
        logger.debug(f"  {name}: {selector.hex}")

    return extracted
