"""
Collision Resolver.
Merges the selectors proposed by several modules into one non-overlapping
assignment, first declaration wins.
"""

from typing import Dict, List, Sequence, Tuple

from pydantic import BaseModel

from diamond_cutter.core.exceptions import DuplicateSelectorError, SelectorCollisionError
from diamond_cutter.core.logging import get_logger, log_selector_collision
from diamond_cutter.domain.models.module import ModuleDescriptor, Selector

logger = get_logger(__name__)


class SelectorCollision(BaseModel):
    """A selector offered by a later module but already owned by an earlier one."""

    selector: Selector
    owner: str
    contender: str

    def describe(self) -> str:
        return (
            f"Selector {self.selector.hex} of {self.contender} already routed to "
            f"{self.owner}; dropped from {self.contender}"
        )


class SelectorAssignment(BaseModel):
    """Selectors a module keeps after resolution."""

    module: ModuleDescriptor
    selectors: List[Selector]


class ResolutionResult(BaseModel):
    """Per-module assignment plus every collision that was resolved."""

    assignments: List[SelectorAssignment]
    collisions: List[SelectorCollision]


def resolve_collisions(
    proposals: Sequence[Tuple[ModuleDescriptor, Sequence[Selector]]],
    strict: bool = False,
) -> ResolutionResult:
    """
    Assign every selector to the first module that proposes it.

    Args:
        proposals: (module, proposed selectors) in declaration order
        strict: raise instead of dropping a colliding selector

    Returns:
        ResolutionResult with one assignment per module, in declaration order

    Raises:
        SelectorCollisionError: strict mode and a selector is offered twice
    """
    owners: Dict[Selector, str] = {}
    assignments: List[SelectorAssignment] = []
    collisions: List[SelectorCollision] = []

    for module, proposed in proposals:
        kept: List[Selector] = []
        for selector in proposed:
            owner = owners.get(selector)
            if owner is None:
                owners[selector] = module.name
                kept.append(selector)
                continue
            if owner == module.name:
                raise DuplicateSelectorError(module.name, selector.hex)
            if strict:
                raise SelectorCollisionError(selector.hex, owner, module.name)
            log_selector_collision(selector.hex, owner, module.name)
            collisions.append(SelectorCollision(selector=selector, owner=owner, contender=module.name))

        if proposed and not kept:
            logger.warning(f"Skipping {module.name}: no new selectors")
        assignments.append(SelectorAssignment(module=module, selectors=kept))

    return ResolutionResult(assignments=assignments, collisions=collisions)
