"""
Function selector derivation.

A selector is the first 4 bytes of keccak256 over the canonical signature.
Well-known proxy selectors are kept in DIAMOND_SELECTORS so that hashing and
the values the proxy expects never drift apart.
"""

from functools import lru_cache
from typing import Any, Dict, List, Mapping, Tuple

from web3 import Web3

from diamond_cutter.domain.models.module import FunctionFragment, Mutability, Selector


DIAMOND_CUT_SIGNATURE = "diamondCut((address,uint8,bytes4[])[],address,bytes)"
FACET_ADDRESSES_SIGNATURE = "facetAddresses()"
FACET_ADDRESS_SIGNATURE = "facetAddress(bytes4)"

DIAMOND_SELECTORS: Dict[str, str] = {
    # IDiamondCut
    DIAMOND_CUT_SIGNATURE: "0x1f931c1c",
    # IDiamondLoupe
    "facets()": "0x7a0ed627",
    "facetFunctionSelectors(address)": "0xadfca15e",
    FACET_ADDRESSES_SIGNATURE: "0x52ef6b2c",
    FACET_ADDRESS_SIGNATURE: "0xcdffacc6",
    # IERC165
    "supportsInterface(bytes4)": "0x01ffc9a7",
}


@lru_cache(maxsize=1024)
def selector_for(signature: str) -> Selector:
    """Return the selector of a canonical function signature."""
    return Selector(value=Web3.keccak(text=signature)[:4])


def split_types(type_list: str) -> List[str]:
    """Split a comma-joined type list, respecting tuple parentheses."""
    types: List[str] = []
    depth = 0
    current = ""
    for char in type_list:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth < 0:
                raise ValueError(f"Unbalanced parentheses in {type_list!r}")
        if char == "," and depth == 0:
            types.append(current.strip())
            current = ""
        else:
            current += char
    if depth != 0:
        raise ValueError(f"Unbalanced parentheses in {type_list!r}")
    if current.strip():
        types.append(current.strip())
    return types


def parse_signature(signature: str) -> Tuple[str, List[str]]:
    """
    Split a canonical signature into its name and parameter types.

    Args:
        signature: e.g. ``updateSlot(uint256,uint256,uint256)``

    Returns:
        Tuple of (name, parameter types)
    """
    signature = signature.replace(" ", "")
    open_index = signature.find("(")
    if open_index <= 0 or not signature.endswith(")"):
        raise ValueError(f"Not a canonical signature: {signature!r}")
    name = signature[:open_index]
    return name, split_types(signature[open_index + 1:-1])


def canonical_type(param: Mapping[str, Any]) -> str:
    """
    Render an ABI JSON parameter as its canonical type.

    Tuples become ``(t1,t2)`` with any array suffix kept, so
    ``{"type": "tuple[]", "components": [...]}`` renders as ``(address,uint8)[]``.
    """
    abi_type = param["type"]
    if abi_type.startswith("tuple"):
        inner = ",".join(canonical_type(c) for c in param.get("components", []))
        return f"({inner}){abi_type[len('tuple'):]}"
    return abi_type


def fragment_from_abi(entry: Mapping[str, Any]) -> FunctionFragment:
    """Build a FunctionFragment from one ABI JSON function entry."""
    mutability = entry.get("stateMutability")
    if mutability is None:
        # Pre-0.5 ABI without stateMutability
        if entry.get("constant"):
            mutability = "view"
        elif entry.get("payable"):
            mutability = "payable"
        else:
            mutability = "nonpayable"
    return FunctionFragment(
        name=entry["name"],
        inputs=tuple(canonical_type(p) for p in entry.get("inputs", [])),
        outputs=tuple(canonical_type(p) for p in entry.get("outputs", [])),
        mutability=Mutability(mutability),
    )


def fragments_from_abi(abi: List[Mapping[str, Any]]) -> List[FunctionFragment]:
    """Function fragments of an ABI in declaration order (events, errors and constructors dropped)."""
    return [fragment_from_abi(entry) for entry in abi if entry.get("type") == "function"]
