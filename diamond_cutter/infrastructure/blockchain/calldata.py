"""
Calldata encoding for proxy calls and diamond cut payloads.
"""

import re
from decimal import Decimal
from typing import Any, Dict, Sequence

from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from eth_abi.exceptions import EncodingError, ParseError
from eth_utils import to_checksum_address
from web3 import Web3

from diamond_cutter.core.exceptions import PlanValidationError
from diamond_cutter.domain.models.cut import CutAction, CutEntry, CutPayload
from diamond_cutter.domain.models.module import Selector
from diamond_cutter.infrastructure.blockchain.selectors import (
    DIAMOND_CUT_SIGNATURE,
    parse_signature,
    selector_for,
)

DIAMOND_CUT_TYPES = ["(address,uint8,bytes4[])[]", "address", "bytes"]

_PLACEHOLDER = re.compile(r"^\$\{([A-Za-z_]+)(?::([A-Za-z0-9_\-]+))?\}$")
_ETHER_AMOUNT = re.compile(r"^(\d+(?:\.\d+)?)\s*ether$")


def encode_call(signature: str, args: Sequence[Any] = ()) -> bytes:
    """Return selector ‖ abi-encoded arguments for a canonical signature."""
    try:
        _, types = parse_signature(signature)
    except ValueError as e:
        raise PlanValidationError(str(e), {"signature": signature}) from e
    if len(types) != len(args):
        raise PlanValidationError(
            f"{signature} expects {len(types)} arguments, got {len(args)}",
            {"signature": signature},
        )
    try:
        encoded = abi_encode(types, list(args))
    except (EncodingError, ParseError, ValueError) as e:
        raise PlanValidationError(f"Cannot encode {signature}: {e}", {"signature": signature}) from e
    return selector_for(signature).value + encoded


def encode_arguments(types: Sequence[str], args: Sequence[Any]) -> bytes:
    """ABI-encode constructor arguments (no selector)."""
    try:
        return abi_encode(list(types), list(args))
    except (EncodingError, ParseError, ValueError) as e:
        raise PlanValidationError(f"Cannot encode constructor arguments: {e}") from e


def decode_output(output_types: Sequence[str], data: bytes) -> tuple:
    """Decode return data of a read-only call."""
    if not output_types:
        return ()
    return abi_decode(list(output_types), data)


def encode_diamond_cut(payload: CutPayload) -> bytes:
    """
    Encode ``diamondCut((address,uint8,bytes4[])[],address,bytes)``.

    Remove entries carry the zero address, a zero init address with empty
    calldata means no initializer.
    """
    cut = [
        (
            to_checksum_address(entry.wire_address),
            int(entry.action),
            [selector.value for selector in entry.selectors],
        )
        for entry in payload.entries
    ]
    args = [cut, to_checksum_address(payload.init_address), payload.init_calldata]
    return selector_for(DIAMOND_CUT_SIGNATURE).value + abi_encode(DIAMOND_CUT_TYPES, args)


def decode_diamond_cut(calldata: bytes) -> CutPayload:
    """Decode diamondCut calldata back into a CutPayload."""
    expected = selector_for(DIAMOND_CUT_SIGNATURE)
    if calldata[:4] != expected.value:
        raise ValueError(f"Not diamondCut calldata: {calldata[:4].hex()}")
    cut, init_address, init_calldata = abi_decode(DIAMOND_CUT_TYPES, calldata[4:])
    entries = []
    for index, (address, action, selectors) in enumerate(cut):
        entries.append(
            CutEntry(
                module_name=f"entry{index}",
                module_address=to_checksum_address(address),
                action=CutAction(action),
                selectors=tuple(Selector(value=s) for s in selectors),
            )
        )
    return CutPayload(
        entries=tuple(entries),
        init_address=to_checksum_address(init_address),
        init_calldata=bytes(init_calldata),
    )


def resolve_args(args: Any, context: Dict[str, str]) -> Any:
    """
    Substitute plan placeholders inside call arguments.

    ``${deployer}``, ``${proxy}`` and ``${module:Name}`` resolve to addresses
    from ``context``; ``"0.01 ether"`` resolves to wei.
    """
    if isinstance(args, list):
        return [resolve_args(a, context) for a in args]
    if isinstance(args, tuple):
        return tuple(resolve_args(a, context) for a in args)
    if not isinstance(args, str):
        return args

    placeholder = _PLACEHOLDER.match(args)
    if placeholder:
        key = placeholder.group(1)
        if placeholder.group(2):
            key = f"{key}:{placeholder.group(2)}"
        if key not in context:
            raise PlanValidationError(f"Unknown placeholder: {args}", {"placeholder": key})
        return context[key]

    amount = _ETHER_AMOUNT.match(args)
    if amount:
        return Web3.to_wei(Decimal(amount.group(1)), "ether")

    return args
