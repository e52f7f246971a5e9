from dataclasses import dataclass
from typing import Optional, Union

MIN_IDENTIFIER_LENGTH = 8
HEX_ADDRESS_LENGTH = 42


@dataclass(frozen=True)
class ResolvedRecipient:
    identifier: str
    source: str


@dataclass(frozen=True)
class ResolutionError:
    message: str


def looks_like_ens(identifier: str) -> bool:
    return ".eth" in identifier or ".id" in identifier


def is_hex_address(identifier: Optional[str]) -> bool:
    return (
        isinstance(identifier, str)
        and identifier.startswith("0x")
        and len(identifier) >= HEX_ADDRESS_LENGTH
    )


def resolve_recipient(
    product_address: Optional[str] = None,
    metadata_address: Optional[str] = None,
    merchant_ens: str = "",
    merchant_address: str = "",
    fallback_address: Optional[str] = None,
    prefer_address_over_ens: bool = False,
) -> Union[ResolvedRecipient, ResolutionError]:
    """Pick the identifier a payment is sent to.

    Candidates in order: the product's address, the address carried in the
    order metadata, the merchant ENS name, the merchant address. A fallback
    hex address stands in for a missing or malformed candidate and, with
    ``prefer_address_over_ens``, for an ENS name as well.
    """
    candidates = (
        ("product", product_address),
        ("metadata", metadata_address),
        ("merchant_ens", merchant_ens),
        ("merchant_address", merchant_address),
    )
    source, identifier = next(((s, c) for s, c in candidates if c), ("none", None))
    has_fallback = is_hex_address(fallback_address)

    if not isinstance(identifier, str) or len(identifier) < MIN_IDENTIFIER_LENGTH:
        if has_fallback:
            return ResolvedRecipient(fallback_address, "fallback")
        return ResolutionError(
            "Invalid or missing payment address for this product. Please contact support."
        )

    if prefer_address_over_ens and looks_like_ens(identifier) and has_fallback:
        return ResolvedRecipient(fallback_address, "fallback")

    return ResolvedRecipient(identifier, source)
