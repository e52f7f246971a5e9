"""Order memo codec.

A memo is the on-chain reference tying a payment to an order. It has to fit
the 32 byte memo field, so it is built from a legible product prefix and a
short numeric fingerprint::

    Cool_Shirt_042137
    BRTSCPK_042137       (acronym, when the full name does not fit)
"""
import re
import secrets
from datetime import datetime, timezone
from typing import Iterable, Optional

MAX_MEMO_BYTES = 32
TRUNCATE_ACRONYM = "acronym"
TRUNCATE_CUT = "truncate"

_WORD_RE = re.compile(r"[A-Za-z0-9]+")
_MEMO_RE = re.compile(r"^(?P<prefix>.*)_(?P<fingerprint>\d+)$")


def fingerprint(text: str, width: int = 6) -> str:
    """djb2-style rolling hash (hash * 33 + c) reduced to ``width`` digits."""
    value = 5381
    for char in text:
        value = (value * 33 + ord(char)) & 0xFFFFFFFF
    return str(value % 10 ** width).zfill(width)


def new_salt() -> str:
    return str(secrets.randbelow(1000)).zfill(3)


def _words(name: str) -> list:
    # Splitting on non-alphanumerics also strips them.
    return _WORD_RE.findall(name or "")


def memo_prefix(product_name: str, budget: int, truncation: str = TRUNCATE_ACRONYM) -> str:
    words = _words(product_name)
    if not words or budget <= 0:
        return ""
    full = "_".join(words)
    if len(full) <= budget:
        return full
    if truncation == TRUNCATE_ACRONYM and len(words) > 1:
        acronym = "".join(word[0] for word in words).upper()
        return acronym[:budget]
    return full[:budget].rstrip("_")


def encode(
    product_name: str,
    salt: Optional[str] = None,
    now: Optional[datetime] = None,
    width: int = 6,
    truncation: str = TRUNCATE_ACRONYM,
) -> str:
    if not 1 <= width < MAX_MEMO_BYTES:
        raise ValueError(f"fingerprint width must be between 1 and {MAX_MEMO_BYTES - 1}")
    salt = new_salt() if salt is None else salt
    now = now or datetime.now(timezone.utc)
    base = f"{'_'.join(_words(product_name))}_{now.strftime('%Y%m%d%H%M%S')}_{salt}"
    digits = fingerprint(base, width)

    prefix = memo_prefix(product_name, MAX_MEMO_BYTES - width - 1, truncation)
    if not prefix:
        return digits
    return f"{prefix}_{digits}"


def decode(memo: str) -> str:
    """Return the product prefix of a memo, ``""`` when it is a bare fingerprint."""
    match = _MEMO_RE.match(memo or "")
    if match:
        return match.group("prefix")
    if (memo or "").isdigit():
        return ""
    return memo or ""


def match_product(memo: str, products: Iterable):
    """Find the catalogue product a memo was generated for."""
    prefix = decode(memo).lower()
    if not prefix:
        return None
    for product in products:
        words = _words(product.name)
        if product.id.lower() == prefix:
            return product
        if "_".join(words).lower().startswith(prefix):
            return product
        if len(words) > 1 and "".join(word[0] for word in words).lower().startswith(prefix):
            return product
    return None
