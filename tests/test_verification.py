from decimal import Decimal

import pytest

from merchant_yapp.schemas import RemotePayment
from merchant_yapp.verification import (
    Accepted,
    Rejected,
    RejectReason,
    is_subdomain,
    verify,
)


def remote(**overrides):
    data = {
        "memo": "ABC_00042",
        "amount": 10,
        "currency": "USD",
        "to": "pay.merchant.eth",
        "status": "confirmed",
    }
    data.update(overrides)
    return RemotePayment.from_indexer({"payment": data})


def test_matching_payment_is_accepted(order):
    outcome = verify(order, remote())
    assert isinstance(outcome, Accepted)
    assert outcome.order_details.name == "Cool Shirt"
    assert outcome.order_details.price == Decimal("10")


def test_underpayment_is_rejected(order):
    outcome = verify(order, remote(amount=8))
    assert isinstance(outcome, Rejected)
    assert outcome.reason is RejectReason.AMOUNT_TOO_LOW
    assert "(8)" in outcome.message


@pytest.mark.parametrize("amount,accepted", [
    ("10", True),
    ("9.999999", False),
    ("11", True),
])
def test_amount_boundary(order, amount, accepted):
    outcome = verify(order, remote(amount=amount))
    assert isinstance(outcome, Accepted) is accepted


def test_missing_amount_is_too_low(order):
    outcome = verify(order, remote(amount=None))
    assert outcome.reason is RejectReason.AMOUNT_TOO_LOW


def test_missing_order(order):
    outcome = verify(None, remote())
    assert outcome.reason is RejectReason.ORDER_NOT_FOUND_LOCALLY
    assert not outcome.retryable


def test_unconfirmed_payment(order):
    outcome = verify(order, remote(status="pending"))
    assert outcome.reason is RejectReason.NOT_YET_CONFIRMED
    assert outcome.retryable


def test_block_timestamp_counts_as_confirmed(order):
    outcome = verify(order, remote(status=None, blockTimestamp="2025-03-01T12:00:00Z"))
    assert isinstance(outcome, Accepted)
    assert outcome.order_details.timestamp == "2025-03-01T12:00:00Z"


def test_currency_must_match_exactly(order):
    outcome = verify(order, remote(currency="usd"))
    assert outcome.reason is RejectReason.CURRENCY_MISMATCH
    assert outcome.details == {"currency": "usd", "expected": "USD"}


def test_bare_root_recipient_is_rejected(order):
    bare = order.model_copy(update={"expected_recipient": "merchant.eth"})
    outcome = verify(bare, remote(to="merchant.eth"))
    assert outcome.reason is RejectReason.RECIPIENT_NOT_SUBDOMAIN


def test_recipient_compared_case_insensitively(order):
    outcome = verify(order, remote(to="Pay.Merchant.ETH"))
    assert isinstance(outcome, Accepted)


def test_recipient_aliases(order):
    payment = RemotePayment.from_indexer({
        "memo": "ABC_00042", "amount": "10", "currency": "USD",
        "receiver": "pay.merchant.eth", "status": "confirmed",
    })
    assert isinstance(verify(order, payment), Accepted)


def test_other_recipient_is_rejected(order):
    outcome = verify(order, remote(to="thief.attacker.eth"))
    assert outcome.reason is RejectReason.RECIPIENT_MISMATCH


def test_memo_mismatch(order):
    outcome = verify(order, remote(memo="ABC_00043"))
    assert outcome.reason is RejectReason.MEMO_MISMATCH


def test_wrong_chain(order):
    outcome = verify(order, remote(chainId=137), required_chain_id=1)
    assert outcome.reason is RejectReason.WRONG_CHAIN


def test_chain_not_checked_when_not_required(order):
    assert isinstance(verify(order, remote(chainId=137)), Accepted)


def test_checks_stop_at_first_failure(order):
    outcome = verify(order, remote(amount=1, currency="EUR", memo="nope"))
    assert outcome.reason is RejectReason.AMOUNT_TOO_LOW


def test_is_subdomain():
    assert is_subdomain("sub.merchant.eth")
    assert not is_subdomain("merchant.eth")
    assert not is_subdomain("0x742d35Cc6634C0532925a3b844Bc454e4438f44e")
    assert is_subdomain("shirts.merchant.eth", root="merchant.eth")
    assert not is_subdomain("shirts.other.eth", root="merchant.eth")
    assert not is_subdomain("merchant.eth", root="merchant.eth")
