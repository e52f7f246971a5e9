from typing import Optional
from urllib.parse import quote, urlencode

from merchant_yapp.schemas import Order


def confirmation_url(
    order_id: str,
    tx_hash: Optional[str] = None,
    chain_id: Optional[int] = None,
    order: Optional[Order] = None,
    path: str = "/confirmation",
) -> str:
    params = {"orderId": order_id}
    if tx_hash:
        params["txHash"] = tx_hash
    if chain_id is not None:
        params["chainId"] = str(chain_id)
    if order is not None:
        params["name"] = order.name
        params["price"] = str(order.price)
        params["currency"] = order.currency
        if order.emoji:
            params["emoji"] = order.emoji
        params["timestamp"] = order.created_at.isoformat()
    return f"{path}?{urlencode(params)}"


def receipt_url(tx_hash: str, base: str = "https://yodl.me/tx") -> str:
    return f"{base.rstrip('/')}/{tx_hash}"


def contact_seller_url(handle: str, product_name: str, shop_name: str, receipt: str) -> str:
    text = "\n".join([
        f"Hey, I just bought {product_name} from {shop_name}.",
        "",
        "Where can I pick it up?",
        "",
        f"Here is the receipt: {receipt}",
    ])
    return f"https://t.me/{handle.lstrip('@')}?text={quote(text)}"
