from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable

from eth_utils import to_checksum_address

from rewardscan.domain.decoding import ETH_DECIMALS, format_units
from rewardscan.domain.models import (
    CheckinRecord, ClaimRewardsRecord, ClaimUplineRewardRecord, CorrelatedEvents,
    DecodedCall, RegisterRecord, TransactionRecord, TxMeta,
)
from rewardscan.domain.value_types import Address, KNOWN_METHODS, MethodName, TxHash
from rewardscan.errors import ClassificationError


def _common_fields(call: DecodedCall, meta: TxMeta) -> dict[str, Any]:
    tx, block, receipt = meta.tx, meta.block, meta.receipt
    gas_price = tx.gas_price if tx.gas_price is not None else receipt.effective_gas_price
    if gas_price is None:
        raise ClassificationError(f"{tx.hash}: no gas price on transaction or receipt")
    if block.number != tx.block_number:
        raise ClassificationError(f"{tx.hash}: block {block.number} does not match tx block {tx.block_number}")
    if receipt.tx_hash.lower() != tx.hash.lower():
        raise ClassificationError(f"{tx.hash}: receipt belongs to {receipt.tx_hash}")
    return dict(
        tx_hash=TxHash(tx.hash),
        block_number=tx.block_number,
        block_timestamp=datetime.fromtimestamp(block.timestamp, tz=timezone.utc),
        transaction_index=tx.transaction_index,
        from_address=Address(to_checksum_address(tx.from_address)),
        eth_value=format_units(tx.value, ETH_DECIMALS),
        gas_fee=format_units(receipt.gas_used * gas_price, ETH_DECIMALS),
        gas_price=format_units(gas_price, ETH_DECIMALS),
        gas_used=int(receipt.gas_used),
        method_name=call.method.value,
    )


def _register(call: DecodedCall, base: dict[str, Any], ev: CorrelatedEvents) -> TransactionRecord:
    if not call.args:
        raise ClassificationError(f"{base['tx_hash']}: register call without referrer argument")
    return RegisterRecord(**base, referrer_address=Address(to_checksum_address(call.args[0])))

def _checkin(call: DecodedCall, base: dict[str, Any], ev: CorrelatedEvents) -> TransactionRecord:
    return CheckinRecord(**base, tokens_earned=ev.transfer.token_amount if ev.transfer else "0")

def _claim_rewards(call: DecodedCall, base: dict[str, Any], ev: CorrelatedEvents) -> TransactionRecord:
    pc = ev.points_claimed
    return ClaimRewardsRecord(
        **base,
        usdt_amount=pc.usdt_amount if pc else "0",
        token_amount=pc.token_amount if pc else "0",
    )

def _claim_upline(call: DecodedCall, base: dict[str, Any], ev: CorrelatedEvents) -> TransactionRecord:
    tr = ev.transfer
    return ClaimUplineRewardRecord(
        **base,
        token_amount=tr.token_amount if tr else "0",
        recipient_address=tr.to_address if tr else Address(""),
    )


Builder = Callable[[DecodedCall, dict[str, Any], CorrelatedEvents], TransactionRecord]

ROUTES: dict[MethodName, Builder] = {
    MethodName.REGISTER: _register,
    MethodName.CHECKIN: _checkin,
    MethodName.CLAIM_REWARDS: _claim_rewards,
    MethodName.CLAIM_UPLINE_REWARDS: _claim_upline,
}

# a method added to MethodName without a route fails at import, not at runtime
if set(ROUTES) != set(KNOWN_METHODS):
    raise RuntimeError(f"Unrouted methods: {sorted(m.value for m in set(KNOWN_METHODS) - set(ROUTES))}")


def classify(call: DecodedCall, meta: TxMeta, correlated: CorrelatedEvents) -> TransactionRecord | None:
    """Map one decoded transaction to its record, or None for UNKNOWN methods.

    Raises ClassificationError when tx/block/receipt metadata is malformed.
    """
    build = ROUTES.get(call.method)
    if build is None:
        return None
    try:
        return build(call, _common_fields(call, meta), correlated)
    except ClassificationError:
        raise
    except (TypeError, ValueError, AttributeError) as e:
        raise ClassificationError(f"{meta.tx.hash}: {type(e).__name__}: {e}") from e
