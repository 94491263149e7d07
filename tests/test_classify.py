"""
Tests for mapping decoded transactions onto persisted record shapes.
"""
from datetime import datetime, timezone

import pytest

from rewardscan.domain.classify import ROUTES, classify
from rewardscan.domain.models import (
    Block, CheckinRecord, ClaimRewardsRecord, ClaimUplineRewardRecord, CorrelatedEvents, DecodedCall,
    PointsClaimed, Receipt, RegisterRecord, TokenTransfer, Transaction, TxMeta,
)
from rewardscan.domain.value_types import KNOWN_METHODS, Category, MethodName
from rewardscan.errors import ClassificationError

from fakes import CONTRACT, RECIPIENT, REFERRER, USER, tx_hash

H = tx_hash(7)


def _meta(*, gas_price=2_000_000_000, effective=None, block_number=100, receipt_hash=H, value=10**17):
    tx = Transaction(hash=H, block_number=100, transaction_index=3, from_address=USER.lower(),
                     to_address=CONTRACT.lower(), value=value, gas_price=gas_price, input="0x")
    return TxMeta(
        tx=tx,
        block=Block(number=block_number, timestamp=1_700_000_000),
        receipt=Receipt(tx_hash=receipt_hash, gas_used=21_000, effective_gas_price=effective),
    )


EXPECTED = {
    MethodName.REGISTER: RegisterRecord,
    MethodName.CHECKIN: CheckinRecord,
    MethodName.CLAIM_REWARDS: ClaimRewardsRecord,
    MethodName.CLAIM_UPLINE_REWARDS: ClaimUplineRewardRecord,
}


class TestClassificationTotality:

    def test_every_known_method_is_routed(self):
        assert set(ROUTES) == set(KNOWN_METHODS)

    @pytest.mark.parametrize("method", list(KNOWN_METHODS))
    def test_known_methods_yield_matching_variant(self, method):
        args = (REFERRER,) if method is MethodName.REGISTER else ()
        rec = classify(DecodedCall(method, args), _meta(), CorrelatedEvents())
        assert type(rec) is EXPECTED[method]
        assert rec.method_name == method.value

    def test_unknown_yields_none(self):
        assert classify(DecodedCall(MethodName.UNKNOWN, (), raw_name="setFee"), _meta(), CorrelatedEvents()) is None

    def test_categories_are_distinct(self):
        assert len({cls.category for cls in EXPECTED.values()}) == len(Category)


class TestCommonFields:

    def test_metadata_normalization(self):
        rec = classify(DecodedCall(MethodName.CHECKIN), _meta(), CorrelatedEvents())
        assert rec.tx_hash == H
        assert rec.block_number == 100
        assert rec.transaction_index == 3
        assert rec.block_timestamp == datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)
        assert rec.from_address == USER
        assert rec.eth_value == "0.1"
        assert rec.gas_price == "0.000000002"
        assert rec.gas_fee == "0.000042"
        assert rec.gas_used == 21_000

    def test_effective_gas_price_used_when_tx_has_none(self):
        rec = classify(DecodedCall(MethodName.CHECKIN), _meta(gas_price=None, effective=10**9), CorrelatedEvents())
        assert rec.gas_price == "0.000000001"

    def test_missing_gas_price_is_a_classification_error(self):
        with pytest.raises(ClassificationError):
            classify(DecodedCall(MethodName.CHECKIN), _meta(gas_price=None), CorrelatedEvents())

    def test_mismatched_receipt_is_a_classification_error(self):
        with pytest.raises(ClassificationError):
            classify(DecodedCall(MethodName.CHECKIN), _meta(receipt_hash=tx_hash(8)), CorrelatedEvents())

    def test_register_without_argument_is_a_classification_error(self):
        with pytest.raises(ClassificationError):
            classify(DecodedCall(MethodName.REGISTER, ()), _meta(), CorrelatedEvents())


class TestVariantFields:

    def test_register_referrer(self):
        rec = classify(DecodedCall(MethodName.REGISTER, (REFERRER.lower(),)), _meta(), CorrelatedEvents())
        assert rec.referrer_address == REFERRER

    def test_checkin_tokens_from_transfer(self):
        ev = CorrelatedEvents(transfers_all=(TokenTransfer(CONTRACT, USER, "12.5"),))
        assert classify(DecodedCall(MethodName.CHECKIN), _meta(), ev).tokens_earned == "12.5"

    def test_claim_rewards_from_points_claimed(self):
        ev = CorrelatedEvents(points_claimed_all=(PointsClaimed(USER, "5", "7"),))
        rec = classify(DecodedCall(MethodName.CLAIM_REWARDS), _meta(), ev)
        assert (rec.usdt_amount, rec.token_amount) == ("5", "7")

    def test_claim_upline_from_transfer(self):
        ev = CorrelatedEvents(transfers_all=(TokenTransfer(CONTRACT, RECIPIENT, "3"),))
        rec = classify(DecodedCall(MethodName.CLAIM_UPLINE_REWARDS), _meta(), ev)
        assert (rec.token_amount, rec.recipient_address) == ("3", RECIPIENT)

    def test_defaults_without_events(self):
        none = CorrelatedEvents()
        assert classify(DecodedCall(MethodName.CHECKIN), _meta(), none).tokens_earned == "0"
        rewards = classify(DecodedCall(MethodName.CLAIM_REWARDS), _meta(), none)
        assert (rewards.usdt_amount, rewards.token_amount) == ("0", "0")
        upline = classify(DecodedCall(MethodName.CLAIM_UPLINE_REWARDS), _meta(), none)
        assert (upline.token_amount, upline.recipient_address) == ("0", "")
