# tests/test_payment_header.py
"""
Unit tests for X-PAYMENT header decoding.
"""
import json

import pytest

from app.x402.errors import PaymentHeaderError
from app.x402.gateway import decode_payment_header

REQUEST_ID = "0x" + "ab" * 32
TX_HASH = "0x" + "cd" * 32


class TestDecodePaymentHeader:
    """Test decode_payment_header."""

    def test_valid(self):
        header = decode_payment_header(json.dumps({"requestId": REQUEST_ID, "txHash": TX_HASH}))
        assert header.requestId == REQUEST_ID
        assert header.txHash == TX_HASH

    def test_tx_hash_optional(self):
        assert decode_payment_header(json.dumps({"requestId": REQUEST_ID})).txHash is None

    def test_lowercased(self):
        header = decode_payment_header(json.dumps({"requestId": REQUEST_ID.upper().replace("0X", "0x")}))
        assert header.requestId == REQUEST_ID

    def test_extra_fields_ignored(self):
        header = decode_payment_header(json.dumps({"requestId": REQUEST_ID, "note": "hi"}))
        assert header.requestId == REQUEST_ID

    @pytest.mark.parametrize("value", ["not-json", "", "{", "null", "\"string\"", "[]"])
    def test_invalid_format(self, value):
        with pytest.raises(PaymentHeaderError) as exc_info:
            decode_payment_header(value)
        assert exc_info.value.message == "Invalid payment header format"
        assert exc_info.value.http_status == 400

    @pytest.mark.parametrize("payload", [{}, {"requestId": ""}, {"requestId": None}])
    def test_missing_request_id(self, payload):
        with pytest.raises(PaymentHeaderError) as exc_info:
            decode_payment_header(json.dumps(payload))
        assert exc_info.value.message == "Missing requestId"

    def test_invalid_request_id(self):
        with pytest.raises(PaymentHeaderError) as exc_info:
            decode_payment_header(json.dumps({"requestId": "0xnope"}))
        assert exc_info.value.message == "Invalid requestId format"

    def test_invalid_tx_hash(self):
        with pytest.raises(PaymentHeaderError) as exc_info:
            decode_payment_header(json.dumps({"requestId": REQUEST_ID, "txHash": "0x12"}))
        assert exc_info.value.message == "Invalid txHash format"
