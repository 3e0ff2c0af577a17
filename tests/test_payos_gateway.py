import json
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
import requests

from services.errors import GatewayError
from services.gateways.payos import PayOSGateway, truncate_description
from services.signature import compute_signature
from tests.helpers import SECRET


def _response(status_code=200, body=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = body if body is not None else {}
    return resp


@pytest.fixture
def session():
    return MagicMock(spec=requests.Session)


@pytest.fixture
def gateway(gateway_config, session):
    return PayOSGateway(gateway_config, session=session)


def test_truncate_description():
    assert truncate_description("Short") == "Short"
    long = "Phi kham benh cho lich hen so 123456"
    assert truncate_description(long) == long[:22] + "..."
    assert len(truncate_description(long)) == 25


def test_create_order_signs_request(gateway, session):
    session.post.return_value = _response(body={
        "code": "00",
        "desc": "success",
        "data": {
            "orderCode": 1760864100000,
            "amount": 150000,
            "checkoutUrl": "https://pay.payos.vn/web/abc",
            "paymentLinkId": "abc",
            "qrCode": "000201...",
        },
    })

    order = gateway.create_order("1760864100000", Decimal("150000"), "Phi kham benh #42")

    url = session.post.call_args[0][0]
    kwargs = session.post.call_args[1]
    assert url == "https://payos.test/v2/payment-requests"
    assert kwargs["headers"]["x-client-id"] == "test-client"
    assert kwargs["headers"]["x-api-key"] == "test-api-key"

    sent = kwargs["json"]
    signed = {k: sent[k] for k in ("amount", "cancelUrl", "description", "orderCode", "returnUrl")}
    assert sent["signature"] == compute_signature(signed, SECRET)
    assert sent["orderCode"] == 1760864100000
    assert sent["amount"] == 150000

    assert order.order_reference == "1760864100000"
    assert order.checkout_url == "https://pay.payos.vn/web/abc"
    assert order.payment_link_id == "abc"
    assert order.qr_code == "000201..."


def test_create_order_http_error(gateway, session):
    session.post.return_value = _response(status_code=500)
    with pytest.raises(GatewayError):
        gateway.create_order("1", Decimal("1000"), "x")


def test_create_order_rejected_code(gateway, session):
    session.post.return_value = _response(body={"code": "231", "desc": "Order already exists", "data": None})
    with pytest.raises(GatewayError):
        gateway.create_order("1", Decimal("1000"), "x")


def test_create_order_network_error(gateway, session):
    session.post.side_effect = requests.ConnectionError("down")
    with pytest.raises(GatewayError):
        gateway.create_order("1", Decimal("1000"), "x")


def test_create_order_without_credentials(gateway_config, session):
    from dataclasses import replace
    gateway = PayOSGateway(replace(gateway_config, api_key=""), session=session)
    with pytest.raises(GatewayError):
        gateway.create_order("1", Decimal("1000"), "x")
    session.post.assert_not_called()


def test_query_status(gateway, session):
    data = {"orderCode": 42, "status": "PAID", "amount": 150000, "amountPaid": 150000}
    session.get.return_value = _response(body={"code": "00", "desc": "success", "data": data})

    result = gateway.query_status("42")

    assert session.get.call_args[0][0] == "https://payos.test/v2/payment-requests/42"
    assert result.order_reference == "42"
    assert result.status == "PAID"
    assert json.loads(result.raw_payload) == data


def test_query_status_settlement_details(gateway, session):
    data = {
        "orderCode": 42,
        "status": "PAID",
        "amount": 150000,
        "cancellationReason": None,
        "transactions": [
            {"reference": "FT001", "amount": 50000},
            {"reference": "FT002", "amount": 100000},
        ],
    }
    session.get.return_value = _response(body={"code": "00", "desc": "success", "data": data})

    result = gateway.query_status("42")

    assert result.gateway_reference == "FT002"
    assert result.failure_reason is None


def test_query_status_cancellation_reason(gateway, session):
    data = {"orderCode": 42, "status": "CANCELLED", "cancellationReason": "Expired link", "transactions": []}
    session.get.return_value = _response(body={"code": "00", "desc": "success", "data": data})

    result = gateway.query_status("42")

    assert result.failure_reason == "Expired link"
    assert result.gateway_reference is None


def test_query_status_failure(gateway, session):
    session.get.return_value = _response(status_code=404)
    with pytest.raises(GatewayError):
        gateway.query_status("42")
