"""
payments/callbacks.py - Signature checks for payment gateway webhooks

VNPay, MoMo and ZaloPay each sign their callbacks with an HMAC over a
provider-specific string. A callback is only trusted once the signature we
compute with the merchant secret matches the one it carries.
"""

import hashlib
import hmac
import json
import logging
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional
from urllib.parse import quote_plus

from pydantic import BaseModel, Field

from ..config import PaymentConfig
from ..errors import ConfigError, SignatureMismatchError

logger = logging.getLogger(__name__)

VNPAY_HASH_FIELDS = ("vnp_SecureHash", "vnp_SecureHashType")
VNPAY_SUCCESS_CODE = "00"

# Signed in exactly this order, after accessKey
MOMO_SIGNATURE_FIELDS = (
    "amount", "extraData", "message", "orderId", "orderInfo", "orderType",
    "partnerCode", "payType", "requestId", "responseTime", "resultCode", "transId",
)


class PaymentProvider(str, Enum):
    VNPAY = "vnpay"
    MOMO = "momo"
    ZALOPAY = "zalopay"


class PaymentCallback(BaseModel):
    """A callback whose signature has been verified."""
    provider: PaymentProvider
    order_id: str
    transaction_id: Optional[str] = None
    amount: int
    success: bool
    raw: Dict[str, Any] = Field(default_factory=dict)


def _hmac_hex(key: str, message: str, digestmod) -> str:
    return hmac.new(key.encode("utf-8"), message.encode("utf-8"), digestmod).hexdigest()


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def vnpay_secure_hash(params: Mapping[str, Any], secret: str) -> str:
    """HMAC-SHA512 over the sorted, URL-encoded parameters minus the hash fields."""
    signed = sorted((k, v) for k, v in params.items() if k not in VNPAY_HASH_FIELDS)
    query = "&".join(f"{key}={quote_plus(_text(value))}" for key, value in signed)
    return _hmac_hex(secret, query, hashlib.sha512)


def momo_signature(params: Mapping[str, Any], access_key: str, secret_key: str) -> str:
    raw = f"accessKey={access_key}&" + "&".join(
        f"{field}={_text(params.get(field))}" for field in MOMO_SIGNATURE_FIELDS
    )
    return _hmac_hex(secret_key, raw, hashlib.sha256)


def zalopay_mac(data: str, key2: str) -> str:
    return _hmac_hex(key2, data, hashlib.sha256)


def _require(value: Optional[str], name: str) -> str:
    if not value:
        raise ConfigError(f"Payment secret '{name}' is not configured")
    return value


def _check(provider: PaymentProvider, received: Any, expected: str) -> None:
    if not isinstance(received, str) or not hmac.compare_digest(received.lower(), expected.lower()):
        logger.warning(f"{provider.value} callback signature mismatch")
        raise SignatureMismatchError(f"Invalid {provider.value} callback signature")


def verify_vnpay(params: Mapping[str, Any], secret: str) -> PaymentCallback:
    """
    Verify a VNPay return/IPN callback.

    The amount VNPay reports is in hundredths of a dong; the result carries
    whole dong.
    """
    _check(PaymentProvider.VNPAY, params.get("vnp_SecureHash"), vnpay_secure_hash(params, secret))

    success = (
        params.get("vnp_ResponseCode") == VNPAY_SUCCESS_CODE
        and params.get("vnp_TransactionStatus") == VNPAY_SUCCESS_CODE
    )
    return PaymentCallback(
        provider=PaymentProvider.VNPAY,
        order_id=_text(params.get("vnp_TxnRef")),
        transaction_id=params.get("vnp_TransactionNo"),
        amount=int(params.get("vnp_Amount") or 0) // 100,
        success=success,
        raw=dict(params),
    )


def verify_momo(params: Mapping[str, Any], access_key: str, secret_key: str) -> PaymentCallback:
    _check(PaymentProvider.MOMO, params.get("signature"), momo_signature(params, access_key, secret_key))

    trans_id = params.get("transId")
    return PaymentCallback(
        provider=PaymentProvider.MOMO,
        order_id=_text(params.get("orderId")),
        transaction_id=None if trans_id is None else str(trans_id),
        amount=int(params.get("amount") or 0),
        success=params.get("resultCode") == 0,
        raw=dict(params),
    )


def verify_zalopay(params: Mapping[str, Any], key2: str) -> PaymentCallback:
    """
    Verify a ZaloPay callback, ``{"data": "<json>", "mac": "...", "type": 1}``.

    ZaloPay only calls back for completed payments, so a valid callback is a
    successful one.
    """
    data = params.get("data")
    if not isinstance(data, str):
        raise SignatureMismatchError("ZaloPay callback has no data field")
    _check(PaymentProvider.ZALOPAY, params.get("mac"), zalopay_mac(data, key2))

    try:
        body = json.loads(data)
    except json.JSONDecodeError as e:
        raise SignatureMismatchError(f"ZaloPay callback data is not valid JSON: {e}") from e

    zp_trans_id = body.get("zp_trans_id")
    return PaymentCallback(
        provider=PaymentProvider.ZALOPAY,
        order_id=_text(body.get("app_trans_id")),
        transaction_id=None if zp_trans_id is None else str(zp_trans_id),
        amount=int(body.get("amount") or 0),
        success=True,
        raw=dict(params),
    )


class PaymentCallbackVerifier:
    """Verifies callbacks using the merchant secrets from configuration."""

    def __init__(self, config: PaymentConfig):
        self.config = config
        self._verifiers: Dict[PaymentProvider, Callable[[Mapping[str, Any]], PaymentCallback]] = {
            PaymentProvider.VNPAY: self._verify_vnpay,
            PaymentProvider.MOMO: self._verify_momo,
            PaymentProvider.ZALOPAY: self._verify_zalopay,
        }

    def verify(self, provider: str, params: Mapping[str, Any]) -> PaymentCallback:
        """
        Raises:
            ValueError: Unknown provider
            ConfigError: The provider's secret is not configured
            SignatureMismatchError: The callback was not signed with our secret
        """
        callback = self._verifiers[PaymentProvider(provider.lower())](params)
        logger.info(
            f"Verified {callback.provider.value} callback for order {callback.order_id} "
            f"({'paid' if callback.success else 'failed'})"
        )
        return callback

    def _verify_vnpay(self, params: Mapping[str, Any]) -> PaymentCallback:
        return verify_vnpay(params, _require(self.config.vnpay_secret, "vnpay_secret"))

    def _verify_momo(self, params: Mapping[str, Any]) -> PaymentCallback:
        return verify_momo(
            params,
            _require(self.config.momo_access_key, "momo_access_key"),
            _require(self.config.momo_secret_key, "momo_secret_key"),
        )

    def _verify_zalopay(self, params: Mapping[str, Any]) -> PaymentCallback:
        return verify_zalopay(params, _require(self.config.zalopay_key2, "zalopay_key2"))
