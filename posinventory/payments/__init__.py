from .callbacks import (
    PaymentCallback,
    PaymentCallbackVerifier,
    PaymentProvider,
    momo_signature,
    verify_momo,
    verify_vnpay,
    verify_zalopay,
    vnpay_secure_hash,
    zalopay_mac,
)

__all__ = [
    "PaymentCallback",
    "PaymentCallbackVerifier",
    "PaymentProvider",
    "momo_signature",
    "verify_momo",
    "verify_vnpay",
    "verify_zalopay",
    "vnpay_secure_hash",
    "zalopay_mac",
]
