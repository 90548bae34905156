from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from urllib.parse import parse_qsl, urlencode

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from returns.result import Failure, Result, Success

from report_checkout.core.domain.model.errors import GatewayAuthError, GatewayError
from report_checkout.core.ports.outbound.gateway import (
    RedirectForm,
    RedirectGateway,
    RedirectPaymentRequest,
    RedirectSettlement,
)

logger = logging.getLogger(__name__)

TRANSACTION_URL = (
    "https://secure.ccavenue.com/transaction/transaction.do?command=initiateTransaction"
)
CALLBACK_PATH = "/payments/ccavenue/handle"

# fixed by the merchant kit
_IV = bytes(range(16))


def _key(working_key: str) -> bytes:
    return hashlib.md5(working_key.encode("utf-8")).digest()


def encrypt(plain_text: str, working_key: str) -> str:
    """AES-128-CBC with the MD5 of the working key, hex encoded."""
    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    padded = padder.update(plain_text.encode("utf-8")) + padder.finalize()
    encryptor = Cipher(algorithms.AES(_key(working_key)), modes.CBC(_IV)).encryptor()
    return (encryptor.update(padded) + encryptor.finalize()).hex()


def decrypt(enc_text: str, working_key: str) -> str:
    """Raises ValueError on malformed hex, bad padding or a wrong key."""
    decryptor = Cipher(algorithms.AES(_key(working_key)), modes.CBC(_IV)).decryptor()
    padded = decryptor.update(bytes.fromhex(enc_text.strip())) + decryptor.finalize()
    unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
    return (unpadder.update(padded) + unpadder.finalize()).decode("utf-8")


@dataclass(frozen=True)
class CCAvenueGateway(RedirectGateway):
    merchant_id: str
    access_code: str
    working_key: str
    callback_base_url: str
    action: str = TRANSACTION_URL
    language: str = "EN"

    def build_request(
        self, request: RedirectPaymentRequest
    ) -> Result[RedirectForm, GatewayError]:
        b = request.billing
        callback = self.callback_base_url.rstrip("/") + CALLBACK_PATH
        fields = {
            "merchant_id": self.merchant_id,
            "order_id": request.internal_order_id,
            "currency": request.amount.currency.value,
            "amount": request.amount.gateway_value(),
            "redirect_url": callback,
            "cancel_url": callback,
            "language": self.language,
            "billing_name": f"{b.first_name} {b.last_name}".strip(),
            "billing_address": b.street_address or "",
            "billing_city": b.city or "",
            "billing_state": b.state or "",
            "billing_zip": b.postal_code or "",
            "billing_country": b.country,
            "billing_tel": b.phone,
            "billing_email": b.email,
            "merchant_param1": request.return_url,
        }
        return Success(
            RedirectForm(
                action=self.action,
                enc_request=encrypt(urlencode(fields), self.working_key),
                access_code=self.access_code,
            )
        )

    def decode_response(self, enc_response: str) -> Result[RedirectSettlement, GatewayError]:
        try:
            plain = decrypt(enc_response, self.working_key)
        except ValueError as e:
            logger.warning("undecodable ccavenue response: %s", e)
            return Failure(GatewayAuthError("ccavenue response could not be decrypted"))

        data = dict(parse_qsl(plain, keep_blank_values=True))
        order_id = data.get("order_id", "")
        if not order_id:
            return Failure(GatewayAuthError("ccavenue response carries no order_id"))
        return Success(
            RedirectSettlement(
                internal_order_id=order_id,
                order_status=data.get("order_status", ""),
                tracking_id=data.get("tracking_id", ""),
                amount=data.get("amount", ""),
                currency=data.get("currency", ""),
                return_url=data.get("merchant_param1") or None,
            )
        )
