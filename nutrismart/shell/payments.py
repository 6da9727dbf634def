"""Payments - PIX charges through Abacate Pay and subscription activation."""

import logging
from typing import Optional

import httpx

from ..core.models import PaymentStatus, PixPayment, SubscriptionStatus
from . import paths
from .errors import PaymentError, StoreError
from .store import DocumentStore


logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.abacatepay.com/v1"
PAYMENT_EXPIRES_IN = 3600
PAYMENT_DESCRIPTION = "Assinatura NutriSmart Premium"


def _error_message(response: httpx.Response, fallback: str) -> str:
    try:
        body = response.json()
    except ValueError:
        return fallback
    if isinstance(body, dict):
        return body.get("message") or body.get("error") or fallback
    return fallback


class PixPaymentClient:
    """Client for the PIX QR code API."""

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = DEFAULT_BASE_URL,
        http_client: httpx.Client | None = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._http = http_client or httpx.Client(timeout=30.0)

    def _headers(self) -> dict[str, str]:
        if not self._api_key:
            raise PaymentError("O serviço de pagamento não está configurado corretamente.")
        return {"Authorization": f"Bearer {self._api_key}"}

    def create_payment(
        self,
        user_id: str,
        name: str,
        email: str,
        tax_id: str,
        cellphone: str,
        amount: float,
    ) -> PixPayment:
        """Create a one-hour PIX charge for a subscription.

        Args:
            user_id: Local user, sent as metadata.externalId
            name: Payer name
            email: Payer email
            tax_id: Payer CPF
            cellphone: Payer phone
            amount: Amount in reais

        Raises:
            PaymentError: If the provider rejects the charge or answers incompletely
        """
        if not tax_id or not email:
            raise PaymentError("Documento e e-mail são obrigatórios.")
        headers = self._headers()

        body = {
            "amount": round(amount * 100),
            "expiresIn": PAYMENT_EXPIRES_IN,
            "description": PAYMENT_DESCRIPTION,
            "customer": {"name": name, "cellphone": cellphone, "email": email, "taxId": tax_id},
            "metadata": {"externalId": user_id},
        }
        logger.info("Creating PIX payment for %s", user_id[:8])
        try:
            response = self._http.post(
                f"{self._base_url}/pixQrCode/create", headers=headers, json=body
            )
        except httpx.HTTPError as e:
            logger.error("PIX create request failed: %s", str(e))
            raise PaymentError() from e

        if response.is_error:
            message = _error_message(response, "Falha na comunicação com o provedor de pagamento.")
            logger.error("PIX create failed (%d): %s", response.status_code, message)
            raise PaymentError(message)

        data = (response.json() or {}).get("data") or {}
        if not data.get("id") or not data.get("brCode") or not data.get("brCodeBase64"):
            raise PaymentError("A resposta da API de pagamento está incompleta.")
        return PixPayment(
            payment_id=data["id"], qr_code=data["brCodeBase64"], pix_code=data["brCode"]
        )

    def check_status(self, payment_id: str) -> PaymentStatus:
        """Look up a charge's status.

        Raises:
            PaymentError: If the lookup fails or the status is unknown
        """
        headers = self._headers()
        try:
            response = self._http.get(
                f"{self._base_url}/pixQrCode/check/{payment_id}", headers=headers
            )
        except httpx.HTTPError as e:
            logger.error("PIX status request failed: %s", str(e))
            raise PaymentError() from e

        if response.is_error:
            message = _error_message(response, "Falha ao verificar o status do pagamento.")
            logger.error(
                "PIX status failed for %s (%d): %s", payment_id, response.status_code, message
            )
            raise PaymentError(message)

        status = ((response.json() or {}).get("data") or {}).get("status")
        try:
            return PaymentStatus(status)
        except ValueError as e:
            raise PaymentError("A resposta da API de status está incompleta.") from e


class SubscriptionService:
    """Activates subscriptions once their payment clears."""

    def __init__(self, payments: PixPaymentClient, store: DocumentStore) -> None:
        self._payments = payments
        self._store = store

    def confirm_payment(self, payment_id: str, user_id: str) -> PaymentStatus:
        """Check a payment and activate the user's subscription when PAID.

        A failed profile update is logged and PAID is still returned; the
        charge has cleared regardless.
        """
        status = self._payments.check_status(payment_id)
        if status != PaymentStatus.PAID:
            return status

        try:
            self._store.update(
                paths.user(user_id), {"subscriptionStatus": SubscriptionStatus.ACTIVE.value}
            )
            logger.info("Payment %s confirmed, subscription of %s active", payment_id, user_id[:8])
        except StoreError as e:
            logger.error(
                "Payment %s is PAID but activating %s failed: %s", payment_id, user_id[:8], str(e)
            )
        return status
