"""
HTTP client for the ledger feed (open invoices and delivery notes).
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Dict, Any

import httpx
import structlog
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from ..config import Settings, get_settings
from ..errors import LedgerFeedError
from ..ingestion.row_schema import parse_amount, parse_date
from ..models import LedgerKind, LedgerRecord

logger = structlog.get_logger()


def _is_transient(error: BaseException) -> bool:
    """Timeouts, connection failures and 5xx answers are worth retrying."""
    if not isinstance(error, LedgerFeedError):
        return False
    return error.status_code == 0 or error.status_code >= 500


def delivery_amount_cents(
    volume_m3: Any,
    sale_price_m3: Any,
    delivery_price_m3: Any,
    vat_rate: float,
) -> int:
    """
    Amount due on a delivery note billed without an invoice.

    volume × (sale price + delivery price), VAT included, rounded to cents.
    Missing prices count as zero.
    """
    volume = Decimal(str(volume_m3 or 0))
    unit_price = Decimal(str(sale_price_m3 or 0)) + Decimal(str(delivery_price_m3 or 0))
    total = volume * unit_price * (1 + Decimal(str(vat_rate)))
    return int((total * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def parse_ledger_record(data: Dict[str, Any], vat_rate: float) -> LedgerRecord:
    """
    Parse one feed entry.

    Raises:
        ValueError: missing id, unknown kind, or unparseable amount or date
    """
    record_id = data.get("id")
    if not record_id:
        raise ValueError("ledger record without id")

    try:
        kind = LedgerKind(str(data.get("kind", "")).lower())
    except ValueError:
        raise ValueError(f"unknown ledger kind: {data.get('kind')!r}")

    amount = data.get("amount")
    if amount is None and kind == LedgerKind.DELIVERY and data.get("volume_m3") is not None:
        amount_cents = delivery_amount_cents(
            data.get("volume_m3"),
            data.get("sale_price_m3"),
            data.get("delivery_price_m3"),
            vat_rate,
        )
    else:
        amount_cents, _ = parse_amount(amount)

    return LedgerRecord(
        id=str(record_id),
        kind=kind,
        client_name=str(data.get("client_name") or ""),
        reference_code=str(data.get("reference_code") or record_id),
        date=parse_date(data.get("date")),
        amount_cents=amount_cents,
        claimed_by=data.get("claimed_by") or None,
    )


class LedgerFeedClient:
    """
    Client for the ledger feed.
    Handles authentication and record parsing.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings()
        self.base_url = base_url or self.settings.ledger_feed_url
        self.token = token if token is not None else self.settings.ledger_feed_token
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

        if not self.base_url:
            raise LedgerFeedError("Ledger feed URL is not configured")

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            headers = {"Accept": "application/json"}
            if self.token:
                headers["Authorization"] = f"Bearer {self.token}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=self.settings.ledger_feed_timeout_seconds,
                transport=self._transport,
            )
        return self._client

    async def close(self):
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self) -> "LedgerFeedClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    @retry(
        retry=retry_if_exception(_is_transient),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
        reraise=True,
    )
    async def _request(self, method: str, endpoint: str, **kwargs) -> Any:
        """Make an authenticated request to the feed."""
        client = await self._get_client()

        try:
            response = await client.request(method, endpoint, **kwargs)
        except httpx.TimeoutException:
            raise LedgerFeedError("Request timeout")
        except httpx.RequestError as e:
            raise LedgerFeedError(f"Request error: {str(e)}")

        if response.status_code == 401:
            raise LedgerFeedError(
                "Authentication failed. Check LEDGER_FEED_TOKEN.",
                status_code=401,
            )

        if response.status_code >= 400:
            error_detail: Any = response.text
            try:
                error_detail = response.json()
            except ValueError:
                pass
            raise LedgerFeedError(
                f"Ledger feed error: {response.status_code}",
                status_code=response.status_code,
                details=error_detail,
            )

        try:
            return response.json()
        except ValueError:
            raise LedgerFeedError(
                "Ledger feed returned invalid JSON",
                status_code=response.status_code,
                details=response.text[:200],
            )

    async def fetch_records(self) -> List[LedgerRecord]:
        """
        Download all outstanding ledger records.

        Malformed entries are skipped with a warning; a response that is not
        a list (or an object with a 'records' list) raises LedgerFeedError.
        """
        payload = await self._request("GET", "")
        if isinstance(payload, dict):
            payload = payload.get("records")
        if not isinstance(payload, list):
            raise LedgerFeedError("Unexpected ledger feed format", details=type(payload).__name__)

        records = []
        for entry in payload:
            try:
                records.append(parse_ledger_record(entry, self.settings.vat_rate))
            except (ValueError, TypeError, AttributeError) as e:
                logger.warning("Skipping malformed ledger record", error=str(e), entry=entry)

        logger.info(
            "Ledger feed fetched",
            total=len(records),
            invoices=len([r for r in records if r.kind == LedgerKind.INVOICE]),
            deliveries=len([r for r in records if r.kind == LedgerKind.DELIVERY]),
        )
        return records
