"""
Tax calculation orchestrator.

Handles:
- Request validation ahead of any provider call
- Provider dispatch through a name-keyed registry
- Result normalization and the total-tax safety cap
- Exemption certificate application
- Chunked batch calculation with a pause between chunks
"""

from __future__ import annotations

import asyncio
import copy
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional

from invoice_tax.config import TaxEngineSettings
from invoice_tax.exceptions import ProviderError, TaxEngineError, ValidationError
from invoice_tax.models import (
    Confidence,
    Exemption,
    ExemptionCertificate,
    ReverseCharge,
    TaxCalculationRequest,
    TaxCalculationResult,
    round_money,
)
from invoice_tax.providers import ProviderRegistry, build_default_registry
from invoice_tax.rates import TaxRateStore, utcnow

logger = logging.getLogger(__name__)

# Ceiling applied to total tax when a provider returns more tax than the sale.
MAX_TAX_SHARE = Decimal("0.5")


@dataclass
class BatchItemResult:
    """Outcome of one request within a batch."""

    index: int
    success: bool
    result: Optional[TaxCalculationResult] = None
    error: Optional[str] = None


@dataclass
class BatchResult:
    """Aggregated outcome of a batch calculation."""

    items: list[BatchItemResult] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(1 for i in self.items if i.success)

    @property
    def failure_count(self) -> int:
        return sum(1 for i in self.items if not i.success)

    @property
    def total_tax(self) -> Decimal:
        return sum(
            (i.result.total_tax_amount for i in self.items if i.result is not None),
            Decimal("0"),
        )

    @property
    def errors(self) -> list[str]:
        return [f"Request {i.index}: {i.error}" for i in self.items if not i.success]


def validate_request(request: TaxCalculationRequest) -> None:
    """Raise ValidationError naming every missing field."""
    missing: list[str] = []
    if not request.customer_id:
        missing.append("customer_id")
    if not request.line_items:
        missing.append("line_items")

    address = request.billing_address
    if address is None:
        missing.append("billing_address")
    else:
        for name in ("country", "city", "postal_code"):
            if not getattr(address, name):
                missing.append(f"billing_address.{name}")

    if not request.currency:
        missing.append("currency")

    if missing:
        raise ValidationError(
            f"Missing required fields: {', '.join(missing)}", missing_fields=missing
        )


class TaxCalculationOrchestrator:
    """
    Entry point for tax calculation.

    Validates the request, dispatches to the requested (or default)
    provider, then normalizes and caps what comes back. Never branches
    on which provider did the work.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        default_provider: str = "MANUAL",
        timeout: Optional[float] = None,
    ) -> None:
        self.registry = registry
        self.default_provider = default_provider.upper()
        self.timeout = timeout

    @classmethod
    def from_settings(
        cls,
        settings: TaxEngineSettings,
        store: Optional[TaxRateStore] = None,
    ) -> "TaxCalculationOrchestrator":
        registry = build_default_registry(settings, store or TaxRateStore.with_defaults())
        return cls(
            registry,
            default_provider=settings.default_provider,
            timeout=settings.provider_timeout,
        )

    async def calculate_tax(
        self,
        request: TaxCalculationRequest,
        provider: Optional[str] = None,
    ) -> TaxCalculationResult:
        validate_request(request)

        name = (provider or self.default_provider).upper()
        tax_provider = self.registry.get(name)
        logger.debug(
            "Calculating tax for customer %s via %s (%d line items)",
            request.customer_id,
            name,
            len(request.line_items),
        )

        try:
            if self.timeout:
                raw = await asyncio.wait_for(
                    tax_provider.calculate_tax(request), timeout=self.timeout
                )
            else:
                raw = await tax_provider.calculate_tax(request)
        except TaxEngineError:
            raise
        except asyncio.TimeoutError as e:
            logger.error("%s did not respond within %ss", name, self.timeout)
            raise ProviderError(name, "request timed out", cause=e) from e
        except Exception as e:
            logger.exception("%s failed unexpectedly", name)
            raise ProviderError(name, str(e) or type(e).__name__, cause=e) from e

        result = self._normalize(raw, name)
        return self._apply_cap(result, request.transaction_total)

    def _normalize(
        self, raw: Optional[TaxCalculationResult], name: str
    ) -> TaxCalculationResult:
        result = raw if raw is not None else TaxCalculationResult()
        result.provider = result.provider or name
        result.tax_lines = list(result.tax_lines or [])
        result.exemptions = list(result.exemptions or [])
        result.warnings = list(result.warnings or [])
        if result.reverse_charge is None:
            result.reverse_charge = ReverseCharge(applicable=False)
        result.calculated_at = utcnow()
        result.confidence = result.confidence or Confidence.HIGH.value
        result.total_tax_amount = result.line_tax_total
        return result

    def _apply_cap(
        self, result: TaxCalculationResult, transaction_total: Decimal
    ) -> TaxCalculationResult:
        if result.total_tax_amount <= transaction_total:
            return result

        capped = round_money(
            min(result.total_tax_amount, transaction_total * MAX_TAX_SHARE)
        )
        message = (
            f"Tax amount {result.total_tax_amount} exceeds transaction total "
            f"{transaction_total}; capped at {capped}"
        )
        logger.warning("%s (provider %s)", message, result.provider)
        result.total_tax_amount = capped
        result.confidence = Confidence.LOW.value
        result.warnings.append(message)
        return result

    def apply_tax_exemptions(
        self,
        result: TaxCalculationResult,
        certificates: list[ExemptionCertificate],
        now: Optional[datetime] = None,
    ) -> TaxCalculationResult:
        """
        Zero the tax lines covered by valid certificates.

        Expired or incomplete certificates are skipped without error.
        The total is recomputed from the lines only when a line was
        exempted, so a capped total survives an empty or unmatched
        certificate list. Returns a new result; the input is left untouched.
        """
        exempted = copy.deepcopy(result)
        if not certificates:
            return exempted
        ref = now or utcnow()

        for cert in certificates:
            if not cert.is_valid(ref):
                logger.debug("Skipping invalid certificate %s", cert.certificate_number)
                continue
            for line in exempted.tax_lines:
                if line.tax_amount == 0 or not cert.applies_to(line):
                    continue
                amount = line.tax_amount
                line.exempt_amount += amount
                line.tax_amount = Decimal("0")
                exempted.exemptions.append(
                    Exemption(
                        reason=cert.reason,
                        amount=amount,
                        certificate_number=cert.certificate_number,
                    )
                )

        if len(exempted.exemptions) > len(result.exemptions):
            exempted.total_tax_amount = exempted.line_tax_total
        return exempted

    async def calculate_batch(
        self,
        requests: list[TaxCalculationRequest],
        provider: Optional[str] = None,
        batch_size: int = 10,
        delay: float = 0.1,
    ) -> BatchResult:
        """
        Calculate tax for many requests.

        Requests run concurrently in chunks of batch_size, pausing
        delay seconds between chunks. Failures are recorded per item.
        """
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        batch = BatchResult()
        for start in range(0, len(requests), batch_size):
            chunk = requests[start:start + batch_size]
            outcomes = await asyncio.gather(
                *(self.calculate_tax(r, provider) for r in chunk),
                return_exceptions=True,
            )
            for offset, outcome in enumerate(outcomes):
                index = start + offset
                if isinstance(outcome, TaxCalculationResult):
                    batch.items.append(BatchItemResult(index, True, result=outcome))
                elif isinstance(outcome, Exception):
                    logger.warning("Batch request %d failed: %s", index, outcome)
                    batch.items.append(BatchItemResult(index, False, error=str(outcome)))
                else:
                    raise outcome

            if delay and start + batch_size < len(requests):
                await asyncio.sleep(delay)

        logger.info(
            "Batch complete: %d succeeded, %d failed",
            batch.success_count,
            batch.failure_count,
        )
        return batch
