"""Pure computation of lease payments for advance and final settlement periods.

The functions in this module never touch the database. They operate on plain
dataclasses describing a park, its turbines and its leases so they can be
re-run freely for previews and are straightforward to test.

Amounts are carried with full ``Decimal`` precision per turbine and only
rounded to cents when results are reported.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Mapping, Optional, Sequence

from .. import settings
from ..models.settlement_period import AdvanceInterval

CENTS = Decimal("0.01")
HUNDRED = Decimal("100")
MONTHS_PER_YEAR = Decimal("12")
ZERO = Decimal("0")

ADVANCE_INTERVAL_FACTORS: dict[AdvanceInterval, Decimal] = {
    AdvanceInterval.MONTHLY: Decimal("1"),
    AdvanceInterval.QUARTERLY: Decimal("3"),
    AdvanceInterval.YEARLY: Decimal("12"),
}


def round_currency(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class RevenuePhaseTerms:
    start_year: int
    end_year: Optional[int]
    revenue_share_percentage: Decimal

    def covers(self, years_in_operation: int) -> bool:
        if years_in_operation < self.start_year:
            return False
        return self.end_year is None or years_in_operation <= self.end_year


@dataclass(frozen=True)
class TurbineTerms:
    turbine_id: str
    designation: str
    commissioning_date: Optional[date] = None


@dataclass(frozen=True)
class LeaseTerms:
    """Inputs for one lease: site shares per turbine (percent) and pool area."""

    lease_id: str
    lessor_name: str
    site_shares: Mapping[str, Decimal] = field(default_factory=dict)
    pool_area_sqm: Decimal = ZERO


@dataclass(frozen=True)
class ParkTerms:
    park_id: str
    minimum_rent_per_turbine: Decimal
    wea_share_percentage: Decimal
    pool_share_percentage: Decimal
    turbines: Sequence[TurbineTerms]
    revenue_phases: Sequence[RevenuePhaseTerms] = ()
    commissioning_date: Optional[date] = None


class RevenuePhasingStrategy:
    """Decides which fraction of a settlement year a turbine was producing."""

    name = "base"

    def operating_fraction(self, turbine: TurbineTerms, year: int) -> Decimal:
        raise NotImplementedError


class FullYearPhasing(RevenuePhasingStrategy):
    """Every turbine commissioned on or before the settlement year counts fully."""

    name = "full_year"

    def operating_fraction(self, turbine: TurbineTerms, year: int) -> Decimal:
        commissioned = turbine.commissioning_date
        if commissioned is not None and commissioned.year > year:
            return ZERO
        return Decimal("1")


class ProRataMonthsPhasing(RevenuePhasingStrategy):
    """Turbines commissioned during the year count for their months in operation."""

    name = "pro_rata_months"

    def operating_fraction(self, turbine: TurbineTerms, year: int) -> Decimal:
        commissioned = turbine.commissioning_date
        if commissioned is None or commissioned.year < year:
            return Decimal("1")
        if commissioned.year > year:
            return ZERO
        months = MONTHS_PER_YEAR - Decimal(commissioned.month) + Decimal("1")
        return months / MONTHS_PER_YEAR


PHASING_STRATEGIES: dict[str, RevenuePhasingStrategy] = {
    FullYearPhasing.name: FullYearPhasing(),
    ProRataMonthsPhasing.name: ProRataMonthsPhasing(),
}


def resolve_phasing_strategy(name: Optional[str] = None) -> RevenuePhasingStrategy:
    key = (name or settings.revenue_phasing_name()).strip().lower()
    try:
        return PHASING_STRATEGIES[key]
    except KeyError as exc:
        raise ValueError(f"Unknown revenue phasing strategy '{key}'") from exc


@dataclass(frozen=True)
class LeaseTurbineWeight:
    """Portion of a turbine attributed to a lease, split by tax treatment."""

    site: Decimal
    pool: Decimal

    @property
    def total(self) -> Decimal:
        return self.site + self.pool


@dataclass
class TurbineFigures:
    turbine_id: str
    designation: str
    operating_fraction: Decimal
    revenue_phase_percentage: Optional[Decimal]
    minimum_rent: Decimal
    revenue_share: Decimal
    payment: Decimal


@dataclass
class LeaseTurbineShare:
    turbine_id: str
    weight: Decimal
    minimum_rent: Decimal
    revenue_share: Decimal
    payment: Decimal


@dataclass
class CalculationTotals:
    lease_count: int
    total_minimum_rent: Decimal
    total_revenue_share: Decimal
    total_payment: Decimal
    total_advances_paid: Decimal
    total_final_payment: Decimal


@dataclass
class AdvanceLeaseItem:
    lease_id: str
    lessor_name: str
    weight: Decimal
    monthly_baseline: Decimal
    advance_amount: Decimal
    taxable_amount: Decimal
    exempt_amount: Decimal


@dataclass
class FinalLeaseItem:
    lease_id: str
    lessor_name: str
    weight: Decimal
    total_minimum_rent: Decimal
    total_revenue_share: Decimal
    total_payment: Decimal
    already_paid_advances: Decimal
    final_payment: Decimal
    is_credit: bool
    payment_taxable_amount: Decimal
    payment_exempt_amount: Decimal
    taxable_amount: Decimal
    exempt_amount: Decimal
    turbines: list[LeaseTurbineShare] = field(default_factory=list)


@dataclass
class AdvanceResult:
    year: int
    advance_interval: AdvanceInterval
    interval_factor: Decimal
    items: list[AdvanceLeaseItem]
    totals: CalculationTotals
    period_type: str = "ADVANCE"


@dataclass
class FinalResult:
    year: int
    total_revenue: Decimal
    phasing_strategy: str
    turbines: list[TurbineFigures]
    items: list[FinalLeaseItem]
    totals: CalculationTotals
    period_type: str = "FINAL"


def years_in_operation(park: ParkTerms, turbine: TurbineTerms, year: int) -> int:
    """Return the 1-based operating year of a turbine in ``year``."""

    commissioned = turbine.commissioning_date or park.commissioning_date
    if commissioned is None:
        return 1
    return year - commissioned.year + 1


def revenue_phase_percentage(
    park: ParkTerms, turbine: TurbineTerms, year: int
) -> Optional[Decimal]:
    operating_year = years_in_operation(park, turbine, year)
    for phase in park.revenue_phases:
        if phase.covers(operating_year):
            return Decimal(phase.revenue_share_percentage)
    return None


def lease_turbine_weights(
    park: ParkTerms,
    leases: Sequence[LeaseTerms],
    turbines: Sequence[TurbineTerms],
) -> dict[tuple[str, str], LeaseTurbineWeight]:
    """Compute ``w(L, T)`` for every lease and settled turbine.

    The WEA share of a turbine follows the lease site shares. The pool share
    is spread over all turbines in proportion to each lease's pool area; when
    the park has no pool area at all it falls back to the site shares.
    """

    wea_fraction = Decimal(park.wea_share_percentage) / HUNDRED
    pool_fraction = Decimal(park.pool_share_percentage) / HUNDRED
    total_pool_area = sum((Decimal(lease.pool_area_sqm or 0) for lease in leases), ZERO)

    weights: dict[tuple[str, str], LeaseTurbineWeight] = {}
    for lease in leases:
        pool_area = Decimal(lease.pool_area_sqm or 0)
        for turbine in turbines:
            site_share = Decimal(lease.site_shares.get(turbine.turbine_id, 0)) / HUNDRED
            if total_pool_area > 0:
                pool = pool_fraction * pool_area / total_pool_area
            else:
                pool = pool_fraction * site_share
            weights[(lease.lease_id, turbine.turbine_id)] = LeaseTurbineWeight(
                site=wea_fraction * site_share,
                pool=pool,
            )
    return weights


def _settled_turbines(
    park: ParkTerms, year: int, phasing: RevenuePhasingStrategy
) -> list[tuple[TurbineTerms, Decimal]]:
    settled = []
    for turbine in park.turbines:
        fraction = phasing.operating_fraction(turbine, year)
        if fraction > 0:
            settled.append((turbine, fraction))
    return settled


def split_by_weight(amount: Decimal, pool: Decimal, site: Decimal) -> tuple[Decimal, Decimal]:
    rounded = round_currency(amount)
    total = pool + site
    if total == 0:
        return ZERO, rounded
    taxable = round_currency(amount * pool / total)
    return taxable, rounded - taxable


def calculate_advance(
    park: ParkTerms,
    leases: Sequence[LeaseTerms],
    *,
    year: int,
    advance_interval: AdvanceInterval,
    phasing: Optional[RevenuePhasingStrategy] = None,
) -> AdvanceResult:
    """Scale each lease's monthly minimum-rent baseline by the advance interval.

    Revenue is ignored: an advance pays the guaranteed floor ahead of the
    year-end settlement.
    """

    phasing = phasing or resolve_phasing_strategy()
    factor = ADVANCE_INTERVAL_FACTORS[AdvanceInterval(advance_interval)]
    minimum_rent = Decimal(park.minimum_rent_per_turbine or 0)
    turbines = [turbine for turbine, _ in _settled_turbines(park, year, phasing)]
    weights = lease_turbine_weights(park, leases, turbines)

    items: list[AdvanceLeaseItem] = []
    total_minimum = ZERO
    total_advance = ZERO
    for lease in leases:
        site_weight = ZERO
        pool_weight = ZERO
        for turbine in turbines:
            weight = weights[(lease.lease_id, turbine.turbine_id)]
            site_weight += weight.site
            pool_weight += weight.pool
        lease_weight = site_weight + pool_weight
        annual_minimum = minimum_rent * lease_weight
        baseline = annual_minimum / MONTHS_PER_YEAR
        advance = baseline * factor
        taxable, exempt = split_by_weight(advance, pool_weight, site_weight)
        total_minimum += annual_minimum
        total_advance += advance
        items.append(
            AdvanceLeaseItem(
                lease_id=lease.lease_id,
                lessor_name=lease.lessor_name,
                weight=lease_weight,
                monthly_baseline=round_currency(baseline),
                advance_amount=round_currency(advance),
                taxable_amount=taxable,
                exempt_amount=exempt,
            )
        )

    totals = CalculationTotals(
        lease_count=len(items),
        total_minimum_rent=round_currency(total_minimum),
        total_revenue_share=ZERO.quantize(CENTS),
        total_payment=round_currency(total_advance),
        total_advances_paid=ZERO.quantize(CENTS),
        total_final_payment=round_currency(total_advance),
    )
    return AdvanceResult(
        year=year,
        advance_interval=AdvanceInterval(advance_interval),
        interval_factor=factor,
        items=items,
        totals=totals,
    )


def calculate_turbine_figures(
    park: ParkTerms,
    *,
    year: int,
    total_revenue: Decimal,
    phasing: RevenuePhasingStrategy,
) -> list[TurbineFigures]:
    """Per-turbine minimum rent, revenue share and floored payment."""

    settled = _settled_turbines(park, year, phasing)
    fraction_sum = sum((fraction for _, fraction in settled), ZERO)
    minimum_rent = Decimal(park.minimum_rent_per_turbine or 0)
    revenue = Decimal(total_revenue or 0)

    figures = []
    for turbine, fraction in settled:
        percentage = revenue_phase_percentage(park, turbine, year)
        revenue_base = revenue * fraction / fraction_sum if fraction_sum else ZERO
        revenue_share = revenue_base * percentage / HUNDRED if percentage is not None else ZERO
        figures.append(
            TurbineFigures(
                turbine_id=turbine.turbine_id,
                designation=turbine.designation,
                operating_fraction=fraction,
                revenue_phase_percentage=percentage,
                minimum_rent=minimum_rent,
                revenue_share=revenue_share,
                payment=max(minimum_rent, revenue_share),
            )
        )
    return figures


def calculate_final(
    park: ParkTerms,
    leases: Sequence[LeaseTerms],
    *,
    year: int,
    total_revenue: Decimal,
    advances_paid: Optional[Mapping[str, Decimal]] = None,
    phasing: Optional[RevenuePhasingStrategy] = None,
) -> FinalResult:
    """Compute the year-end settlement for every lease of the park.

    The minimum-rent floor is applied per turbine before the lease totals are
    summed, so a lease can combine turbines above and below their floor.
    """

    phasing = phasing or resolve_phasing_strategy()
    advances_paid = advances_paid or {}
    figures = calculate_turbine_figures(
        park, year=year, total_revenue=total_revenue, phasing=phasing
    )
    turbines = [
        TurbineTerms(turbine_id=figure.turbine_id, designation=figure.designation)
        for figure in figures
    ]
    weights = lease_turbine_weights(park, leases, turbines)

    items: list[FinalLeaseItem] = []
    total_minimum = ZERO
    total_revenue_share = ZERO
    total_payment = ZERO
    total_advances = ZERO
    total_final = ZERO
    for lease in leases:
        minimum_sum = ZERO
        revenue_sum = ZERO
        payment_sum = ZERO
        taxable_payment = ZERO
        exempt_payment = ZERO
        lease_weight = ZERO
        shares: list[LeaseTurbineShare] = []
        for figure in figures:
            weight = weights[(lease.lease_id, figure.turbine_id)]
            if weight.total == 0:
                continue
            minimum_sum += figure.minimum_rent * weight.total
            revenue_sum += figure.revenue_share * weight.total
            payment_sum += figure.payment * weight.total
            taxable_payment += figure.payment * weight.pool
            exempt_payment += figure.payment * weight.site
            lease_weight += weight.total
            shares.append(
                LeaseTurbineShare(
                    turbine_id=figure.turbine_id,
                    weight=weight.total,
                    minimum_rent=round_currency(figure.minimum_rent * weight.total),
                    revenue_share=round_currency(figure.revenue_share * weight.total),
                    payment=round_currency(figure.payment * weight.total),
                )
            )

        advances = round_currency(Decimal(advances_paid.get(lease.lease_id, 0)))
        final_payment = round_currency(payment_sum - advances)
        payment_taxable, payment_exempt = split_by_weight(
            payment_sum, taxable_payment, exempt_payment
        )
        taxable, exempt = split_by_weight(final_payment, taxable_payment, exempt_payment)

        total_minimum += minimum_sum
        total_revenue_share += revenue_sum
        total_payment += payment_sum
        total_advances += advances
        total_final += final_payment
        items.append(
            FinalLeaseItem(
                lease_id=lease.lease_id,
                lessor_name=lease.lessor_name,
                weight=lease_weight,
                total_minimum_rent=round_currency(minimum_sum),
                total_revenue_share=round_currency(revenue_sum),
                total_payment=round_currency(payment_sum),
                already_paid_advances=advances,
                final_payment=final_payment,
                is_credit=final_payment > 0,
                payment_taxable_amount=payment_taxable,
                payment_exempt_amount=payment_exempt,
                taxable_amount=taxable,
                exempt_amount=exempt,
                turbines=shares,
            )
        )

    totals = CalculationTotals(
        lease_count=len(items),
        total_minimum_rent=round_currency(total_minimum),
        total_revenue_share=round_currency(total_revenue_share),
        total_payment=round_currency(total_payment),
        total_advances_paid=round_currency(total_advances),
        total_final_payment=round_currency(total_final),
    )
    return FinalResult(
        year=year,
        total_revenue=round_currency(Decimal(total_revenue or 0)),
        phasing_strategy=phasing.name,
        turbines=figures,
        items=items,
        totals=totals,
    )
