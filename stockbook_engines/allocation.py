"""
Module: stockbook_engines.allocation
Responsibility:
    Split one lump amount across several targets (outstanding debts, or the
    line items of a multi-product sale) either proportionally to each
    target's eligible amount or by caller-supplied manual amounts.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import stockbook_kernel.

Invariants enforced:
    - Conservation: total_allocated + unallocated == source_amount, always.
    - Deterministic rounding: shares are quantized ROUND_HALF_UP to the
      currency's decimal places and the residual is assigned to the last
      target, so penny totals are preserved.
    - With ``clamp_to_eligible`` no target receives more than its eligible
      amount. Clamped cents move to targets with room; only what no target
      can absorb is returned as ``unallocated``.

Failure modes:
    - ValueError on currency mismatch, missing eligible amounts, or a zero
      total eligible amount for the proportional method.
    - AllocationMismatchError when manual amounts do not cover every target
      or do not sum to the source amount.
    - OverpaymentError when a manual amount exceeds a target's eligible
      amount (with ``clamp_to_eligible``).
    - ValidationError when a manual amount is negative.

Usage:
    from stockbook_engines.allocation import AllocationEngine, AllocationTarget, AllocationMethod

    engine = AllocationEngine()
    result = engine.allocate(
        amount=Money.of("600.00", "PHP"),
        targets=[
            AllocationTarget(target_id="d1", eligible_amount=Money.of("500.00", "PHP")),
            AllocationTarget(target_id="d2", eligible_amount=Money.of("300.00", "PHP")),
            AllocationTarget(target_id="d3", eligible_amount=Money.of("200.00", "PHP")),
        ],
        method=AllocationMethod.PROPORTIONAL,
    )
    # 300.00 / 180.00 / 120.00
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from stockbook_engines.tracer import traced_engine
from stockbook_kernel.domain.values import Money
from stockbook_kernel.exceptions import (
    AllocationMismatchError,
    OverpaymentError,
    ValidationError,
)
from stockbook_kernel.logging_config import get_logger

logger = get_logger("engines.allocation")


class AllocationMethod(str, Enum):
    """Method for splitting a lump amount."""

    PROPORTIONAL = "proportional"  # By relative eligible amount
    MANUAL = "manual"  # Caller-supplied per-target amounts


@dataclass(frozen=True)
class AllocationTarget:
    """
    A target that can receive part of an allocation.

    Contract:
        Frozen dataclass representing one allocation recipient.
    Guarantees:
        - ``eligible_amount`` is non-negative.
    """

    target_id: str
    eligible_amount: Money

    def __post_init__(self) -> None:
        if self.eligible_amount.is_negative:
            raise ValueError(f"Target {self.target_id} eligible amount cannot be negative")


@dataclass(frozen=True)
class AllocationLine:
    """
    Result of allocation to a single target.

    Guarantees:
        - ``allocated + remaining == eligible_amount`` when the line was
          clamped to eligible; otherwise ``remaining`` is floored at zero.
    """

    target_id: str
    allocated: Money
    remaining: Money

    @property
    def is_fully_allocated(self) -> bool:
        return self.remaining.is_zero


@dataclass(frozen=True)
class AllocationResult:
    """
    Complete allocation result.

    Guarantees:
        - ``total_allocated + unallocated == source_amount``.
        - ``lines`` are in target order.
    """

    source_amount: Money
    method: AllocationMethod
    lines: tuple[AllocationLine, ...]
    total_allocated: Money
    unallocated: Money

    @property
    def is_fully_allocated(self) -> bool:
        return self.unallocated.is_zero

    @property
    def allocation_count(self) -> int:
        """Number of targets that received a positive amount."""
        return sum(1 for line in self.lines if line.allocated.is_positive)

    def amount_for(self, target_id: str) -> Money:
        for line in self.lines:
            if line.target_id == target_id:
                return line.allocated
        raise KeyError(target_id)


class AllocationEngine:
    """
    Allocate a lump amount across targets.

    Contract:
        Pure functions with deterministic rounding. No I/O.
    Guarantees:
        - All intermediate ratios use full Decimal precision.
        - Final amounts are rounded to currency decimal places (ROUND_HALF_UP).
        - Currency consistency: every target shares the source currency.
    Non-goals:
        - Does not decide which targets are eligible (settled debts,
          counterparty checks); callers enforce those preconditions.
    """

    @traced_engine("allocation", "1.0", fingerprint_fields=("amount", "method"))
    def allocate(
        self,
        amount: Money,
        targets: Sequence[AllocationTarget],
        method: AllocationMethod,
        manual_amounts: Mapping[str, Money] | None = None,
        clamp_to_eligible: bool = True,
    ) -> AllocationResult:
        """
        Allocate ``amount`` to ``targets`` using ``method``.

        Args:
            amount: Lump amount to split.
            targets: Recipients in allocation order; the last one absorbs
                proportional rounding.
            method: PROPORTIONAL or MANUAL.
            manual_amounts: Per-target amounts keyed by target_id (MANUAL only).
            clamp_to_eligible: Cap each target at its eligible amount.
        """
        logger.info("allocation_started", extra={
            "amount": str(amount.amount),
            "currency": amount.currency.code,
            "method": method.value,
            "target_count": len(targets),
        })

        if not targets:
            raise ValueError("Allocation requires at least one target")
        for target in targets:
            if target.eligible_amount.currency != amount.currency:
                raise ValueError(
                    f"Currency mismatch: {target.eligible_amount.currency} vs {amount.currency}"
                )

        match method:
            case AllocationMethod.PROPORTIONAL:
                return self._allocate_proportional(amount, targets, clamp_to_eligible)
            case AllocationMethod.MANUAL:
                if manual_amounts is None:
                    raise ValueError("Manual allocation requires manual_amounts")
                return self._allocate_manual(
                    amount, targets, manual_amounts, clamp_to_eligible
                )
            case _:
                logger.error("allocation_unknown_method", extra={
                    "method": str(method),
                })
                raise ValueError(f"Unknown allocation method: {method}")

    def _allocate_proportional(
        self,
        amount: Money,
        targets: Sequence[AllocationTarget],
        clamp_to_eligible: bool,
    ) -> AllocationResult:
        """Allocate by each target's share of the total eligible amount.

        Postconditions:
            - Before clamping, the allocated amounts sum exactly to
              ``amount`` (the last target takes the residual).
            - A share is never larger than what is left of ``amount``,
              so the residual is never negative.
            - Cents freed by clamping go to targets that still have room,
              so ``unallocated`` is positive only when every target is
              fully funded.
        """
        currency = amount.currency
        quantum = currency.quantum
        total_eligible = sum((t.eligible_amount.amount for t in targets), Decimal("0"))
        if total_eligible == 0:
            raise ValueError("Total eligible amount cannot be zero for proportional allocation")

        last = len(targets) - 1
        allocated_so_far = Decimal("0")
        shares: list[Decimal] = []

        for i, target in enumerate(targets):
            eligible = target.eligible_amount.amount
            if i == last:
                share = amount.amount - allocated_so_far
            else:
                ratio = eligible / total_eligible
                share = (amount.amount * ratio).quantize(quantum, rounding=ROUND_HALF_UP)
                share = min(share, amount.amount - allocated_so_far)

            if clamp_to_eligible:
                share = min(share, eligible)
            allocated_so_far += share
            shares.append(share)

        if clamp_to_eligible:
            self._redistribute_clamped(
                amount.amount - allocated_so_far, quantum, targets, shares
            )

        lines = [
            AllocationLine(
                target_id=target.target_id,
                allocated=Money.of(share, currency),
                remaining=Money.of(
                    max(target.eligible_amount.amount - share, Decimal("0")), currency
                ),
            )
            for target, share in zip(targets, shares)
        ]
        return self._finish(amount, AllocationMethod.PROPORTIONAL, lines)

    @staticmethod
    def _redistribute_clamped(
        leftover: Decimal,
        quantum: Decimal,
        targets: Sequence[AllocationTarget],
        shares: list[Decimal],
    ) -> None:
        """Hand ``leftover`` out one quantum at a time, largest room first.

        Ties go to the earlier target. Stops when nothing is left or every
        target is at its eligible amount. Mutates ``shares`` in place.
        """
        while leftover >= quantum:
            rooms = [
                (t.eligible_amount.amount - share, -i)
                for i, (t, share) in enumerate(zip(targets, shares))
            ]
            room, neg_index = max(rooms)
            if room < quantum:
                break
            shares[-neg_index] += quantum
            leftover -= quantum
            logger.debug("allocation_cent_redistributed", extra={
                "target_id": targets[-neg_index].target_id,
            })

    def _allocate_manual(
        self,
        amount: Money,
        targets: Sequence[AllocationTarget],
        manual_amounts: Mapping[str, Money],
        clamp_to_eligible: bool,
    ) -> AllocationResult:
        """Use caller-supplied amounts after checking coverage, bounds and sum."""
        currency = amount.currency
        target_ids = {t.target_id for t in targets}
        missing = [t.target_id for t in targets if t.target_id not in manual_amounts]
        unknown = [k for k in manual_amounts if k not in target_ids]
        if unknown:
            raise ValidationError("manual_amounts", f"unknown targets: {sorted(unknown)}")

        supplied = Money.total(
            (manual_amounts[t.target_id] for t in targets if t.target_id in manual_amounts),
            currency,
        )
        if missing:
            logger.warning("allocation_manual_missing_targets", extra={
                "missing": missing,
            })
            raise AllocationMismatchError(
                expected_total=str(amount.amount),
                allocated_total=str(supplied.amount),
            )

        lines: list[AllocationLine] = []
        for target in targets:
            share = manual_amounts[target.target_id]
            if share.currency != currency:
                raise ValueError(f"Currency mismatch: {share.currency} vs {currency}")
            if share.is_negative:
                raise ValidationError(
                    f"manual_amounts[{target.target_id}]", "must not be negative"
                )
            if clamp_to_eligible and share > target.eligible_amount:
                raise OverpaymentError(
                    debt_id=target.target_id,
                    amount=str(share.amount),
                    remaining_balance=str(target.eligible_amount.amount),
                )
            remaining = target.eligible_amount - share
            lines.append(
                AllocationLine(
                    target_id=target.target_id,
                    allocated=share,
                    remaining=remaining if not remaining.is_negative else Money.zero(currency),
                )
            )

        if supplied != amount:
            raise AllocationMismatchError(
                expected_total=str(amount.amount),
                allocated_total=str(supplied.amount),
            )

        return self._finish(amount, AllocationMethod.MANUAL, lines)

    def _finish(
        self,
        amount: Money,
        method: AllocationMethod,
        lines: list[AllocationLine],
    ) -> AllocationResult:
        currency = amount.currency
        total_allocated = Money.total((line.allocated for line in lines), currency)
        unallocated = amount - total_allocated

        # Conservation: total_allocated + unallocated == source amount
        assert total_allocated + unallocated == amount, (
            f"Allocation conservation violated: "
            f"{total_allocated.amount} + {unallocated.amount} != {amount.amount}"
        )

        logger.info("allocation_completed", extra={
            "method": method.value,
            "source_amount": str(amount.amount),
            "total_allocated": str(total_allocated.amount),
            "unallocated": str(unallocated.amount),
            "targets_funded": sum(1 for line in lines if line.allocated.is_positive),
            "line_count": len(lines),
        })

        return AllocationResult(
            source_amount=amount,
            method=method,
            lines=tuple(lines),
            total_allocated=total_allocated,
            unallocated=unallocated,
        )
