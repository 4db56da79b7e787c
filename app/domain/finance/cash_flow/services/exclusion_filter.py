"""
Exclusion Filter Service - decides whether a ledger transaction is a real cash movement.

Reasons are evaluated in a fixed priority order and the first match wins,
so a transaction is excluded for at most one reason.
"""
from decimal import Decimal
from typing import Optional

from app.core.unified_config import ExclusionConfig
from app.shared.utils.validators import ZERO

from ..models.classification import CashDirection, CashLeg, ExclusionReason, ExclusionResult
from ..models.ledger import LedgerTransaction
from .account_classifier import AccountClassifier
from .description_signals import DescriptionSignalExtractor, DescriptionSignals


class ExclusionFilter:
    """
    Service to separate cash movements from non-cash noise:
    1. Balance-sheet adjustments (keywords or ADJ- ids)
    2. Internal transfers between cash accounts
    3. Accruals with no cash line
    4. Late payment fees
    5. Anything left whose cash lines net to zero
    """

    def __init__(
        self,
        classifier: AccountClassifier,
        signals: Optional[DescriptionSignalExtractor] = None,
        config: Optional[ExclusionConfig] = None,
    ):
        self.classifier = classifier
        self.config = config or ExclusionConfig()
        self.signals = signals or DescriptionSignalExtractor(self.config)
        self.adjustment_prefixes = tuple(p.upper() for p in self.config.adjustment_prefixes)

    def classify(self, transaction: LedgerTransaction) -> ExclusionResult:
        """
        Classify a single transaction.

        Args:
            transaction: Posted ledger transaction

        Returns:
            ExclusionResult with either a reason or the transaction's cash leg
        """
        signals = self.signals.extract(transaction.description)
        reason = self.exclusion_reason(transaction, signals)
        if reason is not None:
            return ExclusionResult.exclude(transaction.id, reason, transfer_hint=signals.is_transfer)

        cash_leg = self.cash_leg(transaction)
        if cash_leg is None:
            return ExclusionResult.exclude(
                transaction.id, ExclusionReason.NO_CASH_MOVEMENT, transfer_hint=signals.is_transfer
            )
        return ExclusionResult.include(transaction.id, cash_leg, transfer_hint=signals.is_transfer)

    def exclusion_reason(
        self,
        transaction: LedgerTransaction,
        signals: Optional[DescriptionSignals] = None,
    ) -> Optional[ExclusionReason]:
        """First matching exclusion reason, or None"""
        if signals is None:
            signals = self.signals.extract(transaction.description)

        if self.is_balance_sheet_adjustment(transaction, signals):
            return ExclusionReason.BALANCE_SHEET_ADJUSTMENT
        if self.is_internal_cash_transfer(transaction):
            return ExclusionReason.INTERNAL_CASH_TRANSFER
        if self.is_accrual_without_cash(transaction):
            return ExclusionReason.ACCRUAL_WITHOUT_CASH
        if self.is_late_payment_fee(transaction, signals):
            return ExclusionReason.LATE_PAYMENT_FEE
        return None

    def is_balance_sheet_adjustment(self, transaction: LedgerTransaction, signals: DescriptionSignals) -> bool:
        if signals.is_adjustment:
            return True
        for identifier in (transaction.id, transaction.reference):
            if identifier and identifier.upper().startswith(self.adjustment_prefixes):
                return True
        return False

    def is_internal_cash_transfer(self, transaction: LedgerTransaction) -> bool:
        """
        Structural check: a cash debit and a cash credit, no P&L or liability leg.
        Transfer keywords alone never decide.
        """
        lines = transaction.lines
        if len(lines) < 2:
            return False

        has_cash_debit = any(self.classifier.is_cash_line(entry) and entry.debit > ZERO for entry in lines)
        has_cash_credit = any(self.classifier.is_cash_line(entry) and entry.credit > ZERO for entry in lines)
        if not (has_cash_debit and has_cash_credit):
            return False

        return not any(
            self.classifier.is_income_line(entry)
            or self.classifier.is_expense_line(entry)
            or self.classifier.is_liability_line(entry)
            for entry in lines
        )

    def is_accrual_without_cash(self, transaction: LedgerTransaction) -> bool:
        has_pl_line = any(
            self.classifier.is_income_line(entry) or self.classifier.is_expense_line(entry)
            for entry in transaction.lines
        )
        if not has_pl_line:
            return False
        return not any(
            self.classifier.is_cash_line(entry) and entry.amount > ZERO
            for entry in transaction.lines
        )

    def is_late_payment_fee(self, transaction: LedgerTransaction, signals: DescriptionSignals) -> bool:
        if signals.is_late_fee:
            return True
        return any(self.signals.is_late_fee_text(entry.account_name) for entry in transaction.lines)

    def cash_leg(self, transaction: LedgerTransaction) -> Optional[CashLeg]:
        """
        Net cash effect of a transaction.

        Returns:
            CashLeg on the largest cash line in the net direction, or None when
            cash debits and credits cancel out
        """
        cash_lines = [entry for entry in transaction.lines if self.classifier.is_cash_line(entry)]
        net: Decimal = sum((entry.debit - entry.credit for entry in cash_lines), ZERO)
        if net == ZERO:
            return None

        if net > ZERO:
            direction = CashDirection.INFLOW
            line = max((entry for entry in cash_lines if entry.debit > ZERO), key=lambda entry: entry.debit)
        else:
            direction = CashDirection.OUTFLOW
            line = max((entry for entry in cash_lines if entry.credit > ZERO), key=lambda entry: entry.credit)

        return CashLeg(
            account_code=line.account_code,
            account_name=line.account_name or self.classifier.cash_account_name(line.account_code) or "",
            direction=direction,
            amount=abs(net),
        )
