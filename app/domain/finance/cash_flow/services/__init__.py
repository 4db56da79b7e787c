from .account_classifier import AccountClassifier
from .description_signals import DescriptionSignals, DescriptionSignalExtractor
from .exclusion_filter import ExclusionFilter
from .payment_linker import PaymentLinker
from .categorizer import Categorizer, CategoryRule, RuleContext
from .processing_context import ProcessingContext
from .period_aggregator import PeriodAggregator
from .reconciliation_verifier import BucketVerification, ExcludedAmount, ReconciliationVerifier

__all__ = [
    "AccountClassifier",
    "DescriptionSignals",
    "DescriptionSignalExtractor",
    "ExclusionFilter",
    "PaymentLinker",
    "Categorizer",
    "CategoryRule",
    "RuleContext",
    "ProcessingContext",
    "PeriodAggregator",
    "BucketVerification",
    "ExcludedAmount",
    "ReconciliationVerifier",
]
