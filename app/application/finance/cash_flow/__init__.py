from .ledger_store import LedgerStore
from .cash_flow_service import CashFlowService

__all__ = [
    "LedgerStore",
    "CashFlowService",
]
