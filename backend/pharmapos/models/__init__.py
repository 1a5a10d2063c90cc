from .catalog import CatalogItem, UnitDefinition
from .stock import StockEvent
from .prescriptions import Prescription, PrescriptionItem
from .sales import Sale, SaleLine
from .credit import CreditAccount, CreditPayment

__all__ = [
    'CatalogItem', 'UnitDefinition',
    'StockEvent',
    'Prescription', 'PrescriptionItem',
    'Sale', 'SaleLine',
    'CreditAccount', 'CreditPayment',
]
