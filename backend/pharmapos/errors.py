# Overview: Domain error taxonomy shared by services and routes.

"""
All errors here are local, recoverable conditions. Routes translate them
into the JSON error envelope {"error": message, "details": {...}} using
status_code; services raise them and never swallow them.
"""

from __future__ import annotations


class PosError(Exception):
    """Base class for point-of-sale domain errors."""
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "details": self.details}


class InvalidInputError(PosError, ValueError):
    """Malformed pricing, quantity or money input."""


class NotFoundError(PosError):
    status_code = 404


class InvalidStateError(PosError):
    """Operation not allowed in the entity's current lifecycle state."""
    status_code = 409


class UnitNotFoundError(PosError):
    """Unit type is not defined on the catalog item."""


class InsufficientStockError(PosError):
    """A stock event would drive an item's balance below zero."""
    status_code = 409


class EmptyCartError(PosError):
    pass


class StockRaceError(PosError):
    """Cart quantities no longer fit the stock on hand (validate or commit time)."""
    status_code = 409


class InvalidAmountError(PosError):
    pass


class ExceedsBalanceError(PosError):
    pass


class AlreadyPaidError(PosError):
    status_code = 409
