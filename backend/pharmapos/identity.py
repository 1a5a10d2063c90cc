# Overview: Operator identity supplied by the fronting session layer.

from __future__ import annotations

from dataclasses import dataclass


ROLE_ADMIN = "admin"
ROLE_MANAGER = "manager"
ROLE_PHARMACIST = "pharmacist"
ROLE_CASHIER = "cashier"

VALID_ROLES = [ROLE_ADMIN, ROLE_MANAGER, ROLE_PHARMACIST, ROLE_CASHIER]


@dataclass(frozen=True)
class OperatorContext:
    """
    Who is operating the till. Scopes carts and stamps
    performed_by / performed_by_role / cashier_id / cashier_name.
    """
    operator_id: str
    name: str | None = None
    role: str = ROLE_CASHIER

    @property
    def display_name(self) -> str:
        return self.name or self.operator_id
