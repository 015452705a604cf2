# Overview: Typed business errors shared by services and rendered by the API layer.

"""
Ledger error taxonomy.

Every service failure the caller can act on is one of these. Routes never
build error payloads by hand: the handler registered in create_app() turns a
LedgerError into {"error": kind, "message": ..., "details": {...}} with the
class's status code.
"""
from __future__ import annotations


class LedgerError(Exception):
    """Base class for expected business failures."""

    kind = "LedgerError"
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": self.kind,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(LedgerError):
    """Malformed or missing input; nothing was attempted."""

    kind = "ValidationError"
    status_code = 400


class NotFoundError(LedgerError):
    """Entity absent, or owned by another tenant (indistinguishable)."""

    kind = "NotFound"
    status_code = 404


class InsufficientStockError(LedgerError):
    kind = "InsufficientStock"
    status_code = 409

    def __init__(self, item_name: str, available: int, requested: int):
        super().__init__(
            f"Insufficient stock for {item_name}: {available} available, {requested} requested",
            {"item": item_name, "available": available, "requested": requested},
        )


class InventoryLockedError(LedgerError):
    """A DRAFT inventory campaign blocks stock mutations for the tenant."""

    kind = "InventoryLocked"
    status_code = 423

    def __init__(self, campaign_name: str):
        super().__init__(
            f"Inventory campaign '{campaign_name}' is in progress; stock operations are locked",
            {"campaign": campaign_name},
        )
        self.campaign_name = campaign_name


class UpdateLockedError(LedgerError):
    kind = "UpdateLocked"
    status_code = 403


class DeleteLockedError(LedgerError):
    kind = "DeleteLocked"
    status_code = 403


class CampaignConflictError(LedgerError):
    kind = "CampaignConflict"
    status_code = 409


class InvalidTransitionError(LedgerError):
    """Lifecycle transition not allowed from the entity's current status."""

    kind = "InvalidTransition"
    status_code = 409


class TransactionFailure(LedgerError):
    """Unexpected storage failure. The transaction was rolled back."""

    kind = "TransactionFailure"
    status_code = 500

    def __init__(self, message: str = "The operation could not be completed"):
        super().__init__(message)
