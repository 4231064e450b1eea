"""Shared domain error messages and error types."""


class DomainError(ValueError):
    """Base class for domain-level errors.

    Subclasses provide semantic categories while preserving ValueError
    compatibility for existing error handling.
    """


class ValidationError(DomainError):
    """Invalid input or failed validation in domain logic."""


class NotFoundError(DomainError):
    """Requested domain entity does not exist."""


class ConflictError(DomainError):
    """Domain conflict, such as mutating a terminal transaction."""


class ConsistencyError(DomainError):
    """Serialization failure in the atomic unit. Safe to retry the whole operation."""


class UnexpectedError(DomainError):
    """Any other failure inside an atomic unit; the unit was rolled back."""


def client_not_found(client_id: int) -> str:
    """Return message for missing client."""
    return f"Client {client_id} not found"


def asset_not_found(asset_id: int) -> str:
    """Return message for missing asset."""
    return f"Asset {asset_id} not found"


def denomination_not_found(denomination_id: int) -> str:
    """Return message for missing denomination."""
    return f"Denomination {denomination_id} not found"


def transaction_not_found(transaction_id: int) -> str:
    """Return message for missing transaction."""
    return f"Transaction {transaction_id} not found"


def house_account_not_found(name: str) -> str:
    """Return message when the configured house account row is missing."""
    return f"House account '{name}' not found. Run 'cambio init-house' first."


def terminal_transaction(transaction_id: int, state: str) -> str:
    """Return message for attempts to mutate a COMPLETED or CANCELLED transaction."""
    return f"Transaction {transaction_id} is {state} and can no longer be modified"


def same_state(transaction_id: int, state: str) -> str:
    """Return message for a transition into the current state."""
    return f"Transaction {transaction_id} is already {state}"


def illegal_transition(transaction_id: int, current: str, new: str) -> str:
    """Return message for a transition the state machine does not allow."""
    return f"Transaction {transaction_id} cannot move from {current} to {new}"


def transaction_has_children(transaction_id: int, child_count: int) -> str:
    """Return message when a transaction with children is deleted."""
    return (
        f"Cannot delete transaction {transaction_id}: it has {child_count} "
        f"child transaction{'s' if child_count != 1 else ''}"
    )


def insufficient_balance(client_id: int, asset_id: int, requested, available) -> str:
    """Return message when a reconciliation asks for more than is available."""
    return (
        f"Client {client_id} has {available} available in asset {asset_id}, "
        f"cannot reconcile {requested}"
    )
