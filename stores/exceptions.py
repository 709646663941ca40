"""
Shared exception definitions for stores and the live game engine.

Hierarchy:
- StoreError (base for all store exceptions)
  - StoreUnavailable (transient I/O failure)
  - InvalidReference (bad id, or id not a member of the expected game)
  - InvalidValue (rejected before any write)
  - UnexpectedResult
- ActionRejected (a player action refused with a user-facing message)
"""


# =========================
# Base exception
# =========================

class StoreError(Exception):
    """Base exception for all store-related errors."""
    retryable: bool = False


class StoreUnavailable(StoreError):
    retryable = True


class UnexpectedResult(StoreError):
    retryable = True
    #aka, the "how the heck did this happen" exception, such as a write that matched no row right after a read found it


# =========================
# Invalid references
# =========================

class InvalidReference(StoreError):
    retryable = False


class GameNotFound(InvalidReference):
    retryable = False


class UserNotFound(InvalidReference):
    retryable = False


class GameUserNotFound(InvalidReference):
    retryable = False


class TeamNotFound(InvalidReference):
    retryable = False


class FactoryNotFound(InvalidReference):
    retryable = False


# =========================
# Invariant violations
# =========================

class InvalidValue(StoreError):
    retryable = False


# =========================
# Player actions
# =========================

class ActionRejected(Exception):
    """A player action was refused; `message` is safe to show to the player."""
    retryable = False

    def __init__(self, message: str, *, dialog: bool = True):
        super().__init__(message)
        self.message = message
        self.dialog = dialog
