"""
Custom Exception Classes

Errors raised at the chain and ledger boundaries. The lifecycle services
translate them into OperationOutcome values; nothing above the services
needs to catch them.
"""

from typing import Optional


class EditionEngineError(Exception):
    """Base exception for the edition engine."""

    pass


class WalletDeclinedError(EditionEngineError):
    """The signer declined the transaction. A normal outcome, not a fault."""

    pass


class ChainRejectedError(EditionEngineError):
    """The contract refused the call (duplicate edition, inactive window, ...)."""

    EDITION_EXISTS = 'edition_exists'
    MINT_INACTIVE = 'mint_inactive'
    SUPPLY_EXHAUSTED = 'supply_exhausted'
    INSUFFICIENT_PAYMENT = 'insufficient_payment'
    NO_EDITION = 'no_edition'
    INVALID_PARAMETERS = 'invalid_parameters'
    UNKNOWN = 'unknown'

    def __init__(self, reason: str, message: Optional[str] = None):
        self.reason = reason
        super().__init__(message or reason)

    @classmethod
    def from_revert_message(cls, message: Optional[str]) -> 'ChainRejectedError':
        """Map a contract revert string onto a reason code."""
        text = (message or '').lower()
        if 'already exists' in text:
            reason = cls.EDITION_EXISTS
        elif 'not active' in text or 'ended' in text or 'inactive' in text:
            reason = cls.MINT_INACTIVE
        elif 'supply' in text or 'sold out' in text:
            reason = cls.SUPPLY_EXHAUSTED
        elif 'payment' in text or 'insufficient' in text:
            reason = cls.INSUFFICIENT_PAYMENT
        elif 'does not exist' in text or 'no edition' in text:
            reason = cls.NO_EDITION
        else:
            reason = cls.UNKNOWN
        return cls(reason, message)


class ChainUnavailableError(EditionEngineError):
    """The chain could not be reached; nothing was broadcast."""

    pass


class TransactionIndeterminateError(EditionEngineError):
    """A transaction may have been broadcast but its fate is unknown."""

    def __init__(self, tx_hash: Optional[str], message: Optional[str] = None):
        self.tx_hash = tx_hash
        super().__init__(message or f"Transaction {tx_hash or '<unknown>'} has no receipt yet")


class LedgerWriteError(EditionEngineError):
    """The off-chain ledger could not be written."""

    pass


class EditionAlreadyRecordedError(EditionEngineError):
    """A different edition is already recorded for the moment."""

    def __init__(self, moment_id: str, message: Optional[str] = None):
        self.moment_id = moment_id
        super().__init__(message or f"An edition is already recorded for moment {moment_id}")


class EditionNotFoundError(EditionEngineError):
    """No confirmed edition is recorded for the moment."""

    pass


class MomentNotFoundError(EditionEngineError):
    """The moment does not exist."""

    pass


class NotMomentOwnerError(EditionEngineError):
    """The caller does not own the moment."""

    pass


class MetadataPublishError(EditionEngineError):
    """The metadata document could not be published."""

    pass
