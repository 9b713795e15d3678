"""
Probe Exceptions
================

Exceptions raised by probes when a check cannot produce a verdict.

Transport errors raised by web3 (connection failures, JSON-RPC error
responses, ...) are not wrapped: the runner turns any exception escaping a
probe into an error result for that probe's method.
"""


class CheckerException(Exception):
    """
    Base class for failures detected by the checker itself, as opposed to
    errors reported by the node or the transport.
    """

    pass


class MissingPrerequisite(CheckerException):
    """
    Raised when a probe needs a fact that no earlier probe established, e.g.
    a mined transaction, a deployed contract or an installed filter.
    """

    pass


class InvariantViolation(CheckerException):
    """
    Raised when the node answers, but the answer contradicts the expected
    behavior of the method under test.
    """

    pass


class TransactionFailed(InvariantViolation):
    """
    Raised when a transaction was mined with a failed (zero) receipt status.
    """

    pass


class ConfirmationTimeout(CheckerException):
    """
    Raised when a submitted transaction was not mined before the deadline.
    """

    def __init__(self, tx_hash: str, timeout: float):
        super().__init__(
            f"timeout exceeded while waiting for transaction {tx_hash} "
            f"(waited {timeout:g}s)"
        )
        self.tx_hash = tx_hash
        self.timeout = timeout
