"""
Error taxonomy for the buyback-burn pipeline.

Skip-style outcomes (InsufficientBalance, NoTokenAccount, ZeroBalance) are
exceptions only inside a component; the pipeline turns them into results.
"""

from typing import Optional


class FlywheelError(Exception):
    """Base for every error raised by flywheel components."""
    pass


class ConfigurationError(FlywheelError):
    """Invalid or missing configuration. Aborts the invocation."""
    pass


class RpcError(FlywheelError):
    """Solana RPC call failed or timed out."""
    pass


class OracleUnavailable(FlywheelError):
    """Balance read failed. Retryable; never means 'zero balance'."""
    pass


class InsufficientBalance(FlywheelError):
    """Deposit balance below the buyback minimum (a skip, not a fault)."""

    def __init__(self, balance_sol: float, minimum_sol: float):
        super().__init__(f"balance {balance_sol} SOL below minimum {minimum_sol} SOL")
        self.balance_sol = balance_sol
        self.minimum_sol = minimum_sol


class VenueError(FlywheelError):
    """A single swap venue refused or failed to build a transaction."""

    def __init__(self, venue: str, message: str):
        super().__init__(f"{venue}: {message}")
        self.venue = venue


class SwapFailed(FlywheelError):
    """Every venue failed. Carries each venue's error and any signatures
    that were submitted but never confirmed."""

    def __init__(self, errors: list[str], unconfirmed_signatures: Optional[list[str]] = None):
        joined = " | ".join(errors) if errors else "no venues configured"
        super().__init__(f"all swap venues failed: {joined}")
        self.errors = list(errors)
        self.unconfirmed_signatures = list(unconfirmed_signatures or [])


class NoTokenAccount(FlywheelError):
    """Wallet holds no account for the mint under any token program."""
    pass


class ZeroBalance(FlywheelError):
    """Token account exists but holds nothing."""
    pass


class BurnFailed(FlywheelError):
    """Burn (or incinerator transfer) did not confirm."""

    def __init__(self, message: str, signature: str = ""):
        super().__init__(message)
        self.signature = signature


class ProjectNotFound(FlywheelError):
    """No project registered for the given key. Aborts a single run."""
    pass


class ProjectAlreadyRegistered(FlywheelError):
    pass


class ProjectBusy(FlywheelError):
    """Another run holds the project's lease."""
    pass


class LedgerUnavailable(FlywheelError):
    """Ledger read/write failed. After an on-chain action this is an audit gap."""
    pass
