"""
Thetaline — Custom Exceptions
Hierarchical exception system for clean error handling.
"""


class ThetalineError(Exception):
    """Base exception for all Thetaline errors."""
    pass


# ---------------------------------------------------------------------------
# Config errors
# ---------------------------------------------------------------------------

class ConfigError(ThetalineError):
    """Configuration loading or validation error."""
    pass


class MissingConfigError(ConfigError):
    """Required configuration value is missing."""
    pass


# ---------------------------------------------------------------------------
# Pricing errors
# ---------------------------------------------------------------------------

class PricingError(ThetalineError):
    """Option pricing model error."""
    pass


class InvalidPricingInputError(PricingError):
    """Pricing inputs violate the model preconditions (S, K > 0; sigma > 0 when T > 0)."""
    def __init__(self, field: str, value: float, message: str = ""):
        self.field = field
        self.value = value
        super().__init__(message or f"Invalid pricing input: {field}={value!r}")


# ---------------------------------------------------------------------------
# Data errors
# ---------------------------------------------------------------------------

class DataError(ThetalineError):
    """Data layer error."""
    pass


class DataFetchError(DataError):
    """A market data provider failed to return data."""
    def __init__(self, provider: str, message: str):
        self.provider = provider
        super().__init__(f"[{provider}] {message}")


class DataNotAvailableError(DataError):
    """Historical data not available for requested range."""
    pass


class DataIntegrityError(DataError):
    """Data corruption or inconsistency detected."""
    pass


# ---------------------------------------------------------------------------
# Store errors
# ---------------------------------------------------------------------------

class StoreError(ThetalineError):
    """Run store read/write error."""
    pass


class RunNotFoundError(StoreError):
    """Requested run id does not exist."""
    def __init__(self, run_id: str):
        self.run_id = run_id
        super().__init__(f"Backtest run not found: {run_id}")


# ---------------------------------------------------------------------------
# Backtest errors
# ---------------------------------------------------------------------------

class BacktestError(ThetalineError):
    """Backtest run error."""
    pass


class RunCreationError(BacktestError):
    """The initial run record could not be created; the run is aborted."""
    pass
