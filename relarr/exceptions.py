"""
Exception hierarchy for relarr.

- ConfigError: bad or unknown configuration key/value (fatal, raised before I/O)
- ValidationError: bad argument to a pure function
- DataError: malformed or missing record (record is dropped, run continues)
- UnderdeterminedError: cluster too small to solve (cluster left unaligned)
"""


class RelarrError(Exception):
    """Base class for all relarr errors."""


class ConfigError(RelarrError, ValueError):
    """Unknown configuration key or malformed configuration value."""


class ValidationError(RelarrError, ValueError):
    """Invalid argument passed to a processing function."""


class DataError(RelarrError):
    """A record is unreadable or is missing required header information."""


class UnderdeterminedError(RelarrError):
    """Not enough records or pairs to solve for an alignment."""
