"""Exception types shared by the interception layer.

Failure model:
    - `ConfigurationError` is fatal and surfaces at startup while the matcher
      or settings are being built.
    - `ContextCorrelationError` signals a broken pipeline invariant (POST
      without a matching PRE, or an out-of-order lifecycle transition). It is
      raised internally and handled by the interception stage, which logs it
      and treats the exchange as clean. It never reaches the end user.
"""


class ConfigurationError(ValueError):
    """Forbidden-term configuration is absent or malformed."""


class ContextCorrelationError(RuntimeError):
    """No usable exchange context exists for the current request."""
