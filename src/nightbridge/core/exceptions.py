"""Nightbridge exception hierarchy.

Typed exceptions let the loops tell fatal configuration problems apart
from transient collaborator failures, while ``CancelledError`` keeps
propagating untouched.

Exception hierarchy:

```text
NightbridgeError (base -- never raised directly)
├── ConfigurationError       -- missing credentials, profile name, bad YAML
├── SourceError              -- data source failures
│   ├── AuthenticationError  -- rejected credentials or token
│   └── TransportError       -- network failure, bad status, bad payload
├── SinkError                -- monitoring log rejected or failed a call
└── CorrelationError         -- one record cannot be resolved yet
```

See Also:
    [Looper][nightbridge.core.looper.Looper]: Catches everything except
        shutdown signals at the cycle boundary and applies the
        step-failure policy.
    [identify_treatments][nightbridge.services.common.treatments.identify_treatments]:
        Raises and handles
        [CorrelationError][nightbridge.core.exceptions.CorrelationError]
        per record; it never escapes the identifier.
"""

from __future__ import annotations


class NightbridgeError(Exception):
    """Base exception for all Nightbridge errors.

    Never raised directly -- always use a specific subclass.
    """


class ConfigurationError(NightbridgeError):
    """Invalid or missing configuration (YAML, env vars, CLI flags).

    Fatal at startup: the affected loop must not start.
    """


# ---------------------------------------------------------------------------
# Source
# ---------------------------------------------------------------------------


class SourceError(NightbridgeError):
    """Base for failures talking to the device-data source."""


class AuthenticationError(SourceError):
    """The source rejected the configured credentials or access token."""


class TransportError(SourceError):
    """Network failure, unexpected HTTP status, or unreadable payload."""


# ---------------------------------------------------------------------------
# Sink
# ---------------------------------------------------------------------------


class SinkError(NightbridgeError):
    """The monitoring log failed or rejected a report/update call."""


# ---------------------------------------------------------------------------
# Correlation
# ---------------------------------------------------------------------------


class CorrelationError(NightbridgeError):
    """A record cannot be resolved into a treatment in this cycle.

    Recoverable: the record is deferred to the next cycle.
    """
