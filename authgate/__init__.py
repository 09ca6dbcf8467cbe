"""authgate: credential lifecycle service.

Issues, validates, rotates and revokes short-lived credentials: one-time
OAuth authorization codes, database-backed opaque access tokens and signed
JWT access tokens paired with rotating refresh tokens.
"""

__version__ = "0.1.0"
