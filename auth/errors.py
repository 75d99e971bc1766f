"""
auth/errors.py -- Exception hierarchy for the token engine.

Only conditions the caller cannot recover from are exceptions. Everything a
request can legitimately trigger (bad token, unknown email, already verified)
is reported through ValidationResult / Outcome in auth/models.py instead.

  ConfigurationError  -- signing key / issuer / audience missing. Raised at
                         construction so the process fails at startup rather
                         than issuing an unsigned token per request.
  InvalidOwnerError   -- issue() called for an owner that does not exist or
                         lacks an email. Orchestrators look the owner up first,
                         so reaching this is a programming error.
"""


class TokenEngineError(Exception):
    """Base class for token engine failures."""


class ConfigurationError(TokenEngineError):
    pass


class InvalidOwnerError(TokenEngineError):
    pass
