"""Exceptions raised by the authentication package."""


class AuthGateError(Exception):
    """Base exception for gate errors"""
    pass


class SessionCodecError(AuthGateError):
    """A session cookie could not be decoded for a reason other than tampering or expiry"""
    pass


class TokenExchangeError(AuthGateError):
    """The authorization code could not be exchanged for a token"""
    pass
