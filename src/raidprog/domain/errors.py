from enum import Enum


class RaidProgError(RuntimeError):
    pass


class PayloadParseError(RaidProgError, ValueError):
    """Payload section present but shaped differently than the site normally sends."""


class LookupFailure(str, Enum):
    NOT_FOUND = "not_found"
    NETWORK_ERROR = "network_error"
    UNEXPECTED_STATUS = "unexpected_status"
    MALFORMED_REDIRECT = "malformed_redirect"
