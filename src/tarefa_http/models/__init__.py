"""Modelos de dados da biblioteca."""

from .credential import (
    AuthChallenge,
    AuthenticationMethod,
    ChallengeDisposition,
    Credential,
    ProtectionSpace,
)
from .progress import Progress
from .request import HTTPMethod, Request, parse_url, to_request
from .response import CachedResponse, CachePolicy, ResponseDisposition

__all__ = [
    "AuthChallenge",
    "AuthenticationMethod",
    "CachedResponse",
    "CachePolicy",
    "ChallengeDisposition",
    "Credential",
    "HTTPMethod",
    "Progress",
    "ProtectionSpace",
    "Request",
    "ResponseDisposition",
    "parse_url",
    "to_request",
]
