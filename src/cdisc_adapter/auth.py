"""Credential placement for outgoing API calls."""

from __future__ import annotations

from typing import Optional

from .models import AuthDecision, AuthLocation, AuthScheme, OperationDescriptor


DEFAULT_CREDENTIAL_NAME = "api-key"


class AuthResolver:
    """
    Decide whether and where to attach the API key.

    An operator override wins over the document's declared schemes. Without a
    secret the call goes out unauthenticated and the upstream 401 is what the
    caller sees.
    """

    def __init__(
        self,
        secret: Optional[str],
        override_location: Optional[AuthLocation] = None,
        header_name: str = DEFAULT_CREDENTIAL_NAME,
        query_name: str = DEFAULT_CREDENTIAL_NAME,
    ) -> None:
        self.secret = secret or ""
        self.override_location = override_location
        self.header_name = header_name or DEFAULT_CREDENTIAL_NAME
        self.query_name = query_name or DEFAULT_CREDENTIAL_NAME

    def decide(self, descriptor: OperationDescriptor) -> AuthDecision:
        if not self.secret:
            return AuthDecision.absent()

        if self.override_location is AuthLocation.HEADER:
            return self._decision(AuthLocation.HEADER, self.header_name)
        if self.override_location is AuthLocation.QUERY:
            return self._decision(AuthLocation.QUERY, self.query_name)

        header_scheme = descriptor.scheme(AuthScheme.HEADER)
        if header_scheme:
            return self._decision(AuthLocation.HEADER, header_scheme.param_name)
        query_scheme = descriptor.scheme(AuthScheme.QUERY)
        if query_scheme:
            return self._decision(AuthLocation.QUERY, query_scheme.param_name)

        return self._decision(AuthLocation.HEADER, DEFAULT_CREDENTIAL_NAME)

    def credential_query_name(self, descriptor: OperationDescriptor) -> str:
        """Query parameter the credential would occupy if placed in the URL."""
        if self.override_location is not None:
            return self.query_name
        query_scheme = descriptor.scheme(AuthScheme.QUERY)
        if query_scheme:
            return query_scheme.param_name
        return DEFAULT_CREDENTIAL_NAME

    def _decision(self, location: AuthLocation, name: str) -> AuthDecision:
        return AuthDecision(present=True, location=location, name=name, secret=self.secret)
