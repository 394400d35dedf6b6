"""Exceptions raised by the credential-issuing services.

Store lookups never raise: a missing, expired or mismatched challenge is an
ordinary ``False``/``None`` result.  These exceptions cover the collaborator
failures that must reach the caller as a distinct outcome.
"""


class IdentityProviderError(Exception):
    """Base class for all service-level failures."""


class TokenIssuanceError(IdentityProviderError):
    """The bearer-token signer could not produce a token."""


class InvalidCredentialError(IdentityProviderError):
    """A presented bearer token is missing, malformed, expired or forged."""


class OTPDeliveryError(IdentityProviderError):
    """The OTP could not be handed to the delivery channel."""
