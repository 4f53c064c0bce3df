"""Error taxonomy shared by the services and the HTTP layer.

Every error carries a machine-stable ``kind`` and the HTTP status the web
layer answers with. None of them is retried by the server; the client
re-fetches and tries again where that makes sense.
"""
from __future__ import annotations


class MarketplaceError(Exception):
    kind = "error"
    http_status = 400


class ValidationError(MarketplaceError):
    kind = "validation_error"
    http_status = 400


class NotFound(MarketplaceError):
    kind = "not_found"
    http_status = 404


class InvalidTransition(MarketplaceError):
    kind = "invalid_transition"
    http_status = 409


class AlreadyAssigned(MarketplaceError):
    kind = "already_assigned"
    http_status = 409


class NotInDeliverableState(MarketplaceError):
    kind = "not_in_deliverable_state"
    http_status = 409


class NotAssignedRider(MarketplaceError):
    kind = "not_assigned_rider"
    http_status = 403


class NotEligible(MarketplaceError):
    kind = "not_eligible"
    http_status = 403


class InvalidOtp(MarketplaceError):
    kind = "invalid_otp"
    http_status = 422


class OtpExpired(InvalidOtp):
    kind = "otp_expired"


class PaymentVerificationFailed(MarketplaceError):
    kind = "payment_verification_failed"
    http_status = 400


class PaymentGatewayError(MarketplaceError):
    kind = "payment_gateway_error"
    http_status = 502
