from fastapi import HTTPException, status


class NotFoundError(HTTPException):
    """Raised when a requested resource is not found."""

    def __init__(self, resource: str):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{resource} not found",
        )


class ConflictError(HTTPException):
    """Raised when a request conflicts with existing state."""

    def __init__(self, message: str):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=message,
        )


class ForbiddenError(HTTPException):
    """Raised when user lacks permission to access a resource."""

    def __init__(self, message: str = "Not authorized to access this resource"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=message,
        )


class ValidationError(HTTPException):
    """Raised when request validation fails."""

    def __init__(self, message: str):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=message,
        )


class BillingUnavailableError(HTTPException):
    """Raised when billing is disabled or its price configuration is incomplete."""

    def __init__(self, message: str = "Billing is not configured"):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=message,
        )


class PaymentProviderError(HTTPException):
    """Raised when a Stripe call fails."""

    def __init__(self, message: str = "Payment provider error. Please try again."):
        super().__init__(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=message,
        )
