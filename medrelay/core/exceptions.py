from fastapi import HTTPException, status


class ValidationError(HTTPException):
    """A required field is missing or malformed."""
    def __init__(self, detail: str = "Invalid request"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class NotFoundError(HTTPException):
    def __init__(self, detail: str = "Not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class BackendError(HTTPException):
    """Storage, database or third-party failure.

    Only the fixed message reaches the client; the cause is logged where the
    failure is caught.
    """
    def __init__(self, detail: str = "An unexpected error occurred"):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail,
        )
