from fastapi import status


class BidCraftError(Exception):
    """Base for errors that map straight onto an HTTP response."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationFailed(BidCraftError):
    status_code = status.HTTP_400_BAD_REQUEST


class Forbidden(BidCraftError):
    status_code = status.HTTP_403_FORBIDDEN


class ProjectNotFound(BidCraftError):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, detail: str = "Project not found"):
        super().__init__(detail)


class BidConflict(BidCraftError):
    status_code = status.HTTP_409_CONFLICT
