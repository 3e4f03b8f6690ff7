from __future__ import annotations

from botocore.exceptions import ClientError

from .errors import (
    AwsError,
    ConditionalCheckFailedError,
    ResourceInUseError,
    ResourceNotFoundError,
    ValidationError,
)


def map_client_error(err: ClientError) -> Exception:
    code = str(err.response.get("Error", {}).get("Code", ""))
    message = str(err.response.get("Error", {}).get("Message", ""))

    if code == "ConditionalCheckFailedException":
        return ConditionalCheckFailedError(message)
    if code == "ResourceNotFoundException":
        return ResourceNotFoundError(message)
    if code == "ResourceInUseException":
        return ResourceInUseError(message)
    if code == "ValidationException":
        return ValidationError(message)

    return AwsError(code=code or "UnknownError", message=message or str(err))
