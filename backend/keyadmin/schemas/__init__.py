from keyadmin.schemas.admin import (
    BulkDeleteRequest,
    BulkDeleteResponse,
    GeneratePaidKeyRequest,
    GeneratePaidKeyResponse,
)

__all__ = [
    "BulkDeleteRequest",
    "BulkDeleteResponse",
    "GeneratePaidKeyRequest",
    "GeneratePaidKeyResponse",
]
