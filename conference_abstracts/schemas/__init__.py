# schemas/__init__.py

from .abstract_schema import AbstractSchema
from .uploaded_file_schema import UploadedFileSchema
from .user_schema import UserSchema
from .request_schemas import (
    AdminLoginSchema,
    BulkStatusSchema,
    LoginSchema,
    RegisterSchema,
    StatusUpdateSchema,
    load_request,
)

__all__ = [
    'AbstractSchema',
    'UploadedFileSchema',
    'UserSchema',
    'AdminLoginSchema',
    'BulkStatusSchema',
    'LoginSchema',
    'RegisterSchema',
    'StatusUpdateSchema',
    'load_request',
]
