from marshmallow import fields

from conference_abstracts.models.Abstract import Abstracts
from conference_abstracts.extensions import ma
from .uploaded_file_schema import UploadedFileSchema


class AbstractSchema(ma.SQLAlchemyAutoSchema):
    class Meta:
        model = Abstracts
        load_instance = False
        include_fk = True

    id = fields.Integer(dump_only=True)
    abstract_number = fields.String(dump_only=True)
    status = fields.Function(lambda obj: obj.effective_status, dump_only=True)
    submission_date = fields.DateTime(dump_only=True)
    updated_at = fields.DateTime(dump_only=True)

    # Derived
    bucket = fields.String(dump_only=True)
    has_file = fields.Boolean(dump_only=True)
    files = fields.Nested(UploadedFileSchema, many=True, dump_only=True)
    email = fields.Function(lambda obj: obj.user.email if obj.user else None, dump_only=True)
