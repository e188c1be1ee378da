from marshmallow import fields

from conference_abstracts.models.Abstract import UploadedFile
from conference_abstracts.extensions import ma


class UploadedFileSchema(ma.SQLAlchemyAutoSchema):
    class Meta:
        model = UploadedFile
        load_instance = False
        include_fk = True

    id = fields.Integer(dump_only=True)
    uploaded_at = fields.DateTime(dump_only=True)
