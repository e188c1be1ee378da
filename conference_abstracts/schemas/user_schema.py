from marshmallow import fields

from conference_abstracts.models.User import User
from conference_abstracts.extensions import ma


class UserSchema(ma.SQLAlchemyAutoSchema):
    class Meta:
        model = User
        load_instance = False
        exclude = ("password_hash",)

    id = fields.Integer(dump_only=True)
    created_at = fields.DateTime(dump_only=True)
