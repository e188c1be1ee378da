"""Request bodies for the JSON endpoints."""

from marshmallow import EXCLUDE, Schema, ValidationError as MarshmallowValidationError, fields, pre_load, validate

from conference_abstracts.errors import ValidationError


def _alias(data, canonical, *aliases):
    if canonical not in data:
        for alias in aliases:
            if alias in data:
                data[canonical] = data[alias]
                break
    return data


class StatusUpdateSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    abstract_id = fields.Raw(required=True)
    status = fields.String(required=True)
    comments = fields.String(allow_none=True, load_default=None)

    @pre_load
    def _aliases(self, data, **kwargs):
        data = dict(data)
        _alias(data, "abstract_id", "abstractId", "id")
        return _alias(data, "comments", "reviewer_comments", "reviewerComments")


class BulkStatusSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    # Items are validated one by one downstream so bad ids fail individually.
    abstract_ids = fields.List(fields.Raw(), required=True, validate=validate.Length(min=1))
    status = fields.String(required=True)
    comments = fields.String(allow_none=True, load_default=None)

    @pre_load
    def _aliases(self, data, **kwargs):
        data = dict(data)
        _alias(data, "abstract_ids", "abstractIds", "ids")
        return _alias(data, "comments", "reviewer_comments", "reviewerComments")


class AdminLoginSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    email = fields.Email(required=True)
    password = fields.String(required=True, validate=validate.Length(min=1))


class RegisterSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    email = fields.Email(required=True)
    password = fields.String(required=True, validate=validate.Length(min=8))
    full_name = fields.String(load_default=None)
    institution = fields.String(load_default=None)
    phone = fields.String(load_default=None, validate=validate.Length(max=20))
    registration_id = fields.String(load_default=None)

    @pre_load
    def _aliases(self, data, **kwargs):
        data = dict(data)
        _alias(data, "full_name", "fullName", "name")
        _alias(data, "registration_id", "registrationId")
        return _alias(data, "phone", "mobile")


class LoginSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    email = fields.Email(required=True)
    password = fields.String(required=True)


def load_request(schema: Schema, data):
    """Load ``data`` or raise the portal ``ValidationError`` with field messages."""
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    try:
        return schema.load(data)
    except MarshmallowValidationError as exc:
        raise ValidationError("Invalid request", fields=exc.messages) from exc
