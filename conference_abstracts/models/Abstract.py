from datetime import datetime, timezone

from conference_abstracts.extensions import db
from conference_abstracts.models.enumerations import Status
from conference_abstracts.utils.generators import generate_abstract_number


def _utcnow():
    return datetime.now(timezone.utc)


class Abstracts(db.Model):
    __tablename__ = "abstracts"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    abstract_number = db.Column(
        db.String(40),
        nullable=False,
        unique=True,
        default=generate_abstract_number,
    )

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    user = db.relationship("User", back_populates="abstracts")

    title = db.Column(db.String(500), nullable=False)
    presenter_name = db.Column(db.String(255), nullable=False)
    institution_name = db.Column(db.String(255), nullable=False)
    presentation_type = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(255), nullable=False)
    abstract_content = db.Column(db.Text, nullable=False)
    co_authors = db.Column(db.Text, nullable=True)
    registration_id = db.Column(db.String(64), nullable=True)

    # Legacy single-file slot; newer submissions also record UploadedFile rows.
    file_name = db.Column(db.String(255), nullable=True)
    file_path = db.Column(db.String(1024), nullable=True)
    file_size = db.Column(db.BigInteger, nullable=True)

    # Plain string so legacy rows with NULL or unknown values still load.
    status = db.Column(db.String(32), nullable=True, default=Status.PENDING.value, index=True)
    reviewer_comments = db.Column(db.Text, nullable=True)

    submission_date = db.Column(db.DateTime, nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)

    files = db.relationship(
        "UploadedFile",
        back_populates="abstract",
        cascade="all, delete-orphan",
        order_by="UploadedFile.id",
    )

    @property
    def effective_status(self) -> str:
        return self.status or Status.PENDING.value

    @property
    def is_pending(self) -> bool:
        return self.effective_status == Status.PENDING.value

    @property
    def has_file(self) -> bool:
        return bool(self.files) or bool(self.file_name and self.file_path)

    @property
    def bucket(self) -> str:
        # Lazy import to avoid circular
        from conference_abstracts.services.category_classifier import classify_abstract

        return classify_abstract(self.category, self.presentation_type).value

    def touch(self) -> None:
        self.updated_at = _utcnow()

    def __repr__(self):
        return f"<Abstract {self.abstract_number} status={self.status}>"


class UploadedFile(db.Model):
    __tablename__ = "uploaded_files"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    abstract_id = db.Column(
        db.Integer,
        db.ForeignKey("abstracts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    abstract = db.relationship("Abstracts", back_populates="files")

    file_name = db.Column(db.String(255), nullable=False)
    file_path = db.Column(db.String(1024), nullable=False)
    file_key = db.Column(db.String(1024), nullable=True)
    file_size = db.Column(db.BigInteger, nullable=True)
    content_type = db.Column(db.String(128), nullable=True)
    uploaded_at = db.Column(db.DateTime, nullable=False, default=_utcnow)

    def __repr__(self):
        return f"<UploadedFile {self.file_name} abstract={self.abstract_id}>"
