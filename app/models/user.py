"""User model.

Stores authentication credentials and the company (tenant) the user
belongs to. Flask-Login integration via UserMixin.
"""

import uuid

from flask_login import UserMixin

from app.extensions import db


class User(UserMixin, db.Model):
    __tablename__ = "users"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    full_name = db.Column(db.String(255))
    company_id = db.Column(
        db.String(64),
        db.ForeignKey("companies.id", use_alter=True, name="fk_users_company_id"),
        nullable=True,
    )  # set on first tenant resolution if missing
    role = db.Column(db.String(50), default="admin")  # admin | member
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    company = db.relationship(
        "Company", foreign_keys=[company_id], back_populates="members"
    )

    def __repr__(self):
        return f"<User {self.email}>"
