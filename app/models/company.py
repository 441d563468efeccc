"""Company model.

The tenant container. Every document in the remote store is scoped by
company id. Holds the simultaneous-site capacity limit.
"""

from app.extensions import db


class Company(db.Model):
    __tablename__ = "companies"

    # -- Valid plans (billing is handled by the invoicing provider) --
    PLANS = ["free", "pro"]

    id = db.Column(db.String(64), primary_key=True)  # comp_<owner uid>
    name = db.Column(db.String(255), nullable=False)
    owner_id = db.Column(
        db.String(36),
        db.ForeignKey("users.id", use_alter=True, name="fk_companies_owner_id"),
        nullable=True,
    )
    simultaneous_limit = db.Column(
        db.Integer, nullable=True
    )  # 0 or null = no limit enforced
    plan = db.Column(db.String(50), default="free", nullable=False)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    owner = db.relationship("User", foreign_keys=[owner_id])
    members = db.relationship(
        "User",
        foreign_keys="User.company_id",
        back_populates="company",
        lazy="dynamic",
    )
    documents = db.relationship(
        "Document", back_populates="company", lazy="dynamic"
    )

    def __repr__(self):
        return f"<Company {self.name} (limit={self.simultaneous_limit})>"
