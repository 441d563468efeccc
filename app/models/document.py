"""Document model.

Backs the remote document store: one row per record of any collection
(sites, clients, leads, templates, teams). The record body lives in the
JSON `data` column; company scoping and timestamps are real columns so
queries can filter on them.
"""

import uuid

from app.extensions import db


class Document(db.Model):
    __tablename__ = "documents"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    collection = db.Column(db.String(100), nullable=False)
    company_id = db.Column(
        db.String(64), db.ForeignKey("companies.id"), nullable=False
    )
    created_by = db.Column(db.String(36), nullable=True)  # user id
    data = db.Column(db.JSON, default=dict, nullable=False)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __table_args__ = (
        db.Index("ix_documents_collection_company", "collection", "company_id"),
    )

    # --- Relationships ---
    company = db.relationship("Company", back_populates="documents")

    def to_record(self):
        """Flatten into the record shape the stores hand out."""
        record = dict(self.data or {})
        record["id"] = self.id
        record["company_id"] = self.company_id
        record["created_by"] = self.created_by
        record["created_at"] = self.created_at.isoformat() if self.created_at else None
        record["updated_at"] = self.updated_at.isoformat() if self.updated_at else None
        return record

    def __repr__(self):
        return f"<Document {self.collection}/{self.id}>"
