from __future__ import annotations

from ..extensions import db
from armory.time_utils import to_utc_z


OFFICER_STATUSES = {"active", "inactive", "suspended"}


class Officer(db.Model):
    """
    Officer directory record.

    Owned by the directory collaborator; the distribution core only needs to
    know that an officer id resolves.
    """
    __tablename__ = "officers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    service_no = db.Column(db.String(32), nullable=False, unique=True, index=True)
    rank = db.Column(db.String(32), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="active")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Officer id={self.id} service_no={self.service_no!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "service_no": self.service_no,
            "rank": self.rank,
            "name": self.name,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }
