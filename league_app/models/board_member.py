# league_app/models/board_member.py
"""
League board roster.

Maintained by league staff outside the importer; the import engine only reads
it when deciding workbond exemptions.
"""

from .base import BaseModel, db


class BoardMember(BaseModel):
    __tablename__ = "board_members"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    role = db.Column(db.String(100), nullable=True)
    email = db.Column(db.String(255), nullable=True, index=True)
    spouse_email = db.Column(db.String(255), nullable=True, index=True)
    household_id = db.Column(db.Integer, db.ForeignKey("households.id"), nullable=True, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    def __repr__(self):
        return f"<BoardMember {self.name}>"
