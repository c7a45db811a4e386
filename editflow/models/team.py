"""
Editing Process Engine
Team membership model.

Backs the default user directory and team permission checks. Users and
roles themselves are managed elsewhere; only their ids are stored here.
"""

from editflow.models import db

# ── Constants ────────────────────────────────────────────────────────────────

PERM_EDIT_PROCESS = "editing-process:edit"
PERM_MANAGE_PROCESS = "editing-process:manage"

TEAM_PERMISSIONS = {PERM_EDIT_PROCESS, PERM_MANAGE_PROCESS}


class TeamMember(db.Model):
    """Membership of a user in a team, with an optional role."""

    __tablename__ = "team_members"

    team_id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, primary_key=True, index=True)
    role_id = db.Column(db.Integer, nullable=True, index=True)
    permissions = db.Column(db.JSON, nullable=False, default=list)

    def has_permission(self, permission: str) -> bool:
        return permission in (self.permissions or ())

    def to_dict(self):
        return {
            "team": self.team_id,
            "user": self.user_id,
            "role": self.role_id,
            "permissions": sorted(self.permissions or ()),
        }

    def __repr__(self):
        return f"<TeamMember team={self.team_id} user={self.user_id} role={self.role_id}>"
