from models.db import db
from utils.timeutil import utcnow

# association table for many-to-many User <-> Role
user_roles = db.Table(
    "user_roles",
    db.Column("user_id", db.Integer, db.ForeignKey("users.id"), primary_key=True),
    db.Column("role_id", db.Integer, db.ForeignKey("roles.id"), primary_key=True),
)

# highest first; a user's effective role is the first one they hold
ADMIN_ROLE = "ADMIN"
TEACHER_ROLE = "TEACHER"
STUDENT_ROLE = "STUDENT"
ROLE_PRECEDENCE = (ADMIN_ROLE, TEACHER_ROLE, STUDENT_ROLE)


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    full_name = db.Column(db.String(120), nullable=True)

    # CEFR level (A1..C2)
    level = db.Column(db.String(10), nullable=False, default="A1")

    # Student's Drive folder and index document; no folder means no class documents
    drive_folder_id = db.Column(db.String(128), nullable=True)
    drive_index_doc_id = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    roles = db.relationship("Role", secondary=user_roles, back_populates="users")

    @property
    def role_names(self) -> set:
        return {r.name for r in self.roles}

    @property
    def role(self):
        names = self.role_names
        for name in ROLE_PRECEDENCE:
            if name in names:
                return name
        return None

    @property
    def display_name(self) -> str:
        if self.full_name and self.full_name.strip():
            return self.full_name.strip()
        return self.email.split("@")[0]


class Role(db.Model):
    __tablename__ = "roles"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), unique=True, nullable=False)  # STUDENT, TEACHER, ADMIN

    users = db.relationship("User", secondary=user_roles, back_populates="roles")
