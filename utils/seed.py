import logging

from sqlalchemy import inspect

from models import db
from models.user import Role, ROLE_PRECEDENCE

logger = logging.getLogger(__name__)


def seed_roles():
    if not inspect(db.engine).has_table(Role.__tablename__):
        logger.warning("roles table missing, run `flask db upgrade`; skipping role seed")
        return
    existing = {r.name for r in Role.query.all()}
    for name in ROLE_PRECEDENCE:
        if name not in existing:
            db.session.add(Role(name=name))
    db.session.commit()


def grant_role(user, role_name: str) -> bool:
    """Give `user` the named role. Returns False if they already had it."""
    role = Role.query.filter_by(name=role_name).first()
    if not role:
        role = Role(name=role_name)
        db.session.add(role)
    if role in user.roles:
        return False
    user.roles.append(role)
    db.session.commit()
    return True
