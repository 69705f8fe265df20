"""
Soft Delete Mixin — active flag.

Adds an ``is_active`` boolean and query helpers. Models that include this
mixin are deactivated rather than physically removed; inactive rows drop
out of default listings but stay queryable.

Usage:
    class MyModel(SoftDeleteMixin, db.Model):
        ...

    # Soft delete
    obj.soft_delete()
    db.session.commit()

    # Query only active records
    MyModel.query_active().all()

    # Restore
    obj.restore()
    db.session.commit()
"""

from app.models import db


class SoftDeleteMixin:
    """Mixin that adds an active flag to any SQLAlchemy model."""

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    def soft_delete(self):
        """Mark this record as inactive."""
        self.is_active = False

    def restore(self):
        """Reactivate a soft-deleted record."""
        self.is_active = True

    @property
    def is_deleted(self):
        return self.is_active is False

    @classmethod
    def query_active(cls):
        """Return a query that excludes inactive records."""
        return cls.query.filter(cls.is_active.is_(True))
