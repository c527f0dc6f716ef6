"""
Registry of the content tables included in a backup.

The backup surface is an explicit, ordered list of table names. Each name
maps to a TableAccessor over its model; there is no dynamic attribute lookup.
Parents come before children so foreign keys resolve during restore.
"""

from typing import Any, Dict, List

from sqlalchemy.orm.attributes import flag_modified

from sitevault import db
from sitevault.models import (
    User, Post, Comment, Moment, GalleryImage, HeroImage, Footprint,
    Friend, Subscription, MediaWatch, SiteConfig
)


BACKUP_TABLES = (
    'User',
    'Post',
    'Comment',
    'Moment',
    'GalleryImage',
    'HeroImage',
    'Footprint',
    'Friend',
    'Subscription',
    'MediaWatch',
    'SiteConfig',
)

# Fields removed from every exported record of the table
REDACTED_FIELDS = {
    'User': frozenset({'password_hash'}),
    'Friend': frozenset({'access_token'}),
    'Subscription': frozenset({'api_key'}),
}

# Timestamp fields serialized as ISO strings in the archive
DATE_FIELDS = (
    'created_at',
    'updated_at',
    'published_at',
    'expires_at',
    'last_visit',
    'first_visit',
    'watched_at',
    'start_time',
    'end_time',
    'date',
    'happened_at',
    'captured_at',
)


class TableAccessor:
    """Data-access handle for one content table."""

    def __init__(self, name: str, model):
        self.name = name
        self.model = model
        self.columns = frozenset(column.key for column in model.__table__.columns)

    def find_many(self) -> List[Dict[str, Any]]:
        """All rows as JSON-ready dicts, ordered by primary key."""
        rows = self.model.query.order_by(self.model.id).all()
        return [row.to_dict() for row in rows]

    def count(self) -> int:
        return self.model.query.count()

    def upsert(self, record_id, data: Dict[str, Any]):
        """
        Create the row if absent, overwrite it if present.

        Keys that are not columns of the table are ignored; columns missing
        from data keep their current value (or default on create).
        """
        values = {key: value for key, value in data.items() if key in self.columns}
        values['id'] = record_id

        instance = db.session.get(self.model, record_id)
        if instance is None:
            instance = self.model(**values)
            db.session.add(instance)
        else:
            for key, value in values.items():
                if key == 'id':
                    continue
                setattr(instance, key, value)
                # Write every archived column, else unchanged ones are dropped and onupdate fires
                flag_modified(instance, key)

        db.session.commit()
        return instance

    def __repr__(self):
        return f'<TableAccessor {self.name}>'


TABLE_REGISTRY = {
    'User': TableAccessor('User', User),
    'Post': TableAccessor('Post', Post),
    'Comment': TableAccessor('Comment', Comment),
    'Moment': TableAccessor('Moment', Moment),
    'GalleryImage': TableAccessor('GalleryImage', GalleryImage),
    'HeroImage': TableAccessor('HeroImage', HeroImage),
    'Footprint': TableAccessor('Footprint', Footprint),
    'Friend': TableAccessor('Friend', Friend),
    'Subscription': TableAccessor('Subscription', Subscription),
    'MediaWatch': TableAccessor('MediaWatch', MediaWatch),
    'SiteConfig': TableAccessor('SiteConfig', SiteConfig),
}


def get_accessor(table_name: str, registry: Dict[str, TableAccessor] = None):
    """
    Look up the accessor for a table name.

    Returns:
        TableAccessor, or None if the table is not registered
    """
    if registry is None:
        registry = TABLE_REGISTRY
    return registry.get(table_name)
