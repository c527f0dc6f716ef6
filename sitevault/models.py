import uuid
from datetime import datetime, date
from flask_login import UserMixin
from sitevault import db


def generate_id():
    return uuid.uuid4().hex


class SerializableMixin:
    """JSON-ready dict view of a row, keyed by column name."""

    def to_dict(self):
        data = {}
        for column in self.__table__.columns:
            value = getattr(self, column.key)
            if isinstance(value, (datetime, date)):
                value = value.isoformat()
            data[column.key] = value
        return data


# ---------------------------------------------------------------------------
# Content tables (backup surface)
# ---------------------------------------------------------------------------

class User(UserMixin, SerializableMixin, db.Model):
    """Site user; admins can sign in to the backup API"""
    __tablename__ = 'users'

    id = db.Column(db.String(36), primary_key=True, default=generate_id)
    email = db.Column(db.String(255), unique=True, nullable=False)
    name = db.Column(db.String(120))
    role = db.Column(db.String(20), default='user', nullable=False)  # 'user' or 'admin'
    password_hash = db.Column(db.String(255))  # Never exported
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f'<User {self.email} role={self.role}>'


class Post(SerializableMixin, db.Model):
    """Blog post"""
    __tablename__ = 'posts'

    id = db.Column(db.String(36), primary_key=True, default=generate_id)
    slug = db.Column(db.String(255), unique=True, nullable=False)
    title = db.Column(db.String(255), nullable=False)
    content = db.Column(db.Text)
    excerpt = db.Column(db.Text)
    locale = db.Column(db.String(10), default='en', nullable=False)
    status = db.Column(db.String(20), default='draft', nullable=False)  # draft, published
    cover_image = db.Column(db.String(500))
    author_id = db.Column(db.String(36), db.ForeignKey('users.id'))
    published_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f'<Post {self.slug} status={self.status}>'


class Comment(SerializableMixin, db.Model):
    """Reader comment on a post"""
    __tablename__ = 'comments'

    id = db.Column(db.String(36), primary_key=True, default=generate_id)
    post_id = db.Column(db.String(36), db.ForeignKey('posts.id'), nullable=False)
    author_name = db.Column(db.String(120), nullable=False)
    content = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(20), default='pending', nullable=False)  # pending, approved, spam
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f'<Comment post_id={self.post_id} status={self.status}>'


class Moment(SerializableMixin, db.Model):
    """Short status update with optional images"""
    __tablename__ = 'moments'

    id = db.Column(db.String(36), primary_key=True, default=generate_id)
    content = db.Column(db.Text, nullable=False)
    images = db.Column(db.JSON)  # List of media keys
    location = db.Column(db.String(255))
    visibility = db.Column(db.String(20), default='public', nullable=False)
    happened_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f'<Moment {self.id}>'


class GalleryImage(SerializableMixin, db.Model):
    """Photo in the gallery"""
    __tablename__ = 'gallery_images'

    id = db.Column(db.String(36), primary_key=True, default=generate_id)
    url = db.Column(db.String(500), nullable=False)
    thumbnail_url = db.Column(db.String(500))
    title = db.Column(db.String(255))
    width = db.Column(db.Integer)
    height = db.Column(db.Integer)
    blur_data_url = db.Column(db.Text)
    captured_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f'<GalleryImage {self.url}>'


class HeroImage(SerializableMixin, db.Model):
    """Homepage hero rotation entry"""
    __tablename__ = 'hero_images'

    id = db.Column(db.String(36), primary_key=True, default=generate_id)
    url = db.Column(db.String(500), nullable=False)
    sort_order = db.Column(db.Integer, default=0, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f'<HeroImage {self.url} order={self.sort_order}>'


class Footprint(SerializableMixin, db.Model):
    """Visited place on the travel map"""
    __tablename__ = 'footprints'

    id = db.Column(db.String(36), primary_key=True, default=generate_id)
    name = db.Column(db.String(255), nullable=False)
    latitude = db.Column(db.Float, nullable=False)
    longitude = db.Column(db.Float, nullable=False)
    description = db.Column(db.Text)
    date = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f'<Footprint {self.name}>'


class Friend(SerializableMixin, db.Model):
    """Friend with a private room link"""
    __tablename__ = 'friends'

    id = db.Column(db.String(36), primary_key=True, default=generate_id)
    name = db.Column(db.String(120), nullable=False)
    avatar = db.Column(db.String(500))
    access_token = db.Column(db.String(255))  # Never exported
    first_visit = db.Column(db.DateTime)
    last_visit = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f'<Friend {self.name}>'


class Subscription(SerializableMixin, db.Model):
    """Tracked paid subscription"""
    __tablename__ = 'subscriptions'

    id = db.Column(db.String(36), primary_key=True, default=generate_id)
    name = db.Column(db.String(255), nullable=False)
    provider = db.Column(db.String(120))
    price = db.Column(db.Float)
    currency = db.Column(db.String(3), default='USD', nullable=False)
    billing_cycle = db.Column(db.String(20), default='monthly', nullable=False)
    api_key = db.Column(db.String(500))  # Never exported
    start_time = db.Column(db.DateTime)
    end_time = db.Column(db.DateTime)
    expires_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f'<Subscription {self.name}>'


class MediaWatch(SerializableMixin, db.Model):
    """Watched film or series entry"""
    __tablename__ = 'media_watches'

    id = db.Column(db.String(36), primary_key=True, default=generate_id)
    title = db.Column(db.String(255), nullable=False)
    media_type = db.Column(db.String(20), default='movie', nullable=False)  # movie, series, anime
    rating = db.Column(db.Integer)
    poster = db.Column(db.String(500))
    watched_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f'<MediaWatch {self.title}>'


class SiteConfig(SerializableMixin, db.Model):
    """Key/value site configuration"""
    __tablename__ = 'site_config'

    id = db.Column(db.String(36), primary_key=True, default=generate_id)
    key = db.Column(db.String(120), unique=True, nullable=False)
    value = db.Column(db.JSON)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f'<SiteConfig {self.key}>'


# ---------------------------------------------------------------------------
# Operational tables (not part of the backup surface)
# ---------------------------------------------------------------------------

class AutoBackupSettings(db.Model):
    """Scheduled backup configuration and last-run status"""
    __tablename__ = 'auto_backup_settings'

    id = db.Column(db.Integer, primary_key=True)
    enabled = db.Column(db.Boolean, default=False, nullable=False)
    schedule = db.Column(db.String(20), default='daily', nullable=False)  # daily, weekly, monthly
    retention = db.Column(db.Integer, default=7, nullable=False)  # Number of backups to keep
    include_media = db.Column(db.Boolean, default=True, nullable=False)
    last_run_at = db.Column(db.DateTime)
    last_status = db.Column(db.String(20))  # success, failed
    last_error = db.Column(db.Text)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f'<AutoBackupSettings enabled={self.enabled} schedule={self.schedule} retention={self.retention}>'
