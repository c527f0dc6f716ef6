"""
Tests for the table registry and database export.
"""

import pytest
from datetime import datetime
from unittest.mock import MagicMock

from sitevault.models import Post, User
from sitevault.backup.tables import (
    BACKUP_TABLES, REDACTED_FIELDS, TABLE_REGISTRY, get_accessor
)
from sitevault.backup.database import DatabaseExporter, redact_record


class TestTableRegistry:
    """Test the ordered table registry."""

    def test_every_backup_table_has_an_accessor(self):
        """Test each listed table resolves to an accessor."""
        for table_name in BACKUP_TABLES:
            assert get_accessor(table_name) is TABLE_REGISTRY[table_name]

    def test_parents_before_children(self):
        """Test referenced tables come first."""
        tables = list(BACKUP_TABLES)

        assert tables.index('User') < tables.index('Post')
        assert tables.index('Post') < tables.index('Comment')

    def test_unknown_table(self):
        """Test unknown names return None."""
        assert get_accessor('ExternalCredential') is None

    def test_find_many_ordered_by_id(self, db):
        """Test rows are returned ordered by primary key."""
        for post_id in ('c', 'a', 'b'):
            db.session.add(Post(id=post_id, slug=f'slug-{post_id}', title=post_id))
        db.session.commit()

        records = get_accessor('Post').find_many()

        assert [r['id'] for r in records] == ['a', 'b', 'c']

    def test_find_many_serializes_datetimes(self, db):
        """Test datetimes are exported as ISO strings."""
        db.session.add(Post(
            id='p1', slug='p1', title='P1',
            published_at=datetime(2024, 3, 1, 10, 30)
        ))
        db.session.commit()

        record = get_accessor('Post').find_many()[0]

        assert record['published_at'] == '2024-03-01T10:30:00'
        assert isinstance(record['created_at'], str)

    def test_upsert_creates_then_updates(self, db):
        """Test upsert inserts a missing row and overwrites an existing one."""
        accessor = get_accessor('Post')

        accessor.upsert('p1', {'slug': 'first', 'title': 'First'})
        accessor.upsert('p1', {'slug': 'first', 'title': 'Renamed'})

        assert Post.query.count() == 1
        assert db.session.get(Post, 'p1').title == 'Renamed'

    def test_upsert_ignores_unknown_keys(self, db):
        """Test keys that are not columns are dropped."""
        get_accessor('Post').upsert('p1', {'slug': 's', 'title': 'T', 'viewCount': 99})

        assert db.session.get(Post, 'p1').title == 'T'

    def test_upsert_keeps_columns_missing_from_data(self, db):
        """Test a redacted column keeps its current value on update."""
        db.session.add(User(id='u1', email='u1@example.com', password_hash='hash'))
        db.session.commit()

        get_accessor('User').upsert('u1', {'email': 'u1@example.com', 'name': 'Restored'})

        user = db.session.get(User, 'u1')
        assert user.name == 'Restored'
        assert user.password_hash == 'hash'


class TestRedaction:
    """Test sensitive field redaction."""

    def test_redact_record(self):
        """Test redaction removes only the listed fields."""
        record = {'id': '1', 'email': 'a@example.com', 'password_hash': 'x'}

        assert redact_record(record, {'password_hash'}) == {'id': '1', 'email': 'a@example.com'}
        assert 'password_hash' in record

    def test_redacted_fields_cover_credentials(self):
        """Test credential columns are in the redaction map."""
        assert 'password_hash' in REDACTED_FIELDS['User']
        assert 'access_token' in REDACTED_FIELDS['Friend']
        assert 'api_key' in REDACTED_FIELDS['Subscription']


class TestDatabaseExporter:
    """Test DatabaseExporter."""

    def test_export_counts(self, sample_content):
        """Test per-table and total record counts."""
        exporter = DatabaseExporter(tables=['Post', 'User'])

        result = exporter.export_all()

        assert result['record_counts'] == {'Post': 3, 'User': 2}
        assert result['total_records'] == 5
        assert len(result['tables']['Post']) == 3
        assert len(result['tables']['User']) == 2

    def test_export_all_tables_present(self, db):
        """Test every configured table appears even when empty."""
        result = DatabaseExporter().export_all()

        assert list(result['tables'].keys()) == list(BACKUP_TABLES)
        assert all(records == [] for records in result['tables'].values())
        assert result['total_records'] == 0

    def test_sensitive_fields_never_exported(self, sample_content):
        """Test redacted fields are absent from exported records."""
        result = DatabaseExporter().export_all()

        assert all('password_hash' not in r for r in result['tables']['User'])
        assert all('access_token' not in r for r in result['tables']['Friend'])
        assert all('api_key' not in r for r in result['tables']['Subscription'])
        assert result['tables']['Friend'][0]['name'] == 'Alice'

    def test_failing_table_exported_empty(self):
        """Test one unreadable table does not block the others."""
        good = MagicMock()
        good.find_many.return_value = [{'id': '1'}, {'id': '2'}]
        bad = MagicMock()
        bad.find_many.side_effect = RuntimeError('connection lost')

        exporter = DatabaseExporter(
            tables=['Broken', 'Good'],
            registry={'Broken': bad, 'Good': good},
            redacted_fields={}
        )
        result = exporter.export_all()

        assert result['tables'] == {'Broken': [], 'Good': [{'id': '1'}, {'id': '2'}]}
        assert result['record_counts'] == {'Broken': 0, 'Good': 2}
        assert result['total_records'] == 2

    def test_missing_accessor_exported_empty(self):
        """Test a table without an accessor exports as empty."""
        exporter = DatabaseExporter(tables=['Ghost'], registry={}, redacted_fields={})

        result = exporter.export_all()

        assert result['tables'] == {'Ghost': []}
        assert result['total_records'] == 0

    @pytest.mark.parametrize('table_name', ['User', 'Friend', 'Subscription'])
    def test_export_table_redacts(self, table_name):
        """Test export_table applies the table's redaction set."""
        accessor = MagicMock()
        accessor.find_many.return_value = [
            {'id': '1', 'password_hash': 'h', 'access_token': 't', 'api_key': 'k', 'name': 'n'}
        ]
        exporter = DatabaseExporter(tables=[table_name], registry={table_name: accessor})

        record = exporter.export_table(table_name)[0]

        assert record['name'] == 'n'
        for field in REDACTED_FIELDS[table_name]:
            assert field not in record
