"""
Tests for ORM model definitions
"""

from orgtree.models import Application, ApplicationModule, EntitlementGrant, Organization, OrganizationType
from orgtree.models.entitlement import GRANT_KEY_INDEX


class TestOrganizationModel:
    def test_columns(self):
        columns = set(Organization.__table__.columns.keys())

        assert {
            "id", "tenant_id", "parent_id", "type", "path", "level", "name", "description",
            "tax_id", "is_active", "created_by", "created_at", "updated_by", "updated_at",
        } <= columns

    def test_single_active_root_index(self):
        indexes = {index.name: index for index in Organization.__table__.indexes}

        root_index = indexes["uq_organizations_active_root"]
        assert root_index.unique is True
        assert [c.name for c in root_index.columns] == ["tenant_id"]

    def test_is_root(self):
        assert Organization(type=OrganizationType.root.value).is_root is True
        assert Organization(type=OrganizationType.sub.value).is_root is False

    def test_parent_fk_restricts_delete(self):
        fk = next(iter(Organization.__table__.columns["parent_id"].foreign_keys))

        assert fk.column.table.name == "organizations"
        assert fk.ondelete == "RESTRICT"


class TestEntitlementModels:
    def test_grant_key_is_unique(self):
        unique_indexes = [index for index in EntitlementGrant.__table__.indexes if index.unique]

        assert [index.name for index in unique_indexes] == [GRANT_KEY_INDEX]
        assert [c.name for c in unique_indexes[0].columns] == ["tenant_id", "application_id"]

    def test_grant_application_id_has_no_fk(self):
        assert not EntitlementGrant.__table__.columns["application_id"].foreign_keys

    def test_catalogue_tables(self):
        assert Application.__tablename__ == "applications"
        assert ApplicationModule.__tablename__ == "application_modules"
        assert Application.__table__.columns["code"].unique is True
