"""
Tests: Local persistence layer (installed.db + repository tree).

Run with:
    pytest capability_catalog/tests/test_local_layer.py -v
"""

import json
import shutil

import pytest

from capability_catalog.errors import (
    CapabilityExistsError,
    CapabilityNotFoundError,
    OrganizationExistsError,
    OrganizationNotFoundError,
    ValidationError,
)
from capability_catalog.models.schemas import (
    Capability,
    CapabilityOutput,
    Organization,
    Parameter,
    UsageRecord,
)
from capability_catalog.persistence.local_layer import LocalPersistenceLayer


def _org(org_id="acme", name="ACME", **kwargs) -> Organization:
    return Organization(id=org_id, name=name, description="demo org", **kwargs)


def _cap(name="Ping", org="acme", **kwargs) -> Capability:
    kwargs.setdefault(
        "inputs",
        [Parameter(name="target", type="string", required=True, description="Host to ping")],
    )
    return Capability(
        type="local",
        name=name,
        description="Ping a host",
        entry_point="ping",
        organization=org,
        output=CapabilityOutput(type="object", description="Round-trip times"),
        **kwargs,
    )


@pytest.fixture
def layer(settings):
    layer = LocalPersistenceLayer(settings)
    yield layer
    layer.close()


class TestLocalScenario:
    def test_acme_ping_lifecycle(self, layer):
        layer.create_organization(_org())
        layer.create_capability(_cap())

        orgs = layer.list_organizations()
        assert [o.id for o in orgs] == ["acme"]

        caps = layer.list_capabilities("acme")
        assert [c.name for c in caps] == ["Ping"]
        assert layer.capability_exists("Ping", "acme")

        layer.remove_capability("Ping", "acme")
        assert not layer.capability_exists("Ping", "acme")


class TestLocalOrganizations:
    def test_creates_store_layout(self, layer, settings):
        store = settings.store_path
        assert (store / "installed.db").exists()
        assert (store / "repository").is_dir()
        assert (store / "cache").is_dir()
        assert settings.config_path.is_dir()

    def test_create_writes_row_and_org_json(self, layer):
        layer.create_organization(_org(tags=["demo"]))

        org_json = layer.repository_directory / "acme" / "org.json"
        assert org_json.exists()
        doc = json.loads(org_json.read_text())
        assert doc["id"] == "acme"
        assert doc["tags"] == ["demo"]

        [org] = layer.list_organizations()
        assert org.name == "ACME"
        assert org.types == ["local", "remote"]
        assert org.tags == ["demo"]

    def test_local_only_flag_maps_to_types(self, layer):
        layer.create_organization(_org(is_local_only=True))
        [org] = layer.list_organizations()
        assert org.is_local_only is True
        assert org.types == ["local"]

    def test_list_ordered_by_name(self, layer):
        layer.create_organization(_org("zeta", name="Zeta"))
        layer.create_organization(_org("alpha", name="Alpha"))
        assert [o.name for o in layer.list_organizations()] == ["Alpha", "Zeta"]

    def test_uninstalled_organizations_hidden(self, layer):
        layer.create_organization(_org(is_installed=False))
        assert layer.list_organizations() == []
        assert layer.organization_exists("acme")

    def test_duplicate_keeps_first_record(self, layer):
        layer.create_organization(_org())
        with pytest.raises(OrganizationExistsError):
            layer.create_organization(_org(name="Impostor"))
        assert layer.list_organizations()[0].name == "ACME"

    def test_overwrite_replaces_record(self, layer):
        layer.create_organization(_org())
        layer.create_capability(_cap())
        layer.create_organization(_org(name="ACME Corp"), overwrite=True)

        assert layer.list_organizations()[0].name == "ACME Corp"
        # upsert must not cascade into the organization's capabilities
        assert [c.name for c in layer.list_capabilities("acme")] == ["Ping"]

    @pytest.mark.parametrize("bad_id", ["", "bad id", "acme!", "a/b", "acme\n"])
    def test_invalid_identifier_rejected_without_side_effects(self, layer, bad_id):
        with pytest.raises(ValidationError):
            layer.create_organization(_org(bad_id))
        assert layer.list_organizations() == []
        assert layer.files.list_files() == []

    def test_remove_missing_organization_raises(self, layer):
        with pytest.raises(OrganizationNotFoundError):
            layer.remove_organization("ghost")

    def test_remove_organization_cascades(self, layer):
        layer.create_organization(_org())
        layer.create_capability(_cap())

        layer.remove_organization("acme")

        assert layer.list_organizations() == []
        assert layer.list_capabilities("acme") == []
        assert not (layer.repository_directory / "acme").exists()
        assert layer.db.fetch_scalar("SELECT COUNT(*) FROM capability_parameters") == 0
        assert layer.db.fetch_scalar("SELECT COUNT(*) FROM installations") == 0


class TestLocalCapabilities:
    def test_round_trip(self, layer):
        layer.create_organization(_org())
        layer.create_capability(_cap())

        [cap] = layer.list_capabilities("acme")
        assert cap.id
        assert cap.name == "Ping"
        assert cap.type == "local"
        assert cap.entry_point == "ping"
        assert cap.group == "acme"
        assert cap.output.type == "object"
        assert [(p.name, p.type, p.required) for p in cap.inputs] == [("target", "string", True)]

    def test_writes_capability_json_in_store_format(self, layer):
        layer.create_organization(_org())
        layer.create_capability(_cap())

        doc = json.loads((layer.repository_directory / "acme" / "Ping" / "capability.json").read_text())
        assert doc["name"] == "Ping"
        assert doc["organization"] == "acme"
        assert doc["inputs"][0]["name"] == "target"
        assert "default" in doc["inputs"][0]

    def test_missing_organization_leaves_no_directory(self, layer):
        with pytest.raises(OrganizationNotFoundError):
            layer.create_capability(_cap(org="ghost"))
        assert not (layer.repository_directory / "ghost").exists()

    def test_reserved_name_leaves_org_file_intact(self, layer):
        layer.create_organization(_org())
        org_file = layer.repository_directory / "acme" / "org.json"
        before = org_file.read_text()

        with pytest.raises(ValidationError):
            layer.create_capability(_cap(name="org.json"))

        assert org_file.is_file()
        assert org_file.read_text() == before
        assert layer.list_capabilities("acme") == []

    def test_duplicate_keeps_first_record(self, layer):
        layer.create_organization(_org())
        layer.create_capability(_cap())
        with pytest.raises(CapabilityExistsError):
            layer.create_capability(_cap(inputs=[]))
        assert len(layer.list_capabilities("acme")[0].inputs) == 1

    def test_overwrite_reuses_id_and_replaces_parameters(self, layer):
        layer.create_organization(_org())
        layer.create_capability(_cap())
        first_id = layer.list_capabilities("acme")[0].id

        inputs = [
            Parameter(name="target", type="string", required=True, description="Host"),
            Parameter(name="count", type="integer", default_value="4", description="Packets"),
        ]
        layer.create_capability(_cap(inputs=inputs), overwrite=True)

        [cap] = layer.list_capabilities("acme")
        assert cap.id == first_id
        assert [p.name for p in cap.inputs] == ["target", "count"]
        assert cap.inputs[1].default_value == "4"

    @pytest.mark.parametrize("name", ["a/b", "a\\b", "..", ""])
    def test_path_like_names_rejected(self, layer, name):
        layer.create_organization(_org())
        with pytest.raises(ValidationError):
            layer.create_capability(_cap(name=name))

    def test_remove_missing_capability_raises(self, layer):
        layer.create_organization(_org())
        with pytest.raises(CapabilityNotFoundError):
            layer.remove_capability("Ping", "acme")

    def test_remove_deletes_directory(self, layer):
        layer.create_organization(_org())
        layer.create_capability(_cap())
        layer.remove_capability("Ping", "acme")
        assert not (layer.repository_directory / "acme" / "Ping").exists()
        assert (layer.repository_directory / "acme" / "org.json").exists()

    def test_children_scope_is_explicit(self, layer):
        layer.create_organization(_org(children=["acme-labs"]))
        layer.create_organization(_org("acme-labs", name="ACME Labs"))
        layer.create_capability(_cap())
        layer.create_capability(_cap("Beta", org="acme-labs"))

        assert [c.name for c in layer.list_capabilities("acme")] == ["Ping"]
        assert [c.name for c in layer.list_capabilities("acme", include_children=True)] == ["Beta", "Ping"]

    def test_existence_checks_never_raise(self, layer):
        layer.create_organization(_org())
        layer.close()
        assert layer.organization_exists("acme") is False
        assert layer.capability_exists("Ping", "acme") is False


class TestInstallationsAndUsage:
    def test_installation_recorded(self, layer, settings):
        layer.create_organization(_org())
        layer.create_capability(_cap())
        cap = layer.list_capabilities("acme")[0]

        installation = layer.get_installation(cap.id)
        assert installation is not None
        assert installation.source == settings.install_source
        assert layer.get_installation("missing") is None

    def test_list_installed_capabilities(self, layer):
        layer.create_organization(_org("zeta", name="Zeta"))
        layer.create_organization(_org())
        layer.create_capability(_cap("Zap", org="zeta"))
        layer.create_capability(_cap())

        installed = layer.list_installed_capabilities()
        assert [(c.organization, c.name) for c in installed] == [("acme", "Ping"), ("zeta", "Zap")]

    def test_usage_log_newest_first(self, layer):
        layer.create_organization(_org())
        layer.create_capability(_cap())
        cap_id = layer.list_capabilities("acme")[0].id

        first = layer.record_usage(UsageRecord(capability_id=cap_id, executed_at=100, success=True))
        layer.record_usage(
            UsageRecord(capability_id=cap_id, executed_at=200, success=False, error_message="timeout")
        )

        assert first.id is not None
        usage = layer.list_usage(cap_id)
        assert [u.executed_at for u in usage] == [200, 100]
        assert usage[0].success is False
        assert usage[0].error_message == "timeout"
        assert len(layer.list_usage(cap_id, limit=1)) == 1

    def test_usage_removed_with_capability(self, layer):
        layer.create_organization(_org())
        layer.create_capability(_cap())
        cap_id = layer.list_capabilities("acme")[0].id
        layer.record_usage(UsageRecord(capability_id=cap_id))

        layer.remove_capability("Ping", "acme")
        assert layer.list_usage(cap_id) == []


class TestRebuildRepository:
    def test_regenerates_tree_from_database(self, layer):
        layer.create_organization(_org())
        layer.create_capability(_cap())
        shutil.rmtree(layer.repository_directory / "acme")

        written = layer.rebuild_repository()

        assert written == 2
        assert layer.files.list_files("acme") == ["acme/Ping/capability.json", "acme/org.json"]


class TestLocalCacheRefresh:
    def test_mutations_refresh_projections(self, layer):
        layer.create_organization(_org())
        layer.create_capability(_cap())

        installed = layer.load_installed_capabilities_from_cache()
        assert installed is not None
        assert installed.count == 1

        orgs = layer.load_organizations_from_cache()
        assert orgs.organizations[0].capability_count == 1

        layer.remove_capability("Ping", "acme")
        assert layer.load_installed_capabilities_from_cache().count == 0
