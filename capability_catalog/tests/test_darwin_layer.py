"""
Tests: Darwin-native persistence layer (host schema + kebab-case tree).

Run with:
    pytest capability_catalog/tests/test_darwin_layer.py -v
"""

import json

import pytest

from capability_catalog.errors import (
    CapabilityExistsError,
    CapabilityNotFoundError,
    OrganizationNotFoundError,
    ValidationError,
)
from capability_catalog.models.enums import AuthenticationType
from capability_catalog.models.schemas import Capability, Organization, Parameter
from capability_catalog.persistence.darwin_layer import DarwinPersistenceLayer


def _org(org_id="acme", **kwargs) -> Organization:
    kwargs.setdefault("name", "ACME")
    return Organization(id=org_id, description="demo org", **kwargs)


def _cap(name="Ping", cap_type="local", **kwargs) -> Capability:
    kwargs.setdefault(
        "inputs",
        [
            Parameter(
                name="target",
                type="string",
                required=True,
                description="Host to ping",
                context=["network"],
            )
        ],
    )
    return Capability(
        type=cap_type,
        name=name,
        description="Ping a host",
        entry_point="PingCapability",
        organization=kwargs.pop("organization", "acme"),
        **kwargs,
    )


@pytest.fixture
def layer(settings):
    layer = DarwinPersistenceLayer(settings)
    yield layer
    layer.close()


class TestDarwinScenario:
    def test_acme_ping_lifecycle(self, layer):
        layer.create_organization(_org())
        layer.create_capability(_cap())

        assert [o.id for o in layer.list_organizations()] == ["acme"]
        assert [c.name for c in layer.list_capabilities("acme")] == ["Ping"]
        assert layer.capability_exists("Ping", "acme")

        layer.remove_capability("Ping", "acme")
        assert not layer.capability_exists("Ping", "acme")


class TestDarwinOrganizations:
    def test_metadata_blob_round_trip(self, layer):
        layer.create_organization(
            _org(types=["local", "builtin"], tags=["core"], png_logo="acme.png", children=["acme-labs"])
        )

        [org] = layer.list_organizations()
        assert org.types == ["local", "builtin"]
        assert org.tags == ["core"]
        assert org.png_logo == "acme.png"
        assert org.children == ["acme-labs"]

        blob = json.loads(
            layer.db.fetch_scalar("SELECT metadata_json FROM organizations WHERE id = 'acme'")
        )
        assert blob["path"] == str(layer.repository_directory / "acme")

    def test_writes_are_stamped(self, layer):
        assert layer.last_updated() is None
        layer.create_organization(_org())
        assert layer.last_updated() is not None

    def test_invalid_identifier_rejected(self, layer):
        with pytest.raises(ValidationError):
            layer.create_organization(_org("not valid"))
        assert layer.list_organizations() == []

    def test_remove_organization_removes_capabilities_and_tree(self, layer):
        layer.create_organization(_org())
        layer.create_capability(_cap())

        layer.remove_organization("acme")

        assert layer.list_capabilities("acme") == []
        assert not (layer.repository_directory / "acme").exists()

    def test_remove_missing_organization_raises(self, layer):
        with pytest.raises(OrganizationNotFoundError):
            layer.remove_organization("ghost")

    def test_create_group_writes_parent(self, layer):
        layer.create_organization(_org())
        layer.create_group("acme", "networking", _org("networking", name="Networking"))

        doc = json.loads((layer.repository_directory / "acme" / "networking" / "org.json").read_text())
        assert doc["parent"] == "acme"
        assert doc["name"] == "Networking"

    def test_create_group_requires_organization(self, layer):
        with pytest.raises(OrganizationNotFoundError):
            layer.create_group("ghost", "networking", _org("networking"))

    @pytest.mark.parametrize("group_id", ["../../../escaped", "a/b", "..", "net\n"])
    def test_create_group_rejects_path_like_ids(self, layer, tmp_path, group_id):
        layer.create_organization(_org())
        with pytest.raises(ValidationError):
            layer.create_group("acme", group_id, _org("networking", name="Networking"))

        assert list(tmp_path.rglob("org.json")) == [layer.repository_directory / "acme" / "org.json"]

    def test_create_group_validates_group_organization(self, layer):
        layer.create_organization(_org())
        with pytest.raises(ValidationError):
            layer.create_group("acme", "networking", Organization(id="bad id", name="", description=""))
        assert not (layer.repository_directory / "acme" / "networking").exists()


class TestDarwinCapabilities:
    def test_round_trip_keeps_full_inputs(self, layer):
        layer.create_organization(_org())
        layer.create_capability(_cap(auth_type=AuthenticationType.API_KEY))

        [cap] = layer.list_capabilities("acme")
        assert cap.id == "acme.Ping"
        assert cap.name == "Ping"
        assert cap.type == "local"
        assert cap.entry_point == "PingCapability"
        assert cap.auth_type == AuthenticationType.API_KEY
        assert cap.inputs[0].context == ["network"]
        assert cap.inputs[0].required is True

    def test_kebab_case_directory_with_native_json(self, layer):
        layer.create_organization(_org())
        layer.create_capability(_cap("Read File"))

        cap_dir = layer.repository_directory / "acme" / "read-file"
        doc = json.loads((cap_dir / "capability.json").read_text())
        assert doc["name"] == "Read File"
        assert doc["group"] == "acme"
        assert "id" not in doc
        assert layer.db.fetch_scalar("SELECT path FROM capabilities") == str(cap_dir)

    def test_names_sharing_a_directory_are_rejected(self, layer):
        layer.create_organization(_org())
        layer.create_capability(_cap("Read File"))
        cap_file = layer.repository_directory / "acme" / "read-file" / "capability.json"
        before = cap_file.read_text()

        with pytest.raises(CapabilityExistsError):
            layer.create_capability(_cap("read-file"))
        with pytest.raises(CapabilityExistsError):
            layer.create_capability(_cap("read-file"), overwrite=True)

        assert cap_file.read_text() == before
        assert [c.name for c in layer.list_capabilities("acme")] == ["Read File"]
        assert not layer.capability_exists("read-file", "acme")

    def test_overwrite_same_name_keeps_its_directory(self, layer):
        layer.create_organization(_org())
        layer.create_capability(_cap("Read File"))
        layer.create_capability(_cap("Read File", inputs=[]), overwrite=True)

        [cap] = layer.list_capabilities("acme")
        assert cap.inputs == []
        assert (layer.repository_directory / "acme" / "read-file" / "capability.json").is_file()

    def test_function_type_gets_stub(self, layer):
        layer.create_organization(_org())
        layer.create_capability(_cap(cap_type="function"))

        stub = (layer.repository_directory / "acme" / "ping" / "main.swift").read_text()
        assert "class PingCapability: Capability" in stub

    def test_core_type_gets_marker_and_executable(self, layer):
        layer.create_organization(_org())
        layer.create_capability(_cap("Read File", cap_type="core"))

        cap_dir = layer.repository_directory / "acme" / "read-file"
        marker = (cap_dir / "BUILT_IN_CORE_TOOL").read_text()
        assert "Entry Point: PingCapability" in marker

        main = cap_dir / "main.swift"
        assert main.read_text().startswith("#!/usr/bin/swift")
        assert main.stat().st_mode & 0o777 == 0o755

    def test_missing_organization_raises_before_write(self, layer):
        with pytest.raises(OrganizationNotFoundError):
            layer.create_capability(_cap(organization="ghost"))
        assert not (layer.repository_directory / "ghost").exists()

    def test_duplicate_and_overwrite(self, layer):
        layer.create_organization(_org())
        layer.create_capability(_cap())
        with pytest.raises(CapabilityExistsError):
            layer.create_capability(_cap(inputs=[]))

        layer.create_capability(_cap(inputs=[]), overwrite=True)
        [cap] = layer.list_capabilities("acme")
        assert cap.inputs == []

    def test_remove_deletes_kebab_directory(self, layer):
        layer.create_organization(_org())
        layer.create_capability(_cap("Read File"))

        layer.remove_capability("Read File", "acme")

        assert not (layer.repository_directory / "acme" / "read-file").exists()
        assert layer.list_capabilities("acme") == []

    def test_remove_missing_capability_raises(self, layer):
        layer.create_organization(_org())
        with pytest.raises(CapabilityNotFoundError):
            layer.remove_capability("Ping", "acme")

    def test_children_scope(self, layer):
        layer.create_organization(_org(children=["acme-labs"]))
        layer.create_organization(_org("acme-labs", name="ACME Labs"))
        layer.create_capability(_cap())
        layer.create_capability(_cap("Beta", organization="acme-labs"))

        assert [c.name for c in layer.list_capabilities("acme")] == ["Ping"]
        assert [c.name for c in layer.list_capabilities("acme", include_children=True)] == ["Beta", "Ping"]

    def test_list_installed_capabilities(self, layer):
        layer.create_organization(_org())
        layer.create_capability(_cap("Zap"))
        layer.create_capability(_cap())
        assert [c.name for c in layer.list_installed_capabilities()] == ["Ping", "Zap"]
