"""
Tests: Identifier rules, naming helpers and entity validation.

Run with:
    pytest capability_catalog/tests/test_validation.py -v
"""

import pytest

from capability_catalog.models.schemas import Capability, Organization, Parameter
from capability_catalog.persistence.local_layer import LocalPersistenceLayer
from capability_catalog.utils.naming import (
    cache_item_id,
    is_valid_identifier,
    kebab_case,
    search_terms,
)


@pytest.fixture
def layer(settings):
    layer = LocalPersistenceLayer(settings)
    yield layer
    layer.close()


class TestNaming:
    @pytest.mark.parametrize("value", ["acme", "darwin-ai-core", "org_2", "A1"])
    def test_valid_identifiers(self, value):
        assert is_valid_identifier(value)

    @pytest.mark.parametrize("value", ["", "bad id", "acme!", "a/b", "a.b", "acme\n", "\nacme", None])
    def test_invalid_identifiers(self, value):
        assert not is_valid_identifier(value)

    def test_kebab_case(self):
        assert kebab_case("Read File") == "read-file"
        assert kebab_case("Find Files by Pattern") == "find-files-by-pattern"

    def test_cache_item_id(self):
        assert cache_item_id("Read File") == "read_file"
        assert cache_item_id("Read: File-v1.2/x") == "read_file_v1_2_x"

    def test_search_terms(self):
        terms = search_terms("Read File", "Read a file", ["darwin-ai-core"], [""], None)
        assert terms == ["a", "darwin-ai-core", "file", "read"]


class TestOrganizationValidation:
    def test_valid(self, layer):
        result = layer.validate_organization(Organization(id="acme", name="ACME", description="demo"))
        assert result.is_valid
        assert result.errors == []
        assert result.warnings == []

    def test_missing_fields(self, layer):
        result = layer.validate_organization(Organization(id="", name="", description=""))
        assert not result.is_valid
        assert result.errors == [
            "Organization ID is required",
            "Organization name is required",
            "Organization description is required",
        ]

    def test_bad_identifier(self, layer):
        result = layer.validate_organization(Organization(id="bad id", name="X", description="x"))
        assert "alphanumeric characters, hyphens, and underscores" in result.errors[0]

    def test_self_child(self, layer):
        result = layer.validate_organization(
            Organization(id="acme", name="ACME", description="demo", children=["acme"])
        )
        assert result.errors == ["Organization cannot list itself as a child"]

    def test_mixed_logo_fields_warn(self, layer):
        result = layer.validate_organization(
            Organization(id="acme", name="ACME", description="demo", logo="a.png", pngLogo="b.png")
        )
        assert result.is_valid
        assert len(result.warnings) == 1
        assert "pngLogo" in result.warnings[0]


class TestCapabilityValidation:
    def _cap(self, **kwargs) -> Capability:
        fields = dict(
            type="local", name="Ping", description="Ping a host", entry_point="ping", organization="acme"
        )
        fields.update(kwargs)
        return Capability(**fields)

    def test_valid(self, layer):
        assert layer.validate_capability(self._cap()).is_valid

    def test_missing_fields(self, layer):
        result = layer.validate_capability(
            self._cap(name="", description="", organization="", entry_point="")
        )
        assert result.errors == [
            "Capability name is required",
            "Capability description is required",
            "Capability organization is required",
            "Capability entry_point is required",
        ]

    @pytest.mark.parametrize("name", ["a/b", "a\\b", ".", ".."])
    def test_path_like_names(self, layer, name):
        result = layer.validate_capability(self._cap(name=name))
        assert result.errors == ["Capability name cannot contain path separators"]

    @pytest.mark.parametrize("name", ["org.json", "ORG.json"])
    def test_reserved_names(self, layer, name):
        result = layer.validate_capability(self._cap(name=name))
        assert result.errors == [f"Capability name '{name}' is reserved"]

    def test_bad_organization_identifier(self, layer):
        result = layer.validate_capability(self._cap(organization="bad org"))
        assert not result.is_valid

    def test_parameter_errors_are_indexed(self, layer):
        result = layer.validate_capability(
            self._cap(
                inputs=[
                    Parameter(name="target", description="Host"),
                    Parameter(name="", type="", description=""),
                ]
            )
        )
        assert result.errors == [
            "Parameter 1 name is required",
            "Parameter 1 type is required",
            "Parameter 1 description is required",
        ]
