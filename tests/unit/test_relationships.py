"""
Unit tests for relationship descriptors.
"""

import json
import tempfile
from pathlib import Path

import pytest

from apimocker.errors import RelationshipConfigError
from apimocker.query.relationships import NavigationProperty, RelationshipDescriptor

DESCRIPTOR_YAML = """
relationships:
  orders:
    customer:
      target: customers
      kind: one
      foreign_key: customerId
  customers:
    orders:
      target: orders
      kind: many
      foreign_key: customerId
"""


class TestNavigationProperty:
    """Tests for NavigationProperty validation."""

    def test_valid(self):
        assert NavigationProperty("customer", "customers", "one", "customerId").validate() == []

    def test_invalid_kind(self):
        errors = NavigationProperty("customer", "customers", "some", "customerId").validate()

        assert len(errors) == 1
        assert "invalid kind" in errors[0]

    def test_missing_fields(self):
        errors = NavigationProperty("customer", "", "one", "").validate()

        assert len(errors) == 2


class TestRelationshipDescriptor:
    """Tests for RelationshipDescriptor."""

    @pytest.fixture
    def config_dir(self):
        """Create temporary config directory."""
        with tempfile.TemporaryDirectory() as tmpdir:
            yield Path(tmpdir)

    def test_load_yaml(self, config_dir):
        path = config_dir / "relationships.yaml"
        path.write_text(DESCRIPTOR_YAML)

        descriptor = RelationshipDescriptor.load(path)

        assert len(descriptor) == 2
        assert descriptor.get("orders", "customer").target == "customers"
        assert descriptor.get("customers", "orders").kind == "many"
        assert descriptor.get("customers", "orders").references == "id"

    def test_load_json(self, config_dir):
        path = config_dir / "relationships.json"
        path.write_text(
            json.dumps(
                {
                    "relationships": {
                        "pets": {
                            "owner": {
                                "target": "users",
                                "kind": "one",
                                "foreign_key": "ownerId",
                            }
                        }
                    }
                }
            )
        )

        descriptor = RelationshipDescriptor.load(path)

        assert descriptor.collections() == ["pets"]

    def test_case_insensitive_lookup(self):
        descriptor = RelationshipDescriptor()
        descriptor.add("orders", NavigationProperty("customer", "customers", "one", "customerId"))

        assert descriptor.get("orders", "Customer").name == "customer"
        assert descriptor.get("orders", "missing") is None
        assert descriptor.get("missing", "customer") is None
        assert descriptor.get(None, "customer") is None

    def test_add_invalid_raises(self):
        with pytest.raises(RelationshipConfigError):
            RelationshipDescriptor().add("orders", NavigationProperty("x", "y", "bad", "z"))

    def test_invalid_structure(self):
        with pytest.raises(RelationshipConfigError):
            RelationshipDescriptor.from_dict({"relationships": ["orders"]})
        with pytest.raises(RelationshipConfigError):
            RelationshipDescriptor.from_dict({"relationships": {"orders": {"customer": "customers"}}})

    def test_missing_file(self, config_dir):
        with pytest.raises(RelationshipConfigError) as exc_info:
            RelationshipDescriptor.load(config_dir / "nope.yaml")

        assert exc_info.value.path.endswith("nope.yaml")

    def test_invalid_yaml(self, config_dir):
        path = config_dir / "broken.yaml"
        path.write_text("relationships: [unclosed")

        with pytest.raises(RelationshipConfigError):
            RelationshipDescriptor.load(path)
