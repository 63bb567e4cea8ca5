"""
Unit tests for $expand resolution.

Tests cover:
- $expand option parsing with nested options
- Naming-convention belongs-to and has-many
- Entity type inference
- Relationship descriptor resolution
- Omission on missing targets and failures
"""

import pytest

from apimocker.query.expansion import (
    ExpandItem,
    ExpansionResolver,
    infer_entity_type,
    parse_expand,
    pluralize,
    singularize,
)
from apimocker.query.relationships import NavigationProperty, RelationshipDescriptor
from apimocker.store import ResourceStore


@pytest.fixture
def store():
    """Store with customers, orders and pets."""
    store = ResourceStore()
    store.insert("shop", "customers", {"id": 1, "name": "Ada", "entityType": "Customer"})
    store.insert("shop", "customers", {"id": 2, "name": "Bob", "entityType": "Customer"})
    store.insert("shop", "orders", {"id": 10, "customerId": 1, "total": 5})
    store.insert("shop", "orders", {"id": 11, "customerId": 1, "total": 7})
    store.insert("shop", "orders", {"id": 12, "customerId": 2, "total": 9})
    return store


@pytest.fixture
def resolver(store):
    """Resolver without a descriptor."""
    return ExpansionResolver(store)


class TestParseExpand:
    """Tests for parse_expand."""

    def test_simple_list(self):
        assert parse_expand("Customer, Orders") == [ExpandItem("Customer"), ExpandItem("Orders")]

    def test_nested_expand(self):
        items = parse_expand("Orders($expand=Customer)")

        assert items == [ExpandItem("Orders", expand=[ExpandItem("Customer")])]

    def test_nested_shorthand(self):
        assert parse_expand("Orders(Customer)") == [
            ExpandItem("Orders", expand=[ExpandItem("Customer")])
        ]

    def test_nested_select_and_expand(self):
        items = parse_expand("Orders($select=id,total;$expand=Customer),Pets")

        assert items == [
            ExpandItem("Orders", select="id,total", expand=[ExpandItem("Customer")]),
            ExpandItem("Pets"),
        ]

    def test_empty(self):
        assert parse_expand(None) == []
        assert parse_expand("") == []


class TestConventions:
    """Tests for naming helpers and type inference."""

    def test_singularize_and_pluralize(self):
        assert singularize("Orders") == "order"
        assert singularize("Customer") == "customer"
        assert pluralize("Customer") == "customers"
        assert pluralize("orders") == "orders"

    def test_infer_entity_type(self):
        assert infer_entity_type({"entityType": "Customer"}) == "Customer"
        assert infer_entity_type({"@odata.type": "#Shop.Models.Customer"}) == "Customer"
        assert infer_entity_type({"category": {}, "photoUrls": []}) == "Pet"
        assert infer_entity_type({"shipDate": "x", "petId": 1}) == "Order"
        assert infer_entity_type({"name": "x"}) is None


class TestConventionResolution:
    """Tests for convention-based expansion."""

    def test_belongs_to(self, resolver):
        order = {"id": 10, "customerId": 1}

        result = resolver.expand_entity("shop", "orders", order, "Customer")

        assert result["Customer"]["name"] == "Ada"

    def test_has_many(self, resolver, store):
        customer = store.get_by_id("shop", "customers", 1)

        result = resolver.expand_entity("shop", "customers", customer, "Orders")

        assert [order["id"] for order in result["Orders"]] == [10, 11]

    def test_has_many_with_odata_type(self, resolver):
        customer = {"id": 2, "@odata.type": "#Shop.Customer"}

        result = resolver.expand_entity("shop", "customers", customer, "orders")

        assert [order["id"] for order in result["orders"]] == [12]

    @pytest.mark.parametrize("back_reference", ["orderitemId", "orderItemId"])
    def test_has_many_with_two_word_type(self, store, back_reference):
        store.insert("shop", "orderitems", {"id": 7, "entityType": "OrderItem"})
        store.insert("shop", "notes", {"id": 70, back_reference: 7})
        store.insert("shop", "notes", {"id": 71, back_reference: 8})
        item = store.get_by_id("shop", "orderitems", 7)

        result = ExpansionResolver(store).expand_entity("shop", "orderitems", item, "Notes")

        assert [note["id"] for note in result["Notes"]] == [70]

    def test_nested_expand(self, resolver, store):
        customer = store.get_by_id("shop", "customers", 2)

        result = resolver.expand_entity("shop", "customers", customer, "Orders($expand=Customer)")

        assert result["Orders"][0]["Customer"]["name"] == "Bob"

    def test_nested_select(self, resolver, store):
        customer = store.get_by_id("shop", "customers", 1)

        result = resolver.expand_entity("shop", "customers", customer, "Orders($select=total)")

        assert result["Orders"] == [{"total": 5}, {"total": 7}]

    def test_missing_related_entity_omitted(self, resolver):
        result = resolver.expand_entity("shop", "orders", {"id": 99, "customerId": 42}, "Customer")

        assert "Customer" not in result

    def test_missing_collection_omitted(self, resolver, store):
        customer = store.get_by_id("shop", "customers", 1)

        result = resolver.expand_entity("shop", "customers", customer, "Invoices")

        assert "Invoices" not in result
        assert store.has_collection("shop", "invoices") is False

    def test_unknown_type_omitted(self, resolver):
        result = resolver.expand_entity("shop", "things", {"id": 1}, "Orders")

        assert "Orders" not in result

    def test_store_not_mutated(self, resolver, store):
        order = store.get_by_id("shop", "orders", 10)

        result = resolver.expand_entity("shop", "orders", order, "Customer")
        result["Customer"]["name"] = "Changed"

        assert "Customer" not in store.get_by_id("shop", "orders", 10)
        assert store.get_by_id("shop", "customers", 1)["name"] == "Ada"

    def test_deterministic(self, resolver, store):
        customers = store.list("shop", "customers")

        first = resolver.expand("shop", "customers", customers, "Orders")
        second = resolver.expand("shop", "customers", customers, "Orders")

        assert first == second

    def test_failure_omits_property(self, store):
        class BrokenStore(ResourceStore):
            def get_by_id(self, tenant, collection, entity_id):
                raise RuntimeError("boom")

        resolver = ExpansionResolver(BrokenStore())

        result = resolver.expand_entity("shop", "orders", {"id": 1, "customerId": 1}, "Customer")

        assert result == {"id": 1, "customerId": 1}


class TestDescriptorResolution:
    """Tests for descriptor-based expansion."""

    @pytest.fixture
    def descriptor(self):
        descriptor = RelationshipDescriptor()
        descriptor.add("orders", NavigationProperty("buyer", "customers", "one", "customerId"))
        descriptor.add("customers", NavigationProperty("purchases", "orders", "many", "customerId"))
        return descriptor

    def test_one(self, store, descriptor):
        resolver = ExpansionResolver(store, descriptor)

        result = resolver.expand_entity("shop", "orders", {"id": 10, "customerId": 2}, "Buyer")

        assert result["Buyer"]["name"] == "Bob"

    def test_many(self, store, descriptor):
        resolver = ExpansionResolver(store, descriptor)

        result = resolver.expand_entity("shop", "customers", {"id": 1}, "purchases")

        assert [order["id"] for order in result["purchases"]] == [10, 11]

    def test_descriptor_wins_over_convention(self, store):
        """A descriptor entry overrides the customerId convention."""
        store.insert("shop", "vips", {"id": 1, "name": "VIP Ada"})
        descriptor = RelationshipDescriptor()
        descriptor.add("orders", NavigationProperty("customer", "vips", "one", "customerId"))
        resolver = ExpansionResolver(store, descriptor)

        result = resolver.expand_entity("shop", "orders", {"id": 10, "customerId": 1}, "customer")

        assert result["customer"]["name"] == "VIP Ada"

    def test_undescribed_name_falls_back(self, store, descriptor):
        resolver = ExpansionResolver(store, descriptor)

        result = resolver.expand_entity("shop", "orders", {"id": 10, "customerId": 1}, "Customer")

        assert result["Customer"]["name"] == "Ada"
