"""Template catalog tests: phases, template validation, publishing."""

import pytest

from qc_platform.core.exceptions import ConflictError, NotFoundError, ValidationError


class TestPhases:
    def test_order_is_appended(self, catalog):
        first = catalog.create_phase("Fabrication")
        second = catalog.create_phase("Erection", "On-site assembly")
        assert (first.order, second.order) == (1, 2)
        assert [p.name for p in catalog.list_phases()] == ["Fabrication", "Erection"]

    def test_duplicate_name(self, catalog):
        catalog.create_phase("Painting")
        with pytest.raises(ConflictError):
            catalog.create_phase("Painting")

    def test_blank_name(self, catalog):
        with pytest.raises(ValidationError):
            catalog.create_phase("   ")


class TestTemplates:
    def test_items_keep_given_order(self, catalog):
        tpl = catalog.create_template("T", [
            {"code": "2.1", "title": "b", "weight": 1},
            {"code": "1.10", "title": "a", "weight": 3, "is_mandatory": True},
        ])
        assert [d.code for d in tpl.items] == ["2.1", "1.10"]
        assert tpl.is_published is False
        assert tpl.items[1].is_mandatory is True

    @pytest.mark.parametrize("code", ["", "1.", "a.1", "1..2", "1.2b"])
    def test_invalid_codes(self, catalog, code):
        with pytest.raises(ValidationError):
            catalog.create_template("T", [{"code": code, "title": "x", "weight": 1}])

    @pytest.mark.parametrize("weight", [0, -1, 1.5, "2", True])
    def test_invalid_weights(self, catalog, weight):
        with pytest.raises(ValidationError):
            catalog.create_template("T", [{"code": "1.1", "title": "x", "weight": weight}])

    def test_duplicate_code(self, catalog):
        with pytest.raises(ConflictError):
            catalog.create_template("T", [
                {"code": "1.1", "title": "x", "weight": 1},
                {"code": "1.1", "title": "y", "weight": 1},
            ])

    def test_template_needs_items(self, catalog):
        with pytest.raises(ValidationError):
            catalog.create_template("Empty", [])

    def test_get_unknown(self, catalog):
        with pytest.raises(NotFoundError):
            catalog.get_template(404)


class TestPublishing:
    def test_publish_is_idempotent(self, catalog):
        tpl = catalog.create_template("T", [{"code": "1.1", "title": "x", "weight": 1}])
        published = catalog.publish_template(tpl.id)
        stamp = published.published_at
        assert catalog.publish_template(tpl.id).published_at == stamp

    def test_draft_definition_is_editable(self, catalog):
        tpl = catalog.create_template("T", [{"code": "1.1", "title": "x", "weight": 1}])
        updated = catalog.update_item_definition(tpl.items[0].id, {"title": "y", "weight": 5})
        assert (updated.title, updated.weight) == ("y", 5)

    def test_published_definition_is_frozen(self, catalog, template):
        with pytest.raises(ValidationError):
            catalog.update_item_definition(template.items[0].id, {"title": "changed"})

    def test_unknown_fields_rejected(self, catalog):
        tpl = catalog.create_template("T", [{"code": "1.1", "title": "x", "weight": 1}])
        with pytest.raises(ValidationError):
            catalog.update_item_definition(tpl.items[0].id, {"code": "9.9"})
