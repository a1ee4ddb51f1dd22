import pytest

from recipe_feed.selectors import CategorySelector, UserRelationSelector


def test_category_selector_notifies_on_every_toggle():
    seen = []
    selector = CategorySelector(seen.append)

    selector.select("Soup")
    selector.select("Dessert")
    selector.select("Soup", checked=False)

    assert seen == [{"Soup"}, {"Soup", "Dessert"}, {"Dessert"}]
    assert selector.selected == {"Dessert"}


def test_selecting_twice_keeps_a_single_entry():
    selector = CategorySelector()

    selector.select("Soup")
    selector.select("Soup")

    assert selector.selected == {"Soup"}


def test_clear_empties_selection_and_notifies():
    seen = []
    selector = CategorySelector(seen.append)
    selector.select_many(["Soup", "Salad"])

    selector.clear()

    assert seen[-1] == frozenset()


def test_relation_selector_accepts_known_facets():
    selector = UserRelationSelector()

    assert selector.select_many(iter(["liked", "followed"])) == {"liked", "followed"}


def test_relation_selector_rejects_unknown_facet_without_partial_update():
    seen = []
    selector = UserRelationSelector(seen.append)

    with pytest.raises(ValueError):
        selector.select_many(["liked", "popular"])

    assert selector.selected == frozenset()
    assert seen == []


def test_selectors_do_not_share_state():
    categories = CategorySelector()
    relations = UserRelationSelector()

    categories.select("Soup")
    relations.select("liked")

    assert categories.selected == {"Soup"}
    assert relations.selected == {"liked"}
