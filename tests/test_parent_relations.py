import pytest

from sarest import Entity, SearchHelper


PHOTO_20 = {"id": 20, "album_id": 1, "url": "u20", "created": "c20"}
PHOTO_21 = {"id": 21, "album_id": 1, "url": "u21", "created": "c21"}
NOTE_3 = {"id": 3, "album_ref": "1", "text": "nice"}
WITH = "photos,covers,highlights,notes"


def _find_albums(registry, **search):
    return Entity(registry.get("Album"), SearchHelper(**search))


def test_belongs_to_a_resource_with_a_parent_is_queried(media_registry) -> None:
    covers = media_registry.get("Album").get_relation("covers")
    assert covers.referenced_type.parent_names() == ["Content"]
    assert not covers.pluckable


@pytest.mark.parametrize("fast_has_many", [True, False])
def test_related_records_include_the_parent_columns(media, media_registry, fast_has_many) -> None:
    media.config["FAST_HAS_MANY"] = fast_has_many
    result = _find_albums(media_registry, with_=WITH).find_first(1)
    assert result == {
        "album": [{"id": 1, "title": "holiday", "cover_id": 21, "photo_ids": [20, 21], "highlight_ids": [21], "note_ids": [3]}],
        "photos": [PHOTO_20, PHOTO_21],
        "covers": [PHOTO_21],
        "highlights": [PHOTO_21],
        "notes": [NOTE_3],
    }
    # blocked parent columns stay hidden in the side loaded records
    assert all("secret" not in photo for photo in result["photos"])


def test_batched_and_immediate_strategies_are_identical(media, media_registry) -> None:
    media.config["FAST_HAS_MANY"] = True
    batched = _find_albums(media_registry, with_=WITH).find()
    media.config["FAST_HAS_MANY"] = False
    immediate = _find_albums(media_registry, with_=WITH).find()
    assert batched == immediate
    assert batched["albums"][1] == {"id": 2, "title": "empty", "cover_id": None, "photo_ids": [], "highlight_ids": [], "note_ids": []}


def test_string_foreign_key_is_linked_by_both_strategies(media, media_registry) -> None:
    for fast_has_many in (True, False):
        media.config["FAST_HAS_MANY"] = fast_has_many
        result = _find_albums(media_registry, with_="notes").find()
        assert [album["note_ids"] for album in result["albums"]] == [[3], []]
        assert result["notes"] == [NOTE_3]
