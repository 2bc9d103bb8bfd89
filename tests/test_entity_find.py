import pytest

from sarest import ConfigurationError, Entity, SearchHelper
from sarest.rows import JoinedRow


POST_10 = {"id": 10, "title": "first", "author_id": 1, "category_id": 1, "created": "2020-01-01"}
POST_11 = {"id": 11, "title": "second", "author_id": 1, "category_id": None, "created": "2020-01-02"}
POST_12 = {"id": 12, "title": "third", "author_id": 2, "category_id": None, "created": "2020-01-03"}


def test_find_first_with_responses(blog, make_entity) -> None:
    result = make_entity("Post", with_="responses").find_first(10)
    assert result == {
        "post": [dict(POST_10, response_ids=[5, 6])],
        "responses": [{"id": 5, "post_id": 10, "body": "five"}, {"id": 6, "post_id": 10, "body": "six"}],
    }


def test_find_first_merges_the_parent_without_block_columns(blog, make_entity) -> None:
    result = make_entity("Post").find_first(11)
    assert result == {"post": [POST_11]}
    assert "secret" not in result["post"][0]


def test_find_first_missing_record(blog, make_entity) -> None:
    assert make_entity("Post", with_="all").find_first(99) is False


def test_unknown_relationship_name_is_ignored(blog, make_entity) -> None:
    result = make_entity("Post", with_="bogus_name").find_first(10)
    assert result == {"post": [POST_10]}


def test_find_all_relationships(blog, make_entity) -> None:
    result = make_entity("Post", with_="all").find()
    assert result["posts"] == [
        dict(POST_10, response_ids=[5, 6], tag_ids=[1, 2]),
        dict(POST_11, response_ids=[7], tag_ids=[2]),
        dict(POST_12, response_ids=[], tag_ids=[]),
    ]
    assert result["responses"] == [
        {"id": 5, "post_id": 10, "body": "five"},
        {"id": 6, "post_id": 10, "body": "six"},
        {"id": 7, "post_id": 11, "body": "seven"},
    ]
    # the hasOne Profile is merged into the side loaded users
    assert result["users"] == [
        {"id": 1, "name": "alice", "email": "alice@example.com", "user_id": 1, "bio": "writer"},
        {"id": 2, "name": "bob", "email": None},
    ]
    assert result["categories"] == [{"id": 1, "name": "news"}]
    assert result["tags"] == [{"id": 1, "label": "python"}, {"id": 2, "label": "sql"}]
    assert "meta" not in result


def test_batched_and_immediate_has_many_are_identical(blog, make_entity) -> None:
    blog.config["FAST_HAS_MANY"] = True
    batched = make_entity("Post", with_="responses").find()
    blog.config["FAST_HAS_MANY"] = False
    immediate = make_entity("Post", with_="responses").find()
    assert batched == immediate
    assert [post["response_ids"] for post in batched["posts"]] == [[5, 6], [7], []]


def test_batched_has_many_uses_one_query(blog, make_entity) -> None:
    blog.config["FAST_HAS_MANY"] = True
    entity = make_entity("Post", with_="responses")
    calls = []
    has_many_rows = entity.query_builder.has_many_rows

    def _has_many_rows(relation, values):
        calls.append(list(values))
        return has_many_rows(relation, values)

    entity.query_builder.has_many_rows = _has_many_rows
    entity.find()
    assert calls == [[10, 11, 12]]
    assert entity.has_many_registry == {}


def test_fast_and_slow_belongs_to_are_identical(blog, make_entity) -> None:
    blog.config["FAST_BELONGS_TO"] = True
    fast = make_entity("Post", with_="categories,users").find()
    blog.config["FAST_BELONGS_TO"] = False
    slow = make_entity("Post", with_="categories,users").find()
    assert fast == slow
    assert fast["categories"] == [{"id": 1, "name": "news"}]


def test_fast_belongs_to_is_joined(blog, make_entity) -> None:
    blog.config["FAST_BELONGS_TO"] = True
    entity = make_entity("Post", with_="categories")
    rows = entity.run_search()
    assert all(isinstance(row, JoinedRow) for row in rows)
    assert [part.relation_key for part in rows[0].parts] == [None, None, "Category"]


def test_has_one_is_merged_into_the_base_record(blog, make_entity) -> None:
    result = make_entity("User", with_="profiles").find_first(1)
    assert result == {"user": [{"id": 1, "name": "alice", "email": "alice@example.com", "user_id": 1, "bio": "writer"}]}


def test_has_many_through(blog, make_entity) -> None:
    result = make_entity("Post", with_="tags").find_first(11)
    assert result == {"post": [dict(POST_11, tag_ids=[2])], "tags": [{"id": 2, "label": "sql"}]}


def test_pager_meta(blog, make_entity) -> None:
    result = make_entity("Post", limit=2, is_pager=True).find()
    assert [post["id"] for post in result["posts"]] == [10, 11]
    assert result["meta"] == {"total_pages": 2, "total_record_count": 3, "returned_record_count": 2}


def test_pager_meta_with_query_stats(blog, make_entity) -> None:
    blog.config["DEBUG_APP"] = True
    result = make_entity("Post", limit=2, offset=2, is_pager=True).find()
    assert [post["id"] for post in result["posts"]] == [12]
    meta = result["meta"]
    assert meta["database_query_count"] > 0
    assert meta["database_query_timer"].endswith(" ms")


def test_count_only(blog, make_entity) -> None:
    entity = make_entity("Post", is_count=True, is_pager=True)
    result = entity.find()
    assert result["posts"] == []
    assert entity.record_count == 3
    assert result["meta"]["total_record_count"] == 3


def test_sort_and_filter(blog, make_entity) -> None:
    result = make_entity("Post", sort=["-title"]).find()
    assert [post["title"] for post in result["posts"]] == ["third", "second", "first"]
    result = make_entity("Post", filters={"title": "first,third"}).find()
    assert [post["id"] for post in result["posts"]] == [10, 12]
    # filter on a parent column
    result = make_entity("Post", filters={"created": "2020-01-02"}).find()
    assert [post["id"] for post in result["posts"]] == [11]


def test_blocked_and_unknown_fields_are_ignored(blog, make_entity) -> None:
    result = make_entity("Post", sort=["-secret"], filters={"nope": "1"}).find()
    assert [post["id"] for post in result["posts"]] == [10, 11, 12]
    # filtering on a blocked column would reveal its values
    result = make_entity("Post", filters={"secret": "s11"}).find()
    assert [post["id"] for post in result["posts"]] == [10, 11, 12]


def test_active_relationships_load_once(registry) -> None:
    entity = Entity(registry.get("Post"), SearchHelper(with_="responses"))
    active = entity.active_relations
    assert entity.load_active_relationships() is False
    assert entity.active_relations is active
    assert list(active) == ["Content", "responses"]


def test_hooks(blog, registry) -> None:
    class PostEntity(Entity):
        def after_query_builder_hook(self, query):
            self.hooked = True
            return query

        def after_process_relationships(self, row):
            self.base_record["hooked"] = True

    result = PostEntity(registry.get("Post")).find_first(10)
    assert result["post"][0]["hooked"] is True


def test_aborted_search(blog, registry) -> None:
    class NoSearch(Entity):
        def after_query_builder_hook(self, query):
            return False

    assert NoSearch(registry.get("Post")).find() is False


def test_custom_processing(blog, registry) -> None:
    relation = registry.get("Post").get_relation("responses")
    relation.custom_processing = True

    class CustomEntity(Entity):
        def process_custom_relationship(self, relation, row):
            self.base_record["custom"] = relation.key

    result = CustomEntity(registry.get("Post"), SearchHelper(with_="responses")).find_first(10)
    assert result == {"post": [dict(POST_10, custom="responses")]}


def test_unknown_relationship_kind(blog, make_entity) -> None:
    entity = make_entity("Post", with_="responses")
    entity.active_relations["responses"].kind = "unknown"
    with pytest.raises(ConfigurationError):
        entity.find_first(10)
