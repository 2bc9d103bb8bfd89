import pytest

from sarest import ConfigurationError, ResourceRegistry, Relation, RelationKind, has_many
from sarest.relation import resolve_active_relations
from blog_models import Comment, Content, Post, User


def test_names_follow_the_model(registry: ResourceRegistry) -> None:
    post = registry.get("Post")
    assert post.model_name() == "Post"
    assert post.table_name() == "posts"
    assert post.table_name(False) == "post"
    assert post.primary_key_name == "id"
    assert registry.get("users") is registry.get(User)
    assert registry.get("comment").name == "Comment"


def test_unknown_resource_raises(registry: ResourceRegistry) -> None:
    assert registry.find("Nope") is None
    with pytest.raises(ConfigurationError):
        registry.get("Nope")


def test_register_twice_raises() -> None:
    registry = ResourceRegistry()
    registry.register(Comment)
    with pytest.raises(ConfigurationError):
        registry.register(Comment)


def test_block_columns_are_inherited(registry: ResourceRegistry) -> None:
    content = registry.get("Content")
    post = registry.get("Post")
    assert content.get_block_columns() == ["secret"]
    assert "secret" in post.get_block_columns()
    assert content.allowed_columns() == ["id", "created"]
    assert post.allowed_columns() == ["id", "title", "author_id", "category_id"]


def test_allowed_and_blocked_columns_are_disjoint(registry: ResourceRegistry) -> None:
    for resource in registry:
        assert not set(resource.allowed_columns()) & set(resource.get_block_columns())


def test_block_columns_load_once(registry: ResourceRegistry) -> None:
    content = registry.get("Content")
    content.load_block_columns()
    content.set_block_columns(["created"])
    content.load_block_columns()
    assert content.get_block_columns() == ["secret", "created"]
    assert content.allowed_columns() == ["id"]


def test_allowed_columns_namespace(registry: ResourceRegistry) -> None:
    assert registry.get("Tag").allowed_columns(namespace=True) == ["Tag.id", "Tag.label"]


def test_parent_chain(registry: ResourceRegistry) -> None:
    assert registry.parent_chain("Post") == [registry.get("Content")]
    assert registry.parent_chain("Content") == []
    assert registry.get("Post").parent_names() == ["Content"]


def test_cyclic_parent_chain_raises() -> None:
    registry = ResourceRegistry()
    registry.register(Content, parent="Post")
    registry.register(Post, parent="Content")
    with pytest.raises(ConfigurationError):
        registry.finalize()


def test_parent_relation_is_added(registry: ResourceRegistry) -> None:
    post = registry.get("Post")
    parent_relation = post.relations[0]
    assert parent_relation.kind == RelationKind.HAS_ONE
    assert parent_relation.key == "Content"
    assert parent_relation.is_parent
    assert parent_relation.referenced_type is registry.get("Content")
    assert not post.get_relation("responses").is_parent


def test_relation_names(registry: ResourceRegistry) -> None:
    post = registry.get("Post")
    responses = post.get_relation("responses")
    assert responses.table_name() == "responses"
    assert responses.table_name(False) == "response"
    tags = post.get_relation("Tag")
    assert tags.table_name() == "tags"
    assert tags.table_name(False) == "tag"
    assert tags.intermediate_type is registry.get("PostTag")


def test_invalid_relation_kind_raises() -> None:
    with pytest.raises(ConfigurationError) as exc_info:
        Relation("hasMany", "id", "Comment", "post_id")
    assert exc_info.value.api_code == "4984846846849494"


def test_through_relation_requires_intermediate() -> None:
    with pytest.raises(ConfigurationError):
        Relation(RelationKind.HAS_MANY_THROUGH, "id", "Tag", "id")


def test_pluckable_belongs_to(registry: ResourceRegistry) -> None:
    post = registry.get("Post")
    assert post.get_relation("Category").pluckable
    # the referenced User has a hasOne relationship to Profile
    assert not post.get_relation("User").pluckable
    assert not post.get_relation("responses").pluckable


def test_resolve_none_loads_the_parents(registry: ResourceRegistry) -> None:
    assert list(resolve_active_relations(registry.get("Post"), "none")) == ["Content"]
    assert list(resolve_active_relations(registry.get("Comment"), None)) == []


def test_resolve_all(registry: ResourceRegistry) -> None:
    active = resolve_active_relations(registry.get("Post"), "all")
    assert list(active) == ["Content", "responses", "User", "Category", "Tag"]


def test_resolve_csv_matches_alias_and_table_name(registry: ResourceRegistry) -> None:
    active = resolve_active_relations(registry.get("Post"), "RESPONSES, users,tags")
    assert list(active) == ["Content", "responses", "User", "Tag"]


def test_resolve_ignores_unknown_names(registry: ResourceRegistry) -> None:
    assert list(resolve_active_relations(registry.get("Post"), "bogus_name")) == ["Content"]


def test_alias_takes_precedence_over_table_name() -> None:
    registry = ResourceRegistry()
    registry.register(Post, relations=[has_many("id", "Comment", "post_id"), has_many("id", "Comment", "post_id", alias="comments")])
    registry.register(Comment)
    registry.finalize()
    active = resolve_active_relations(registry.get("Post"), "comments")
    assert list(active) == ["comments"]
    assert active["comments"].alias == "comments"


def test_set_block_columns_keeps_the_inherited_columns() -> None:
    registry = ResourceRegistry()
    registry.register(Content, block_columns=["secret"])
    registry.register(Post, parent="Content", block_columns=["author_id"])
    registry.finalize()
    post = registry.get("Post")
    post.set_block_columns(["title"])
    assert post.get_block_columns() == ["secret", "author_id", "title"]
    assert "title" not in post.allowed_columns()
    post.set_block_columns(["category_id"], clear=True)
    assert post.get_block_columns() == ["category_id"]


def test_relation_repr_with_an_invalid_kind(registry: ResourceRegistry) -> None:
    relation = registry.get("Post").get_relation("responses")
    relation.kind = "unknown"
    assert "unknown" in repr(relation)
