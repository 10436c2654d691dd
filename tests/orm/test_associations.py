"""Associations — the four resolver kinds against a real SQLite schema.

Tests:
    - BelongsTo: null-safe get without querying, in-memory set, memoisation
      that follows the current foreign key
    - HasOne: get / create / build / set(None) / destroy
    - HasMany: all / count / find / create / build / add / remove / clear /
      destroy_all / destroy_by, and empty results for unsaved owners
    - HasManyThrough: add / remove / clear round trip, idempotent add, and
      ON CONFLICT DO NOTHING on dialects that support it
    - Definitions: default keys, lazy targets, replacement, required `through`
"""

import pytest

from rowcraft.core.domain_types import AssociationKind
from rowcraft.core.errors import ConstructionError, InvalidStateError
from rowcraft.orm.associations import HasManyThroughHandle
from rowcraft.orm.model import Model


# -- BelongsTo -----------------------------------------------------------------

async def test_belongs_to_null_fk_returns_none_without_query(blog, recording_adapter):
    blog.User.set_adapter(recording_adapter)
    post = blog.Post(title="orphan")

    assert await post.user.get() is None
    assert recording_adapter.calls == []


async def test_belongs_to_loads_parent(blog):
    user = await blog.User.create(name="Ann")
    post = await blog.Post.create(title="hello", user_id=user.id)

    parent = await post.user.get()
    assert parent.id == user.id
    assert parent.name == "Ann"


async def test_belongs_to_set_is_in_memory_until_save(blog):
    user = await blog.User.create(name="Ann")
    post = await blog.Post.create(title="hello")

    post.user.set(user)
    assert post.user_id == user.id
    assert post.get_changes() == {"user_id": user.id}
    assert (await blog.Post.find(post.id)).user_id is None

    await post.save()
    assert (await blog.Post.find(post.id)).user_id == user.id

    post.user.set(None)
    assert post.user_id is None
    assert await post.user.get() is None


async def test_belongs_to_result_is_memoised_until_reload(blog):
    user = await blog.User.create(name="Ann")
    post = await blog.Post.create(title="hello", user_id=user.id)

    first = await post.user.get()
    await blog.User.update(user.id, name="Renamed")
    assert (await post.user.get()) is first

    await post.reload()
    assert (await post.user.get()).name == "Renamed"


async def test_belongs_to_null_fk_after_load_returns_none(blog):
    ann = await blog.User.create(name="Ann")
    post = await blog.Post.create(title="hello", user_id=ann.id)
    assert (await post.user.get()).id == ann.id

    post.user_id = None
    assert await post.user.get() is None


async def test_belongs_to_refetches_when_fk_reassigned(blog):
    ann = await blog.User.create(name="Ann")
    ben = await blog.User.create(name="Ben")
    post = await blog.Post.create(title="hello", user_id=ann.id)
    assert (await post.user.get()).name == "Ann"

    post.user_id = ben.id
    assert (await post.user.get()).name == "Ben"


async def test_belongs_to_create_points_owner_at_new_parent(blog):
    post = await blog.Post.create(title="hello")
    user = await post.user.create(name="Fresh")
    assert user.is_persisted
    assert post.user_id == user.id


# -- HasOne --------------------------------------------------------------------

async def test_has_one_unsaved_owner_returns_none(blog):
    assert await blog.User(name="new").profile.get() is None


async def test_has_one_create_and_get(blog):
    user = await blog.User.create(name="Ann")
    profile = await user.profile.create(bio="hi")
    assert profile.user_id == user.id

    fresh_user = await blog.User.find(user.id)
    loaded = await fresh_user.profile.get()
    assert loaded.id == profile.id


async def test_has_one_build_stamps_fk_without_saving(blog):
    user = await blog.User.create(name="Ann")
    profile = user.profile.build(bio="draft")
    assert profile.user_id == user.id
    assert profile.is_new_record
    assert await blog.Profile.count() == 0


async def test_has_one_create_on_unsaved_owner_raises(blog):
    with pytest.raises(InvalidStateError):
        await blog.User(name="new").profile.create(bio="x")


async def test_has_one_set_none_detaches(blog):
    user = await blog.User.create(name="Ann")
    profile = await user.profile.create(bio="hi")

    await user.profile.set(None)

    assert await user.profile.get() is None
    assert (await blog.Profile.find(profile.id)).user_id is None


async def test_has_one_destroy(blog):
    user = await blog.User.create(name="Ann")
    await user.profile.create(bio="hi")
    assert await user.profile.destroy() is True
    assert await blog.Profile.count() == 0
    assert await user.profile.destroy() is False


# -- HasMany -------------------------------------------------------------------

async def test_has_many_unsaved_owner_reads_are_empty(blog, recording_adapter):
    blog.Post.set_adapter(recording_adapter)
    user = blog.User(name="new")

    assert await user.posts.all() == []
    assert await user.posts.count() == 0
    assert await user.posts.exists() is False
    assert await user.posts.first() is None
    assert recording_adapter.calls == []


async def test_has_many_create_and_read(blog):
    user = await blog.User.create(name="Ann")
    other = await blog.User.create(name="Ben")
    await user.posts.create(title="a", category="x")
    await user.posts.create(title="b", category="y")
    await other.posts.create(title="c")

    assert sorted(p.title for p in await user.posts.all()) == ["a", "b"]
    assert await user.posts.count() == 2
    assert (await user.posts.find({"category": "y"})).title == "b"
    assert (await user.posts.query().order_by("title", "DESC").first()).title == "b"


async def test_has_many_add_and_remove(blog):
    user = await blog.User.create(name="Ann")
    loose = await blog.Post.create(title="loose")

    await user.posts.add(loose)
    assert (await blog.Post.find(loose.id)).user_id == user.id

    await user.posts.remove(loose)
    assert (await blog.Post.find(loose.id)).user_id is None
    assert await user.posts.count() == 0


async def test_has_many_clear_nulls_without_deleting(blog):
    user = await blog.User.create(name="Ann")
    await user.posts.create(title="a")
    await user.posts.create(title="b")

    assert await user.posts.clear() == 2
    assert await user.posts.count() == 0
    assert await blog.Post.count() == 2


async def test_has_many_clear_reaches_rows_hidden_by_default_scope(blog):
    user = await blog.User.create(name="Ann")
    await user.posts.create(title="shown", published=True)
    await user.posts.create(title="hidden", published=False)
    blog.Post.default_scope(where={"published": True})

    assert await user.posts.clear() == 2
    assert await blog.Post.unscoped().where({"user_id": user.id}).count() == 0


async def test_has_many_destroy_all_and_destroy_by(blog):
    user = await blog.User.create(name="Ann")
    await user.posts.create(title="a", category="x")
    await user.posts.create(title="b", category="y")
    await user.posts.create(title="c", category="y")

    assert await user.posts.destroy_by({"category": "y"}) == 2
    assert await user.posts.count() == 1
    assert await user.posts.destroy_all() == 1
    assert await blog.Post.count() == 0


async def test_has_many_build_stamps_fk(blog):
    user = await blog.User.create(name="Ann")
    post = user.posts.build(title="draft")
    assert post.user_id == user.id
    assert post.is_new_record


# -- HasManyThrough ------------------------------------------------------------

async def test_has_many_through_round_trip(blog):
    post = await blog.Post.create(title="hello")
    t1 = await blog.Tag.create(name="python")
    t2 = await blog.Tag.create(name="sql")

    await post.tags.add(t1, t2)
    assert {t.id for t in await post.tags.all()} == {t1.id, t2.id}

    await post.tags.remove(t1)
    assert {t.id for t in await post.tags.all()} == {t2.id}


async def test_has_many_through_add_is_idempotent(blog):
    post = await blog.Post.create(title="hello")
    tag = await blog.Tag.create(name="python")

    await post.tags.add(tag)
    await post.tags.add(tag)

    assert await post.tags.count() == 1


async def test_has_many_through_add_skips_link_inserted_after_check(blog, monkeypatch):
    post = await blog.Post.create(title="hello")
    tag = await blog.Tag.create(name="python")
    await post.tags.add(tag)

    async def never_linked(self, owner_key, target_key):
        return False

    monkeypatch.setattr(HasManyThroughHandle, "_link_exists", never_linked)
    await post.tags.add(tag)

    assert await post.tags.count() == 1


@pytest.mark.parametrize("dialect, suffix", [
    ("postgresql", " ON CONFLICT DO NOTHING"),
    ("sqlite", " ON CONFLICT DO NOTHING"),
    ("recording", ""),
])
async def test_has_many_through_add_insert_per_dialect(
    blog, recording_adapter, dialect, suffix,
):
    post = await blog.Post.create(title="hello")
    tag = await blog.Tag.create(name="python")
    recording_adapter.dialect_name = dialect
    blog.Post.set_adapter(recording_adapter)

    await post.tags.add(tag)

    sql, params = recording_adapter.calls[-1]
    assert sql == (
        'INSERT INTO "post_tags" ("post_id", "tag_id") VALUES ($1, $2)' + suffix
    )
    assert params == [post.id, tag.id]


async def test_has_many_through_reverse_side(blog):
    post = await blog.Post.create(title="hello")
    tag = await post.tags.create(name="python")
    assert [p.id for p in await tag.posts.all()] == [post.id]


async def test_has_many_through_clear_keeps_targets(blog):
    post = await blog.Post.create(title="hello")
    await post.tags.create(name="a")
    await post.tags.create(name="b")

    assert await post.tags.clear() == 2
    assert await post.tags.count() == 0
    assert await blog.Tag.count() == 2


async def test_has_many_through_unsaved_owner(blog):
    post = blog.Post(title="new")
    assert await post.tags.all() == []
    assert await post.tags.clear() == 0
    with pytest.raises(InvalidStateError):
        await post.tags.add(blog.Tag(name="x"))


async def test_has_many_through_query_joins_through_table(blog):
    post = await blog.Post.create(title="hello")
    sql, params = post.tags.query().to_sql()
    assert sql == (
        'SELECT "tags".* FROM "tags"'
        ' INNER JOIN "post_tags" ON "tags"."id" = "post_tags"."tag_id"'
        ' WHERE "post_tags"."post_id" = :p1'
    )
    assert params == [post.id]


# -- Definitions ---------------------------------------------------------------

def test_default_keys_per_kind(blog):
    definitions = blog.Post.get_associations()
    assert definitions["user"].kind is AssociationKind.BELONGS_TO
    assert definitions["user"].foreign_key == "user_id"
    assert definitions["user"].primary_key == "id"
    assert definitions["tags"].through == "post_tags"
    assert definitions["tags"].foreign_key == "post_id"
    assert definitions["tags"].through_foreign_key == "tag_id"

    user_defs = blog.User.get_associations()
    assert user_defs["posts"].foreign_key == "user_id"
    assert user_defs["posts"].target is blog.Post
    assert user_defs["profile"].kind is AssociationKind.HAS_ONE


def test_lazy_target_supports_definition_in_either_order():
    class Author(Model):
        pass

    Author.has_many("books", lambda: Book)

    class Book(Model):
        pass

    assert Author.get_associations()["books"].target is Book
    assert Author.get_associations()["books"].foreign_key == "author_id"


def test_has_many_through_requires_join_table():
    class Course(Model):
        pass

    class Student(Model):
        pass

    with pytest.raises(ConstructionError, match="join table"):
        Course.has_many_through("students", Student)


def test_registering_twice_replaces_definition():
    class Shelf(Model):
        pass

    class Item(Model):
        pass

    Shelf.has_many("items", Item)
    Shelf.has_many("items", Item, foreign_key="container_id")
    assert Shelf.get_associations()["items"].foreign_key == "container_id"


def test_relation_handle_is_memoised_per_instance(blog):
    user = blog.User(name="Ann")
    assert user.relation("posts") is user.posts
    assert blog.User(name="Ben").posts is not user.posts


def test_unknown_relation_raises(blog):
    with pytest.raises(ConstructionError):
        blog.User(name="Ann").relation("nope")


def test_association_property_is_read_only(blog):
    with pytest.raises(AttributeError):
        blog.Post(title="x").user = None
