import pytest
from flask import Flask
from sarest import DB, SAREST, Entity, SearchHelper

from blog_models import Album, AlbumPhoto, Category, Comment, Content, Note, Photo, Post, PostTag, Profile, Tag, User, make_media_registry, make_registry


@pytest.fixture
def registry():
    return make_registry()


@pytest.fixture
def app():
    app = Flask("sarest-tests")
    app.config.update(SQLALCHEMY_DATABASE_URI="sqlite://", TESTING=True)
    DB.init_app(app)
    with app.app_context():
        SAREST(app, app_db=DB)
        DB.create_all()
        yield app
        DB.session.remove()
        DB.drop_all()


@pytest.fixture
def blog(app):
    """
    posts 10, 11 and 12 with their comments, authors, categories and tags
    """
    DB.session.add_all(
        [
            Category(id=1, name="news"),
            User(id=1, name="alice", email="alice@example.com"),
            Profile(user_id=1, bio="writer"),
            User(id=2, name="bob"),
            Content(id=10, secret="s10", created="2020-01-01"),
            Content(id=11, secret="s11", created="2020-01-02"),
            Content(id=12, secret="s12", created="2020-01-03"),
            Post(id=10, title="first", author_id=1, category_id=1),
            Post(id=11, title="second", author_id=1),
            Post(id=12, title="third", author_id=2),
            Comment(id=5, post_id=10, body="five"),
            Comment(id=6, post_id=10, body="six"),
            Comment(id=7, post_id=11, body="seven"),
            Tag(id=1, label="python"),
            Tag(id=2, label="sql"),
            PostTag(id=1, post_id=10, tag_id=1),
            PostTag(id=2, post_id=10, tag_id=2),
            PostTag(id=3, post_id=11, tag_id=2),
        ]
    )
    DB.session.commit()
    return app


@pytest.fixture
def make_entity(registry):
    def _make_entity(name: str, **search) -> Entity:
        return Entity(registry.get(name), SearchHelper(**search))

    return _make_entity


@pytest.fixture
def media_registry():
    return make_media_registry()


@pytest.fixture
def media(app):
    """
    album 1 with photos 20 and 21 (photo 21 is the cover and the only highlight), album 2 without photos
    """
    DB.session.add_all(
        [
            Content(id=20, secret="s20", created="c20"),
            Content(id=21, secret="s21", created="c21"),
            Album(id=1, title="holiday", cover_id=21),
            Album(id=2, title="empty"),
            Photo(id=20, album_id=1, url="u20"),
            Photo(id=21, album_id=1, url="u21"),
            AlbumPhoto(id=1, album_id=1, photo_id=21),
            Note(id=3, album_ref="1", text="nice"),
        ]
    )
    DB.session.commit()
    return app
