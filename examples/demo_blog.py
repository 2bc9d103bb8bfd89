#!/usr/bin/env python
# run:
# $ FLASK_APP=demo_blog flask run
#
# then try:
#   curl "http://127.0.0.1:5000/api/posts?with=all"
#   curl "http://127.0.0.1:5000/api/posts/1?with=comments,users"
#   curl "http://127.0.0.1:5000/api/posts?page[number]=1&page[size]=1&sort=-title"
from flask import Flask
from sarest import DB, SAREST, ResourceRegistry, belongs_to, has_many, register_resource


class Content(DB.Model):
    __tablename__ = "contents"
    id = DB.Column(DB.Integer, primary_key=True)
    created = DB.Column(DB.String)
    hidden_note = DB.Column(DB.String)


class Post(DB.Model):
    __tablename__ = "posts"
    id = DB.Column(DB.Integer, DB.ForeignKey("contents.id"), primary_key=True, autoincrement=False)
    title = DB.Column(DB.String, nullable=False)
    author_id = DB.Column(DB.Integer)


class Comment(DB.Model):
    __tablename__ = "comments"
    id = DB.Column(DB.Integer, primary_key=True)
    post_id = DB.Column(DB.Integer)
    body = DB.Column(DB.String)


class User(DB.Model):
    __tablename__ = "users"
    id = DB.Column(DB.Integer, primary_key=True)
    name = DB.Column(DB.String, nullable=False)


def create_registry():
    registry = ResourceRegistry()
    registry.register(Content, block_columns=["hidden_note"])
    registry.register(
        Post,
        parent="Content",
        relations=[has_many("id", "Comment", "post_id"), belongs_to("author_id", "User", "id")],
    )
    registry.register(Comment)
    registry.register(User)
    return registry.finalize()


def create_api(app, prefix="/api"):
    registry = create_registry()
    for name in ("Post", "Comment", "User"):
        register_resource(app, registry, name, url_prefix=prefix)

    # the Post rows are saved together with their Content parent
    DB.session.add_all([User(id=1, name="alice"), Content(id=1, created="2024-01-01", hidden_note="draft")])
    DB.session.add_all([Post(id=1, title="hello", author_id=1), Comment(post_id=1, body="first!")])
    DB.session.commit()
    print(f"Starting API: http://127.0.0.1:5000{prefix}/posts")


def create_app():
    app = Flask("demo_blog")
    app.config.update(SQLALCHEMY_DATABASE_URI="sqlite://", FAST_HAS_MANY=True, FAST_BELONGS_TO=True)
    DB.init_app(app)
    with app.app_context():
        SAREST(app, app_db=DB)
        DB.create_all()
        create_api(app)
    return app


app = create_app()

if __name__ == "__main__":
    app.run()
