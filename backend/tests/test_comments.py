"""
Tests for threaded comments, likes, edits and deletion.
"""

from datetime import datetime, timedelta

from sqlalchemy import select

from storiesfun.models import Comment, CommentLike, StoryStatus
from storiesfun.models.comments import DELETED_PLACEHOLDER


async def add_comment(db_session, story, user, content="Nice story", parent=None, **overrides):
    comment = Comment(
        user_id=user.id,
        story_id=story.id,
        parent_comment_id=parent.comment_id if parent else None,
        content=content,
        like_count=0,
        **overrides,
    )
    db_session.add(comment)
    await db_session.commit()
    return comment


async def test_post_comment(client, make_story, make_user):
    """
    Test posting a top-level comment.

    Arrange: Published story and a reader
    Act: POST /api/comments
    Assert: 201 with the commenter embedded
    """
    story = await make_story()
    reader = await make_user()

    response = await client.post(
        "/api/comments",
        json={"story_id": story.id, "content": " Loved it ", "wallet_address": reader.wallet_address},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["message"] == "Comment posted successfully"
    comment = body["data"]["comment"]
    assert comment["content"] == "Loved it"
    assert comment["like_count"] == 0
    assert comment["user"]["username"] == reader.username


async def test_post_reply(client, make_story, make_user, db_session):
    story = await make_story()
    reader = await make_user()
    parent = await add_comment(db_session, story, reader)

    response = await client.post(
        "/api/comments",
        json={
            "story_id": story.id,
            "content": "Agreed",
            "wallet_address": reader.wallet_address,
            "parent_comment_id": parent.comment_id,
        },
    )

    assert response.status_code == 201
    assert response.json()["message"] == "Reply posted successfully"
    assert response.json()["data"]["comment"]["parent_comment_id"] == parent.comment_id


async def test_reply_parent_must_share_story(client, make_story, make_user, db_session):
    story = await make_story()
    other_story = await make_story(title="Other")
    reader = await make_user()
    parent = await add_comment(db_session, other_story, reader)

    response = await client.post(
        "/api/comments",
        json={
            "story_id": story.id,
            "content": "Wrong thread",
            "wallet_address": reader.wallet_address,
            "parent_comment_id": parent.comment_id,
        },
    )

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid parent comment"


async def test_comment_on_unpublished_story(client, make_story, make_user):
    story = await make_story(status=StoryStatus.SUBMITTED.value)
    reader = await make_user()

    response = await client.post(
        "/api/comments",
        json={"story_id": story.id, "content": "Hi", "wallet_address": reader.wallet_address},
    )

    assert response.status_code == 400
    assert response.json()["error"] == "Story not available"


async def test_comment_too_long(client, make_story, make_user):
    story = await make_story()
    reader = await make_user()

    response = await client.post(
        "/api/comments",
        json={"story_id": story.id, "content": "x" * 2001, "wallet_address": reader.wallet_address},
    )

    assert response.status_code == 400


async def test_list_comments_nests_replies(client, make_story, make_user, db_session):
    """
    Test listing comments.

    Arrange: Two top-level comments, one with two replies
    Act: GET /api/comments?story_id=...
    Assert: Only top-level comments are paginated; replies nested oldest first
    """
    story = await make_story()
    reader = await make_user()
    first = await add_comment(db_session, story, reader, "first", created_at=datetime(2024, 1, 1))
    await add_comment(db_session, story, reader, "second", created_at=datetime(2024, 1, 2))
    await add_comment(db_session, story, reader, "reply b", parent=first, created_at=datetime(2024, 1, 4))
    await add_comment(db_session, story, reader, "reply a", parent=first, created_at=datetime(2024, 1, 3))

    response = await client.get("/api/comments", params={"story_id": story.id})

    assert response.status_code == 200
    data = response.json()["data"]
    assert [c["content"] for c in data["comments"]] == ["second", "first"]
    assert data["pagination"]["total"] == 2
    assert [r["content"] for r in data["comments"][1]["replies"]] == ["reply a", "reply b"]
    assert data["comments"][0]["replies"] == []


async def test_list_comments_requires_story(client):
    response = await client.get("/api/comments")

    assert response.status_code == 400
    assert response.json()["error"] == "Missing story_id"


async def test_list_comments_unknown_story(client):
    response = await client.get("/api/comments", params={"story_id": 12345})

    assert response.status_code == 404


async def test_like_toggles(client, make_story, make_user, db_session):
    """
    Test that liking twice removes the like.

    Arrange: Comment and a second user
    Act: POST /api/comments/like twice
    Assert: Count goes 1 then 0, like row removed
    """
    story = await make_story()
    author = await make_user()
    fan = await make_user()
    comment = await add_comment(db_session, story, author)

    first = await client.post(
        "/api/comments/like",
        json={"comment_id": comment.comment_id, "wallet_address": fan.wallet_address},
    )
    assert first.status_code == 200
    assert first.json()["data"] == {"comment_id": comment.comment_id, "like_count": 1, "user_liked": True}

    second = await client.post(
        "/api/comments/like",
        json={"comment_id": comment.comment_id, "wallet_address": fan.wallet_address},
    )
    assert second.json()["data"]["like_count"] == 0
    assert second.json()["data"]["user_liked"] is False

    likes = (await db_session.execute(select(CommentLike))).scalars().all()
    assert likes == []


async def test_like_status(client, make_story, make_user, db_session):
    story = await make_story()
    fan = await make_user()
    liked = await add_comment(db_session, story, fan, "a")
    unliked = await add_comment(db_session, story, fan, "b")
    db_session.add(CommentLike(comment_id=liked.comment_id, user_id=fan.id))
    await db_session.commit()

    response = await client.get(
        "/api/comments/like",
        params={
            "comment_ids": f"{liked.comment_id},{unliked.comment_id},junk",
            "wallet_address": fan.wallet_address,
        },
    )

    assert response.status_code == 200
    assert response.json()["data"]["like_status"] == {
        str(liked.comment_id): True,
        str(unliked.comment_id): False,
    }


async def test_like_status_requires_ids(client, author):
    response = await client.get(
        "/api/comments/like",
        params={"comment_ids": "a,b", "wallet_address": author.wallet_address},
    )

    assert response.status_code == 400


async def test_get_single_comment(client, make_story, make_user, db_session):
    story = await make_story()
    reader = await make_user()
    parent = await add_comment(db_session, story, reader)
    await add_comment(db_session, story, reader, "reply", parent=parent)

    response = await client.get(f"/api/comments/{parent.comment_id}")

    assert response.status_code == 200
    assert len(response.json()["data"]["comment"]["replies"]) == 1


async def test_edit_own_comment(client, make_story, make_user, db_session):
    story = await make_story()
    reader = await make_user()
    comment = await add_comment(db_session, story, reader)

    response = await client.put(
        f"/api/comments/{comment.comment_id}",
        json={"content": "Edited", "wallet_address": reader.wallet_address},
    )

    assert response.status_code == 200
    data = response.json()["data"]["comment"]
    assert data["content"] == "Edited"
    assert data["updated_at"] is not None


async def test_edit_other_users_comment_forbidden(client, make_story, make_user, db_session):
    story = await make_story()
    owner = await make_user()
    other = await make_user()
    comment = await add_comment(db_session, story, owner)

    response = await client.put(
        f"/api/comments/{comment.comment_id}",
        json={"content": "Hijack", "wallet_address": other.wallet_address},
    )

    assert response.status_code == 403


async def test_edit_after_window_rejected(client, make_story, make_user, db_session):
    story = await make_story()
    reader = await make_user()
    comment = await add_comment(
        db_session, story, reader, created_at=datetime.utcnow() - timedelta(hours=25)
    )

    response = await client.put(
        f"/api/comments/{comment.comment_id}",
        json={"content": "Too late", "wallet_address": reader.wallet_address},
    )

    assert response.status_code == 400
    assert response.json()["error"] == "Edit time expired"


async def test_delete_comment_without_replies(client, make_story, make_user, db_session):
    story = await make_story()
    reader = await make_user()
    comment = await add_comment(db_session, story, reader)
    comment_id = comment.comment_id

    response = await client.delete(
        f"/api/comments/{comment_id}", params={"wallet_address": reader.wallet_address}
    )

    assert response.status_code == 200
    assert response.json()["data"] == {"comment_id": comment_id, "soft_deleted": False}

    db_session.expunge_all()
    assert await db_session.get(Comment, comment_id) is None


async def test_delete_comment_with_replies_is_soft(client, make_story, make_user, db_session):
    story = await make_story()
    reader = await make_user()
    parent = await add_comment(db_session, story, reader)
    await add_comment(db_session, story, reader, "reply", parent=parent)

    response = await client.delete(
        f"/api/comments/{parent.comment_id}", params={"wallet_address": reader.wallet_address}
    )

    assert response.json()["data"]["soft_deleted"] is True
    db_session.expire_all()
    refreshed = await db_session.get(Comment, parent.comment_id)
    assert refreshed.content == DELETED_PLACEHOLDER


async def test_delete_by_admin(client, make_story, make_user, db_session, admin):
    """Test that an admin who is also a user can remove other users' comments."""
    story = await make_story()
    reader = await make_user()
    await make_user(wallet_address=admin.wallet_address)
    comment = await add_comment(db_session, story, reader)

    denied = await client.delete(
        f"/api/comments/{comment.comment_id}", params={"wallet_address": admin.wallet_address}
    )
    allowed = await client.delete(
        f"/api/comments/{comment.comment_id}",
        params={"wallet_address": admin.wallet_address, "admin": "true"},
    )

    assert denied.status_code == 403
    assert allowed.status_code == 200


async def test_like_status_skips_unparseable_ids(client, make_story, make_user, db_session):
    """
    Test that ids which are not plain decimal integers are dropped.

    Arrange: One liked comment
    Act: GET /api/comments/like mixing the id with a superscript digit and text
    Assert: 200 with only the valid id reported
    """
    story = await make_story()
    fan = await make_user()
    liked = await add_comment(db_session, story, fan)
    db_session.add(CommentLike(comment_id=liked.comment_id, user_id=fan.id))
    await db_session.commit()

    response = await client.get(
        "/api/comments/like",
        params={"comment_ids": f"{liked.comment_id},²,abc, -3", "wallet_address": fan.wallet_address},
    )

    assert response.status_code == 200
    assert response.json()["data"]["like_status"] == {str(liked.comment_id): True}


async def test_edit_just_inside_window_allowed(client, make_story, make_user, db_session):
    story = await make_story()
    reader = await make_user()
    comment = await add_comment(
        db_session, story, reader, created_at=datetime.utcnow() - timedelta(hours=23, minutes=59)
    )

    response = await client.put(
        f"/api/comments/{comment.comment_id}",
        json={"content": "Just in time", "wallet_address": reader.wallet_address},
    )

    assert response.status_code == 200
    assert response.json()["data"]["comment"]["content"] == "Just in time"
