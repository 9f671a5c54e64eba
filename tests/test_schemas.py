import pytest
from pydantic import ValidationError

from schemas import TAGS, PostCreate, PostUpdate, parse_tags

BASE = {"title": "Ridge", "userId": "u1", "secretKey": "s1"}


def test_vocabulary():
    assert len(TAGS) == 12
    assert "Weather Concerns" in TAGS


@pytest.mark.parametrize(
    "raw, expected",
    [
        (None, []),
        ("", []),
        ("Adventure", ["Adventure"]),
        ('["Adventure", "Other"]', ["Adventure", "Other"]),
        (["Question"], ["Question"]),
    ],
)
def test_parse_tags(raw, expected):
    assert parse_tags(raw) == expected


@pytest.mark.parametrize("raw", ['[{"a": 1}]', "[1, 2]", 42])
def test_parse_tags_rejects(raw):
    with pytest.raises(ValueError):
        parse_tags(raw)


def test_create_trims_and_dedupes():
    post = PostCreate(
        title=" Ridge ", userId=" u1 ", secretKey=" s1 ", tags=["Adventure", "Adventure"], imageUrl="  "
    )
    assert post.title == "Ridge"
    assert post.userId == "u1"
    assert post.secretKey == "s1"
    assert post.tags == ["Adventure"]
    assert post.imageUrl is None


def test_create_rejects_any_unknown_tag():
    with pytest.raises(ValidationError, match="Invalid tag"):
        PostCreate(**BASE, tags=["Adventure", "Skiing"])


def test_update_tracks_sent_fields():
    update = PostUpdate(secretKey="s1", content="new")
    assert update.model_dump(exclude_unset=True) == {"secretKey": "s1", "content": "new"}


def test_update_rejects_blank_title():
    with pytest.raises(ValidationError, match="title is required"):
        PostUpdate(secretKey="s1", title="  ")


def test_update_null_content_is_empty_text():
    update = PostUpdate(secretKey="s1", content=None)
    assert update.model_dump(exclude_unset=True) == {"secretKey": "s1", "content": ""}


def test_create_and_update_share_validators():
    with pytest.raises(ValidationError, match="Invalid tag"):
        PostUpdate(secretKey="s1", tags='["Skiing"]')
    assert PostUpdate(secretKey="s1", imageUrl="  ").imageUrl is None
    assert PostUpdate(secretKey=" s1 ").secretKey == "s1"
