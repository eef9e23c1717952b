import pytest

from randonneurs.schemas import NewsCreate
from randonneurs.services.news import (
    all_news,
    create_news_item,
    delete_news_item,
    get_news_item,
    published_news,
    update_news_item,
)


def test_news_lifecycle(session, admin):
    draft = create_news_item(session, admin, NewsCreate(title=" Draft ", body="Soon", teaser=" "))
    live = create_news_item(session, admin, NewsCreate(title="Season opens", body="**Go**", is_published=True))
    assert (draft.title, draft.teaser) == ("Draft", None)

    assert [n.id for n in published_news(session)] == [live.id]
    assert len(all_news(session)) == 2

    update_news_item(session, admin, draft.id, NewsCreate(title="Draft", body="Now", is_published=True))
    assert {n.id for n in published_news(session)} == {draft.id, live.id}
    assert [n.id for n in published_news(session, limit=1)] == [live.id]

    delete_news_item(session, admin, live.id)
    assert get_news_item(session, live.id) is None
    with pytest.raises(ValueError, match="not found"):
        delete_news_item(session, admin, live.id)


def test_news_requires_title_and_body(session, admin):
    with pytest.raises(ValueError, match="Title and body are required"):
        create_news_item(session, admin, NewsCreate(title="Hi", body="  "))
