import fakeredis.aioredis
import pytest

from sitesearch.storage.database import (DatabaseError, FileIndexStore, MemoryIndexStore,
                                         RedisIndexStore, create_index_store)
from sitesearch.storage.models import Page, Site, SiteStatus
from sitesearch.utils.config import StorageConfig

from conftest import add_site


SITE = "http://example.com"
OTHER = "http://other.example.org"


@pytest.fixture(params=["memory", "file", "redis"])
async def store(request, tmp_path):
    if request.param == "memory":
        store = MemoryIndexStore()
    elif request.param == "file":
        store = FileIndexStore(str(tmp_path / "data"))
    else:
        store = RedisIndexStore(fakeredis.aioredis.FakeRedis(decode_responses=True), "test")
    await store.initialize()
    yield store
    await store.close()


def page(path, site=SITE, code=200, text="") -> Page:
    return Page(site_url=site, path=path, code=code, content=f"<p>{text}</p>", text=text)


async def test_replace_page_assigns_id_and_counts_frequencies(store):
    await add_site(store, SITE)

    first = await store.replace_page(page("/a"), {"cat": 2, "dog": 1})
    second = await store.replace_page(page("/b"), {"cat": 1})

    assert first.id is not None and second.id is not None
    assert first.id != second.id
    assert await store.lemma_frequencies(["cat", "dog", "fish"]) == {"cat": 2, "dog": 1, "fish": 0}
    assert await store.pages_for_lemma("cat") == {first.id: 2.0, second.id: 1.0}
    assert await store.page_lemmas(first.id) == {"cat": 2.0, "dog": 1.0}
    assert await store.count_pages() == 2
    assert await store.count_lemmas() == 2
    assert await store.verify_frequencies() == {}


async def test_replacing_a_path_never_duplicates(store):
    await add_site(store, SITE)
    original = await store.replace_page(page("/a", text="old"), {"cat": 1, "dog": 1})

    replaced = await store.replace_page(page("/a", text="new"), {"dog": 3, "fish": 1})

    assert replaced.id == original.id
    assert await store.count_pages(SITE) == 1
    assert (await store.get_page(SITE, "/a")).text == "new"
    assert await store.lemma_frequencies(["cat", "dog", "fish"]) == {"cat": 0, "dog": 1, "fish": 1}
    assert await store.pages_for_lemma("cat") == {}
    assert await store.pages_for_lemma("dog") == {original.id: 3.0}
    assert await store.verify_frequencies() == {}


async def test_delete_page_decrements_frequencies(store):
    await add_site(store, SITE)
    kept = await store.replace_page(page("/a"), {"cat": 1})
    await store.replace_page(page("/b"), {"cat": 1, "dog": 1})

    assert await store.delete_page(SITE, "/b") is True
    assert await store.delete_page(SITE, "/b") is False

    assert await store.get_page(SITE, "/b") is None
    assert await store.lemma_frequencies(["cat", "dog"]) == {"cat": 1, "dog": 0}
    assert await store.pages_for_lemma("cat") == {kept.id: 1.0}
    assert await store.count_lemmas(SITE) == 1
    assert await store.verify_frequencies() == {}


async def test_reset_site_clears_only_that_site(store):
    await add_site(store, SITE, "Example")
    await add_site(store, OTHER, "Other")
    await store.replace_page(page("/a"), {"cat": 1})
    other_page = await store.replace_page(page("/a", site=OTHER), {"cat": 1})
    await store.update_site_status(SITE, SiteStatus.FAILED, "boom")

    site = await store.reset_site(Site(url=SITE, name="Example"))

    assert site.status is SiteStatus.INDEXING
    stored = await store.get_site(SITE)
    assert stored.status is SiteStatus.INDEXING
    assert stored.last_error is None
    assert await store.count_pages(SITE) == 0
    assert await store.count_lemmas(SITE) == 0
    assert await store.pages_for_lemma("cat") == {other_page.id: 1.0}
    assert await store.verify_frequencies() == {}


async def test_queries_can_be_scoped_to_one_site(store):
    await add_site(store, SITE)
    await add_site(store, OTHER)
    mine = await store.replace_page(page("/a"), {"cat": 1})
    await store.replace_page(page("/a", site=OTHER), {"cat": 1, "dog": 1})

    assert await store.lemma_frequencies(["cat", "dog"], SITE) == {"cat": 1, "dog": 0}
    assert await store.lemma_frequencies(["cat"]) == {"cat": 2}
    assert await store.pages_for_lemma("cat", SITE) == {mine.id: 1.0}
    assert await store.count_pages(OTHER) == 1
    assert await store.count_pages("http://unknown.example") == 0


async def test_error_pages_are_stored_without_index(store):
    await add_site(store, SITE)

    stored = await store.replace_page(page("/missing", code=404), {})

    assert (await store.get_page(SITE, "/missing")).code == 404
    assert await store.page_lemmas(stored.id) == {}
    assert await store.count_lemmas() == 0


async def test_get_pages_keeps_requested_order(store):
    await add_site(store, SITE)
    a = await store.replace_page(page("/a"), {"cat": 1})
    b = await store.replace_page(page("/b"), {"cat": 1})

    pages = await store.get_pages([b.id, 999, a.id])

    assert [p.path for p in pages] == ["/b", "/a"]


async def test_site_status_updates(store):
    await add_site(store, SITE, "Example")

    updated = await store.update_site_status(SITE, SiteStatus.FAILED, "Server timed out")

    assert updated.status is SiteStatus.FAILED
    site = await store.get_site(SITE)
    assert site.status is SiteStatus.FAILED
    assert site.last_error == "Server timed out"
    assert [s.url for s in await store.list_sites()] == [SITE]
    assert await store.update_site_status("http://missing.example", SiteStatus.INDEXED) is None


async def test_unknown_site_is_rejected(store):
    with pytest.raises(DatabaseError):
        await store.replace_page(page("/a"), {"cat": 1})


async def test_file_store_survives_restart(tmp_path):
    directory = str(tmp_path / "data")
    store = FileIndexStore(directory)
    await store.initialize()
    await add_site(store, SITE, "Example")
    first = await store.replace_page(page("/a", text="cat"), {"cat": 1})
    await store.close()

    reopened = FileIndexStore(directory)
    await reopened.initialize()

    assert (await reopened.get_site(SITE)).name == "Example"
    assert (await reopened.get_page(SITE, "/a")).id == first.id
    assert await reopened.pages_for_lemma("cat") == {first.id: 1.0}
    second = await reopened.replace_page(page("/b"), {"cat": 1})
    assert second.id > first.id
    assert await reopened.verify_frequencies() == {}


def test_create_index_store_selects_backend(tmp_path):
    assert isinstance(create_index_store(StorageConfig(type="memory")), MemoryIndexStore)
    file_config = StorageConfig(type="file", file={'directory': str(tmp_path)})
    assert isinstance(create_index_store(file_config), FileIndexStore)
    assert isinstance(create_index_store(StorageConfig(type="redis")), RedisIndexStore)
    with pytest.raises(DatabaseError):
        create_index_store(StorageConfig(type="cassandra"))
