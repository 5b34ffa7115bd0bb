import pytest

from sitesearch.errors import InvalidQueryError
from sitesearch.search.engine import SearchEngine
from sitesearch.search.snippets import SnippetBuilder
from sitesearch.storage.models import Page
from sitesearch.utils.config import SearchConfig

from conftest import add_site


SITE = "http://example.com"
OTHER = "http://other.example.org"


@pytest.fixture
async def store(memory_store):
    await add_site(memory_store, SITE, "Example")
    await add_site(memory_store, OTHER, "Other")
    return memory_store


@pytest.fixture
def engine_factory(store, lemmatizer, metrics):
    def build(**settings) -> SearchEngine:
        return SearchEngine(store, lemmatizer, SearchConfig(**settings), metrics)
    return build


async def put(store, lemmatizer, path, text, title="", site=SITE) -> Page:
    page = Page(site_url=site, path=path, code=200, content=f"<p>{text}</p>",
                title=title, text=text)
    return await store.replace_page(page, lemmatizer.lemmatize(f"{title} {text}"))


async def test_single_word_relevance_is_normalized(store, lemmatizer, engine_factory, metrics):
    strong = await put(store, lemmatizer, "/a", "cat dog cat", title="Pets")
    weak = await put(store, lemmatizer, "/b", "cat")

    response = await engine_factory().search("cat")

    assert response.result is True
    assert response.count == 2
    assert [(r.uri, r.relevance) for r in response.data] == [("/a", 1.0), ("/b", 0.5)]
    top = response.data[0]
    assert top.site == SITE
    assert top.site_name == "Example"
    assert top.title == "Pets"
    assert "<b>cat</b>" in top.snippet
    assert strong.id != weak.id
    assert metrics.sample('sitesearch_searches_total') == 1


async def test_every_result_contains_every_query_lemma(store, lemmatizer, engine_factory):
    await put(store, lemmatizer, "/a", "cat dog cat")
    await put(store, lemmatizer, "/b", "cat")
    await put(store, lemmatizer, "/c", "dog")

    response = await engine_factory().search("cat dog")

    assert response.count == 1
    assert response.data[0].uri == "/a"
    assert response.data[0].relevance == 1.0


async def test_unknown_lemma_gives_no_results(store, lemmatizer, engine_factory):
    await put(store, lemmatizer, "/a", "cat dog cat")

    response = await engine_factory().search("cat fish")

    assert response.count == 0
    assert response.data == []
    assert response.result is True


async def test_inflected_forms_match(store, lemmatizer, engine_factory):
    await put(store, lemmatizer, "/a", "The runner was running through the gardens")

    response = await engine_factory().search("garden runs")

    assert response.count == 1
    assert "<b>gardens</b>" in response.data[0].snippet


async def test_related_spellings_do_not_match(store, lemmatizer, engine_factory):
    await put(store, lemmatizer, "/a", "the university campus")

    engine = engine_factory()

    assert (await engine.search("universe")).count == 0
    assert (await engine.search("universities")).count == 1


async def test_function_word_query_matches_nothing(store, lemmatizer, engine_factory):
    await put(store, lemmatizer, "/a", "the cat and the dog")

    response = await engine_factory().search("the and")

    assert response.count == 0
    assert response.result is True


async def test_common_lemmas_filter_but_do_not_score(store, lemmatizer, engine_factory):
    one = await put(store, lemmatizer, "/1", "rare apple apple apple")
    two = await put(store, lemmatizer, "/2", "rare rare apple")
    await put(store, lemmatizer, "/3", "apple")
    await put(store, lemmatizer, "/4", "apple")

    response = await engine_factory(frequency_cutoff=0.5).search("apple rare")

    assert [(r.uri, r.relevance) for r in response.data] == [("/2", 1.0), ("/1", 0.5)]
    assert one.id < two.id


async def test_all_common_lemmas_still_score(store, lemmatizer, engine_factory):
    await put(store, lemmatizer, "/1", "apple")
    await put(store, lemmatizer, "/2", "apple apple")

    response = await engine_factory(frequency_cutoff=0.5).search("apple")

    assert [(r.uri, r.relevance) for r in response.data] == [("/2", 1.0), ("/1", 0.5)]


async def test_equal_relevance_is_ordered_by_page_id(store, lemmatizer, engine_factory):
    pages = [await put(store, lemmatizer, f"/{name}", "cat") for name in ("z", "y", "x")]

    response = await engine_factory().search("cat")

    assert [r.uri for r in response.data] == [p.path for p in sorted(pages, key=lambda p: p.id)]
    assert all(r.relevance == 1.0 for r in response.data)


async def test_pages_concatenate_to_full_ranking(store, lemmatizer, engine_factory):
    for i in range(1, 8):
        await put(store, lemmatizer, f"/p{i}", " ".join(["cat"] * i))
    engine = engine_factory()

    full = await engine.search("cat", limit=100)
    paged = []
    for offset in range(0, 7, 3):
        response = await engine.search("cat", offset=offset, limit=3)
        assert response.count == 7
        paged.extend(response.data)

    assert [r.uri for r in paged] == [r.uri for r in full.data]
    assert [r.uri for r in full.data] == [f"/p{i}" for i in range(7, 0, -1)]
    assert (await engine.search("cat", offset=50)).data == []


async def test_default_limit_applies(store, lemmatizer, engine_factory):
    for i in range(5):
        await put(store, lemmatizer, f"/p{i}", "cat")

    response = await engine_factory(default_limit=2).search("cat")

    assert response.count == 5
    assert len(response.data) == 2


async def test_site_filter(store, lemmatizer, engine_factory):
    await put(store, lemmatizer, "/a", "cat", site=SITE)
    await put(store, lemmatizer, "/b", "cat cat", site=OTHER)
    engine = engine_factory()

    everywhere = await engine.search("cat")
    mine = await engine.search("cat", site=SITE + "/")
    unknown = await engine.search("cat", site="http://unknown.example")

    assert everywhere.count == 2
    assert everywhere.data[0].site_name == "Other"
    assert [(r.site, r.relevance) for r in mine.data] == [(SITE, 1.0)]
    assert unknown.count == 0


async def test_error_pages_never_match(store, lemmatizer, engine_factory):
    await store.replace_page(Page(site_url=SITE, path="/gone", code=404, text="cat"), {})

    assert (await engine_factory().search("cat")).count == 0


@pytest.mark.parametrize("query, offset, limit", [
    ("", None, None),
    ("   ", None, None),
    ("cat", -1, None),
    ("cat", None, 0),
])
async def test_invalid_requests_are_rejected(engine_factory, query, offset, limit):
    with pytest.raises(InvalidQueryError):
        await engine_factory().search(query, offset=offset, limit=limit)


def test_snippet_window_around_dense_matches(lemmatizer):
    text = " ".join(["lorem"] * 60 + ["cat"] + ["ipsum"] * 60)

    snippet = SnippetBuilder(lemmatizer, window_words=30, lead_words=5).build(text, {"cat"})

    assert snippet.startswith("... lorem")
    assert snippet.endswith(" ...")
    assert "<b>cat</b>" in snippet
    assert snippet.count("lorem") == 5
    assert len(snippet.split()) == 35 + 2


def test_snippet_prefers_window_with_most_matches(lemmatizer):
    text = " ".join(["cat"] + ["lorem"] * 40 + ["cat", "dog", "cat"] + ["ipsum"] * 40)

    snippet = SnippetBuilder(lemmatizer, window_words=10, lead_words=0).build(
        text, {"cat", "dog"})

    assert snippet.startswith("... <b>cat</b> <b>dog</b> <b>cat</b>")


def test_snippet_escapes_markup(lemmatizer):
    snippet = SnippetBuilder(lemmatizer).build('cat <script>alert("x")</script>', {"cat"})

    assert snippet.startswith("<b>cat</b>")
    assert "<script>" not in snippet
    assert "&lt;script&gt;" in snippet


def test_snippet_without_matches_uses_start_of_text(lemmatizer):
    assert SnippetBuilder(lemmatizer).build("short page text", {"cat"}) == "short page text"
    assert SnippetBuilder(lemmatizer).build("", {"cat"}) == ""
