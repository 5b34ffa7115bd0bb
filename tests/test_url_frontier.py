from sitesearch.crawler.url_frontier import SiteFrontier, in_site, origin_of, path_of


def test_path_and_origin_helpers():
    assert origin_of("HTTP://Example.COM:8080/a/b") == "http://example.com:8080"
    assert path_of("http://example.com") == "/"
    assert path_of("http://example.com/a/b?q=1#frag") == "/a/b?q=1"


def test_frontier_is_seeded_with_root():
    frontier = SiteFrontier("http://example.com/")
    assert frontier.pop() == "/"
    assert frontier.pop() is None


def test_each_path_is_accepted_once():
    frontier = SiteFrontier("http://example.com")
    frontier.pop()

    added = frontier.add_urls([
        "http://example.com/a",
        "http://example.com/a#section",
        "http://example.com/b",
        "http://example.com/",
    ])

    assert added == 2
    assert [frontier.pop(), frontier.pop(), frontier.pop()] == ["/a", "/b", None]
    assert frontier.add_url("http://example.com/a") is False
    assert frontier.seen == 3


def test_other_origins_are_rejected():
    frontier = SiteFrontier("http://example.com")

    assert frontier.add_url("https://example.com/a") is False
    assert frontier.add_url("http://sub.example.com/a") is False
    assert frontier.add_url("http://EXAMPLE.com/a") is True
    assert frontier.url_for("/a") == "http://example.com/a"


def test_site_root_path_limits_scope():
    frontier = SiteFrontier("http://example.com/docs/", "/docs")

    assert frontier.pop() == "/docs"
    assert frontier.add_url("http://example.com/docs/intro?x=1") is True
    assert frontier.add_url("http://example.com/docs") is False
    assert frontier.add_url("http://example.com/other") is False
    assert frontier.add_url("http://example.com/docsearch") is False
    assert frontier.add_url("http://example.com/") is False


def test_in_site():
    assert in_site("http://example.com", "http://example.com/anything")
    assert in_site("http://example.com/docs", "http://example.com/docs")
    assert in_site("http://example.com/docs", "http://example.com/docs/a/b")
    assert not in_site("http://example.com/docs", "http://example.com/docsearch")
    assert not in_site("http://example.com/docs", "http://example.com/other")
    assert not in_site("http://example.com/docs", "http://other.example/docs")
