from sitesearch.storage.models import SiteStatus

from conftest import crawl, html_page, make_config


async def test_statistics_before_any_indexing(service_factory):
    service = await service_factory(make_config("http://a.example", "http://b.example"))

    stats = (await service.get_statistics()).to_dict()

    assert stats['result'] is True
    assert stats['statistics']['total'] == {'sites': 2, 'pages': 0, 'lemmas': 0,
                                            'indexing': False}
    detailed = stats['statistics']['detailed']
    assert [item['url'] for item in detailed] == ["http://a.example", "http://b.example"]
    assert [item['name'] for item in detailed] == ["Site 1", "Site 2"]
    assert all(item['status'] is None and item['pages'] == 0 for item in detailed)


async def test_statistics_after_crawl(site_server, closed_url, service_factory):
    root, _ = await site_server({
        "/": html_page("cat dog", links=["/fish"]),
        "/fish": html_page("fish cat"),
    })
    service = await service_factory(make_config(root, closed_url))

    await crawl(service)
    stats = (await service.get_statistics()).to_dict()['statistics']

    assert stats['total']['pages'] == 2
    assert stats['total']['lemmas'] == 3
    assert stats['total']['indexing'] is False
    good, bad = stats['detailed']
    assert good['status'] == SiteStatus.INDEXED.value
    assert good['error'] is None
    assert good['status_time']
    assert bad['status'] == SiteStatus.FAILED.value
    assert bad['error'] == service.config.crawler.connection_error_message
    assert bad['pages'] == 0


async def test_statistics_report_running_crawl(site_server, service_factory):
    root, _ = await site_server({"/": html_page("cat")})
    service = await service_factory(make_config(root, delay_base=30))

    await service.start_indexing()
    stats = (await service.get_statistics()).to_dict()['statistics']

    assert stats['total']['indexing'] is True
    assert stats['detailed'][0]['status'] == SiteStatus.INDEXING.value
    await service.stop_indexing()
