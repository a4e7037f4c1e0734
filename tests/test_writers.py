import asyncio
import json

import pytest

from sitecrawler.crawler.channels import RecordChannel
from sitecrawler.crawler.records import PageResult
from sitecrawler.storage.writers import (
    CsvWriter, JsonLinesWriter, WriterError, create_writer, drain_results, format_for_path,
)


def write_all(writer, records):
    async def scenario():
        async with writer:
            for record in records:
                await writer.write(record)
    asyncio.run(scenario())


def test_csv_header_and_rows(tmp_path):
    path = tmp_path / "out.csv"
    write_all(CsvWriter(str(path)), [
        PageResult(url="http://x/", title="Home", description="Welcome"),
        PageResult(url="http://x/broken"),
    ])

    assert path.read_text(encoding='utf-8') == (
        "url,title,description\n"
        "http://x/,Home,Welcome\n"
        "http://x/broken,,\n"
    )


def test_csv_escapes_delimiter_trims_and_drops_newlines(tmp_path):
    path = tmp_path / "out.csv"
    write_all(CsvWriter(str(path)), [
        PageResult(url="http://x/", title="  Tea, coffee  ", description="line one\nline two\r\n"),
    ])

    lines = path.read_text(encoding='utf-8').splitlines()
    assert lines[1] == "http://x/,Tea\\, coffee,line oneline two"


def test_csv_header_extends_columns_with_first_row_keys(tmp_path):
    path = tmp_path / "out.csv"
    write_all(CsvWriter(str(path), columns=['url']), [
        {'url': "http://x/", 'title': "Home"},
        {'url': "http://x/a", 'title': "A", 'lang': "en"},
    ])

    assert path.read_text(encoding='utf-8').splitlines() == [
        "url,title",
        "http://x/,Home",
        "http://x/a,A",
    ]


def test_csv_custom_delimiter(tmp_path):
    path = tmp_path / "out.tsv"
    write_all(CsvWriter(str(path), delimiter='\t'), [
        PageResult(url="http://x/", title="a\tb", description="c,d"),
    ])

    assert path.read_text(encoding='utf-8').splitlines()[1] == "http://x/\ta\\\tb\tc,d"


def test_json_lines_writer_keeps_unicode_and_omits_missing(tmp_path):
    path = tmp_path / "out.jsonl"
    write_all(JsonLinesWriter(str(path)), [
        PageResult(url="http://x/", title="Café"),
        PageResult(url="http://x/broken"),
    ])

    text = path.read_text(encoding='utf-8')
    assert "Café" in text
    assert [json.loads(line) for line in text.splitlines()] == [
        {'url': "http://x/", 'title': "Café"},
        {'url': "http://x/broken"},
    ]


def test_write_before_open_fails(tmp_path):
    writer = JsonLinesWriter(str(tmp_path / "out.jsonl"))
    with pytest.raises(WriterError):
        asyncio.run(writer.write(PageResult(url="http://x/")))


def test_open_creates_parent_directories(tmp_path):
    path = tmp_path / "nested" / "dir" / "out.csv"
    write_all(create_writer(str(path)), [PageResult(url="http://x/")])
    assert path.exists()


@pytest.mark.parametrize("path, expected", [
    ("out.csv", 'csv'),
    ("out.jsonl", 'jsonl'),
    ("out.NDJSON", 'jsonl'),
    ("out.txt", 'csv'),
    ("out", 'csv'),
])
def test_format_for_path(path, expected):
    assert format_for_path(path) == expected


def test_create_writer_explicit_format_wins(tmp_path):
    assert isinstance(create_writer(str(tmp_path / "out.csv"), 'jsonl'), JsonLinesWriter)
    assert isinstance(create_writer(str(tmp_path / "out.jsonl")), JsonLinesWriter)
    assert isinstance(create_writer(str(tmp_path / "out.dat")), CsvWriter)
    with pytest.raises(WriterError):
        create_writer(str(tmp_path / "out.xml"), 'xml')


def test_drain_results_consumes_until_channel_ends(tmp_path):
    path = tmp_path / "out.jsonl"

    async def scenario():
        channel = RecordChannel('results')
        channel.put(PageResult(url="http://x/"))
        channel.put(PageResult(url="http://x/a", title="A"))
        channel.close()
        async with JsonLinesWriter(str(path)) as writer:
            return await drain_results(channel, writer)

    assert asyncio.run(scenario()) == 2
    assert len(path.read_text(encoding='utf-8').splitlines()) == 2
