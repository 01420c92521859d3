import datetime

from ai_daily_digest.scrapers.feed_parser import parse_feed_items
from ai_daily_digest.utils import EPOCH

RSS = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0"><channel><title>Blog</title>
<item>
  <title><![CDATA[Shipping <b>fast</b> &amp; safe]]></title>
  <link>https://blog.example.com/fast/</link>
  <pubDate>Wed, 01 May 2024 08:00:00 GMT</pubDate>
  <description>&lt;p&gt;Lessons from &amp;#8220;production&amp;#8221;&lt;/p&gt;</description>
</item>
<item>
  <guid isPermaLink="true">https://blog.example.com/guid-only</guid>
  <title>No link element</title>
  <pubDate>not a date</pubDate>
</item>
<item><description>neither title nor link</description></item>
</channel></rss>
"""

ATOM = """<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Atom blog</title>
  <entry>
    <title>Atom entry</title>
    <link href="https://atom.example.com/entry-1"/>
    <updated>2024-05-02T12:30:00Z</updated>
    <content type="html">&lt;p&gt;Body &lt;em&gt;text&lt;/em&gt;&lt;/p&gt;</content>
  </entry>
</feed>
"""


def test_parse_rss_items() -> None:
    items = parse_feed_items(RSS)
    assert [i["title"] for i in items] == ["Shipping fast & safe", "No link element"]
    first = items[0]
    assert first["link"] == "https://blog.example.com/fast/"
    assert first["pubDate"] == datetime.datetime(2024, 5, 1, 8, 0, tzinfo=datetime.timezone.utc)
    assert first["description"] == "Lessons from “production”"


def test_parse_rss_falls_back_to_guid_and_epoch() -> None:
    second = parse_feed_items(RSS)[1]
    assert second["link"] == "https://blog.example.com/guid-only"
    assert second["pubDate"] == EPOCH
    assert second["description"] == ""


def test_parse_atom_entries() -> None:
    items = parse_feed_items(ATOM.encode("utf-8"))
    assert len(items) == 1
    entry = items[0]
    assert entry["link"] == "https://atom.example.com/entry-1"
    assert entry["pubDate"] == datetime.datetime(2024, 5, 2, 12, 30, tzinfo=datetime.timezone.utc)
    assert entry["description"] == "Body text"


def test_description_is_capped() -> None:
    long_rss = RSS.replace("Lessons from", "x" * 900)
    assert len(parse_feed_items(long_rss)[0]["description"]) == 500


def test_malformed_xml_does_not_raise() -> None:
    assert isinstance(parse_feed_items("<rss><channel><item><title>"), list)
    assert parse_feed_items("not xml at all") == []
