import unittest

from congregation_sync.config import settings
from congregation_sync.errors import DecodeError
from congregation_sync.models import RemoteItem
from congregation_sync.sources import (
    AnnouncementsSource, PlaylistSource, ScriptureSource, parse_reference, passes_static_filter
)


class RecordingHttp:
    def __init__(self, body):
        self.body = body
        self.calls = []

    async def get_json(self, url, params=None):
        self.calls.append((url, params))
        return self.body


class TestStaticFilter(unittest.TestCase):
    def test_rules(self):
        good = RemoteItem(id="a", title="Great Is Thy Faithfulness", payload="a", thumbnail_url="https://i.ytimg.com/a.jpg")
        self.assertTrue(passes_static_filter(good, ["private"], require_thumbnail=True))
        self.assertFalse(passes_static_filter(good.model_copy(update={"payload": ""})))
        self.assertFalse(passes_static_filter(good.model_copy(update={"title": "Private video"}), ["private"]))
        self.assertFalse(passes_static_filter(good.model_copy(update={"thumbnail_url": None}), require_thumbnail=True))
        self.assertTrue(passes_static_filter(good.model_copy(update={"thumbnail_url": None})))


class TestPlaylistSource(unittest.TestCase):
    def setUp(self):
        settings.DENY_TITLE_MARKERS = ["deleted", "private", "unavailable"]
        self.source = PlaylistSource(youtube=None)

    def test_decode(self):
        items = self.source.decode([
            {"snippet": {
                "title": "How Great Thou Art",
                "resourceId": {"videoId": "v1"},
                "thumbnails": {"default": {"url": "https://i.ytimg.com/vi/v1/default.jpg"}}
            }},
            {"snippet": {"title": "Deleted video", "resourceId": {"videoId": "v2"}, "thumbnails": {}}},
            {"snippet": {"title": "How Great Thou Art (again)", "resourceId": {"videoId": "v1"}}},
        ])

        self.assertEqual([i.id for i in items], ["v1", "v2"])
        self.assertEqual(items[0].payload, "v1")
        self.assertEqual(items[0].thumbnail_url, "https://i.ytimg.com/vi/v1/default.jpg")
        self.assertTrue(self.source.accept(items[0]))
        self.assertFalse(self.source.accept(items[1]))
        self.assertEqual(self.source.external_url(items[0]), "https://www.youtube.com/watch?v=v1")

    def test_decode_rejects_non_objects(self):
        with self.assertRaises(DecodeError):
            self.source.decode(["nope"])

    def test_decode_rejects_wrongly_shaped_snippets(self):
        for entry in [
            {"snippet": "oops"},
            {"snippet": {"title": 5, "resourceId": {"videoId": "v1"}}},
            {"snippet": {"title": "Hymn", "resourceId": ["v1"]}},
            {"snippet": {"title": "Hymn", "resourceId": {"videoId": "v1"}, "thumbnails": {"default": {"url": 3}}}},
        ]:
            with self.assertRaises(DecodeError):
                self.source.decode([entry])


class TestAnnouncementsSource(unittest.IsolatedAsyncioTestCase):
    async def test_sorted_by_priority(self):
        http = RecordingHttp([
            {"id": "b", "title": "Bible Study", "body": "Wednesday night", "timeInfo": "Wednesday 6PM", "priority": 3},
            {"id": "a", "title": "Sunday Service", "body": "Join us", "timeInfo": "Sunday 12PM", "priority": 1},
            {"id": "c", "title": "Choir Rehearsal", "body": "All voices", "timeInfo": "Saturday", "priority": 3},
        ])
        source = AnnouncementsSource(http, url="https://example.test/announcements.json")

        items = source.decode(await source.fetch())

        self.assertEqual([i.id for i in items], ["a", "b", "c"])
        self.assertEqual(items[0].subtitle, "Sunday 12PM")
        self.assertEqual(items[0].detail, "Join us")
        url, params = http.calls[0]
        self.assertEqual(url, "https://example.test/announcements.json")
        self.assertIn("cb", params)

    def test_malformed_document(self):
        source = AnnouncementsSource(RecordingHttp(None))
        with self.assertRaises(DecodeError):
            source.decode({"announcements": []})
        with self.assertRaises(DecodeError):
            source.decode([{"title": "No id"}])
        with self.assertRaises(DecodeError):
            source.decode([{"id": "a", "title": "Picnic", "body": ["not", "text"]}])


class TestScriptureSource(unittest.IsolatedAsyncioTestCase):
    async def test_chapter_request_and_decode(self):
        settings.BIBLE_API_BASE_URL = "https://bible-api.com"
        http = RecordingHttp({
            "reference": "John 3",
            "verses": [
                {"book_name": "John", "chapter": 3, "verse": 16, "text": "For God so loved the world...\n"},
                {"book_name": "John", "chapter": 3, "verse": 17, "text": "For God sent not his Son..."},
            ]
        })
        source = ScriptureSource(http, "1 john", 3)

        items = source.decode(await source.fetch())

        self.assertEqual(http.calls[0][0], "https://bible-api.com/1%20john+3")
        self.assertEqual(source.name, "scripture:1 john:3")
        self.assertEqual(items[0].id, "John:3:16")
        self.assertEqual(items[0].title, "John 3:16")
        self.assertEqual(items[0].detail, "For God so loved the world...")

    def test_missing_verses(self):
        with self.assertRaises(DecodeError):
            ScriptureSource(None, "john", 3).decode({"error": "not found"})

    def test_wrongly_shaped_verses(self):
        source = ScriptureSource(None, "john", 3)
        with self.assertRaises(DecodeError):
            source.decode({"verses": ["John 3:16"]})
        with self.assertRaises(DecodeError):
            source.decode({"verses": [{"book_name": "John", "verse": 16, "text": 42}]})


class TestParseReference(unittest.TestCase):
    def test_valid(self):
        self.assertEqual(parse_reference("John 3:16"), ("john", 3, 16))
        self.assertEqual(parse_reference("  1 Corinthians 13:4 "), ("1 corinthians", 13, 4))
        self.assertEqual(parse_reference("Psalm 23"), ("psalm", 23, None))

    def test_invalid(self):
        for ref in ["John", "John three", "John 3:16:1", "John 0:1", ""]:
            with self.assertRaises(ValueError):
                parse_reference(ref)


if __name__ == '__main__':
    unittest.main()
