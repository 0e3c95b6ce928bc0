import base64
import json
import sys
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from blockcell.model import (
    ERROR_MIME,
    STDERR_MIME,
    STDOUT_MIME,
    OutputItem,
    OutputPresentation,
)
from blockcell.outputs import OutputCodec, OutputTypeDetector

PNG_B64 = (
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)


class TestEncode(unittest.TestCase):
    def setUp(self):
        self.codec = OutputCodec()

    def test_stream_stdout(self):
        p = self.codec.encode({"output_type": "stream", "name": "stdout", "text": "hi\n"})
        self.assertEqual(len(p.items), 1)
        self.assertEqual(p.items[0].mime, STDOUT_MIME)
        self.assertEqual(p.items[0].data, b"hi\n")
        self.assertFalse(p.items[0].unnamed_stream)

    def test_stream_stderr(self):
        p = self.codec.encode({"output_type": "stream", "name": "stderr", "text": "warn"})
        self.assertEqual(p.items[0].mime, STDERR_MIME)

    def test_unnamed_stream_is_flagged(self):
        p = self.codec.encode({"output_type": "stream", "text": "x"})
        self.assertEqual(p.items[0].mime, STDOUT_MIME)
        self.assertTrue(p.items[0].unnamed_stream)

    def test_error_item_payload(self):
        p = self.codec.encode(
            {
                "output_type": "error",
                "ename": "ValueError",
                "evalue": "bad",
                "traceback": ["line 1", "line 2"],
            }
        )
        self.assertEqual(p.items[0].mime, ERROR_MIME)
        payload = json.loads(p.items[0].as_text())
        self.assertEqual(payload["name"], "ValueError")
        self.assertEqual(payload["message"], "bad")
        self.assertEqual(payload["stack"], "ValueError: bad\nline 1\nline 2")

    def test_error_defaults(self):
        p = self.codec.encode({"output_type": "error"})
        payload = json.loads(p.items[0].as_text())
        self.assertEqual(payload["name"], "Error")
        self.assertEqual(payload["message"], "Error")

    def test_rich_keeps_every_mime_in_order(self):
        p = self.codec.encode(
            {
                "output_type": "execute_result",
                "execution_count": 2,
                "metadata": {},
                "data": {"text/html": "<b>1</b>", "text/plain": "1"},
            }
        )
        self.assertEqual([i.mime for i in p.items], ["text/html", "text/plain"])
        self.assertEqual(p.execution_count, 2)
        self.assertEqual(p.metadata, {})

    def test_image_is_binary(self):
        p = self.codec.encode(
            {"output_type": "display_data", "data": {"image/png": PNG_B64}}
        )
        item = p.items[0]
        self.assertEqual(item.data, base64.b64decode(PNG_B64))
        self.assertEqual(item.original_base64, PNG_B64)

    def test_structured_json_is_pretty_printed(self):
        p = self.codec.encode(
            {"output_type": "display_data", "data": {"application/json": {"a": 1}}}
        )
        self.assertEqual(p.items[0].as_text(), '{\n  "a": 1\n}')

    def test_unknown_type_with_text(self):
        p = self.codec.encode({"output_type": "weird", "text": "shown"})
        self.assertEqual(p.items[0].mime, "text/plain")
        self.assertEqual(p.items[0].as_text(), "shown")

    def test_unknown_type_without_text_is_empty(self):
        with self.assertLogs("blockcell.outputs", level="DEBUG"):
            p = self.codec.encode({"output_type": "weird"})
        self.assertEqual(p.items, [])

    def test_missing_metadata_stays_absent(self):
        p = self.codec.encode({"output_type": "stream", "name": "stdout", "text": "x"})
        self.assertIsNone(p.metadata)
        self.assertIsNone(p.execution_count)


class TestDetect(unittest.TestCase):
    def test_error_wins(self):
        p = OutputPresentation(
            items=[OutputItem.stdout("a"), OutputItem.error({"name": "E"})]
        )
        self.assertEqual(OutputTypeDetector().detect(p).kind, "error")

    def test_stream_over_rich(self):
        p = OutputPresentation(items=[OutputItem.text("a"), OutputItem.stderr("b")])
        self.assertEqual(OutputTypeDetector().detect(p).kind, "stream")

    def test_rich(self):
        p = OutputPresentation(items=[OutputItem.text("a")])
        self.assertEqual(OutputTypeDetector().detect(p).kind, "rich")


class TestDecode(unittest.TestCase):
    def setUp(self):
        self.codec = OutputCodec()

    def assertRoundTrip(self, record):
        self.assertEqual(self.codec.decode(self.codec.encode(record)), record)

    def test_round_trips(self):
        self.assertRoundTrip({"output_type": "stream", "name": "stdout", "text": "a\nb\n"})
        self.assertRoundTrip({"output_type": "stream", "name": "stderr", "text": "oops"})
        self.assertRoundTrip({"output_type": "stream", "text": "no name"})
        self.assertRoundTrip(
            {
                "output_type": "error",
                "ename": "KeyError",
                "evalue": "'k'",
                "traceback": ["tb"],
            }
        )
        self.assertRoundTrip(
            {
                "output_type": "execute_result",
                "execution_count": 9,
                "metadata": {"scrolled": True},
                "data": {"text/plain": "42", "text/html": "<i>42</i>"},
            }
        )
        self.assertRoundTrip(
            {
                "output_type": "display_data",
                "metadata": {},
                "data": {"image/png": PNG_B64, "text/plain": "<Figure>"},
            }
        )
        self.assertRoundTrip(
            {"output_type": "display_data", "data": {"application/json": {"a": [1, 2]}}}
        )

    def test_empty_records_round_trip(self):
        self.assertRoundTrip({"output_type": "display_data"})
        self.assertRoundTrip({"output_type": "execute_result"})
        self.assertRoundTrip({"output_type": "display_data", "data": {}, "metadata": {}})
        self.assertRoundTrip({"output_type": "stream", "name": "stdout", "text": ""})
        self.assertRoundTrip({"output_type": "stream", "name": "stderr"})
        self.assertRoundTrip({"output_type": "stream"})
        self.assertRoundTrip({"output_type": "weird", "extra": 1})

    def test_execution_count_presence(self):
        self.assertRoundTrip(
            {
                "output_type": "execute_result",
                "execution_count": None,
                "metadata": {},
                "data": {"text/plain": "1"},
            }
        )
        self.assertRoundTrip(
            {"output_type": "execute_result", "metadata": {}, "data": {"text/plain": "1"}}
        )
        self.assertRoundTrip(
            {"output_type": "display_data", "execution_count": 3, "data": {"text/plain": "1"}}
        )

    def test_text_only_records(self):
        self.assertRoundTrip({"output_type": "weird", "text": "shown"})
        self.assertRoundTrip({"output_type": "display_data", "text": "plain"})

    def test_unusual_stream_name_is_kept(self):
        self.assertRoundTrip({"output_type": "stream", "name": "log", "text": "x"})

    def test_editor_empty_presentation(self):
        self.assertEqual(
            self.codec.decode(OutputPresentation()), {"output_type": "execute_result"}
        )

    def test_editor_side_error(self):
        item = OutputItem.error(
            {"name": "TypeError", "message": "nope", "stack": "TypeError: nope\n  at f\n  at g"}
        )
        record = self.codec.decode(OutputPresentation(items=[item]))
        self.assertEqual(
            record,
            {
                "output_type": "error",
                "ename": "TypeError",
                "evalue": "nope",
                "traceback": ["  at f", "  at g"],
            },
        )

    def test_mixed_streams_have_no_name(self):
        record = self.codec.decode(
            OutputPresentation(items=[OutputItem.stdout("a"), OutputItem.stderr("b")])
        )
        self.assertEqual(record, {"output_type": "stream", "text": "ab"})

    def test_editor_image_without_original_is_encoded(self):
        item = OutputItem(mime="image/png", data=b"\x89PNG")
        record = self.codec.decode(OutputPresentation(items=[item]))
        self.assertEqual(record["data"]["image/png"], base64.b64encode(b"\x89PNG").decode())
        self.assertEqual(record["output_type"], "display_data")


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
