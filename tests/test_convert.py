import copy
import sys
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from blockcell.convert import BlockConverter
from blockcell.model import STDOUT_MIME, Cell, CellKind, OutputItem, OutputPresentation
from blockcell.pocket import POCKET_KEY
from blockcell.registry import create_default_registry
from blockcell.store import find_notebook, load_project, notebook_blocks

EXAMPLE = Path(__file__).resolve().parents[1] / "examples" / "sample.deepnote"


def _block(i, **extra):
    b = {
        "blockGroup": f"g{i}",
        "content": f"x = {i}",
        "id": f"b{i}",
        "metadata": {},
        "sortingKey": f"a{i:02d}",
        "type": "code",
    }
    b.update(extra)
    return b


class TestRoundTrip(unittest.TestCase):
    def setUp(self):
        self.conv = BlockConverter(create_default_registry())

    def roundtrip(self, blocks):
        return self.conv.to_blocks(self.conv.to_cells(copy.deepcopy(blocks)))

    def test_example_project_is_lossless(self):
        project = load_project(EXAMPLE)
        for nb in project["project"]["notebooks"]:
            blocks = notebook_blocks(nb)
            self.assertEqual(self.roundtrip(blocks), blocks, nb["name"])

    def test_minimal_block(self):
        blocks = [{"content": "print(1)", "id": "b1", "sortingKey": "a00", "type": "code"}]
        self.assertEqual(self.roundtrip(blocks), blocks)

    def test_explicit_empty_collections(self):
        blocks = [_block(0, outputs=[], executionCount=None)]
        back = self.roundtrip(blocks)
        self.assertEqual(back, blocks)
        self.assertIn("outputs", back[0])
        self.assertIn("executionCount", back[0])

    def test_absent_collections_stay_absent(self):
        blocks = [{"content": "", "id": "b1", "sortingKey": "a00", "type": "markdown"}]
        back = self.roundtrip(blocks)
        self.assertNotIn("metadata", back[0])
        self.assertNotIn("outputs", back[0])

    def test_unknown_type_passes_through(self):
        blocks = [_block(0, type="not-yet-invented", content="total", metadata={"fmt": "n"})]
        cells = self.conv.to_cells(blocks)
        self.assertEqual(cells[0].kind, CellKind.MARKUP)
        self.assertEqual(cells[0].language_id, "plaintext")
        self.assertEqual(cells[0].value, "total")
        self.assertEqual(self.conv.to_blocks(cells), blocks)

    def test_unknown_top_level_fields_survive(self):
        blocks = [_block(0, outputReference="ref-1", customFlag={"a": 1})]
        self.assertEqual(self.roundtrip(blocks), blocks)

    def test_unnamed_stream_survives(self):
        blocks = [_block(0, outputs=[{"output_type": "stream", "text": "hi"}])]
        self.assertEqual(self.roundtrip(blocks), blocks)

    def test_reserved_metadata_keys_survive(self):
        blocks = [_block(0, metadata={"type": "chart", "id": "inner", "__pocket": 1, "x": 2})]
        back = self.roundtrip(blocks)
        self.assertEqual(back, blocks)
        cell = self.conv.to_cells(blocks)[0]
        self.assertEqual(cell.metadata["id"], "b0")
        self.assertEqual(cell.metadata["x"], 2)

    def test_empty_string_pocket_fields(self):
        blocks = [_block(0, sortingKey="", type="", blockGroup="")]
        self.assertEqual(self.roundtrip(blocks), blocks)

    def test_null_pocket_fields(self):
        blocks = [_block(0, sortingKey=None, type=None, executionCount=None)]
        self.assertEqual(self.roundtrip(blocks), blocks)

    def test_empty_output_records(self):
        outputs = [
            {"output_type": "display_data"},
            {"output_type": "stream", "name": "stdout", "text": ""},
            {
                "output_type": "execute_result",
                "execution_count": None,
                "metadata": {},
                "data": {"text/plain": "1"},
            },
        ]
        blocks = [_block(0, outputs=outputs, executionCount=None)]
        self.assertEqual(self.roundtrip(blocks), blocks)

    def test_widget_blocks(self):
        blocks = [
            _block(0, type="input-slider", content="", metadata={"deepnote_variable_value": 5}),
            _block(1, type="big-number", content="", metadata={"deepnote_big_number_value": "t"}),
            _block(2, type="visualization", content="legacy", metadata={}),
            _block(3, type="button", metadata={"deepnote_button_title": "Run"}),
        ]
        del blocks[3]["content"]
        self.assertEqual(self.roundtrip(blocks), blocks)

    def test_heading_block(self):
        blocks = [_block(0, type="text-cell-h3", content="Summary")]
        cells = self.conv.to_cells(blocks)
        self.assertEqual(cells[0].value, "### Summary")
        self.assertEqual(self.conv.to_blocks(cells), blocks)


class TestCells(unittest.TestCase):
    def setUp(self):
        self.conv = BlockConverter(create_default_registry())

    def test_stream_block_scenario(self):
        block = {
            "id": "b1",
            "type": "code",
            "content": "x=1",
            "sortingKey": "a0",
            "outputs": [{"output_type": "stream", "text": "hi\n"}],
        }
        cell = self.conv.to_cells([copy.deepcopy(block)])[0]
        self.assertEqual(cell.kind, CellKind.EXECUTABLE)
        self.assertEqual(cell.value, "x=1")
        self.assertEqual(
            cell.metadata, {"id": "b1", POCKET_KEY: {"type": "code", "sortingKey": "a0"}}
        )
        self.assertEqual(len(cell.outputs), 1)
        item = cell.outputs[0].items[0]
        self.assertEqual((item.mime, item.data), (STDOUT_MIME, b"hi\n"))
        self.assertEqual(self.conv.to_blocks([cell]), [block])

    def test_no_document_only_fields_means_no_pocket(self):
        cell = self.conv.to_cells([{"id": "b1", "content": "x", "metadata": {"a": 1}}])[0]
        self.assertEqual(cell.metadata, {"id": "b1", "a": 1})

    def test_pocket_holds_only_present_fields(self):
        blocks = [{"content": "x", "id": "b1", "type": "code"}]
        cell = self.conv.to_cells(blocks)[0]
        self.assertEqual(cell.metadata, {"id": "b1", POCKET_KEY: {"type": "code"}})

    def test_metadata_is_flattened(self):
        cell = self.conv.to_cells([_block(0, metadata={"tag": "x"})])[0]
        self.assertEqual(cell.metadata["tag"], "x")
        self.assertEqual(cell.metadata["id"], "b0")
        self.assertEqual(
            cell.metadata[POCKET_KEY],
            {"blockGroup": "g0", "sortingKey": "a00", "type": "code"},
        )
        self.assertNotIn("type", cell.metadata)

    def test_ordering_by_sorting_key_is_stable(self):
        blocks = [
            _block(0, id="late", sortingKey="b00"),
            _block(1, id="first", sortingKey="a00"),
            _block(2, id="tie-1", sortingKey="a50"),
            _block(3, id="tie-2", sortingKey="a50"),
        ]
        cells = self.conv.to_cells(blocks)
        self.assertEqual(
            [c.block_id for c in cells], ["first", "tie-1", "tie-2", "late"]
        )

    def test_input_blocks_not_mutated(self):
        blocks = [_block(0, metadata={"nested": {"a": 1}})]
        before = copy.deepcopy(blocks)
        cells = self.conv.to_cells(blocks)
        cells[0].metadata["nested"]["a"] = 2
        self.assertEqual(blocks, before)

    def test_multi_mime_output_keeps_all_items(self):
        blocks = [
            _block(
                0,
                outputs=[
                    {
                        "output_type": "execute_result",
                        "execution_count": 1,
                        "metadata": {},
                        "data": {"text/plain": "1", "text/html": "<b>1</b>"},
                    }
                ],
            )
        ]
        cells = self.conv.to_cells(blocks)
        self.assertEqual(len(cells[0].outputs), 1)
        self.assertEqual(len(cells[0].outputs[0].items), 2)


class TestNewCells(unittest.TestCase):
    def setUp(self):
        self.conv = BlockConverter(create_default_registry())

    def test_cells_without_metadata_get_defaults(self):
        cells = [
            Cell(kind=CellKind.EXECUTABLE, value="a = 1", language_id="python"),
            Cell(kind=CellKind.EXECUTABLE, value="print(a)", language_id="python"),
        ]
        blocks = self.conv.to_blocks(cells)
        self.assertEqual([b["sortingKey"] for b in blocks], ["a00", "a01"])
        self.assertEqual([b["type"] for b in blocks], ["code", "code"])
        self.assertNotEqual(blocks[0]["id"], blocks[1]["id"])
        self.assertEqual(blocks[1]["content"], "print(a)")
        self.assertNotIn("outputs", blocks[0])

    def test_edited_cell_with_outputs(self):
        blocks = [_block(0)]
        cells = self.conv.to_cells(blocks)
        cells[0].value = "print('hi')"
        cells[0].outputs = [OutputPresentation(items=[OutputItem.stdout("hi\n")])]
        back = self.conv.to_blocks(cells)[0]
        self.assertEqual(back["content"], "print('hi')")
        self.assertEqual(
            back["outputs"], [{"output_type": "stream", "name": "stdout", "text": "hi\n"}]
        )
        self.assertEqual(back["id"], "b0")
        self.assertEqual(cells[0].outputs[0].items[0].mime, STDOUT_MIME)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
