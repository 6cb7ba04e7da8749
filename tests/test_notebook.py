import copy
import sys
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from nbprovider.errors import CellIndexError
from nbprovider.model import CellKind, NotebookDocument
from nbprovider.notebook import DISPLAY_ORDER, JupyterNotebook, OneShot
from nbprovider.outputs import STREAM_MIME


def code_cell(source, count=None, outputs=None):
    cell = {"cell_type": "code", "source": source, "metadata": {}, "outputs": outputs or []}
    if count is not None:
        cell["execution_count"] = count
    return cell


HTML_OUTPUT = {
    "output_type": "display_data",
    "data": {"text/html": ["<b>hi</b>"], "text/plain": ["hi"]},
}


def open_doc(nb_json, fill_outputs=False, uri="file:///tmp/t.ipynb"):
    model = JupyterNotebook("/opt/ext", nb_json, fill_outputs)
    doc = NotebookDocument.from_data(uri, model.resolve())
    return model, doc


class TestResolve(unittest.TestCase):
    def test_default_document_metadata(self):
        model = JupyterNotebook(".", {"cells": [], "metadata": {}}, False)
        meta = model.resolve().metadata
        for key in ("editable", "runnable", "cell_editable", "cell_runnable"):
            self.assertIs(meta[key], True, key)
        self.assertEqual(meta["display_order"], DISPLAY_ORDER)
        self.assertEqual(meta["display_order"][-1], "text/plain")

    def test_explicit_metadata_flags_kept(self):
        nb = {"cells": [], "metadata": {"editable": False, "cellRunnable": False}}
        meta = JupyterNotebook(".", nb, False).resolve().metadata
        self.assertFalse(meta["editable"])
        self.assertFalse(meta["cell_runnable"])
        self.assertTrue(meta["runnable"])

    def test_stream_scenario_primes_counter(self):
        nb = {
            "cells": [code_cell(["print('hi')"], 5, [{"output_type": "stream", "text": "hi"}])],
            "metadata": {},
        }
        model = JupyterNotebook(".", nb, True)
        data = model.resolve()
        cell = data.cells[0]
        self.assertEqual(len(cell.outputs), 1)
        self.assertEqual(cell.outputs[0].mimes(), [STREAM_MIME])
        self.assertEqual(cell.outputs[0].items[0].value, "hi")
        self.assertEqual(cell.metadata["execution_order"], 5)
        self.assertEqual(model.next_execution_order, 6)

    def test_outputs_withheld_until_filled(self):
        nb = {"cells": [code_cell(["1"], 1, [HTML_OUTPUT])]}
        data = JupyterNotebook(".", nb, False).resolve()
        self.assertEqual(data.cells[0].outputs, [])

    def test_cell_fields(self):
        nb = {
            "cells": [
                {"cell_type": "markdown", "source": ["# T\n", "body"], "metadata": {}},
                code_cell("x = 1"),
                {"cell_type": "raw", "source": [], "metadata": {}},
            ],
            "metadata": {"language_info": {"name": "julia"}},
        }
        cells = JupyterNotebook(".", nb, False).resolve().cells
        self.assertEqual(cells[0].source, "# T\nbody")
        self.assertEqual(cells[0].cell_kind, CellKind.MARKDOWN)
        self.assertEqual(cells[1].source, "x = 1")
        self.assertEqual(cells[1].cell_kind, CellKind.CODE)
        self.assertEqual(cells[2].source, "")
        self.assertEqual(cells[2].cell_kind, CellKind.MARKDOWN)
        self.assertTrue(all(c.language == "julia" for c in cells))
        self.assertIsNone(cells[1].metadata["execution_order"])

    def test_language_defaults_to_python(self):
        cells = JupyterNotebook(".", {"cells": [code_cell("1")]}, False).resolve().cells
        self.assertEqual(cells[0].language, "python")

    def test_resolve_is_deterministic(self):
        nb = {"cells": [code_cell(["a"], 2, [HTML_OUTPUT]), code_cell(["b"], 9)]}
        model = JupyterNotebook(".", nb, True)
        first = model.resolve()
        second = model.resolve()
        self.assertEqual(first, second)
        self.assertEqual(model.next_execution_order, 10)


class TestExecute(unittest.TestCase):
    def test_run_all_assigns_orders_in_document_order(self):
        nb = {"cells": [code_cell(["a"]), code_cell(["b"])]}
        model, doc = open_doc(nb)
        model.execute(doc)
        self.assertEqual([c.metadata["execution_order"] for c in doc.cells], [0, 1])
        self.assertEqual(model.next_execution_order, 2)

    def test_run_all_is_idempotent(self):
        nb = {
            "cells": [
                code_cell(["a"], outputs=[{"output_type": "stream", "text": "A"}]),
                code_cell(["b"]),
            ]
        }
        model, doc = open_doc(nb)
        self.assertEqual(doc.cells[0].outputs, [])
        model.execute(doc)
        self.assertEqual(model.fill_state, OneShot.FIRED)
        snapshot = copy.deepcopy(doc.cells)
        model.execute(doc)
        self.assertEqual(doc.cells, snapshot)
        self.assertEqual(model.next_execution_order, 2)

    def test_run_all_noop_when_outputs_filled_at_open(self):
        nb = {"cells": [code_cell(["a"], 3)]}
        model, doc = open_doc(nb, fill_outputs=True)
        model.execute(doc)
        self.assertEqual(doc.cells[0].metadata["execution_order"], 3)
        self.assertEqual(model.next_execution_order, 4)

    def test_single_cell_replaces_outputs_and_bumps_counter(self):
        nb = {
            "cells": [
                code_cell(["a"], 4, [{"output_type": "stream", "name": "stdout", "text": "A"}]),
                code_cell(["b"]),
            ]
        }
        model, doc = open_doc(nb)
        doc.cells[0].metadata["custom"] = "kept"
        model.execute(doc, 0)
        model.execute(doc, 0)
        cell = doc.cells[0]
        self.assertEqual(cell.outputs[0].items[0].value, "A")
        self.assertEqual(cell.metadata["execution_order"], 6)
        self.assertEqual(cell.metadata["custom"], "kept")
        self.assertEqual(model.next_execution_order, 7)

    def test_counter_exceeds_every_assigned_order(self):
        nb = {"cells": [code_cell(["a"], 2), code_cell(["b"]), code_cell(["c"], 8)]}
        model, doc = open_doc(nb)
        seen = []
        for index in (1, 0, 2):
            model.execute(doc, index)
            seen.append(doc.cells[index].metadata["execution_order"])
        model.execute(doc)
        seen.extend(c.metadata["execution_order"] for c in doc.cells)
        self.assertEqual(seen[:3], [9, 10, 11])
        self.assertTrue(all(model.next_execution_order > s for s in seen))
        self.assertEqual(seen, sorted(seen))

    def test_preload_script_inserted_once(self):
        nb = {"cells": [code_cell(["a"], outputs=[HTML_OUTPUT]), code_cell(["b"], outputs=[HTML_OUTPUT])]}
        model, doc = open_doc(nb)
        model.execute(doc, 0)
        outputs = doc.cells[0].outputs
        self.assertEqual(len(outputs), 2)
        script = outputs[0].items[0]
        self.assertEqual(script.mime, "text/html")
        self.assertIn("<script src=\"vscode-webview-resource:", script.value[0])
        self.assertTrue(script.value[0].rstrip().endswith('dist/ipywidgets.js"></script>'))
        self.assertEqual(model.preload_state, OneShot.FIRED)

        model.execute(doc, 1)
        model.execute(doc, 0)
        self.assertEqual(len(doc.cells[1].outputs), 1)
        self.assertEqual(len(doc.cells[0].outputs), 2)

    def test_out_of_range_index_raises_without_side_effects(self):
        nb = {"cells": [code_cell(["a"])]}
        model, doc = open_doc(nb)
        with self.assertRaises(CellIndexError):
            model.execute(doc, 3)
        with self.assertRaises(IndexError):
            model.execute(doc, -1)
        self.assertEqual(model.next_execution_order, 0)
        self.assertIsNone(doc.cells[0].metadata["execution_order"])


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
