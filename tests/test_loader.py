import tempfile
import unittest
from datetime import datetime
from pathlib import Path

from openpyxl import Workbook

from intake_doctor.loader import guess_table_kind, load_batch, load_file, load_table, serialize_row
from intake_doctor.validator import validate_tables


def workbook_bytes(*sheets):
    """Build an .xlsx in memory from (title, rows) pairs."""
    wb = Workbook()
    for index, (title, rows) in enumerate(sheets):
        ws = wb.active if index == 0 else wb.create_sheet(title)
        ws.title = title
        for row in rows:
            ws.append(row)
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "book.xlsx"
        wb.save(path)
        return path.read_bytes()


class KindInferenceTests(unittest.TestCase):
    def test_keywords_and_synonyms(self):
        self.assertEqual(guess_table_kind("Clients_2024.csv"), "clients")
        self.assertEqual(guess_table_kind("lista_clientes.xlsx"), "clients")
        self.assertEqual(guess_table_kind("WORKERS.csv"), "workers")
        self.assertEqual(guess_table_kind("trabajadores.csv"), "workers")
        self.assertEqual(guess_table_kind("empleados.xlsx"), "workers")
        self.assertEqual(guess_table_kind("tareas.csv"), "tasks")

    def test_unmatched_name_defaults_to_tasks(self):
        self.assertEqual(guess_table_kind("data.csv"), "tasks")

    def test_first_matching_kind_wins(self):
        self.assertEqual(guess_table_kind("client_tasks.csv"), "clients")
        self.assertEqual(guess_table_kind("worker_tasks.csv"), "workers")


class DelimitedTextTests(unittest.TestCase):
    def test_header_and_single_row_round_trip(self):
        table = load_table("clients.csv", b"ClientID,ClientName\nC1,Acme\n")

        self.assertEqual(table["kind"], "clients")
        self.assertEqual(table["name"], "clients.csv")
        self.assertEqual(table["columns"], ["ClientID", "ClientName"])
        self.assertEqual(table["rows"], [{"ClientID": "C1", "ClientName": "Acme"}])
        self.assertEqual(serialize_row(table["rows"][0], table["columns"]), "C1,Acme")

    def test_empty_lines_do_not_produce_rows(self):
        table = load_table("tasks.csv", "TaskID,TaskName\nT1,One\n\n\nT2,Two\n\n")

        self.assertEqual([row["TaskID"] for row in table["rows"]], ["T1", "T2"])

    def test_values_stay_text_and_empty_fields_are_empty_text(self):
        table = load_table("tasks.csv", b"TaskID,duration,notes\n7,003,\n")

        self.assertEqual(table["rows"], [{"TaskID": "7", "duration": "003", "notes": ""}])

    def test_short_rows_leave_trailing_fields_absent(self):
        table = load_table("tasks.csv", b"TaskID,TaskName,cost\nT1,One,3\nT2\n")

        self.assertEqual(table["rows"][1], {"TaskID": "T2"})

    def test_long_rows_are_truncated_with_warning(self):
        table = load_table("tasks.csv", b"TaskID,TaskName\nT1,One\nT2,Two,extra\n")

        self.assertEqual(table["rows"][1], {"TaskID": "T2", "TaskName": "Two"})
        self.assertTrue(any("more fields" in warning for warning in table["warnings"]))

    def test_semicolon_delimiter_is_detected(self):
        table = load_table("workers.csv", "WorkerID;WorkerName\nW1;Ana\nW2;Luis\n")

        self.assertEqual(table["delimiter"], ";")
        self.assertEqual(table["columns"], ["WorkerID", "WorkerName"])

    def test_tsv_uses_tabs(self):
        table = load_table("workers.tsv", "WorkerID\tSkills\nW1\twelding, cad\n")

        self.assertEqual(table["rows"], [{"WorkerID": "W1", "Skills": "welding, cad"}])

    def test_latin1_bytes_are_decoded(self):
        text = (
            "WorkerID,WorkerName,notes\n"
            "W1,Luis Gómez,Técnico de soldadura con años de experiencia\n"
            "W2,María Núñez,Diseño asistido por ordenador y gestión\n"
            "W3,José Álvarez,Pintura industrial y revisión técnica\n"
        )
        table = load_table("workers.csv", text.encode("latin-1"))

        self.assertEqual(table["rows"][0]["WorkerName"], "Luis Gómez")
        self.assertEqual(table["rows"][1]["WorkerName"], "María Núñez")

    def test_header_only_file_has_columns_but_no_rows(self):
        table = load_table("clients.csv", b"ClientID,ClientName\n")

        self.assertEqual(table["columns"], ["ClientID", "ClientName"])
        self.assertEqual(table["rows"], [])

    def test_empty_file_yields_empty_table(self):
        table = load_table("clients.csv", b"")

        self.assertEqual(table["columns"], [])
        self.assertEqual(table["rows"], [])

    def test_prose_txt_is_rejected(self):
        with self.assertRaisesRegex(ValueError, "does not appear to contain delimited/tabular data"):
            load_table("notes.txt", b"This is a text file.\nJust prose.\n")


class SpreadsheetTests(unittest.TestCase):
    def test_typed_cells_and_missing_cells_become_empty_text(self):
        raw = workbook_bytes(
            (
                "Workers",
                [
                    ["WorkerID", "WorkerName", "cost", "active", "start_date"],
                    [1, "Ana", 40.5, True, datetime(2024, 3, 1)],
                    [2, None, None, None, None],
                ],
            )
        )
        table = load_table("workers.xlsx", raw)

        self.assertEqual(table["kind"], "workers")
        self.assertEqual(table["columns"], ["WorkerID", "WorkerName", "cost", "active", "start_date"])
        self.assertEqual(
            table["rows"][0],
            {"WorkerID": 1, "WorkerName": "Ana", "cost": 40.5, "active": True, "start_date": "2024-03-01"},
        )
        self.assertEqual(
            table["rows"][1],
            {"WorkerID": 2, "WorkerName": "", "cost": "", "active": "", "start_date": ""},
        )

    def test_only_first_sheet_is_read(self):
        raw = workbook_bytes(
            ("Current", [["ClientID", "ClientName"], ["C1", "Acme"]]),
            ("Backup", [["ClientID", "ClientName"], ["C9", "Old"]]),
        )
        table = load_table("clients.xlsx", raw)

        self.assertEqual(table["sheet_name"], "Current")
        self.assertEqual(table["sheet_names"], ["Current", "Backup"])
        self.assertEqual(table["rows"], [{"ClientID": "C1", "ClientName": "Acme"}])
        self.assertTrue(any("Multiple sheets found" in warning for warning in table["warnings"]))

    def test_header_only_sheet_has_no_columns(self):
        raw = workbook_bytes(("Tasks", [["TaskID", "TaskName"]]))
        table = load_table("tasks.xlsx", raw)

        self.assertEqual(table["rows"], [])
        self.assertEqual(table["columns"], [])

    def test_blank_rows_are_skipped(self):
        raw = workbook_bytes(
            (
                "Tasks",
                [
                    ["TaskID", "TaskName"],
                    ["T1", "a"],
                    [None, None],
                    [None, None],
                    ["T2", "b"],
                    [None, None],
                ],
            )
        )
        table = load_table("tasks.xlsx", raw)

        self.assertEqual(table["rows"], [{"TaskID": "T1", "TaskName": "a"}, {"TaskID": "T2", "TaskName": "b"}])
        self.assertEqual(table["columns"], ["TaskID", "TaskName"])
        self.assertEqual(validate_tables([table]), [])

    def test_blank_and_repeated_headers_get_stable_names(self):
        raw = workbook_bytes(
            ("Tasks", [["TaskID", None, "TaskName", "TaskName"], ["T1", "x", "a", "b"]])
        )
        table = load_table("tasks.xlsx", raw)

        self.assertEqual(table["columns"], ["TaskID", "__EMPTY", "TaskName", "TaskName_1"])
        self.assertEqual(table["rows"][0]["TaskName_1"], "b")

    def test_corrupt_workbook_raises_value_error(self):
        with self.assertRaisesRegex(ValueError, "Could not read workbook"):
            load_table("clients.xlsx", b"not-a-real-xlsx")


class UnsupportedAndBatchTests(unittest.TestCase):
    def test_unsupported_extension_is_silently_empty(self):
        table = load_table("clients.pdf", b"%PDF-1.4")

        self.assertEqual(table["kind"], "clients")
        self.assertEqual(table["rows"], [])
        self.assertEqual(table["columns"], [])
        self.assertIsNone(table["error"])

    def test_batch_preserves_upload_order_and_isolates_failures(self):
        files = [
            ("tasks.csv", b"TaskID,TaskName\nT1,One\n"),
            ("clients.xlsx", b"broken"),
            ("workers.csv", b"WorkerID,WorkerName\nW1,Ana\n"),
            ("tasks_extra.csv", b"TaskID,TaskName\nT2,Two\n"),
        ]
        tables = load_batch(files)

        self.assertEqual([table["name"] for table in tables], [name for name, _ in files])
        self.assertIsNone(tables[0]["error"])
        self.assertIn("Could not read workbook", tables[1]["error"])
        self.assertEqual(tables[1]["rows"], [])
        self.assertEqual(tables[2]["rows"], [{"WorkerID": "W1", "WorkerName": "Ana"}])
        # duplicate kinds are kept as separate tables
        self.assertEqual([table["kind"] for table in tables], ["tasks", "clients", "workers", "tasks"])

    def test_threaded_batch_matches_sequential_order(self):
        files = [(f"tasks_{i}.csv", f"TaskID,TaskName\nT{i},Task {i}\n".encode()) for i in range(8)]

        sequential = load_batch(files)
        threaded = load_batch(files, max_workers=4)

        self.assertEqual(threaded, sequential)

    def test_batch_accepts_paths(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "clientes.csv"
            path.write_text("ClientID,ClientName\nC1,Acme\n", encoding="utf-8")
            missing = Path(tmpdir) / "missing.csv"
            tables = load_batch([path, missing])

        self.assertEqual(tables[0]["kind"], "clients")
        self.assertIn("File not found", tables[1]["error"])

    def test_load_file_reads_from_disk(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "workers.csv"
            path.write_text("WorkerID,Skills\nW1,cad\n", encoding="utf-8")
            table = load_file(path)

        self.assertEqual(table["rows"], [{"WorkerID": "W1", "Skills": "cad"}])


if __name__ == "__main__":
    unittest.main()
