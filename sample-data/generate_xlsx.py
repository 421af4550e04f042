#!/usr/bin/env python3
"""
Generates sample-data/empleados_messy.xlsx with deliberate problems for
testing the spreadsheet path of the loader and validator.

Run from the repo root:
    python sample-data/generate_xlsx.py

Problems baked in:
  Sheet "Workers" (the only sheet that is read)
    - Duplicate WorkerID: W2 appears twice (numeric 2 and text "2" collide)
    - Empty WorkerName on one row
    - Negative cost and a non-numeric priority
    - A native Excel date in start_date next to an unparseable one
    - Missing cells in the last row (loaded as empty text)
  Sheet "Backup"
    - Ignored: only the first sheet is loaded
"""

from datetime import datetime
from pathlib import Path

import openpyxl

OUTPUT = Path(__file__).parent / "empleados_messy.xlsx"

wb = openpyxl.Workbook()

ws = wb.active
ws.title = "Workers"
ws.append(["WorkerID", "WorkerName", "Skills", "cost", "priority", "start_date"])

data = [
    [1, "Ana Ruiz",   "welding, cad",  40,  1,      datetime(2024, 3, 1)],
    [2, "Luis Gómez", "painting",      35,  "high", "2024-03-04"],
    ["2", "",         "cad",           -5,  2,      "someday"],
    [4, "Marta Díaz", None,            None, None,  None],
]
for row in data:
    ws.append(row)

ws_backup = wb.create_sheet("Backup")
ws_backup.append(["WorkerID", "WorkerName"])
ws_backup.append([99, "Old Record"])

wb.save(OUTPUT)
print(f"Created: {OUTPUT}")
