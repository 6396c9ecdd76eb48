"""
Lecture des fichiers Excel importés (openpyxl)

Première feuille uniquement; la ligne 1 contient les en-têtes.
"""

import io
import zipfile
from typing import Any, Dict, Iterator, List, Tuple

import openpyxl
from openpyxl.utils import get_column_letter
from openpyxl.utils.exceptions import InvalidFileException


class ExcelFileError(ValueError):
    """Fichier illisible ou vide"""


def _load_sheet(content: bytes):
    try:
        workbook = openpyxl.load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError, ValueError) as e:
        raise ExcelFileError(f"Fichier Excel illisible: {e}") from e
    if not workbook.worksheets:
        raise ExcelFileError("Le fichier Excel est vide")
    return workbook, workbook.worksheets[0]


def _header_row(sheet) -> List[str]:
    first = next(sheet.iter_rows(min_row=1, max_row=1, values_only=True), None)
    if first is None:
        return []
    return [str(v).strip() if v is not None else "" for v in first]


def read_headers(content: bytes) -> List[str]:
    """En-têtes non vides de la première ligne"""
    workbook, sheet = _load_sheet(content)
    try:
        return [h for h in _header_row(sheet) if h]
    finally:
        workbook.close()


def iter_rows(content: bytes) -> Iterator[Tuple[int, Dict[str, Any]]]:
    """
    (numéro de ligne Excel, {en-tête: valeur}) pour chaque ligne de données.
    Les lignes entièrement vides sont ignorées.
    """
    workbook, sheet = _load_sheet(content)
    try:
        headers = _header_row(sheet)
        if not any(headers):
            raise ExcelFileError("Le fichier Excel est vide")

        for row_number, values in enumerate(sheet.iter_rows(min_row=2, values_only=True), start=2):
            if all(v is None or (isinstance(v, str) and not v.strip()) for v in values):
                continue
            row = {}
            for header, value in zip(headers, values):
                if header:
                    row[header] = value
            yield row_number, row
    finally:
        workbook.close()


def read_rows(content: bytes) -> List[Tuple[int, Dict[str, Any]]]:
    return list(iter_rows(content))


def build_workbook(sheets: List[Tuple[str, List[str], List[list]]]) -> bytes:
    """
    Classeur .xlsx en mémoire.
    sheets: [(titre, en-têtes, lignes)]
    """
    workbook = openpyxl.Workbook()
    workbook.remove(workbook.active)
    for title, headers, rows in sheets:
        sheet = workbook.create_sheet(title=title[:31])
        sheet.append(headers)
        for row in rows:
            sheet.append(row)
        for index, header in enumerate(headers, start=1):
            width = max([len(str(header))] + [len(str(r[index - 1])) for r in rows if len(r) >= index and r[index - 1] is not None])
            sheet.column_dimensions[get_column_letter(index)].width = min(max(width + 2, 12), 50)
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()
