"""
Bank statement CSV reader.
Turns an exported statement into rows of the raw import format without
assuming a bank-specific template.
"""

import csv
import io
from dataclasses import dataclass, field
from typing import List, Optional, Dict, Any, Sequence

import structlog

from ..utils.text_similarity import normalize_text
from .row_schema import parse_amount, parse_direction

logger = structlog.get_logger()


@dataclass
class ColumnMapping:
    """Detected column mapping for a bank statement export."""
    date_col: Optional[str] = None
    label_col: Optional[str] = None
    amount_col: Optional[str] = None
    debit_col: Optional[str] = None
    credit_col: Optional[str] = None
    reference_col: Optional[str] = None
    direction_col: Optional[str] = None
    value_date_col: Optional[str] = None

    @property
    def has_amount(self) -> bool:
        return bool(self.amount_col or self.debit_col or self.credit_col)

    @property
    def is_complete(self) -> bool:
        return bool(self.date_col and self.label_col and self.has_amount)


@dataclass
class StatementFile:
    """Result of reading a statement export."""
    headers: List[str]
    mapping: ColumnMapping
    rows: List[Dict[str, Any]]
    delimiter: str
    warnings: List[str] = field(default_factory=list)


class StatementCSVReader:
    """
    Reader for bank statement CSV exports (Attijariwafa, BMCE, Banque Populaire,
    CIH and generic layouts).

    The delimiter is taken from the header line and columns are matched by
    name, so a new bank layout usually needs no code change.
    """

    DELIMITERS = (";", "\t", ",")

    # Patterns are tried in priority order against normalized header names
    DATE_PATTERNS = ["date operation", "date op", "date comptable", "transaction date",
                     "booking date", "date", "jour", "dt"]
    VALUE_DATE_PATTERNS = ["date valeur", "value date", "valeur"]
    LABEL_PATTERNS = ["libelle", "description", "detail", "motif", "wording",
                      "narrative", "operation"]
    AMOUNT_PATTERNS = ["montant", "amount", "somme", "mouvement"]
    DEBIT_PATTERNS = ["debit"]
    CREDIT_PATTERNS = ["credit"]
    REFERENCE_PATTERNS = ["reference", "ref", "numero", "piece", "id"]
    DIRECTION_PATTERNS = ["sens", "direction", "type", "nature"]

    def read(self, text: str, mapping: Optional[ColumnMapping] = None) -> StatementFile:
        """
        Read a CSV statement.

        Args:
            text: Full CSV content
            mapping: Explicit column mapping, detected from headers when omitted

        Returns:
            StatementFile with rows ready for import
        """
        text = text.lstrip("\ufeff")
        lines = [line for line in text.splitlines() if line.strip()]
        if not lines:
            return StatementFile(headers=[], mapping=ColumnMapping(), rows=[], delimiter=",",
                                 warnings=["Empty file"])

        delimiter = self.detect_delimiter(lines[0])
        reader = csv.DictReader(io.StringIO("\n".join(lines)), delimiter=delimiter)
        headers = [h.strip() for h in (reader.fieldnames or [])]
        reader.fieldnames = headers

        records = list(reader)
        warnings = []

        if mapping is None:
            mapping = self.detect_mapping(headers)
            # "Type" or "Nature" often lists operation kinds (Virement, Prélèvement)
            if mapping.direction_col and not self._holds_directions(records, mapping.direction_col):
                warnings.append(
                    f"Column {mapping.direction_col!r} does not hold debit/credit values; "
                    "using the amount sign instead"
                )
                mapping.direction_col = None

        if not mapping.is_complete:
            warnings.append(
                f"Incomplete column mapping: date={mapping.date_col}, "
                f"label={mapping.label_col}, amount={mapping.amount_col or mapping.debit_col or mapping.credit_col}"
            )

        rows = [self._to_raw_row(record, mapping) for record in records]

        logger.info(
            "Statement CSV read",
            rows=len(rows),
            delimiter=repr(delimiter),
            mapping_complete=mapping.is_complete,
        )

        return StatementFile(
            headers=headers,
            mapping=mapping,
            rows=rows,
            delimiter=delimiter,
            warnings=warnings,
        )

    def detect_delimiter(self, header_line: str) -> str:
        for delimiter in self.DELIMITERS:
            if delimiter in header_line:
                return delimiter
        return ","

    def detect_mapping(self, headers: Sequence[str]) -> ColumnMapping:
        """Match header names against known French and English patterns."""
        normalized = {h: normalize_text(h) for h in headers}
        used: set = set()

        def find(patterns: List[str], exclude: Sequence[str] = ()) -> Optional[str]:
            for pattern in patterns:
                for header in headers:
                    name = normalized[header]
                    if header in used or any(x in name for x in exclude):
                        continue
                    if pattern in name.split() or (" " in pattern and pattern in name) or name == pattern:
                        used.add(header)
                        return header
            # Fall back to substring matches ("libelle operation", "montantdh")
            for pattern in patterns:
                for header in headers:
                    name = normalized[header]
                    if header in used or any(x in name for x in exclude):
                        continue
                    if len(pattern) > 2 and pattern in name:
                        used.add(header)
                        return header
            return None

        mapping = ColumnMapping()
        mapping.value_date_col = find(self.VALUE_DATE_PATTERNS)
        mapping.date_col = find(self.DATE_PATTERNS, exclude=("valeur", "value"))
        mapping.amount_col = find(self.AMOUNT_PATTERNS)
        mapping.debit_col = find(self.DEBIT_PATTERNS)
        mapping.credit_col = find(self.CREDIT_PATTERNS)
        mapping.label_col = find(self.LABEL_PATTERNS)
        mapping.reference_col = find(self.REFERENCE_PATTERNS)
        mapping.direction_col = find(self.DIRECTION_PATTERNS)
        return mapping

    @staticmethod
    def _holds_directions(records: List[Dict[Optional[str], Any]], column: str) -> bool:
        for record in records:
            try:
                parse_direction((record.get(column) or "").strip() or None)
            except ValueError:
                return False
        return True

    def _to_raw_row(self, record: Dict[Optional[str], Any], mapping: ColumnMapping) -> Dict[str, Any]:
        def cell(column: Optional[str]) -> Optional[str]:
            if not column:
                return None
            value = record.get(column)
            if value is None:
                return None
            value = value.strip()
            return value or None

        row: Dict[str, Any] = {
            "date": cell(mapping.date_col),
            "label": cell(mapping.label_col),
            "bank_reference": cell(mapping.reference_col),
            "value_date": cell(mapping.value_date_col),
        }

        if mapping.amount_col:
            row["amount"] = cell(mapping.amount_col)
            direction = cell(mapping.direction_col)
            if direction:
                row["direction"] = direction
        else:
            row.update(self._split_amount(cell(mapping.debit_col), cell(mapping.credit_col)))

        return row

    def _split_amount(self, debit: Optional[str], credit: Optional[str]) -> Dict[str, Any]:
        """Collapse separate debit/credit columns into amount + direction."""
        for value, direction in ((debit, "debit"), (credit, "credit")):
            if value is None:
                continue
            try:
                cents, _ = parse_amount(value)
            except ValueError:
                # Let schema validation report the bad value
                return {"amount": value, "direction": direction}
            if cents != 0:
                return {"amount": value, "direction": direction}
        return {"amount": debit if debit is not None else credit}
