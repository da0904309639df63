import csv
import io
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import List, Dict, Tuple, Optional, Iterator, Any


# Field -> header keywords, most specific first. Covers both the
# "Online Retail" (InvoiceNo, UnitPrice, CustomerID) and "Online Retail II"
# (Invoice, Price, Customer ID) exports.
COLUMN_KEYWORDS = {
    'invoice_no': ['invoiceno', 'invoice_no', 'invoice no', 'invoice'],
    'stock_code': ['stockcode', 'stock_code', 'stock code', 'sku'],
    'description': ['description', 'desc'],
    'quantity': ['quantity', 'qty'],
    'invoice_date': ['invoicedate', 'invoice_date', 'invoice date', 'date'],
    'unit_price': ['unitprice', 'unit_price', 'unit price', 'price'],
    'customer_id': ['customerid', 'customer_id', 'customer id', 'customer'],
    'country': ['country'],
}

REQUIRED_FIELDS = ('invoice_no', 'stock_code', 'quantity', 'invoice_date', 'unit_price')

DATE_FORMATS = (
    '%Y-%m-%d %H:%M:%S',
    '%Y-%m-%d %H:%M',
    '%m/%d/%Y %H:%M',
    '%d/%m/%Y %H:%M',
    '%Y-%m-%d',
)


def detect_column_mapping(headers: List[str]) -> Dict[str, str]:
    """
    Map CSV columns to retail line fields.

    Exact (normalized) header matches win over substring matches, so that
    "InvoiceDate" is never taken for the invoice number column.

    Args:
        headers: List of column names from CSV header

    Returns:
        Dictionary mapping our field names to CSV column names
    """
    normalized_headers = {h.strip().lower(): h for h in headers}
    mapping = {}
    taken = set()

    for field, keywords in COLUMN_KEYWORDS.items():
        for keyword in keywords:
            if keyword in normalized_headers and keyword not in taken:
                mapping[field] = normalized_headers[keyword]
                taken.add(keyword)
                break

    for field, keywords in COLUMN_KEYWORDS.items():
        if field in mapping:
            continue
        for keyword in keywords:
            for header_key, original_header in normalized_headers.items():
                if header_key not in taken and keyword in header_key:
                    mapping[field] = original_header
                    taken.add(header_key)
                    break
            if field in mapping:
                break

    return mapping


def detect_delimiter(text_content: str) -> str:
    first_line = text_content.split('\n', 1)[0]
    if '\t' in first_line:
        return '\t'
    if ';' in first_line and ',' not in first_line:
        return ';'
    return ','


def parse_csv_file_streaming(file_content: bytes, delimiter: Optional[str] = None) -> Iterator[Dict[str, Any]]:
    """
    Parse CSV file content as a generator, yielding raw (string) field values.

    Args:
        file_content: Bytes content of the CSV file
        delimiter: CSV delimiter (None = auto-detect)

    Yields:
        Dictionary with row_number plus every mapped retail field
    """
    text_content = file_content.decode('utf-8-sig')
    text_content = text_content.replace('\r\n', '\n').replace('\r', '\n')

    if delimiter is None:
        delimiter = detect_delimiter(text_content)

    reader = csv.DictReader(io.StringIO(text_content), delimiter=delimiter)
    column_mapping = detect_column_mapping(reader.fieldnames or [])

    for row_num, row in enumerate(reader, start=2):  # Header is row 1
        values = {k: (v.strip() if v else '') for k, v in row.items() if k is not None}

        # Skip empty rows
        if not any(values.values()):
            continue

        parsed = {'row_number': row_num}
        for field, header in column_mapping.items():
            parsed[field] = values.get(header, '')
        yield parsed


def parse_invoice_date(value: str) -> datetime:
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    raise ValueError(f"Unrecognised invoice date '{value}'")


def validate_retail_row(row: Dict[str, Any]) -> Tuple[bool, Optional[str], Optional[Dict[str, Any]]]:
    """
    Validate and convert a raw retail row.

    Sign checks are left to the database triggers; this only checks
    presence and shape.

    Returns:
        Tuple of (is_valid, error_message, converted_row)
    """
    for field in REQUIRED_FIELDS:
        if not row.get(field):
            return False, f"{field} is required", None

    if len(row['invoice_no']) > 20:
        return False, "invoice_no exceeds 20 characters", None

    if len(row['stock_code']) > 20:
        return False, "stock_code exceeds 20 characters", None

    try:
        quantity = int(row['quantity'])
    except ValueError:
        return False, f"quantity '{row['quantity']}' is not an integer", None

    try:
        unit_price = Decimal(row['unit_price'])
    except InvalidOperation:
        return False, f"unit_price '{row['unit_price']}' is not numeric", None

    try:
        invoice_date = parse_invoice_date(row['invoice_date'])
    except ValueError as e:
        return False, str(e), None

    customer_id = None
    if row.get('customer_id'):
        try:
            # Exports often carry customer ids as floats ("13085.0")
            customer_id = int(float(row['customer_id']))
        except (ValueError, OverflowError):
            return False, f"customer_id '{row['customer_id']}' is not numeric", None

    return True, None, {
        'invoice_no': row['invoice_no'],
        'stock_code': row['stock_code'],
        'description': row.get('description') or None,
        'quantity': quantity,
        'invoice_date': invoice_date,
        'unit_price': unit_price,
        'customer_id': customer_id,
        'country': row.get('country') or None,
    }
