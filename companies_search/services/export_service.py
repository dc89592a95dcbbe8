"""
Export service for CSV, Excel and JSON files
"""
import io
import csv
import json
from typing import List, Dict, Any, Optional, Sequence
import pandas as pd
from openpyxl.utils import get_column_letter

from companies_search.models import CompanyRecord
from companies_search.utils.sic_codes import get_sic_description

EXPORT_COLUMNS = [
    'company_name', 'company_number', 'status', 'type',
    'sic_codes', 'sic_descriptions', 'incorporation_date',
    'locality', 'postal_code', 'region', 'country',
]

COLUMN_NAMES = {
    'company_name': 'Company Name',
    'company_number': 'Company Number',
    'status': 'Status',
    'type': 'Type',
    'sic_codes': 'SIC Codes',
    'sic_descriptions': 'SIC Descriptions',
    'incorporation_date': 'Incorporation Date',
    'locality': 'Locality',
    'postal_code': 'Postal Code',
    'region': 'Region',
    'country': 'Country',
}


def company_to_row(company: CompanyRecord) -> Dict[str, Any]:
    """Flatten a company into one export row."""
    office = company.registered_office
    return {
        'company_name': company.company_name,
        'company_number': company.company_number,
        'status': company.status,
        'type': company.type,
        'sic_codes': '; '.join(company.sic_codes),
        'sic_descriptions': '; '.join(get_sic_description(code) for code in company.sic_codes),
        'incorporation_date': company.incorporation_date.isoformat() if company.incorporation_date else '',
        'locality': office.locality or '',
        'postal_code': office.postal_code or '',
        'region': office.region or '',
        'country': office.country or '',
    }


def export_to_csv(
    companies: Sequence[CompanyRecord],
    columns: Optional[List[str]] = None,
    column_names: Optional[Dict[str, str]] = None
) -> io.BytesIO:
    """
    Export companies to CSV format.
    Returns a BytesIO object containing the CSV data.

    Args:
        companies: Companies to export
        columns: Optional list of columns to include (in order)
        column_names: Optional dict mapping column keys to display names
    """
    headers = columns or EXPORT_COLUMNS
    names = column_names if column_names is not None else COLUMN_NAMES
    display_headers = [names.get(h, h) for h in headers]

    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(display_headers)

    for company in companies:
        row = company_to_row(company)
        writer.writerow([row.get(col, '') for col in headers])

    bytes_output = io.BytesIO()
    bytes_output.write(output.getvalue().encode('utf-8-sig'))  # UTF-8 with BOM for Excel compatibility
    bytes_output.seek(0)

    return bytes_output


def export_to_excel(
    companies: Sequence[CompanyRecord],
    columns: Optional[List[str]] = None,
    column_names: Optional[Dict[str, str]] = None,
    sheet_name: str = "Companies"
) -> io.BytesIO:
    """
    Export companies to Excel format.
    Returns a BytesIO object containing the Excel data.
    """
    headers = columns or EXPORT_COLUMNS
    names = column_names if column_names is not None else COLUMN_NAMES

    if not companies:
        output = io.BytesIO()
        df = pd.DataFrame({"Message": ["No data to export"]})
        df.to_excel(output, index=False, sheet_name=sheet_name)
        output.seek(0)
        return output

    data = [{col: row.get(col, '') for col in headers} for row in map(company_to_row, companies)]
    df = pd.DataFrame(data, columns=headers).rename(columns=names)

    output = io.BytesIO()
    with pd.ExcelWriter(output, engine='openpyxl') as writer:
        df.to_excel(writer, index=False, sheet_name=sheet_name)

        # Auto-adjust column widths
        worksheet = writer.sheets[sheet_name]
        for idx, col in enumerate(df.columns):
            max_length = max(
                df[col].astype(str).map(len).max(),
                len(str(col))
            ) + 2
            # Cap at 50 characters
            max_length = min(max_length, 50)
            worksheet.column_dimensions[get_column_letter(idx + 1)].width = max_length

    output.seek(0)
    return output


def export_to_json(companies: Sequence[CompanyRecord]) -> io.BytesIO:
    payload = [company.model_dump(mode='json') for company in companies]
    output = io.BytesIO(json.dumps(payload, indent=2).encode('utf-8'))
    output.seek(0)
    return output
