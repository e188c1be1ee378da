from io import BytesIO

import openpyxl
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

EXPORT_HEADERS = [
    "Abstract No", "Submission Date", "Presenter Name", "Email ID", "Mobile No",
    "Abstract Title", "Co-Author Name", "Institution Name", "Registration ID",
    "Status", "Category", "Category Bucket", "File Status", "File Size (MB)",
    "Abstract Content",
]

_HEADER_FILL = PatternFill(start_color="1F4E78", end_color="1F4E78", fill_type="solid")


def _file_size_mb(abstract):
    total = sum(f.file_size or 0 for f in abstract.files) or (abstract.file_size or 0)
    return round(total / (1024 * 1024), 2) if total else ""


def create_abstracts_excel(abstracts):
    """Create the master sheet workbook for the given abstracts"""
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Abstracts Master Sheet"

    for col_num, header in enumerate(EXPORT_HEADERS, 1):
        cell = ws.cell(row=1, column=col_num, value=header)
        cell.font = Font(bold=True, color="FFFFFF")
        cell.fill = _HEADER_FILL
        cell.alignment = Alignment(horizontal="center", vertical="center")

    for row_num, abstract in enumerate(abstracts, 2):
        user = abstract.user
        row_data = [
            abstract.abstract_number,
            abstract.submission_date.strftime("%Y-%m-%d %H:%M") if abstract.submission_date else "",
            abstract.presenter_name,
            user.email if user else "",
            user.phone if user else "",
            abstract.title,
            abstract.co_authors,
            abstract.institution_name,
            abstract.registration_id or (user.registration_id if user else ""),
            abstract.effective_status.upper(),
            abstract.category or abstract.presentation_type,
            abstract.bucket,
            "Available" if abstract.has_file else "Missing",
            _file_size_mb(abstract),
            abstract.abstract_content,
        ]
        for col_num, value in enumerate(row_data, 1):
            cell = ws.cell(row=row_num, column=col_num, value=value if value is not None else "")
            cell.alignment = Alignment(horizontal="left", vertical="top", wrap_text=True)

    # Auto-adjust column widths
    for column in ws.columns:
        column_letter = get_column_letter(column[0].column)
        max_length = max(len(str(cell.value or "")) for cell in column)
        ws.column_dimensions[column_letter].width = min(max_length + 2, 50)  # Limit max width to 50

    ws.freeze_panes = "A2"
    return wb


def workbook_bytes(wb) -> BytesIO:
    buffer = BytesIO()
    wb.save(buffer)
    buffer.seek(0)
    return buffer
