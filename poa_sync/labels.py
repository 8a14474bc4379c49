"""
POA template labels – deterministic mapping from the left-cell label text of
the approval email's response table to canonical record fields, plus the
fixed destination schemas (headers, column widths, category colors).
"""

# Placeholder stored for any field the template did not yield.
SENTINEL = "Not Found"

# Left-cell label (trimmed, verbatim) -> ActivityRecord field
ACTIVITY_LABELS: dict[str, str] = {
    "Title of Activity:": "title",
    "Name of Organization:": "organization",
    "Start Date of Implementation:": "start_date_raw",
    "End Date of Implementation:": "end_date_raw",
    "Rationale/Brief Description:": "description",
    "Time of Implementation:": "time",
    "Venue/Platform:": "venue",
    "Type of Implementation (Online -Social Media Posting; Google Meet; Zoom etc)/Face to Face:":
        "implementation_type",
}

# Extra labels only the rich extractor reads.  Some carry a doubled colon
# in the live template; both spellings are accepted.
REQUEST_LABELS: dict[str, str] = {
    **ACTIVITY_LABELS,
    "Requestor:": "requestor_email",
    "E-mail Address:": "email_address",
    "Target Participants:": "target_participants",
    "Target Number of Participants:": "target_participant_count",
    "Estimated Activity Cost:": "estimated_cost",
    "UNSDG:": "unsdg",
    "Objectives:": "objectives",
    "Mechanics/Guidelines:": "mechanics",
    "Name of Speakers:": "speakers",
    "Program Flow:": "program_flow",
    "Budget Breakdown:": "budget_breakdown",
    "Budget Charging (CSAO Depository or Student Collection):": "budget_charging",
    "List of Facilitators and Participants:": "participants",
    "Letter of Invitation (If any) Sample Design/PubMaterial/Sample Video:": "invitation_links",
    "Prepared by:": "prepared_by",
    "FBName:": "fb_name",
    "Position/Designation:": "position",
}

# Fields the rich extractor splits on <br> into lists
LIST_FIELDS = frozenset({"objectives", "mechanics", "speakers", "participants"})


def normalise_label(text: str) -> str:
    """Collapse whitespace and trailing doubled colons (``"Prepared by::"``)."""
    text = " ".join(text.split())
    while text.endswith("::"):
        text = text[:-1]
    return text


# ------------------------------------------------------------------
# Destination schemas
# ------------------------------------------------------------------
MONTHLY_HEADERS = [
    "Categories", "Name Of Organization", "Title Of Activity", "Description",
    "Start Date Of Implementation", "End Date Of Implementation", "Time",
    "Venue", "Type Of Activity", "Link Of Approved POA", "Narrative Report",
]
LOG_HEADERS = ["Timestamp", "Message ID", "Status", "Organization", "Title"]

LINK_COLUMN = 9
DESCRIPTION_COLUMN = 3
LINK_TEXT = "PDF LINK"

# (start_col, end_col_exclusive, pixel_width)
MONTHLY_COLUMN_WIDTHS = [
    (0, 1, 180), (1, 2, 250), (2, 3, 350), (3, 4, 500),
    (4, 6, 180), (6, 8, 230), (8, 11, 250),
]
LOG_COLUMN_WIDTHS = [
    (0, 1, 220), (1, 2, 200), (2, 3, 170), (3, 4, 250), (4, 5, 350),
]

HEADER_BACKGROUND = {"red": 0.259, "green": 0.522, "blue": 0.957}
HEADER_FOREGROUND = {"red": 1.0, "green": 1.0, "blue": 1.0}
DATA_ROW_HEIGHT = 160

# Column-0 category enumeration -> (background, foreground)
CATEGORY_COLORS: dict[str, tuple[dict, dict]] = {
    "UNSET": ({"red": 0.878, "green": 0.878, "blue": 0.878},
              {"red": 0.0, "green": 0.0, "blue": 0.0}),
    "SPIN": ({"red": 0.733, "green": 0.871, "blue": 0.984},
             {"red": 0.051, "green": 0.278, "blue": 0.631}),
    "SCRO": ({"red": 1.0, "green": 0.878, "blue": 0.698},
             {"red": 0.902, "green": 0.318, "blue": 0.0}),
    "PROF": ({"red": 0.784, "green": 0.902, "blue": 0.788},
             {"red": 0.106, "green": 0.369, "blue": 0.125}),
}
CATEGORY_VALUES = list(CATEGORY_COLORS)

# Audit-log status strings
LOG_STATUS_PROCESSED = "Processed"
LOG_STATUS_HELD = "Held (dates needed)"
LOG_STATUS_ERROR = "Error"
