from __future__ import annotations

import io
import json
import logging
import math
import re
import time
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

import pdfplumber

logger = logging.getLogger(__name__)

SEMESTERS = [
    "1st Semester",
    "2nd Semester",
    "3rd Semester",
    "4th Semester",
    "5th Semester",
    "6th Semester",
    "7th Semester",
    "8th Semester",
]
NOTE_SEMESTERS = SEMESTERS[:7]
SHIFTS = ["Morning", "Day"]
STUDENT_GROUPS = ["A", "B"]
GENDERS = ["Male", "Female"]

NOTICE_CATEGORIES = ["General", "Academic", "Event"]
PUBLISH_STATUSES = ["published", "draft"]
EXAM_NAMES = ["Class Test", "Quiz Test", "Midterm Exam"]
FACULTY_TITLES = [
    "Head of Department (Day)",
    "Head of Department (Morning)",
    "Instructor",
    "Junior Instructor",
    "Guest Teacher",
    "Staff",
]

DEFAULT_MALE_AVATAR = "https://i.postimg.cc/6QKTH6ds/male.jpg"
DEFAULT_FEMALE_AVATAR = "https://i.postimg.cc/zfkv4mjn/female.jpg"

CONTENT_BLOCKS = {
    "admissions_info": "Admissions Information",
    "programming_club": "DPI Programming Club",
    "exam_schedules": "Exam Schedules",
}

ICONS = [
    "analytics", "api", "app_shortcut", "apps", "architecture", "auto_awesome",
    "backup", "bar_chart", "biotech", "bolt", "book", "browse", "brush", "bug_report",
    "build", "business_center", "cable", "calculate", "chip", "circuit_board",
    "cloud", "code", "code_blocks", "commit", "computer", "connected_tv", "construction",
    "cpu", "css", "data_array", "data_object", "database", "deployed_code",
    "design_services", "desktop_windows", "developer_board", "developer_mode", "devices",
    "dns", "draw", "edit_note", "engineering", "fact_check", "factory", "functions",
    "gesture", "grid_view", "group_work", "hardware", "home_work", "html", "http", "hub",
    "important_devices", "integration_instructions", "javascript", "lab_profile", "lan",
    "laptop_chromebook", "laptop_mac", "layers", "lightbulb", "local_library", "memory",
    "model_training", "monitoring", "network_check", "neurology", "palette", "power",
    "psychology", "public", "query_stats", "quiz", "robotics", "router", "school",
    "science", "sdk", "security", "settings_ethernet", "shapes", "share", "smart_toy",
    "smartphone", "source_environment", "square_foot", "storage", "store", "tablet_mac",
    "terminal", "web", "web_asset", "widgets", "wifi", "work",
]

SETTING_KEYS = [
    "institute_name", "department_name", "address", "contact_email", "contact_phone",
    "facebook_url", "twitter_url", "github_url", "site_logo_url",
    "hod_day_message", "hod_morning_message",
    "vision_statement", "mission_statement", "about_department_text",
    "department_facilities", "department_achievements",
    "hero_home_image_url", "hero_home_title", "hero_home_subtitle",
    "welcome_home_title", "welcome_home_subtitle",
    "hero_about_image_url", "hero_about_title", "hero_about_subtitle",
    "hero_academic_image_url", "hero_academic_title", "hero_academic_subtitle",
    "hero_events_image_url", "hero_events_title", "hero_events_subtitle",
]
IMAGE_SETTING_KEYS = [key for key in SETTING_KEYS if key == "site_logo_url" or key.endswith("_image_url")]
JSON_SETTING_KEYS = {"department_facilities", "department_achievements"}
TEXTAREA_SETTING_KEYS = {
    "address",
    "hod_day_message",
    "hod_morning_message",
    "vision_statement",
    "mission_statement",
    "about_department_text",
    "hero_home_subtitle",
    "welcome_home_subtitle",
    "hero_about_subtitle",
    "hero_academic_subtitle",
    "hero_events_subtitle",
}

ALUMNI_SETTING_KEYS = [
    "alumni_display_image",
    "alumni_facebook_url",
    "alumni_whatsapp_url",
    "alumni_discord_url",
]

PREDEFINED_FACILITIES = [
    {"key": "computer_labs", "icon": "laptop_chromebook", "title": "Computer Labs",
     "description": "State-of-the-art labs with the latest hardware and software."},
    {"key": "networking_lab", "icon": "router", "title": "Networking Lab",
     "description": "Advanced equipment for networking and cybersecurity training."},
    {"key": "library", "icon": "local_library", "title": "Department Library",
     "description": "A vast collection of books, journals, and digital resources."},
    {"key": "iot_lab", "icon": "hub", "title": "IoT Lab",
     "description": "Explore the Internet of Things with modern sensors and devices."},
    {"key": "mpmc_lab", "icon": "memory", "title": "MPMC Lab",
     "description": "Microprocessor & Microcontroller programming and interfacing."},
    {"key": "hardware_lab", "icon": "hardware", "title": "Hardware Lab",
     "description": "Hands-on experience with computer hardware and peripherals."},
    {"key": "wifi_zone", "icon": "wifi", "title": "Wi-Fi Zone",
     "description": "Campus-wide high-speed wireless internet connectivity."},
    {"key": "binary_shop", "icon": "store", "title": "Binary Shop",
     "description": "A student-run shop for tech essentials and repairs."},
]
ACHIEVEMENT_ICON = "emoji_events"

GROUP_SEPARATOR = "___"
SESSION_NAME_RE = re.compile(r"^\d{4}-\d{4}$")
LEADING_TIMESTAMP_RE = re.compile(r"^\d{13}_")

# Known layouts of the board's result PDFs.
RESULT_FORMAT_PATTERNS = (
    re.compile(r"\bgpa\d:"),
    re.compile(r"\b\d{6,}\s*\(\s*[\d.]+\s*\)"),
    re.compile(r"\b\d{6,}\s*\{[^{}]+\}"),
)


class ValidationError(Exception):
    """Raised when submitted data fails the dashboard's checks."""


@dataclass
class ResourceFile:
    id: int
    image_url: str
    file_path: str


@dataclass
class NoteGroup:
    group_id: str
    title: str
    semester: str
    images: list[ResourceFile] = field(default_factory=list)
    pdf: ResourceFile | None = None

    @property
    def files(self) -> list[ResourceFile]:
        return self.images + ([self.pdf] if self.pdf else [])


@dataclass
class PastPaper:
    id: int
    semester: str
    image_url: str
    file_path: str
    title: str


def now_millis() -> int:
    return int(time.time() * 1000)


def safe_title(title: str) -> str:
    cleaned = re.sub(r"[^a-zA-Z0-9\s-]", "", title)
    return re.sub(r"\s", "_", cleaned)


def safe_file_name(name: str) -> str:
    return re.sub(r"[^a-zA-Z0-9.]", "_", name)


def semester_slug(semester: str) -> str:
    return semester.replace(" ", "_")


def file_extension(name: str) -> str:
    return name.rsplit(".", 1)[-1]


def note_file_path(semester: str, title: str, group_id: str, file_name: str) -> str:
    return (
        f"notes/{semester_slug(semester)}/"
        f"{safe_title(title)}{GROUP_SEPARATOR}{group_id}{GROUP_SEPARATOR}{safe_file_name(file_name)}"
    )


def past_paper_path(semester: str, title: str, millis: int | None = None) -> str:
    stamp = millis if millis is not None else now_millis()
    return f"past_papers/{semester_slug(semester)}/{safe_title(title)}{GROUP_SEPARATOR}{stamp}.pdf"


def syllabus_path(semester: str, kind: str, file_name: str) -> str:
    return f"syllabus/{semester_slug(semester)}_{kind}.{file_extension(file_name)}"


def routine_path(semester: str, shift: str, group: str, file_name: str) -> str:
    return f"routines/{semester_slug(semester)}_{shift}_{group}.{file_extension(file_name)}"


def final_result_path(session_name: str) -> str:
    return f"final_results/{session_name}.pdf"


def timestamped_path(file_name: str, millis: int | None = None) -> str:
    stamp = millis if millis is not None else now_millis()
    return f"{stamp}-{safe_file_name(file_name)}"


def event_image_path(file_name: str, millis: int | None = None) -> str:
    stamp = millis if millis is not None else now_millis()
    return f"events/{stamp}.{file_extension(file_name)}"


def gallery_image_path(file_name: str, millis: int | None = None) -> str:
    stamp = millis if millis is not None else now_millis()
    return f"gallery/{stamp}-{file_name}"


def alumni_image_path(file_name: str, millis: int | None = None) -> str:
    stamp = millis if millis is not None else now_millis()
    return f"alumni/display-image-{stamp}.{file_extension(file_name)}"


def setting_image_path(key: str, millis: int | None = None) -> str:
    stamp = millis if millis is not None else now_millis()
    return f"site-assets/{key}-{stamp}"


def attachment_kind(mime: str | None) -> str:
    return "image" if (mime or "").startswith("image/") else "pdf"


def title_from_path(file_path: str) -> str:
    filename = file_path.split("/")[-1]
    name_parts = filename.split(GROUP_SEPARATOR)
    if len(name_parts) > 1:
        return name_parts[0].replace("_", " ")
    stem = filename[: filename.rfind(".")] if "." in filename else filename
    return LEADING_TIMESTAMP_RE.sub("", stem)


def group_academic_resources(
    rows: Iterable[Mapping[str, Any]],
) -> tuple[dict[str, list[NoteGroup]], dict[str, list[PastPaper]]]:
    """Rebuild note groups and past papers from flat ``academic_resources`` rows.

    Note files carry their group in the storage path:
    ``<title>___<group id>___<file name>``. Rows of type ``note`` that do not
    follow that layout are skipped.
    """
    notes: dict[str, dict[str, NoteGroup]] = {}
    papers: dict[str, list[PastPaper]] = {}

    for row in rows:
        file_path = row["file_path"] or ""
        filename = file_path.split("/")[-1]
        name_parts = filename.split(GROUP_SEPARATOR)
        title = title_from_path(file_path)
        semester = row["semester"]

        if row["resource_type"] == "note" and len(name_parts) > 2:
            group_id = name_parts[1]
            groups = notes.setdefault(semester, {})
            group = groups.get(group_id)
            if group is None:
                group = NoteGroup(group_id=group_id, title=title, semester=semester)
                groups[group_id] = group
            resource = ResourceFile(id=row["id"], image_url=row["image_url"], file_path=file_path)
            if file_path.lower().endswith(".pdf"):
                group.pdf = resource
            else:
                group.images.append(resource)
        elif row["resource_type"] == "past_paper":
            papers.setdefault(semester, []).append(
                PastPaper(
                    id=row["id"],
                    semester=semester,
                    image_url=row["image_url"],
                    file_path=file_path,
                    title=title,
                )
            )
        else:
            logger.debug("Skipping resource %s with unrecognised path %s", row["id"], file_path)

    return {semester: list(groups.values()) for semester, groups in notes.items()}, papers


def filter_students(
    students: Iterable[Mapping[str, Any]],
    search: str = "",
    semester: str = "all",
    shift: str = "all",
) -> list[Mapping[str, Any]]:
    search_lower = search.lower()
    matched = []
    for student in students:
        name_match = search_lower in (student["name"] or "").lower()
        roll_match = search in (student["roll"] or "")
        semester_match = semester == "all" or student["semester"] == semester
        shift_match = shift == "all" or student["shift"] == shift
        if (name_match or roll_match) and semester_match and shift_match:
            matched.append(student)
    return matched


def filter_notices(
    notices: Iterable[Mapping[str, Any]],
    search: str = "",
    category: str = "all",
    status: str = "all",
) -> list[Mapping[str, Any]]:
    search_lower = search.lower()
    matched = []
    for notice in notices:
        text_match = (
            search_lower in (notice["title"] or "").lower()
            or search_lower in (notice["content"] or "").lower()
        )
        category_match = category == "all" or notice["category"] == category
        status_match = status == "all" or notice["status"] == status
        if text_match and category_match and status_match:
            matched.append(notice)
    return matched


def filter_other_results(
    results: Iterable[Mapping[str, Any]],
    search: str = "",
    exam_name: str = "all",
    semester: str = "all",
) -> list[Mapping[str, Any]]:
    search_lower = search.lower()
    matched = []
    for result in results:
        if search:
            search_match = (
                search_lower in (result["student_name"] or "").lower()
                or search_lower in (result["roll_number"] or "")
            )
        else:
            search_match = True
        exam_match = exam_name == "all" or result["exam_name"] == exam_name
        semester_match = semester == "all" or result["semester"] == semester
        if search_match and exam_match and semester_match:
            matched.append(result)
    return matched


def categorize_faculty(members: Iterable[Mapping[str, Any]]) -> dict[str, list[Mapping[str, Any]]]:
    categories: dict[str, list[Mapping[str, Any]]] = {
        "Heads of Department": [],
        "Instructors": [],
        "Junior Instructors": [],
        "Guest Teachers": [],
        "Staff": [],
    }
    for member in members:
        title = member["title"] or ""
        if "Head of Department" in title:
            categories["Heads of Department"].append(member)
        elif title == "Instructor":
            categories["Instructors"].append(member)
        elif title == "Junior Instructor":
            categories["Junior Instructors"].append(member)
        elif title == "Guest Teacher":
            categories["Guest Teachers"].append(member)
        elif title == "Staff":
            categories["Staff"].append(member)
    return categories


def default_avatar(gender: str) -> str:
    return DEFAULT_FEMALE_AVATAR if gender == "Female" else DEFAULT_MALE_AVATAR


def is_valid_session_name(name: str) -> bool:
    return bool(SESSION_NAME_RE.match(name.strip()))


def extract_pdf_text(content: bytes) -> str:
    try:
        with pdfplumber.open(io.BytesIO(content)) as pdf:
            pages = [page.extract_text() or "" for page in pdf.pages]
    except Exception as exc:
        logger.warning("PDF text extraction failed: %s", exc)
        raise ValidationError("The uploaded file could not be read as a PDF.") from exc
    return " ".join(pages)


def matches_result_format(text: str) -> bool:
    collapsed = re.sub(r"\s+", " ", text)
    return any(pattern.search(collapsed) for pattern in RESULT_FORMAT_PATTERNS)


def validate_result_pdf(content: bytes) -> None:
    text = extract_pdf_text(content)
    if not matches_result_format(text):
        raise ValidationError(
            'PDF content does not match any known result format. It should contain either the old '
            'format (e.g., "gpa1: 3.50") or the new format (e.g., "123456 (3.47)" or '
            '"123456 { 25711(T) }").'
        )


def parse_subjects(names: list[str], marks: list[str], totals: list[str]) -> list[dict[str, Any]]:
    subjects: list[dict[str, Any]] = []
    for index, name in enumerate(names):
        obtained_raw = (marks[index] if index < len(marks) else "").strip()
        total_raw = (totals[index] if index < len(totals) else "").strip()
        if not name.strip() and not obtained_raw and not total_raw:
            # blank spare row
            continue
        if not name.strip():
            raise ValidationError("All subject names must be filled out.")
        try:
            obtained = _to_number(obtained_raw or "0")
            total = _to_number(total_raw or "100")
        except ValueError as exc:
            raise ValidationError(f"Marks for {name.strip()} must be numbers.") from exc
        subjects.append({"subject_name": name.strip(), "marks_obtained": obtained, "total_marks": total})

    if not subjects:
        raise ValidationError("Add at least one subject.")
    return subjects


def _to_number(raw: str) -> int | float:
    value = float(raw)
    if not math.isfinite(value):
        raise ValueError(f"not a finite number: {raw!r}")
    return int(value) if value.is_integer() else value


def load_json_list(raw: str | None) -> list[Any]:
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        return []
    return value if isinstance(value, list) else []


def dump_json_list(items: list[Any]) -> str:
    return json.dumps(items, indent=2)


def format_key_label(key: str) -> str:
    return key.replace("_", " ").title()
