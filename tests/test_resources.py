import pytest

import resources
from resources import ValidationError
from conftest import build_pdf


def test_safe_names():
    assert resources.safe_title("Data Structures & Algo's (v2)") == "Data_Structures__Algos_v2"
    assert resources.safe_title("Mid-term\tNotes") == "Mid-term_Notes"
    assert resources.safe_file_name("my file (1).png") == "my_file__1_.png"


def test_storage_paths():
    assert resources.note_file_path("1st Semester", "Data Structures", "1700000000000", "page 1.png") == (
        "notes/1st_Semester/Data_Structures___1700000000000___page_1.png"
    )
    assert resources.past_paper_path("8th Semester", "Final 2022", millis=1700000000000) == (
        "past_papers/8th_Semester/Final_2022___1700000000000.pdf"
    )
    assert resources.syllabus_path("3rd Semester", "pdf", "syllabus.final.pdf") == "syllabus/3rd_Semester_pdf.pdf"
    assert resources.routine_path("2nd Semester", "Morning", "B", "r.JPG") == "routines/2nd_Semester_Morning_B.JPG"
    assert resources.final_result_path("2023-2024") == "final_results/2023-2024.pdf"
    assert resources.timestamped_path("CV photo.jpg", millis=5) == "5-CV_photo.jpg"
    assert resources.event_image_path("fest.webp", millis=9) == "events/9.webp"
    assert resources.alumni_image_path("a.png", millis=3) == "alumni/display-image-3.png"
    assert resources.setting_image_path("site_logo_url", millis=4) == "site-assets/site_logo_url-4"


def test_title_from_path():
    assert resources.title_from_path("notes/1st_Semester/Data_Structures___17___a.png") == "Data Structures"
    assert resources.title_from_path("past_papers/1st_Semester/Final_2022___17.pdf") == "Final 2022"
    assert resources.title_from_path("legacy/1700000000000_Old Paper.pdf") == "Old Paper"
    assert resources.title_from_path("legacy/README") == "README"


def test_group_academic_resources():
    rows = [
        {"id": 1, "semester": "1st Semester", "resource_type": "note",
         "image_url": "/u/1", "file_path": "notes/1st_Semester/Math___100___p1.png"},
        {"id": 2, "semester": "1st Semester", "resource_type": "note",
         "image_url": "/u/2", "file_path": "notes/1st_Semester/Math___100___full.PDF"},
        {"id": 3, "semester": "1st Semester", "resource_type": "note",
         "image_url": "/u/3", "file_path": "notes/1st_Semester/Math___100___p2.png"},
        {"id": 4, "semester": "1st Semester", "resource_type": "note",
         "image_url": "/u/4", "file_path": "notes/1st_Semester/Physics___200___p1.png"},
        {"id": 5, "semester": "2nd Semester", "resource_type": "note",
         "image_url": "/u/5", "file_path": "notes/2nd_Semester/stray.png"},
        {"id": 6, "semester": "2nd Semester", "resource_type": "past_paper",
         "image_url": "/u/6", "file_path": "past_papers/2nd_Semester/Final_2021___300.pdf"},
    ]

    notes, papers = resources.group_academic_resources(rows)

    math, physics = notes["1st Semester"]
    assert math.group_id == "100"
    assert math.title == "Math"
    assert [image.id for image in math.images] == [1, 3]
    assert math.pdf.id == 2
    assert [item.id for item in math.files] == [1, 3, 2]
    assert physics.pdf is None
    assert "2nd Semester" not in notes
    assert papers["2nd Semester"][0].title == "Final 2021"


def test_filter_students():
    students = [
        {"name": "Rahim Uddin", "roll": "612001", "semester": "1st Semester", "shift": "Morning"},
        {"name": "Karima Akter", "roll": "612002", "semester": "1st Semester", "shift": "Day"},
        {"name": "Sabbir Khan", "roll": "713001", "semester": "3rd Semester", "shift": "Day"},
    ]

    assert [s["roll"] for s in resources.filter_students(students, "karima")] == ["612002"]
    assert [s["roll"] for s in resources.filter_students(students, "612")] == ["612001", "612002"]
    assert [s["roll"] for s in resources.filter_students(students, "", "all", "Day")] == ["612002", "713001"]
    assert resources.filter_students(students, "", "3rd Semester", "Morning") == []


def test_filter_notices_and_results():
    notices = [
        {"title": "Exam Routine", "content": "Midterm", "category": "Academic", "status": "published"},
        {"title": "Picnic", "content": "Annual exam break trip", "category": "Event", "status": "draft"},
    ]
    assert len(resources.filter_notices(notices, "EXAM")) == 2
    assert [n["title"] for n in resources.filter_notices(notices, "", "all", "draft")] == ["Picnic"]

    results = [
        {"student_name": "Rahim", "roll_number": "612001", "exam_name": "Class Test", "semester": "1st Semester"},
        {"student_name": "Karima", "roll_number": "612002", "exam_name": "Quiz Test", "semester": "2nd Semester"},
    ]
    assert [r["roll_number"] for r in resources.filter_other_results(results, "karima")] == ["612002"]
    assert [r["roll_number"] for r in resources.filter_other_results(results, "", "Class Test")] == ["612001"]


def test_categorize_faculty():
    members = [
        {"name": "A", "title": "Head of Department (Day)"},
        {"name": "B", "title": "Instructor"},
        {"name": "C", "title": "Junior Instructor"},
        {"name": "D", "title": "Guest Teacher"},
        {"name": "E", "title": "Staff"},
        {"name": "F", "title": "Head of Department (Morning)"},
    ]

    categories = resources.categorize_faculty(members)

    assert [m["name"] for m in categories["Heads of Department"]] == ["A", "F"]
    assert [m["name"] for m in categories["Junior Instructors"]] == ["C"]
    assert [m["name"] for m in categories["Staff"]] == ["E"]


def test_session_names():
    assert resources.is_valid_session_name(" 2023-2024 ")
    assert not resources.is_valid_session_name("2023-24")
    assert not resources.is_valid_session_name("2023/2024")


@pytest.mark.parametrize(
    "text",
    ["612001 gpa1: 3.50 gpa2: 3.25", "123456 (3.47)", "123456 { 25711(T) }", "123456\n(3.47)"],
)
def test_matches_result_format(text):
    assert resources.matches_result_format(text)


def test_rejects_unrelated_text():
    assert not resources.matches_result_format("Department of Computer Technology notice")
    assert not resources.matches_result_format("12345 (3.47)")


def test_validate_result_pdf():
    resources.validate_result_pdf(build_pdf(["Polytechnic Board", "612001 (3.47) 612002 (3.10)"]))

    with pytest.raises(ValidationError, match="known result format"):
        resources.validate_result_pdf(build_pdf(["Holiday notice"]))

    with pytest.raises(ValidationError, match="could not be read"):
        resources.validate_result_pdf(b"this is not a pdf")


def test_parse_subjects():
    subjects = resources.parse_subjects(["Math", "Physics", ""], ["18", "17.5", ""], ["20", "20", ""])

    assert subjects == [
        {"subject_name": "Math", "marks_obtained": 18, "total_marks": 20},
        {"subject_name": "Physics", "marks_obtained": 17.5, "total_marks": 20},
    ]

    with pytest.raises(ValidationError, match="subject names"):
        resources.parse_subjects(["", "Math"], ["10", "12"], ["20", "20"])
    with pytest.raises(ValidationError, match="must be numbers"):
        resources.parse_subjects(["Math"], ["ten"], ["20"])
    with pytest.raises(ValidationError, match="must be numbers"):
        resources.parse_subjects(["Math"], ["nan"], ["20"])
    with pytest.raises(ValidationError, match="must be numbers"):
        resources.parse_subjects(["Math"], ["18"], ["inf"])
    with pytest.raises(ValidationError, match="must be numbers"):
        resources.parse_subjects(["Math"], ["1e400"], ["20"])
    with pytest.raises(ValidationError, match="at least one subject"):
        resources.parse_subjects([""], [""], [""])


def test_json_lists():
    assert resources.load_json_list(None) == []
    assert resources.load_json_list("{not json") == []
    assert resources.load_json_list('{"a": 1}') == []
    assert resources.load_json_list('[{"title": "Lab"}]') == [{"title": "Lab"}]
    assert resources.dump_json_list([{"a": 1}]) == '[\n  {\n    "a": 1\n  }\n]'


def test_defaults():
    assert resources.default_avatar("Female") == resources.DEFAULT_FEMALE_AVATAR
    assert resources.default_avatar("Male") == resources.DEFAULT_MALE_AVATAR
    assert resources.attachment_kind("image/png") == "image"
    assert resources.attachment_kind("application/pdf") == "pdf"
    assert resources.format_key_label("hero_home_image_url") == "Hero Home Image Url"
