from __future__ import annotations

from jobdraft.form import FormModel
from jobdraft.normalize import questions_to_form, to_payload
from jobdraft.schemas import JobPosting


def test_unmodified_seed_translates_back(job, defaults):
    payload = to_payload(FormModel.seed(job, defaults).draft)
    assert payload["job_type"] == "full_time"
    assert payload["salary_type"] == "range"
    assert (payload["salary_min"], payload["salary_max"], payload["salary_fixed"]) == (30000, 50000, None)
    assert payload["application_deadline"] == "2026-12-01T00:00:00.000Z"
    assert payload["skills_required"] == ["SQL", "Go"]
    assert payload["status"] == "active"


def test_unmodified_questions_keep_api_answer_types(defaults):
    job = JobPosting(
        title="Support",
        screening_questions=[
            {"id": "q1", "question_text": "Work permit?", "question_type": "yes_no"},
            {"id": "q2", "question_text": "Why us?", "question_type": "text"},
            {"id": "q3", "question_text": "Shift", "question_type": "multiple_choice", "options": ["Day", "Night"]},
            {"id": "q4", "question_text": "Tools", "question_type": "checkbox", "options": ["Jira"]},
        ],
    )
    form = FormModel.seed(job, defaults)
    assert [q.answer_type for q in form.draft.screening_questions] == [
        "yes-no", "short-answer", "multiple-choice", "checkbox",
    ]
    payload = to_payload(form.draft)
    assert [q["question_type"] for q in payload["screening_questions"]] == [
        "yes_no", "text", "multiple_choice", "checkbox",
    ]


def test_added_question_uses_api_answer_type(job, defaults):
    form = FormModel.seed(job, defaults)
    form.add_to_collection("screening_questions", {"text": "Portfolio link?", "answer_type": "short-answer"})
    assert to_payload(form.draft)["screening_questions"][0]["question_type"] == "text"


def test_unknown_job_type_round_trips(defaults):
    payload = to_payload(FormModel.seed(JobPosting(title="x", job_type="seasonal"), defaults).draft)
    assert payload["job_type"] == "seasonal"


def test_custom_salary_goes_out_as_competitive(job, defaults):
    form = FormModel.seed(job, defaults)
    form.set_field("salary_type", "custom")
    form.set_field("custom_salary_message", "  Depends on experience ")
    payload = to_payload(form.draft)
    assert payload["salary_type"] == "competitive"
    assert payload["custom_salary_message"] == "Depends on experience"
    assert payload["salary_min"] is None and payload["salary_max"] is None


def test_inactive_destination_and_empty_lists_are_null(job, defaults):
    form = FormModel.seed(job, defaults)
    form.set_field("application_method", "email")
    form.set_field("application_email", "jobs@acme.example")
    form.set_field("application_url", "https://stale.example")
    for skill in ("SQL", "Go"):
        form.remove_from_collection("skills", skill)
    form.set_field("deadline", None)
    payload = to_payload(form.draft)
    assert payload["application_email"] == "jobs@acme.example"
    assert payload["application_url"] is None
    assert payload["skills_required"] is None
    assert payload["application_deadline"] is None


def test_external_questions_are_normalized():
    questions = questions_to_form(
        [
            {"id": 7, "question_text": "Work permit?", "question_type": "Yes/No", "is_required": True},
            {"question_text": "Stack", "question_type": "multiple_choice", "options": [{"label": "Go"}, "Python"]},
        ]
    )
    assert questions[0].id == "7" and questions[0].answer_type == "yes-no" and questions[0].required
    assert questions[1].id == "1"
    assert questions[1].answer_type == "multiple-choice"
    assert questions[1].options == ["Go", "Python"]
