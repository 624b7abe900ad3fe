from uniwiz.core.application import Application
from uniwiz.db.store import StoreError


def test_apply_creates_pending_application_and_notifies_publisher(make_user, make_job, notifier) -> None:
    publisher = make_user("publisher", company_name="Acme Labs")
    job = make_job(publisher, title="QA Intern")
    student = make_user("student")

    application = student.apply_to_job(job.id, "I test everything twice")

    assert isinstance(application, Application)
    assert application.status == "pending"
    assert application.proposal == "I test everything twice"
    sent = notifier.of_type("new_application")
    assert len(sent) == 1
    assert sent[0].user_id == publisher.id
    assert sent[0].message == "New application received for QA Intern"
    assert sent[0].link == "/applicants"


def test_second_application_for_same_pair_is_rejected(store, make_user, make_job) -> None:
    job = make_job()
    student = make_user("student")
    assert isinstance(student.apply_to_job(job.id), Application)

    assert student.apply_to_job(job.id, "again") == "You have already applied to this job"
    assert store.count("job_applications", {"student_id": student.id, "job_id": job.id}) == 1


def test_duplicate_check_runs_before_job_status_check(store, make_user, make_job) -> None:
    job = make_job()
    student = make_user("student")
    student.apply_to_job(job.id)
    job.update_status("inactive")

    assert student.apply_to_job(job.id) == "You have already applied to this job"


def test_apply_to_inactive_or_missing_job_fails(make_user, make_job) -> None:
    job = make_job()
    job.update_status("expired")
    student = make_user("student")

    assert student.apply_to_job(job.id) == "Job not found or no longer active"
    assert student.apply_to_job(424242) == "Job not found or no longer active"


def test_non_student_cannot_apply(store, make_user, make_job) -> None:
    job = make_job()
    other_publisher = make_user("publisher")

    result = Application.create(store, other_publisher.id, job.id, "")

    assert result == "Student not found"
    assert store.count("job_applications") == 0


def test_status_walk_pending_viewed_accepted_notifies_each_change(make_user, make_job, notifier) -> None:
    publisher = make_user("publisher")
    job = make_job(publisher, title="Data Intern")
    student = make_user("student")
    application = student.apply_to_job(job.id)

    assert publisher.update_application_status(application.id, "viewed") is True
    assert publisher.update_application_status(application.id, "accepted") is True

    messages = [payload.message for payload in notifier.of_type("application_status_updated")]
    assert messages == [
        "Your application for Data Intern has been viewed",
        "Congratulations! Your application for Data Intern has been accepted",
    ]
    assert all(payload.user_id == student.id for payload in notifier.of_type("application_status_updated"))


def test_terminal_statuses_cannot_be_left(store, make_user, make_job, notifier) -> None:
    job = make_job()
    student = make_user("student")
    application = student.apply_to_job(job.id)
    assert application.accept() is True

    for target in ("pending", "viewed", "rejected"):
        result = application.update_status(target)
        assert isinstance(result, str)
    reloaded = Application.find_by_id(store, application.id)
    assert reloaded.status == "accepted"


def test_reaccepting_is_a_silent_noop(make_user, make_job, notifier) -> None:
    job = make_job()
    student = make_user("student")
    application = student.apply_to_job(job.id)
    application.accept()
    before = len(notifier.of_type("application_status_updated"))

    assert application.accept() is True
    assert len(notifier.of_type("application_status_updated")) == before


def test_publisher_cannot_touch_foreign_applications(make_user, make_job) -> None:
    owner = make_user("publisher")
    intruder = make_user("publisher")
    job = make_job(owner)
    student = make_user("student")
    application = student.apply_to_job(job.id)

    assert intruder.update_application_status(application.id, "accepted") == "Application not found or access denied"
    assert intruder.get_job_applicants(job.id) == "Job not found or access denied"
    assert [row["id"] for row in owner.get_job_applicants(job.id)] == [application.id]


def test_invalid_status_value_is_rejected(make_user, make_job) -> None:
    job = make_job()
    application = make_user("student").apply_to_job(job.id)
    assert application.update_status("shortlisted") == "Invalid application status"


def test_student_and_publisher_stats(store, make_user, make_job) -> None:
    publisher = make_user("publisher")
    first = make_job(publisher, title="One")
    second = make_job(publisher, title="Two")
    student = make_user("student")
    student.apply_to_job(first.id).accept()
    student.apply_to_job(second.id).reject()

    student_stats = Application.get_student_stats(store, student.id)
    assert student_stats["total"] == 2
    assert student_stats["accepted"] == 1
    assert student_stats["rejected"] == 1
    assert Application.get_publisher_stats(store, publisher.id)["total"] == 2


def test_history_filters_by_status(make_user, make_job) -> None:
    student = make_user("student")
    accepted = student.apply_to_job(make_job(title="Kept").id)
    accepted.accept()
    student.apply_to_job(make_job(title="Waiting").id)

    history = student.get_application_history(status="accepted")
    assert [row["job_title"] for row in history] == ["Kept"]
    assert len(student.get_application_history()) == 2


def test_full_details_include_job_and_student(make_user, make_job) -> None:
    job = make_job(title="Support Intern")
    student = make_user("student", first_name="Nimal")
    application = student.apply_to_job(job.id)

    details = application.get_full_details()
    assert details["job"]["title"] == "Support Intern"
    assert details["student"]["first_name"] == "Nimal"
    assert details["publisher"]["id"] == job.publisher_id


def test_round_trip_through_constructor(store, make_user, make_job) -> None:
    application = make_user("student").apply_to_job(make_job().id, "hello")
    copy = Application(store, application.to_dict())
    assert copy.to_dict() == application.to_dict()


def test_concurrent_change_is_reported_and_reloaded(store, make_user, make_job, notifier) -> None:
    job = make_job()
    application = make_user("student").apply_to_job(job.id)
    store.update("job_applications", {"status": "rejected"}, {"id": application.id})

    assert application.accept() == "Application was modified concurrently, please reload"
    assert application.status == "rejected"
    assert notifier.of_type("application_status_updated") == []


def test_concurrent_change_survives_a_failed_reload(store, make_user, make_job, monkeypatch) -> None:
    job = make_job()
    application = make_user("student").apply_to_job(job.id)
    store.update("job_applications", {"status": "rejected"}, {"id": application.id})

    def unavailable(*args, **kwargs):
        raise StoreError("database is locked")

    monkeypatch.setattr(store, "select_one", unavailable)
    assert application.accept() == "Application was modified concurrently, please reload"
    assert application.status == "pending"
