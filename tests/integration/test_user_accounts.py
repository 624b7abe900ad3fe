import pytest

from uniwiz.db.store import StoreError
from uniwiz.users.admin import Admin
from uniwiz.users.factory import (
    UnknownRoleError,
    anonymous_visitor,
    find_user_by_email,
    find_user_by_id,
    list_users,
    load_user,
    register_user,
)
from uniwiz.users.publisher import Publisher
from uniwiz.users.student import Student


def test_register_and_find_resolve_role_variant(store, make_user) -> None:
    student = make_user("student", profile={"university_name": "UoM", "skills": "python"})
    publisher = make_user("publisher", company_name="Acme Labs")

    found = find_user_by_id(store, student.id)
    assert isinstance(found, Student)
    assert found.get_profile_data()["university_name"] == "UoM"
    assert isinstance(find_user_by_email(store, publisher.email.upper()), Publisher)
    assert find_user_by_id(store, 999) is None
    assert [type(user) for user in list_users(store, {"role": "publisher"})] == [Publisher]


def test_register_rejects_duplicates_and_visitors(store, make_user) -> None:
    make_user("student", email="dup@example.com")
    assert register_user(store, {"email": "DUP@example.com", "role": "student"}) == "Email is already registered"
    assert register_user(store, {"email": "v@example.com", "role": "visitor"}) == "Visitors cannot be registered"
    assert register_user(store, {"email": "", "role": "admin"}) == "Email is required"
    with pytest.raises(UnknownRoleError):
        register_user(store, {"email": "x@example.com", "role": "moderator"})


def test_unknown_role_row_is_rejected(store) -> None:
    with pytest.raises(UnknownRoleError):
        load_user(store, {"id": 1, "email": "a@example.com", "role": "superuser"})


def test_profile_update_writes_account_and_profile(store, make_user) -> None:
    publisher = make_user("publisher", company_name="Old Name")

    assert publisher.update_profile({"company_name": "New Name", "industry": "Retail", "about": None}) is True

    reloaded = find_user_by_id(store, publisher.id)
    assert reloaded.company_name == "New Name"
    assert reloaded.display_name == "New Name"
    assert reloaded.get_profile_data()["industry"] == "Retail"
    assert reloaded.get_profile_data()["about"] == ""


def test_profile_update_rolls_back_account_when_profile_fails(store, make_user, monkeypatch) -> None:
    student = make_user("student")

    def broken(self, values):
        raise StoreError("profile table unavailable")

    monkeypatch.setattr(Student, "_upsert_profile", broken)

    assert student.update_profile({"first_name": "Changed", "skills": "sql"}) is False
    assert find_user_by_id(store, student.id).first_name == "Student"
    assert student.first_name == "Student"


def test_round_trip_through_constructor(store, make_user) -> None:
    student = make_user("student", profile={"field_of_study": "Physics"})
    assert Student(store, student.to_dict()).to_dict() == student.to_dict()


def test_inbox_read_state(make_user) -> None:
    student = make_user("student")
    student.create_notification("system", "Welcome aboard", "/dashboard")
    student.create_notification("system", "Complete your profile", "/profile")

    assert student.get_unread_notification_count() == 2
    newest = student.get_notifications()[0]
    assert student.mark_notification_read(newest["id"]) is True
    assert student.get_unread_notification_count() == 1
    assert len(student.get_notifications(unread_only=True)) == 1
    assert student.mark_all_notifications_read() == 1
    assert student.get_unread_notification_count() == 0


def test_notification_cannot_be_marked_by_another_user(make_user) -> None:
    owner = make_user("student")
    other = make_user("student")
    owner.create_notification("system", "Private", "")

    notification_id = owner.get_notifications()[0]["id"]
    assert other.mark_notification_read(notification_id) is False
    assert owner.get_unread_notification_count() == 1


def test_verify_and_block(store, make_user) -> None:
    student = make_user("student")

    assert student.verify_email() is True
    assert student.set_blocked(True) is True
    reloaded = find_user_by_id(store, student.id)
    assert reloaded.is_verified is True
    assert reloaded.email_verified_at is not None
    assert reloaded.is_blocked() is True
    assert student.set_blocked(False) is True
    assert find_user_by_id(store, student.id).is_active() is True


def test_avatar_falls_back_to_generated_url(make_user) -> None:
    student = make_user("student", first_name="Ada", last_name="Lovelace")
    assert student.avatar_url == "https://ui-avatars.com/api/?name=Ada+Lovelace&background=random"


def test_student_dashboard(make_user, make_job) -> None:
    student = make_user("student")
    first = make_job()
    second = make_job(title="Second")
    student.apply_to_job(first.id, "Hello")
    student.apply_to_job(second.id, "Hello again")
    student.add_to_wishlist(second.id)

    stats = student.get_dashboard_stats()
    assert stats["applications_sent"] == 2
    assert stats["applications_pending"] == 2
    assert stats["applications_accepted"] == 0
    assert stats["wishlist_count"] == 1
    assert len(stats["recent_applications"]) == 2


def test_publisher_dashboard(make_user, make_job) -> None:
    publisher = make_user("publisher", company_name="Acme Labs")
    job = make_job(publisher)
    make_job(publisher, title="Paused").update_status("inactive")
    make_user("student").apply_to_job(job.id, "Hi")

    stats = publisher.get_dashboard_stats()
    assert stats["active_jobs"] == 1
    assert stats["total_applicants"] == 1
    assert stats["todays_applications"] == 1
    assert stats["pending_applications"] == 1
    assert stats["recent_applicants"][0]["job_title"] == "Backend Intern"
    assert {row["title"] for row in stats["job_overview"]} == {"Backend Intern", "Paused"}
    assert stats["average_rating"] == 0.0
    assert stats["total_review_count"] == 0


def test_publisher_cannot_touch_foreign_jobs(make_user, make_job) -> None:
    owner = make_user("publisher")
    intruder = make_user("publisher")
    job = make_job(owner)
    application = make_user("student").apply_to_job(job.id, "Hi")

    assert intruder.update_job(job.id, {"title": "Hijacked"}) == "Job not found or access denied"
    assert intruder.delete_job(job.id) == "Job not found or access denied"
    assert intruder.get_job_applicants(job.id) == "Job not found or access denied"
    assert intruder.update_application_status(application.id, "accepted") == "Application not found or access denied"
    assert owner.update_application_status(application.id, "accepted") is True


def test_visitor_is_read_only(store, make_job) -> None:
    job = make_job()
    visitor = anonymous_visitor(store)

    assert visitor.id is None
    assert visitor.save() == "Visitors cannot be saved"
    assert visitor.can_access("apply_to_jobs") is False
    assert [row["id"] for row in visitor.search_jobs("backend")] == [job.id]
    details = visitor.get_public_job_details(job.id)
    assert details["title"] == "Backend Intern"
    assert "pending_count" not in details
    assert visitor.get_public_stats()["active_jobs"] == 1
    assert [row["name"] for row in visitor.get_job_categories()] == ["Engineering"]


def test_visitor_company_profile(store, make_user, make_job) -> None:
    publisher = make_user("publisher", company_name="Acme Labs", profile={"industry": "Software"})
    make_job(publisher)

    profile = anonymous_visitor(store).get_public_company_profile(publisher.id)
    assert profile["company_name"] == "Acme Labs"
    assert profile["industry"] == "Software"
    assert len(profile["active_jobs"]) == 1
    assert profile["rating"]["total_reviews"] == 0
    assert anonymous_visitor(store).get_public_company_profile(999) is None


def test_admin_profile_is_not_persisted_to_a_profile_table(make_user) -> None:
    admin = make_user("admin")
    assert isinstance(admin, Admin)
    assert admin.get_profile_data()["last_login"] is None


def test_notification_accepts_caller_defined_type(make_user, notifier) -> None:
    student = make_user("student")

    assert student.create_notification("reminder", "Interview tomorrow at 10", "/applications") is True
    (payload,) = notifier.of_type("reminder")
    assert payload.user_id == student.id
    assert student.get_notifications()[0]["type"] == "reminder"


def test_blank_notification_is_rejected_without_raising(make_user) -> None:
    student = make_user("student")

    assert student.create_notification("system", "   ") is False
    assert student.create_notification("", "Hello") is False
    assert student.get_unread_notification_count() == 0
