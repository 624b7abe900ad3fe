from decimal import Decimal

from uniwiz.core.application import Application
from uniwiz.core.feedback import Feedback
from uniwiz.core.gateways import GatewayPool, MockGateway
from uniwiz.core.job import Job
from uniwiz.core.job_category import JobCategory
from uniwiz.core.payment import Payment
from uniwiz.db.store import StoreError


class FixedRandom:
    def __init__(self, value: float):
        self.value = value

    def random(self) -> float:
        return self.value


def test_hire_review_and_pay_flow(store, notifier, make_user, make_job) -> None:
    publisher = make_user("publisher", company_name="Acme Labs")
    first = make_user("student", first_name="Sam", last_name="Perera")
    second = make_user("student")
    job = make_job(publisher, vacancies=1)

    application = first.apply_to_job(job.id, "I would love to join")
    assert application.status == "pending"
    assert [p.user_id for p in notifier.of_type("new_application")] == [publisher.id]

    assert publisher.update_application_status(application.id, "accepted") is True
    (status_update,) = notifier.of_type("application_status_updated")
    assert status_update.user_id == first.id

    late = second.apply_to_job(job.id, "Me too")
    assert isinstance(late, Application)
    assert job.has_available_positions() is False

    assert Application.find_by_id(store, application.id).reject() == "Cannot change application status from accepted to rejected"

    review = first.create_review(publisher.id, 5, "Great team", job_id=job.id)
    assert isinstance(review, Feedback)
    assert second.create_review(publisher.id, 1, "Never hired", job_id=job.id) == (
        "You can only review companies you have worked with"
    )
    assert store.count("company_reviews") == 1
    assert publisher.get_rating_stats()["average_rating"] == 5.0

    pool = GatewayPool()
    pool.register(MockGateway(success_rate=0.8, rng=FixedRandom(0.1)))
    payment = Payment.create(
        store,
        {
            "publisher_id": publisher.id,
            "student_id": first.id,
            "job_id": job.id,
            "amount": "250",
            "payment_method": "bank_transfer",
            "payment_gateway": "mock",
        },
        notifier=notifier,
        gateways=pool,
    )
    assert payment.process_payment() is True
    assert payment.transaction_id.startswith("mock_")
    assert payment.refund("300") == "Refund amount cannot exceed payment amount"
    assert Payment.find_by_id(store, payment.id).status == "completed"
    assert Payment.get_student_stats(store, first.id)["total_earned"] == Decimal("250.00")

    assert first.get_unread_notification_count() == 2


def test_publisher_job_removal_clears_applications(store, make_user, make_job) -> None:
    publisher = make_user("publisher")
    job = make_job(publisher)
    for _ in range(2):
        make_user("student").apply_to_job(job.id, "Hi")
    make_user("student").add_to_wishlist(job.id)

    assert publisher.delete_job(job.id) is True
    assert store.count("job_applications", {"job_id": job.id}) == 0
    assert store.count("wishlist", {"job_id": job.id}) == 0
    assert Job.find_by_id(store, job.id) is None


def test_invalid_rating_leaves_publisher_average_alone(store, make_user, make_job) -> None:
    publisher = make_user("publisher")
    student = make_user("student")
    job = make_job(publisher)
    student.apply_to_job(job.id, "Hi").accept()
    student.create_review(publisher.id, 4, "Good", job_id=job.id)
    before = publisher.get_rating_stats()

    other_job = make_job(publisher, title="Second")
    student.apply_to_job(other_job.id, "Again").accept()
    assert student.create_review(publisher.id, 6, "Too good", job_id=other_job.id) == "Rating must be between 1 and 5"

    assert store.count("company_reviews") == 1
    assert publisher.get_rating_stats() == before


def test_category_with_active_jobs_survives_delete(store, category, make_job) -> None:
    for index in range(3):
        make_job(title=f"Engineer {index}")

    assert category.delete() == "Cannot delete category that has jobs associated with it"
    assert JobCategory.find_by_name(store, "Engineering") is not None


def test_notification_failure_does_not_undo_the_application(store, notifier, make_user, make_job, monkeypatch) -> None:
    job = make_job()
    student = make_user("student")
    real_insert = store.insert

    def insert(table, fields):
        if table == "notifications":
            raise StoreError("notifications table locked")
        return real_insert(table, fields)

    monkeypatch.setattr(store, "insert", insert)

    application = student.apply_to_job(job.id, "Hi")
    assert isinstance(application, Application)
    assert store.count("job_applications") == 1
    assert store.count("notifications") == 0
