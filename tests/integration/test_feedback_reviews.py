from uniwiz.core.feedback import Feedback


def _accepted_placement(make_user, make_job, publisher=None):
    publisher = publisher or make_user("publisher", company_name="Acme Labs")
    job = make_job(publisher)
    student = make_user("student", first_name="Kasun", last_name="Perera")
    student.apply_to_job(job.id).accept()
    return publisher, job, student


def test_review_with_job_requires_accepted_application(store, make_user, make_job) -> None:
    publisher = make_user("publisher")
    job = make_job(publisher)
    student = make_user("student")
    student.apply_to_job(job.id)

    result = student.create_review(publisher.id, 5, "Great place", job_id=job.id)

    assert result == "You can only review companies you have worked with"
    assert store.count("company_reviews") == 0


def test_review_creation_notifies_publisher_with_reviewer_name(make_user, make_job, notifier) -> None:
    publisher, job, student = _accepted_placement(make_user, make_job)

    review = student.create_review(publisher.id, 4, "Friendly team", job_id=job.id)

    assert isinstance(review, Feedback)
    assert review.rating == 4
    assert review.status == "active"
    sent = notifier.of_type("new_review")
    assert len(sent) == 1
    assert sent[0].user_id == publisher.id
    assert sent[0].message == "New review received from Kasun Perera (4 stars)"


def test_anonymous_review_hides_reviewer(make_user, make_job, notifier) -> None:
    publisher, job, student = _accepted_placement(make_user, make_job)

    review = student.create_review(publisher.id, "5", job_id=job.id, is_anonymous=True)

    assert notifier.of_type("new_review")[0].message == "New review received from Anonymous (5 stars)"
    assert review.get_full_details()["student"] is None
    listed = Feedback.get_by_publisher(review.store, publisher.id)
    assert listed[0]["student_first_name"] is None


def test_duplicate_review_is_rejected(make_user, make_job) -> None:
    publisher, job, student = _accepted_placement(make_user, make_job)
    student.create_review(publisher.id, 4, job_id=job.id)

    assert student.create_review(publisher.id, 2, job_id=job.id) == "You have already reviewed this company"
    assert student.create_review(publisher.id, 2) == "You have already reviewed this company"


def test_review_without_job_skips_placement_check(make_user) -> None:
    publisher = make_user("publisher")
    student = make_user("student")
    assert isinstance(student.create_review(publisher.id, 3, "Met them at a fair"), Feedback)


def test_review_target_must_be_a_publisher(make_user) -> None:
    student = make_user("student")
    other_student = make_user("student")
    assert student.create_review(other_student.id, 3) == "Publisher not found"


def test_out_of_range_rating_leaves_average_untouched(store, make_user, make_job) -> None:
    publisher, job, student = _accepted_placement(make_user, make_job)
    make_user("student").create_review(publisher.id, 4)
    before = Feedback.get_publisher_rating_stats(store, publisher.id)

    assert student.create_review(publisher.id, 6, job_id=job.id) == "Rating must be between 1 and 5"
    assert student.create_review(publisher.id, 4.5, job_id=job.id) == "Rating must be a whole number"
    assert Feedback.get_publisher_rating_stats(store, publisher.id) == before
    assert store.count("company_reviews") == 1


def test_rating_stats_recompute_over_active_reviews(store, make_user) -> None:
    publisher = make_user("publisher")
    reviews = [make_user("student").create_review(publisher.id, rating) for rating in (5, 4, 4, 1)]

    stats = Feedback.get_publisher_rating_stats(store, publisher.id)
    assert stats["total_reviews"] == 4
    assert stats["average_rating"] == 3.5
    assert stats["min_rating"] == 1
    assert stats["max_rating"] == 5
    assert stats["rating_distribution"] == {1: 1, 2: 0, 3: 0, 4: 2, 5: 1}

    assert reviews[-1].hide() is True
    stats = Feedback.get_publisher_rating_stats(store, publisher.id)
    assert stats["total_reviews"] == 3
    assert stats["average_rating"] == 4.33


def test_soft_delete_keeps_row_and_cannot_be_undone(store, make_user) -> None:
    publisher = make_user("publisher")
    review = make_user("student").create_review(publisher.id, 2)

    assert review.delete() is True
    assert store.count("company_reviews", {"id": review.id, "status": "deleted"}) == 1
    assert review.update_status("active") == "Deleted reviews cannot be restored"
    assert Feedback.get_all(store, {"publisher_id": publisher.id}) == []


def test_update_revalidates_changes(store, make_user) -> None:
    publisher = make_user("publisher")
    review = make_user("student").create_review(publisher.id, 2, "meh")

    assert review.update(rating=9) == "Rating must be between 1 and 5"
    assert review.update(rating=4, review_text="Better after the second week") is True
    reloaded = Feedback.find_by_id(store, review.id)
    assert reloaded.rating == 4
    assert reloaded.review_text == "Better after the second week"


def test_student_stats_and_top_rated(store, make_user) -> None:
    good = make_user("publisher", company_name="Good Co")
    okay = make_user("publisher", company_name="Okay Co")
    student = make_user("student")
    student.create_review(good.id, 5)
    student.create_review(okay.id, 3)

    assert Feedback.get_student_feedback_stats(store, student.id) == {"total_given": 2, "average_rating_given": 4.0}
    top = Feedback.get_top_rated_publishers(store, limit=2)
    assert [row["company_name"] for row in top] == ["Good Co", "Okay Co"]


def test_round_trip_through_constructor(store, make_user) -> None:
    review = make_user("student").create_review(make_user("publisher").id, 5, "Solid")
    assert Feedback(store, review.to_dict()).to_dict() == review.to_dict()
