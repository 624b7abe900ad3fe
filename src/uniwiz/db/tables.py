"""Core table handles for statement building."""

from __future__ import annotations

from uniwiz.db import models

users = models.User.__table__
student_profiles = models.StudentProfile.__table__
publisher_profiles = models.PublisherProfile.__table__
job_categories = models.JobCategory.__table__
jobs = models.Job.__table__
job_applications = models.JobApplication.__table__
company_reviews = models.CompanyReview.__table__
payments = models.Payment.__table__
wishlist = models.WishlistEntry.__table__
notifications = models.Notification.__table__
