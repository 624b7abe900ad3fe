from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from uniwiz.db.models import JobCategory

DEFAULT_CATEGORIES: list[dict[str, str]] = [
    {"name": "Information Technology", "description": "Software, IT support and web development roles"},
    {"name": "Design", "description": "Graphic, UI/UX and product design"},
    {"name": "Marketing", "description": "Digital marketing, content and social media"},
    {"name": "Sales", "description": "Sales, business development and retail"},
    {"name": "Finance", "description": "Accounting, bookkeeping and financial analysis"},
    {"name": "Education", "description": "Tutoring, teaching assistance and training"},
    {"name": "Hospitality", "description": "Events, catering and customer service"},
    {"name": "Data Entry", "description": "Administrative and data processing work"},
    {"name": "Writing", "description": "Copywriting, translation and editing"},
    {"name": "Research", "description": "Research assistance and surveys"},
]


def seed_job_categories(session: Session) -> int:
    inserted = 0
    for category in DEFAULT_CATEGORIES:
        existing = session.scalar(select(JobCategory).where(JobCategory.name == category["name"]))
        if existing:
            continue
        session.add(JobCategory(name=category["name"], description=category["description"], is_active=True))
        inserted += 1

    session.commit()
    return inserted
