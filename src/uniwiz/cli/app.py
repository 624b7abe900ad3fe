from __future__ import annotations

import json

import typer

from uniwiz.core.job import Job
from uniwiz.core.job_category import JobCategory
from uniwiz.core.wishlist import Wishlist
from uniwiz.db.init import init_database
from uniwiz.db.session import open_store
from uniwiz.logging_config import configure_logging
from uniwiz.users.factory import find_user_by_id
from uniwiz.users.registered import RegisteredUser

app = typer.Typer(help="UniWiz maintenance CLI")
categories_app = typer.Typer(help="Job category administration")
jobs_app = typer.Typer(help="Job listings")
wishlist_app = typer.Typer(help="Wishlist maintenance")
users_app = typer.Typer(help="Account inspection")
notifications_app = typer.Typer(help="Notification inbox")

app.add_typer(categories_app, name="categories")
app.add_typer(jobs_app, name="jobs")
app.add_typer(wishlist_app, name="wishlist")
app.add_typer(users_app, name="users")
app.add_typer(notifications_app, name="notifications")

_INITIALIZED = False


def ensure_initialized() -> None:
    global _INITIALIZED
    if _INITIALIZED:
        return
    init_database()
    _INITIALIZED = True


def _dump(payload: object) -> None:
    typer.echo(json.dumps(payload, indent=2, default=str))


@app.callback()
def main(log_level: str = typer.Option("", "--log-level", help="Override LOG_LEVEL for this run")) -> None:
    configure_logging(log_level or None)


@app.command("init")
def init_cmd() -> None:
    """Create tables and seed the default job categories."""
    configure_logging()
    result = init_database()
    _dump({"ok": True, **result})


@categories_app.command("list")
def categories_list(include_inactive: bool = typer.Option(False, "--all")) -> None:
    configure_logging()
    ensure_initialized()
    with open_store() as store:
        _dump(JobCategory.get_all(store, active_only=not include_inactive))


@categories_app.command("add")
def categories_add(
    name: str = typer.Option(..., "--name"),
    description: str = typer.Option("", "--description"),
) -> None:
    configure_logging()
    ensure_initialized()
    with open_store() as store:
        result = JobCategory.create(store, name, description)
        if isinstance(result, str):
            raise typer.BadParameter(result)
        _dump(result.to_dict())


@categories_app.command("remove")
def categories_remove(category_id: int = typer.Option(..., "--id")) -> None:
    configure_logging()
    ensure_initialized()
    with open_store() as store:
        category = JobCategory.find_by_id(store, category_id)
        if category is None:
            raise typer.BadParameter(f"category {category_id} not found")
        result = category.delete()
        if result is not True:
            raise typer.BadParameter(result)
        _dump({"deleted": category_id})


@jobs_app.command("list")
def jobs_list(
    status: str = typer.Option("", "--status"),
    search: str = typer.Option("", "--search"),
    limit: int = typer.Option(50, "--limit"),
) -> None:
    configure_logging()
    ensure_initialized()
    with open_store() as store:
        rows = Job.get_all(store, {"status": status, "search": search, "limit": limit})
        _dump(
            [
                {
                    "id": row["id"],
                    "title": row["title"],
                    "status": row["status"],
                    "company_name": row["company_name"],
                    "category_name": row["category_name"],
                    "deadline": row["deadline"],
                }
                for row in rows
            ]
        )


@wishlist_app.command("cleanup")
def wishlist_cleanup() -> None:
    """Remove wishlist entries that point at inactive or deleted jobs."""
    configure_logging()
    ensure_initialized()
    with open_store() as store:
        removed = Wishlist.cleanup(store)
        _dump({"removed": removed})


@users_app.command("stats")
def users_stats(user_id: int = typer.Option(..., "--user-id")) -> None:
    configure_logging()
    ensure_initialized()
    with open_store() as store:
        user = find_user_by_id(store, user_id)
        if user is None:
            raise typer.BadParameter(f"user {user_id} not found")
        _dump({"id": user.id, "role": user.role, "stats": user.get_dashboard_stats()})


@notifications_app.command("list")
def notifications_list(
    user_id: int = typer.Option(..., "--user-id"),
    unread_only: bool = typer.Option(False, "--unread"),
    limit: int = typer.Option(20, "--limit"),
) -> None:
    configure_logging()
    ensure_initialized()
    with open_store() as store:
        user = find_user_by_id(store, user_id)
        if not isinstance(user, RegisteredUser):
            raise typer.BadParameter(f"user {user_id} not found")
        _dump(user.get_notifications(limit=limit, unread_only=unread_only))


if __name__ == "__main__":
    app()
