import pytest

from uniwiz.db.store import DataStore, IntegrityViolation, StoreError


def _user(email: str, role: str = "student") -> dict:
    return {"email": email, "first_name": "Ada", "last_name": "Lovelace", "role": role}


def test_insert_select_update_delete_round(store: DataStore) -> None:
    user_id = store.insert("users", _user("ada@example.com"))
    assert isinstance(user_id, int)

    row = store.select_one("SELECT id, email, status FROM users WHERE id = :id", {"id": user_id})
    assert row == {"id": user_id, "email": "ada@example.com", "status": "active"}

    assert store.update("users", {"first_name": "Augusta"}, {"id": user_id}) == 1
    assert store.select("SELECT first_name FROM users WHERE id = :id", {"id": user_id}) == [{"first_name": "Augusta"}]

    assert store.delete("users", {"id": user_id}) == 1
    assert store.select_one("SELECT id FROM users WHERE id = :id", {"id": user_id}) is None


def test_count_and_exists_support_in_and_null_filters(store: DataStore) -> None:
    ids = [store.insert("users", _user(f"user{n}@example.com")) for n in range(3)]
    store.insert("users", {**_user("co@example.com", "publisher"), "company_name": "Acme"})

    assert store.count("users") == 4
    assert store.count("users", {"role": "student"}) == 3
    assert store.count("users", {"id": ids[:2]}) == 2
    assert store.count("users", {"company_name": None}) == 3
    assert store.exists("users", {"email": "co@example.com"})
    assert not store.exists("users", {"email": "missing@example.com"})


def test_unique_violation_is_reported_as_integrity_violation(store: DataStore) -> None:
    store.insert("users", _user("dup@example.com"))
    with pytest.raises(IntegrityViolation):
        store.insert("users", _user("dup@example.com"))
    assert store.count("users", {"email": "dup@example.com"}) == 1


def test_unknown_table_and_column_raise_store_error(store: DataStore) -> None:
    with pytest.raises(StoreError):
        store.insert("accounts", {"email": "x@example.com"})
    with pytest.raises(StoreError):
        store.count("users", {"nickname": "x"})


def test_unconditional_write_is_refused(store: DataStore) -> None:
    store.insert("users", _user("keep@example.com"))
    with pytest.raises(StoreError):
        store.delete("users", {})
    assert store.count("users") == 1


def test_transaction_rolls_back_every_write_on_error(store: DataStore) -> None:
    with pytest.raises(RuntimeError):
        with store.transaction():
            store.insert("users", _user("first@example.com"))
            store.insert("users", _user("second@example.com"))
            raise RuntimeError("boom")
    assert store.count("users") == 0
    assert not store.in_transaction


def test_nested_transaction_joins_outer_scope(store: DataStore) -> None:
    with pytest.raises(StoreError):
        with store.transaction():
            store.insert("users", _user("outer@example.com"))
            with store.transaction():
                store.insert("users", _user("inner@example.com"))
            store.insert("users", _user("inner@example.com"))
    assert store.count("users") == 0


def test_transaction_commits_on_success(store: DataStore, session) -> None:
    with store.transaction():
        store.insert("users", _user("kept@example.com"))
    session.rollback()
    assert store.count("users", {"email": "kept@example.com"}) == 1


def test_invalid_sql_is_wrapped(store: DataStore) -> None:
    with pytest.raises(StoreError):
        store.select("SELECT * FROM no_such_table")
