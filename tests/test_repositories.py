from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from backend.pacelab.repositories.database import Database
from backend.pacelab.repositories.token_repository import TokenRepository


def test_token_repository_returns_none_for_unknown_owner(tmp_path: Path) -> None:
    db = Database(tmp_path / "state.db")
    db.initialize()
    repo = TokenRepository(db)

    assert repo.get_refresh_token("owner") is None


def test_token_repository_upserts_per_owner(tmp_path: Path) -> None:
    db = Database(tmp_path / "state.db")
    db.initialize()
    repo = TokenRepository(db)

    repo.save_refresh_token("owner", "first")
    repo.save_refresh_token("owner", "second")
    repo.save_refresh_token("other", "third")

    assert repo.get_refresh_token("owner") == "second"
    assert repo.get_refresh_token("other") == "third"
    with db.connection() as conn:
        count = conn.execute("SELECT COUNT(*) AS total FROM oauth_tokens").fetchone()
    assert count["total"] == 2


def test_token_repository_clear_is_idempotent(tmp_path: Path) -> None:
    db = Database(tmp_path / "state.db")
    db.initialize()
    repo = TokenRepository(db)
    repo.save_refresh_token("owner", "token")
    repo.save_refresh_token("other", "keep")

    repo.clear_refresh_token("owner")
    repo.clear_refresh_token("owner")
    repo.clear_refresh_token("never-saved")

    assert repo.get_refresh_token("owner") is None
    assert repo.get_refresh_token("other") == "keep"


def test_token_repository_concurrent_clears_leave_token_absent(tmp_path: Path) -> None:
    db = Database(tmp_path / "state.db")
    db.initialize()
    repo = TokenRepository(db)
    repo.save_refresh_token("owner", "token")

    with ThreadPoolExecutor(max_workers=8) as pool:
        futures = [pool.submit(repo.clear_refresh_token, "owner") for _ in range(8)]
        results = [future.result() for future in futures]

    assert results == [None] * 8
    assert repo.get_refresh_token("owner") is None


def test_database_initialize_creates_parent_and_is_repeatable(tmp_path: Path) -> None:
    db = Database(tmp_path / "nested" / "state.db")
    db.initialize()
    db.initialize()

    assert db.path.exists()
    repo = TokenRepository(db)
    repo.save_refresh_token("owner", "token")
    assert TokenRepository(Database(db.path)).get_refresh_token("owner") == "token"
