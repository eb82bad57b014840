"""Unit tests for the SQLAlchemy backed change tracker."""

import asyncio

import pytest

from shared.exceptions import ConfigurationError
from shared.models.ingestion import ChangeKind
from shared.tracking.ChangeTracker import ChangeTracker, compute_content_hash


def test_compute_content_hash_is_sha256_hex() -> None:
    digest = compute_content_hash(b"alpha")
    assert len(digest) == 64
    assert digest == compute_content_hash(b"alpha")
    assert digest != compute_content_hash(b"beta")


def test_classify_new_unchanged_modified(tracker: ChangeTracker) -> None:
    """A document moves from New to Unchanged after commit and to Modified on a new hash."""
    async def scenario() -> list[ChangeKind]:
        kinds = [await tracker.classify("src:a.txt", "h1")]
        await tracker.commit("src:a.txt", "h1")
        kinds.append(await tracker.classify("src:a.txt", "h1"))
        kinds.append(await tracker.classify("src:a.txt", "h2"))
        return kinds

    assert asyncio.run(scenario()) == [ChangeKind.NEW, ChangeKind.UNCHANGED, ChangeKind.MODIFIED]


def test_commit_updates_in_place(tracker: ChangeTracker) -> None:
    """Committing twice keeps one row with the latest hash and the same id."""
    async def scenario():
        await tracker.commit("src:a.txt", "h1")
        first = await tracker.get_record("src:a.txt")
        await tracker.commit("src:a.txt", "h2")
        second = await tracker.get_record("src:a.txt")
        refs = await tracker.list_references("src:")
        return first, second, refs

    first, second, refs = asyncio.run(scenario())
    assert first.hash == "h1"
    assert second.hash == "h2"
    assert first.id == second.id
    assert refs == {"src:a.txt"}


def test_lookup_of_unknown_reference_is_none(tracker: ChangeTracker) -> None:
    assert asyncio.run(tracker.lookup("src:missing")) is None
    assert asyncio.run(tracker.get_record("src:missing")) is None


def test_list_references_is_scoped_to_prefix(tracker: ChangeTracker) -> None:
    """Prefixes match literally, LIKE wildcards in references are escaped."""
    async def scenario():
        for ref in ["a_b:one", "axb:two", "a_b2:three"]:
            await tracker.commit(ref, "h")
        return await tracker.list_references("a_b:")

    assert asyncio.run(scenario()) == {"a_b:one"}


def test_prune_removes_only_missing_references(tracker: ChangeTracker) -> None:
    """Tracked {A,B,C} pruned against {A,C} removes exactly B."""
    async def scenario():
        for ref in ["src:A", "src:B", "src:C", "other:B"]:
            await tracker.commit(ref, "h")
        removed = await tracker.prune("src:", {"src:A", "src:C"})
        return removed, await tracker.list_references("src:"), await tracker.list_references("other:")

    removed, remaining, other = asyncio.run(scenario())
    assert removed == {"src:B"}
    assert remaining == {"src:A", "src:C"}
    assert other == {"other:B"}


def test_remove_ignores_absent_references(tracker: ChangeTracker) -> None:
    async def scenario():
        await tracker.commit("src:A", "h")
        return await tracker.remove(["src:A", "src:never"])

    assert asyncio.run(scenario()) == 1
    assert asyncio.run(tracker.lookup("src:A")) is None


def test_unsupported_database_is_a_configuration_error(helper_config) -> None:
    with pytest.raises(ConfigurationError):
        ChangeTracker(helper_config, db_url="nosuchdb://localhost/db")


def test_commit_then_lookup_returns_hash(tracker: ChangeTracker) -> None:
    async def scenario():
        await tracker.commit("mem:a.txt", "h1")
        return await tracker.lookup("mem:a.txt")

    assert asyncio.run(scenario()) == "h1"


def test_records_survive_a_new_tracker_instance(helper_config, tmp_path) -> None:
    db_url = f"sqlite:///{(tmp_path / 'hashes.db').as_posix()}"
    first = ChangeTracker(helper_config, db_url=db_url)
    asyncio.run(first.commit("src:a.txt", "h1"))
    first.close()

    second = ChangeTracker(helper_config, db_url=db_url)
    try:
        assert asyncio.run(second.classify("src:a.txt", "h1")) == ChangeKind.UNCHANGED
    finally:
        second.close()


def test_concurrent_commits_keep_one_row_with_a_written_hash(helper_config, tmp_path) -> None:
    """Racing writers of one reference leave a single row holding one of their hashes; the last write wins."""
    tracker = ChangeTracker(helper_config, db_url=f"sqlite:///{(tmp_path / 'race.db').as_posix()}")
    hashes = [f"h{i}" for i in range(8)]

    async def scenario():
        await asyncio.gather(*[tracker.commit("src:a.txt", h) for h in hashes])
        raced = await tracker.lookup("src:a.txt")
        refs = await tracker.list_references("src:")
        await tracker.commit("src:a.txt", "final")
        return raced, refs, await tracker.lookup("src:a.txt")

    try:
        raced, refs, final = asyncio.run(scenario())
    finally:
        tracker.close()
    assert raced in hashes
    assert refs == {"src:a.txt"}
    assert final == "final"
