"""Tests for the chat, diary and profile repositories."""

from __future__ import annotations

from pathlib import Path

import pytest

from emotionaid.models import BOT_AUTHOR, DiaryEntry, Message, MessageStatus
from emotionaid.repositories import (
    CHAT_HISTORY_KEY,
    USER_DATA_KEY,
    ChatRepository,
    DiaryRepository,
    ProfileRepository,
    diary_page_key,
)
from emotionaid.storage import EncryptedStore


@pytest.fixture
def diary(store: EncryptedStore) -> DiaryRepository:
    return DiaryRepository(store, page_size=3)


@pytest.fixture
def profiles(store: EncryptedStore) -> ProfileRepository:
    return ProfileRepository(store)


def _entry(n: int, *tags: str) -> DiaryEntry:
    return DiaryEntry(title=f"Day {n}", content="ok", tags=list(tags))


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------


class TestChatRepository:
    """Message history per user."""

    @pytest.mark.asyncio
    async def test_empty_history(self, chat: ChatRepository) -> None:
        assert await chat.load_messages("U1") == []

    @pytest.mark.asyncio
    async def test_append_exchange(self, chat: ChatRepository) -> None:
        history = await chat.append_exchange("U1", "hello", "hi there")

        assert [(m.author, m.text) for m in history] == [("U1", "hello"), (BOT_AUTHOR, "hi there")]
        assert all(m.status == MessageStatus.SENT for m in history)
        assert history[0].is_user_message
        assert not history[1].is_user_message
        assert await chat.load_messages("U1") == history

    @pytest.mark.asyncio
    async def test_blank_reply_not_recorded(self, chat: ChatRepository) -> None:
        history = await chat.append_exchange("U1", "anyone?", "  ")
        assert [m.text for m in history] == ["anyone?"]

    @pytest.mark.asyncio
    async def test_users_isolated(self, chat: ChatRepository) -> None:
        await chat.append_messages("U1", Message(author="U1", text="mine"))
        assert await chat.load_messages("U2") == []

    @pytest.mark.asyncio
    async def test_start_new_dialog(self, chat: ChatRepository, store: EncryptedStore) -> None:
        await chat.append_exchange("U1", "hello", "hi")

        title = await chat.start_new_dialog("U1", "Monday talk")

        assert title == "Monday talk"
        assert await chat.load_messages("U1") == []
        assert await chat.dialog_titles() == ["Monday talk"]
        assert await store.contains(CHAT_HISTORY_KEY)

    @pytest.mark.asyncio
    async def test_default_dialog_title(self, chat: ChatRepository) -> None:
        title = await chat.start_new_dialog("U1")
        assert title.startswith("Dialog ")


# ---------------------------------------------------------------------------
# Diary
# ---------------------------------------------------------------------------


class TestDiaryRepository:
    """Paged entries, tags, triggers and archive."""

    @pytest.mark.asyncio
    async def test_page_written_directly(self, store: EncryptedStore) -> None:
        """A one-element page saved by key is read back by the repository."""
        entry = DiaryEntry(title="Day 1", content="ok")
        await store.save("diary_entries_U1_page1", [entry])

        entries = await DiaryRepository(store).get_diary_entries("U1", page=1, page_size=50)

        assert entries == [entry]

    @pytest.mark.asyncio
    async def test_missing_page_is_empty(self, diary: DiaryRepository) -> None:
        assert await diary.get_diary_entries("U1", page=4) == []
        assert await diary.page_count("U1") == 0

    @pytest.mark.asyncio
    async def test_invalid_page(self, diary: DiaryRepository) -> None:
        with pytest.raises(ValueError):
            await diary.get_diary_entries("U1", page=0)

    @pytest.mark.asyncio
    async def test_paging(self, diary: DiaryRepository, store: EncryptedStore) -> None:
        """A full page rolls over to the next one."""
        pages = [await diary.add_diary_entry("U1", _entry(n)) for n in range(1, 8)]

        assert pages == [1, 1, 1, 2, 2, 2, 3]
        assert await diary.page_count("U1") == 3
        assert [e.title for e in await diary.get_diary_entries("U1", page=2)] == [
            "Day 4", "Day 5", "Day 6",
        ]
        assert await store.contains(diary_page_key("U1", 3))

    @pytest.mark.asyncio
    async def test_page_size_limits_result(self, diary: DiaryRepository) -> None:
        for n in range(1, 4):
            await diary.add_diary_entry("U1", _entry(n))
        assert len(await diary.get_diary_entries("U1", page=1, page_size=2)) == 2

    @pytest.mark.asyncio
    async def test_tags(self, diary: DiaryRepository) -> None:
        await diary.add_diary_entry("U1", _entry(1, "work", "sleep"))
        await diary.add_diary_entry("U1", _entry(2, "work"))
        await diary.add_diary_tag("U1", " family ")
        await diary.add_diary_tag("U1", "")

        assert await diary.get_diary_tags("U1") == ["work", "sleep", "family"]

    @pytest.mark.asyncio
    async def test_triggers(self, diary: DiaryRepository) -> None:
        assert await diary.get_triggers("U1") == []
        await diary.save_triggers("U1", ["crowds", "deadlines"])
        assert await diary.get_triggers("U1") == ["crowds", "deadlines"]

    @pytest.mark.asyncio
    async def test_archive(self, diary: DiaryRepository) -> None:
        for n in range(1, 5):
            await diary.add_diary_entry("U1", _entry(n))

        moved = await diary.archive_diary_entries("U1")

        assert moved == 4
        assert await diary.page_count("U1") == 0
        archived = await diary.get_archived_entries("U1")
        assert [e.title for e in archived] == ["Day 1", "Day 2", "Day 3", "Day 4"]

        await diary.add_diary_entry("U1", _entry(5))
        assert await diary.archive_diary_entries("U1") == 1
        assert len(await diary.get_archived_entries("U1")) == 5


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------


class TestProfileRepository:
    """User ids, profiles and avatars."""

    @pytest.mark.asyncio
    async def test_create_profile(self, profiles: ProfileRepository, store: EncryptedStore) -> None:
        profile = await profiles.create_profile("  Ann  ", user_id="U1")

        assert profile.name == "Ann"
        assert await profiles.get_user_ids() == ["U1"]
        assert await profiles.load_profile("U1") == profile
        assert await store.contains(USER_DATA_KEY)

    @pytest.mark.asyncio
    async def test_generated_ids_unique(self, profiles: ProfileRepository) -> None:
        a = await profiles.create_profile("Ann")
        b = await profiles.create_profile("Bob")
        assert a.user_id != b.user_id
        assert await profiles.get_user_ids() == [a.user_id, b.user_id]

    @pytest.mark.asyncio
    async def test_recreate_keeps_single_id(self, profiles: ProfileRepository) -> None:
        await profiles.create_profile("Ann", user_id="U1")
        await profiles.create_profile("Annie", user_id="U1")
        assert await profiles.get_user_ids() == ["U1"]
        assert (await profiles.load_profile("U1")).name == "Annie"

    @pytest.mark.asyncio
    async def test_blank_name_rejected(self, profiles: ProfileRepository) -> None:
        with pytest.raises(ValueError):
            await profiles.create_profile("   ")

    @pytest.mark.asyncio
    async def test_missing_profile(self, profiles: ProfileRepository) -> None:
        assert await profiles.load_profile("nobody") is None

    @pytest.mark.asyncio
    async def test_save_avatar(
        self, profiles: ProfileRepository, store: EncryptedStore, tmp_path: Path,
    ) -> None:
        source = tmp_path / "me.png"
        source.write_bytes(b"\x89PNG fake")
        await profiles.create_profile("Ann", user_id="U1")

        destination = await profiles.save_avatar("U1", source)

        assert destination == store.root.parent / "avatars" / "avatar_U1.png"
        assert destination.read_bytes() == b"\x89PNG fake"
        assert (await profiles.load_profile("U1")).avatar_path == str(destination)

    @pytest.mark.asyncio
    async def test_save_avatar_missing_file(
        self, profiles: ProfileRepository, tmp_path: Path,
    ) -> None:
        with pytest.raises(ValueError):
            await profiles.save_avatar("U1", tmp_path / "nope.png")

    @pytest.mark.asyncio
    async def test_clear_avatars(
        self, profiles: ProfileRepository, tmp_path: Path,
    ) -> None:
        source = tmp_path / "me.png"
        source.write_bytes(b"\x89PNG fake")
        await profiles.save_avatar("U1", source)
        await profiles.save_avatar("U2", source)

        assert await profiles.clear_avatars() == 2
        assert not profiles.avatar_dir.exists()

    @pytest.mark.asyncio
    async def test_clear_avatars_without_dir(self, profiles: ProfileRepository) -> None:
        assert await profiles.clear_avatars() == 0
