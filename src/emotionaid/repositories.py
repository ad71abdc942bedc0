"""
Feature repositories — chat history, diary and profiles over the KV store.

Key conventions:
    user_data                         UserData (known user ids)
    profile_<userId>                  UserProfile
    chat_<userId>                     list[Message]
    chat_history                      list[str] (dialog titles)
    diary_entries_<userId>_page<N>    list[DiaryEntry]
    diary_archive_<userId>            list[DiaryEntry]
    diary_tags_<userId>               list[str]
    triggers_<userId>                 list[str]
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import uuid
from pathlib import Path
from typing import Optional

from .errors import LocalIOError
from .models import BOT_AUTHOR, DiaryEntry, Message, MessageStatus, UserData, UserProfile, utcnow
from .storage import EncryptedStore

logger = logging.getLogger("emotionaid.repositories")

USER_DATA_KEY = "user_data"
CHAT_HISTORY_KEY = "chat_history"
DIARY_PAGE_SIZE = 50
AVATAR_DIR = "avatars"


def chat_key(user_id: str) -> str:
    return f"chat_{user_id}"


def diary_page_key(user_id: str, page: int) -> str:
    return f"diary_entries_{user_id}_page{page}"


def diary_tags_key(user_id: str) -> str:
    return f"diary_tags_{user_id}"


def diary_archive_key(user_id: str) -> str:
    return f"diary_archive_{user_id}"


def triggers_key(user_id: str) -> str:
    return f"triggers_{user_id}"


def profile_key(user_id: str) -> str:
    return f"profile_{user_id}"


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------


class ChatRepository:
    """Per-user message history and the list of dialog titles."""

    def __init__(self, store: EncryptedStore) -> None:
        self._store = store
        self._lock = asyncio.Lock()

    async def load_messages(self, user_id: str) -> list[Message]:
        messages = await self._store.load(chat_key(user_id), list[Message])
        return messages or []

    async def save_messages(self, user_id: str, messages: list[Message]) -> None:
        await self._store.save(chat_key(user_id), messages)

    async def append_messages(self, user_id: str, *messages: Message) -> list[Message]:
        """Append messages to a user's history (read-modify-write)."""
        async with self._lock:
            history = await self.load_messages(user_id)
            history.extend(messages)
            await self.save_messages(user_id, history)
        return history

    async def append_exchange(
        self,
        user_id: str,
        text: Optional[str],
        reply: str,
    ) -> list[Message]:
        """Record a delivered user message and the bot reply."""
        now = utcnow()
        new: list[Message] = []
        if text:
            new.append(Message(author=user_id, text=text, timestamp=now, status=MessageStatus.SENT))
        if reply and reply.strip():
            new.append(Message(author=BOT_AUTHOR, text=reply, timestamp=now, status=MessageStatus.SENT))
        return await self.append_messages(user_id, *new)

    async def dialog_titles(self) -> list[str]:
        return await self._store.load(CHAT_HISTORY_KEY, list[str]) or []

    async def start_new_dialog(self, user_id: str, title: Optional[str] = None) -> str:
        """Archive the dialog title and start an empty conversation."""
        title = title or f"Dialog {utcnow():%Y-%m-%d %H:%M}"
        async with self._lock:
            titles = await self.dialog_titles()
            titles.append(title)
            await self._store.save(CHAT_HISTORY_KEY, titles)
            await self.save_messages(user_id, [])
        logger.info("Started new dialog for user %s", user_id)
        return title


# ---------------------------------------------------------------------------
# Diary
# ---------------------------------------------------------------------------


class DiaryRepository:
    """Paged diary entries, tags and triggers."""

    def __init__(self, store: EncryptedStore, page_size: int = DIARY_PAGE_SIZE) -> None:
        self._store = store
        self._page_size = page_size
        self._lock = asyncio.Lock()

    async def get_diary_entries(
        self,
        user_id: str,
        page: int = 1,
        page_size: int = DIARY_PAGE_SIZE,
    ) -> list[DiaryEntry]:
        """Return the entries stored on one page (at most page_size)."""
        if page < 1:
            raise ValueError("page starts at 1")
        entries = await self._store.load(diary_page_key(user_id, page), list[DiaryEntry])
        return (entries or [])[:page_size]

    async def page_count(self, user_id: str) -> int:
        prefix = f"diary_entries_{user_id}_page"
        pages = [k[len(prefix):] for k in await self._store.keys(prefix)]
        return max((int(p) for p in pages if p.isdigit()), default=0)

    async def add_diary_entry(self, user_id: str, entry: DiaryEntry) -> int:
        """Append an entry to the last page, opening a new page when full.

        Returns:
            The page number the entry was written to.
        """
        async with self._lock:
            page = max(await self.page_count(user_id), 1)
            entries = await self.get_diary_entries(user_id, page, page_size=self._page_size)
            if len(entries) >= self._page_size:
                page += 1
                entries = []
            entries.append(entry)
            await self._store.save(diary_page_key(user_id, page), entries)
            for tag in entry.tags:
                await self._add_tag_unlocked(user_id, tag)
        logger.info("Saved diary entry '%s' for user %s (page %d)", entry.title, user_id, page)
        return page

    async def get_diary_tags(self, user_id: str) -> list[str]:
        return await self._store.load(diary_tags_key(user_id), list[str]) or []

    async def add_diary_tag(self, user_id: str, tag: str) -> list[str]:
        async with self._lock:
            return await self._add_tag_unlocked(user_id, tag)

    async def _add_tag_unlocked(self, user_id: str, tag: str) -> list[str]:
        tag = tag.strip()
        tags = await self.get_diary_tags(user_id)
        if tag and tag not in tags:
            tags.append(tag)
            await self._store.save(diary_tags_key(user_id), tags)
        return tags

    async def get_triggers(self, user_id: str) -> list[str]:
        return await self._store.load(triggers_key(user_id), list[str]) or []

    async def save_triggers(self, user_id: str, triggers: list[str]) -> None:
        await self._store.save(triggers_key(user_id), triggers)

    async def get_archived_entries(self, user_id: str) -> list[DiaryEntry]:
        return await self._store.load(diary_archive_key(user_id), list[DiaryEntry]) or []

    async def archive_diary_entries(self, user_id: str) -> int:
        """Move every page into the user's archive record.

        Returns:
            Number of entries archived.
        """
        async with self._lock:
            pages = await self.page_count(user_id)
            archived = await self.get_archived_entries(user_id)
            moved = 0
            for page in range(1, pages + 1):
                entries = await self._store.load(diary_page_key(user_id, page), list[DiaryEntry])
                if entries:
                    archived.extend(entries)
                    moved += len(entries)
            await self._store.save(diary_archive_key(user_id), archived)
            for page in range(1, pages + 1):
                await self._store.remove(diary_page_key(user_id, page))
        logger.info("Archived %d diary entries for user %s", moved, user_id)
        return moved


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------


class ProfileRepository:
    """Known user ids and their profiles."""

    def __init__(self, store: EncryptedStore) -> None:
        self._store = store
        self._lock = asyncio.Lock()

    async def get_user_ids(self) -> list[str]:
        data = await self._store.load(USER_DATA_KEY, UserData)
        return list(data.user_ids) if data else []

    async def create_profile(self, name: str, user_id: Optional[str] = None) -> UserProfile:
        """Register a new user id and save its profile."""
        if not name or not name.strip():
            raise ValueError("Name cannot be empty")
        profile = UserProfile(user_id=user_id or uuid.uuid4().hex[:12], name=name.strip())
        async with self._lock:
            ids = await self.get_user_ids()
            if profile.user_id not in ids:
                ids.append(profile.user_id)
                await self._store.save(USER_DATA_KEY, UserData(user_ids=ids))
            await self._store.save(profile_key(profile.user_id), profile)
        logger.info("Created profile %s", profile.user_id)
        return profile

    @property
    def avatar_dir(self) -> Path:
        return self._store.root.parent / AVATAR_DIR

    async def load_profile(self, user_id: str) -> Optional[UserProfile]:
        return await self._store.load(profile_key(user_id), UserProfile)

    async def save_avatar(self, user_id: str, source: Path) -> Path:
        """Copy an avatar image next to the store and link it to the profile."""
        if not user_id:
            raise ValueError("user_id is required")
        if not source.is_file():
            raise ValueError(f"Invalid avatar file path: {source}")

        destination = self.avatar_dir / f"avatar_{user_id}{source.suffix}"
        destination.parent.mkdir(parents=True, exist_ok=True)
        await asyncio.to_thread(shutil.copyfile, source, destination)

        profile = await self.load_profile(user_id)
        if profile is not None:
            profile.avatar_path = str(destination)
            await self._store.save(profile_key(user_id), profile)
        logger.info("Saved avatar for user %s at %s", user_id, destination)
        return destination

    async def clear_avatars(self) -> int:
        """Delete every copied avatar image. Returns the number removed."""
        if not self.avatar_dir.is_dir():
            return 0
        files = [p for p in self.avatar_dir.iterdir() if p.is_file()]
        try:
            await asyncio.to_thread(shutil.rmtree, self.avatar_dir)
        except OSError as exc:
            raise LocalIOError(f"Cannot remove {self.avatar_dir}: {exc}") from exc
        logger.info("Removed %d avatar file(s)", len(files))
        return len(files)
