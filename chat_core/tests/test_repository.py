import os
from datetime import datetime, timedelta, timezone

import pytest

from chat_core.domain.exceptions import BusinessError, PersistenceError
from chat_core.domain.models import Message, Sender
from chat_core.engine.repository import ConversationRepository
from chat_core.infrastructure.storage.json_store import JsonConversationStore


class TickClock:
    def __init__(self):
        self._now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        self._now += timedelta(seconds=1)
        return self._now


class RecordingStore(JsonConversationStore):
    def __init__(self, root):
        super().__init__(root)
        self.saves = []
        self.fail = False

    def save(self, conversations, current_id):
        if self.fail:
            raise PersistenceError(code="STORE_WRITE_ERROR", message="disk full")
        self.saves.append((sorted(conversations), current_id))
        super().save(conversations, current_id)


def test_first_launch_seeds_greeting(tmp_path):
    store = RecordingStore(tmp_path)
    repo = ConversationRepository(store, greeting="Hello!", clock=TickClock())
    conv = repo.get(repo.get_current())
    assert [(m.sender, m.text) for m in conv.messages] == [(Sender.AI, "Hello!")]
    assert len(store.saves) == 1
    assert store.load()[conv.id] == conv


def test_ensure_conversation_is_idempotent(tmp_path):
    store = RecordingStore(tmp_path)
    repo = ConversationRepository(store, greeting="Hello!", clock=TickClock())
    first = repo.ensure_conversation("c9")
    saves = len(store.saves)
    assert repo.ensure_conversation("c9") is first
    assert len(store.saves) == saves
    assert len(first.messages) == 1


def test_append_persists_every_mutation(tmp_path):
    store = RecordingStore(tmp_path)
    clock = TickClock()
    repo = ConversationRepository(store, greeting="Hello!", clock=clock)
    cid = repo.get_current()
    before = repo.get(cid).updated_at
    saves = len(store.saves)

    repo.append(cid, Message(sender=Sender.USER, text="one", timestamp=repo.now()))
    repo.append(cid, Message(sender=Sender.AI, text="two", timestamp=repo.now()))

    assert len(store.saves) == saves + 2
    conv = repo.get(cid)
    assert [m.text for m in conv.messages] == ["Hello!", "one", "two"]
    assert conv.updated_at > before
    assert [m.text for m in store.load()[cid].messages] == ["Hello!", "one", "two"]


def test_append_rolls_back_when_save_fails(tmp_path):
    store = RecordingStore(tmp_path)
    repo = ConversationRepository(store, greeting="Hello!", clock=TickClock())
    cid = repo.get_current()
    updated_at = repo.get(cid).updated_at
    store.fail = True
    with pytest.raises(PersistenceError):
        repo.append(cid, Message(sender=Sender.USER, text="lost", timestamp=repo.now()))
    assert [m.text for m in repo.get(cid).messages] == ["Hello!"]
    assert repo.get(cid).updated_at == updated_at


def test_append_to_unknown_conversation(tmp_path):
    repo = ConversationRepository(RecordingStore(tmp_path), greeting="Hello!")
    with pytest.raises(BusinessError) as exc:
        repo.append("missing", Message(sender=Sender.USER, text="x", timestamp=repo.now()))
    assert exc.value.code == "CONVERSATION_NOT_FOUND"


def test_start_new_yields_distinct_ids(tmp_path, monkeypatch):
    monkeypatch.setattr("chat_core.domain.models.time.time", lambda: 1700000000.0)
    store = RecordingStore(tmp_path)
    repo = ConversationRepository(store, greeting="Hello!", clock=TickClock())
    ids = {repo.get_current()}
    for _ in range(5):
        new_id = repo.start_new()
        assert new_id not in ids
        ids.add(new_id)
        assert repo.get_current() == new_id
        assert len(repo.get(new_id).messages) == 1
    assert store.get_current_id() == new_id
    assert set(store.load()) == ids


def test_rehydrates_from_store(tmp_path):
    repo = ConversationRepository(RecordingStore(tmp_path), greeting="Hello!", clock=TickClock())
    cid = repo.get_current()
    repo.append(cid, Message(sender=Sender.USER, text="remember me", timestamp=repo.now()))

    again = ConversationRepository(RecordingStore(tmp_path), greeting="Hello!")
    assert again.get_current() == cid
    assert [m.text for m in again.get(cid).messages] == ["Hello!", "remember me"]


def test_list_conversations_most_recent_first(tmp_path):
    repo = ConversationRepository(RecordingStore(tmp_path), greeting="Hello!", clock=TickClock())
    first = repo.get_current()
    second = repo.start_new()
    repo.append(first, Message(sender=Sender.USER, text="bump", timestamp=repo.now()))
    assert [c.id for c in repo.list_conversations()] == [first, second]


def test_partial_write_keeps_disk_and_memory_in_step(tmp_path, monkeypatch):
    repo = ConversationRepository(RecordingStore(tmp_path), greeting="Hello!", clock=TickClock())
    cid = repo.get_current()
    real_replace = os.replace
    calls = []

    def pointer_write_fails(src, dst):
        calls.append(dst)
        if len(calls) == 2:
            raise OSError("disk full")
        real_replace(src, dst)

    monkeypatch.setattr("chat_core.infrastructure.storage.json_store.os.replace", pointer_write_fails)
    with pytest.raises(PersistenceError):
        repo.append(cid, Message(sender=Sender.USER, text="lost", timestamp=repo.now()))
    monkeypatch.undo()

    on_disk = JsonConversationStore(root=tmp_path).load()
    assert [m.text for m in repo.get(cid).messages] == ["Hello!"]
    assert on_disk[cid] == repo.get(cid)
