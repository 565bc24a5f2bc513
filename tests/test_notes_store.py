"""Tests for the observable notes list."""
from unittest.mock import patch

from sqlalchemy.exc import SQLAlchemyError

from noted.services.dispatch import QueueDispatcher
from noted.services.notes_store import NotesStore


class TestLoading:
    """Loading the list."""

    def test_load_notes(self, engine, immediate_executor):
        first = engine.create("one", "").unwrap()
        second = engine.create("two", "").unwrap()
        store = NotesStore(engine, immediate_executor)

        store.load_notes()

        assert [n.id for n in store.notes] == [second, first]
        assert not store.is_loading
        assert store.error is None
        assert engine.live_payloads == 0

    def test_is_loading_until_delivered(self, engine, manual_executor):
        store = NotesStore(engine, manual_executor)
        store.load_notes()
        assert store.is_loading

        manual_executor.run(0)
        assert not store.is_loading

    def test_failed_first_load_leaves_empty_list_and_error(self, engine, immediate_executor):
        store = NotesStore(engine, immediate_executor)
        with patch.object(
            engine.repository, "session_factory", side_effect=SQLAlchemyError("unreadable")
        ):
            store.load_notes()

        assert store.notes == ()
        assert store.error is not None
        assert not store.is_loading

    def test_stale_load_is_ignored(self, engine, manual_executor):
        store = NotesStore(engine, manual_executor)
        store.load_notes()
        note_id = engine.create("new", "").unwrap()
        store.load_notes()

        manual_executor.run(1)
        assert [n.id for n in store.notes] == [note_id]

        engine.delete(note_id)
        manual_executor.run(0)
        assert [n.id for n in store.notes] == [note_id]


class TestMutations:
    """Create, update, delete and tag through the store."""

    def test_create_note_reloads(self, engine, immediate_executor):
        store = NotesStore(engine, immediate_executor)
        future = store.create_note("Title", "Body")

        new_id, _ = future.result()
        assert [n.id for n in store.notes] == [new_id]
        assert store.notes[0].title == "Title"

    def test_update_note(self, engine, immediate_executor):
        note_id = engine.create("old", "old").unwrap()
        store = NotesStore(engine, immediate_executor)
        store.update_note(note_id, "new", "body")
        assert (store.notes[0].title, store.notes[0].content) == ("new", "body")

    def test_delete_note(self, engine, immediate_executor):
        keep = engine.create("keep", "").unwrap()
        gone = engine.create("gone", "").unwrap()
        store = NotesStore(engine, immediate_executor)
        store.delete_note(gone)
        assert [n.id for n in store.notes] == [keep]

    def test_set_tags(self, engine, immediate_executor):
        note_id = engine.create("t", "").unwrap()
        store = NotesStore(engine, immediate_executor)
        store.set_tags(note_id, ("a", "b"))
        assert store.notes[0].tags == ["a", "b"]

    def test_failed_mutation_keeps_list_and_sets_error(self, engine, immediate_executor):
        engine.create("existing", "")
        store = NotesStore(engine, immediate_executor)
        store.load_notes()
        before = store.notes

        store.delete_note(999)

        assert store.notes == before
        assert "999" in store.error
        assert engine.live_payloads == 0

    def test_dismiss_error(self, engine, immediate_executor):
        store = NotesStore(engine, immediate_executor)
        store.update_note(999, "t", "c")
        assert store.error is not None

        store.dismiss_error()
        assert store.error is None

    def test_successful_call_clears_error(self, engine, immediate_executor):
        store = NotesStore(engine, immediate_executor)
        store.delete_note(999)
        store.create_note("t", "c")
        assert store.error is None

    def test_shut_down_executor_sets_error(self, engine, manual_executor):
        manual_executor.shutdown()
        store = NotesStore(engine, manual_executor)

        assert store.load_notes() is None
        assert "could not be started" in store.error
        assert not store.is_loading


class TestNotifications:
    """Listeners and delivery."""

    def test_listener_sees_loading_then_result(self, engine, manual_executor):
        engine.create("t", "")
        store = NotesStore(engine, manual_executor)
        snapshots = []
        store.subscribe(snapshots.append)

        store.load_notes()
        manual_executor.run(0)

        assert [s.is_loading for s in snapshots] == [True, False]
        assert len(snapshots[-1].notes) == 1

    def test_unsubscribe(self, engine, immediate_executor):
        store = NotesStore(engine, immediate_executor)
        seen = []
        unsubscribe = store.subscribe(seen.append)
        unsubscribe()
        store.load_notes()
        assert seen == []

    def test_results_wait_for_the_dispatcher(self, engine, immediate_executor):
        engine.create("t", "")
        dispatcher = QueueDispatcher()
        store = NotesStore(engine, immediate_executor, deliver=dispatcher)

        store.load_notes()
        assert store.notes == ()
        assert store.is_loading

        dispatcher.run_pending()
        assert len(store.notes) == 1
        assert not store.is_loading
