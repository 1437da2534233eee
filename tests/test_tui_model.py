import itertools
import unittest

from primer_tui.errors import StorageFailure, UpstreamFailure
from primer_tui.messages import (
    CreateStory,
    CreateStoryResult,
    KeyEvent,
    LoadPages,
    LoadPagesResult,
    LoadStories,
    LoadStoriesResult,
    LoadUsers,
    LoadUsersResult,
    SavePage,
    SavePageResult,
    SendMessage,
    SendMessageResult,
    StreamFragment,
    ViewportResize,
)
from primer_tui.models import PageRecord, StoryRef, UserRef, new_story
from primer_tui.tui_model import (
    MODE_CHAT,
    MODE_STORY_LIST,
    MODE_STORY_VIEW,
    MODE_USER_SELECT,
    SessionState,
    TuiModel,
)
from tests.helpers import char, key, typed

ALICE = UserRef(id="u-alice", name="alice", email="alice@example.com")
BOB = UserRef(id="u-bob", name="bob", email="bob@example.com")


def _story(story_id: str, title: str, user_id: str = "u-alice") -> StoryRef:
    return StoryRef(id=story_id, user_id=user_id, title=title)


def _page(story_id: str, num: int, prompt: str, completion: str) -> PageRecord:
    return PageRecord(id=f"p-{story_id}-{num}", story_id=story_id, page_num=num, prompt=prompt, completion=completion)


class TuiModelTests(unittest.TestCase):
    def _feed(self, model: TuiModel, *events):
        intents = []
        for event in events:
            intents.extend(model.update(event))
        return intents

    def _model_in_story_list(self, stories=()) -> TuiModel:
        model = TuiModel()
        model.update(LoadUsersResult(users=(ALICE, BOB)))
        model.update(key("ENTER"))
        model.update(LoadStoriesResult(user_id=ALICE.id, stories=tuple(stories)))
        return model

    def _model_in_chat(self, pages=()) -> TuiModel:
        story = _story("s1", "Dragons")
        model = self._model_in_story_list([story])
        model.update(key("ENTER"))
        model.update(LoadPagesResult(story_id="s1", pages=tuple(pages)))
        model.update(key("ENTER"))
        return model

    def test_initial_state_requests_users(self):
        model = TuiModel()
        self.assertEqual(model.state.mode, MODE_USER_SELECT)
        self.assertEqual(model.initial_intents(), [LoadUsers()])

    def test_selection_is_clamped_to_list_bounds(self):
        model = TuiModel()
        model.update(LoadUsersResult(users=(ALICE, BOB)))

        self._feed(model, key("UP"), key("UP"))
        self.assertEqual(model.state.selection_index, 0)

        self._feed(model, key("DOWN"), char("j"), key("DOWN"))
        self.assertEqual(model.state.selection_index, 1)

        self._feed(model, char("k"))
        self.assertEqual(model.state.selection_index, 0)

    def test_selection_stays_in_range_for_every_short_key_sequence(self):
        moves = (key("UP"), key("DOWN"), char("k"), char("j"))
        for count in range(4):
            users = tuple(UserRef(id=f"u{idx}", name=f"user{idx}") for idx in range(count))
            for length in range(1, 5):
                for sequence in itertools.product(moves, repeat=length):
                    model = TuiModel()
                    model.update(LoadUsersResult(users=users))
                    expected = 0
                    for event in sequence:
                        model.update(event)
                        step = -1 if event in (key("UP"), char("k")) else 1
                        expected = max(0, min(max(count - 1, 0), expected + step))
                        with self.subTest(users=count, keys=[e.char or e.key for e in sequence]):
                            self.assertEqual(model.state.selection_index, expected)
                            self.assertLessEqual(model.state.selection_index, max(count - 1, 0))

    def test_navigation_on_empty_list_stays_at_zero(self):
        model = TuiModel()
        model.update(LoadUsersResult(users=()))
        self._feed(model, key("DOWN"), key("UP"))
        self.assertEqual(model.state.selection_index, 0)
        self.assertEqual(model.update(key("ENTER")), [])
        self.assertEqual(model.state.mode, MODE_USER_SELECT)

    def test_users_result_resets_cursor_when_size_changes(self):
        model = TuiModel()
        model.update(LoadUsersResult(users=(ALICE, BOB)))
        model.update(key("DOWN"))
        model.update(LoadUsersResult(users=(ALICE, BOB)))
        self.assertEqual(model.state.selection_index, 1)

        model.update(LoadUsersResult(users=(ALICE,)))
        self.assertEqual(model.state.selection_index, 0)
        self.assertEqual(model.state.status_text, "Loaded 1 users")

    def test_users_failure_keeps_previous_list(self):
        model = TuiModel()
        model.update(LoadUsersResult(users=(ALICE,)))
        model.update(LoadUsersResult(error=StorageFailure("connection refused")))
        self.assertEqual(model.state.users, [ALICE])
        self.assertEqual(model.state.status_text, "Error loading users: connection refused")

    def test_selecting_user_enters_story_list_and_loads_stories(self):
        model = TuiModel()
        model.update(LoadUsersResult(users=(ALICE, BOB)))
        model.update(key("DOWN"))

        intents = model.update(key("ENTER"))

        self.assertEqual(intents, [LoadStories(BOB.id)])
        self.assertEqual(model.state.mode, MODE_STORY_LIST)
        self.assertEqual(model.state.current_user, BOB)
        self.assertEqual(model.state.selection_index, 0)

    def test_escape_from_story_list_clears_current_user(self):
        model = self._model_in_story_list([_story("s1", "Dragons")])
        model.update(key("ESC"))
        self.assertEqual(model.state.mode, MODE_USER_SELECT)
        self.assertIsNone(model.state.current_user)
        self.assertIsNone(model.state.current_story)

    def test_stale_stories_result_is_dropped(self):
        model = self._model_in_story_list()
        model.update(key("ESC"))
        model.update(key("DOWN"))
        model.update(key("ENTER"))  # now bob

        model.update(LoadStoriesResult(user_id=ALICE.id, stories=(_story("s1", "Dragons"),)))
        self.assertEqual(model.state.stories, [])

        model.update(LoadStoriesResult(user_id=BOB.id, stories=(_story("s2", "Robots", BOB.id),)))
        self.assertEqual([story.title for story in model.state.stories], ["Robots"])
        self.assertEqual(model.state.status_text, "Loaded 1 stories")

    def test_selecting_story_loads_pages_and_builds_transcript(self):
        model = self._model_in_story_list([_story("s1", "Dragons"), _story("s2", "Robots")])
        model.update(key("DOWN"))

        intents = model.update(key("ENTER"))
        self.assertEqual(intents, [LoadPages("s2")])
        self.assertEqual(model.state.mode, MODE_STORY_VIEW)

        pages = (_page("s2", 1, "a", "b"), _page("s2", 2, "c", "d"), _page("s2", 3, "e", "f"))
        model.update(LoadPagesResult(story_id="s2", pages=pages))
        self.assertEqual(model.state.transcript, ["a", "b", "c", "d", "e", "f"])
        self.assertEqual(len(model.state.transcript), 2 * len(model.state.pages))

    def test_stale_pages_result_is_dropped(self):
        model = self._model_in_story_list([_story("s1", "Dragons"), _story("s2", "Robots")])
        model.update(key("ENTER"))  # s1
        model.update(key("ESC"))
        model.update(key("DOWN"))
        model.update(key("ENTER"))  # s2

        model.update(LoadPagesResult(story_id="s1", pages=(_page("s1", 1, "old", "stale"),)))
        self.assertEqual(model.state.pages, [])
        self.assertEqual(model.state.transcript, [])

    def test_escape_from_story_view_clears_story_context(self):
        model = self._model_in_story_list([_story("s1", "Dragons")])
        model.update(key("ENTER"))
        model.update(LoadPagesResult(story_id="s1", pages=(_page("s1", 1, "a", "b"),)))

        model.update(key("ESC"))

        self.assertEqual(model.state.mode, MODE_STORY_LIST)
        self.assertIsNone(model.state.current_story)
        self.assertEqual(model.state.pages, [])
        self.assertEqual(model.state.transcript, [])

    def test_create_story_scenario(self):
        model = TuiModel()
        model.update(LoadUsersResult(users=(ALICE,)))
        model.update(key("ENTER"))
        model.update(LoadStoriesResult(user_id=ALICE.id, stories=()))
        self.assertEqual(model.state.stories, [])

        model.update(char("n"))
        self.assertTrue(model.state.title_entry_active)
        intents = self._feed(model, *typed("Adventure"), key("ENTER"))

        self.assertEqual(intents, [CreateStory(ALICE.id, "Adventure")])
        self.assertFalse(model.state.title_entry_active)

        created = new_story(ALICE.id, "Adventure")
        model.update(CreateStoryResult(story=created))
        self.assertEqual(model.state.stories[0].title, "Adventure")
        self.assertEqual(model.state.current_story.title, "Adventure")
        self.assertEqual(model.state.selection_index, 0)

    def test_new_story_then_open_shows_empty_transcript(self):
        model = self._model_in_story_list([_story("s1", "Dragons")])
        model.update(char("n"))
        self._feed(model, *typed("Fresh"), key("ENTER"))
        created = new_story(ALICE.id, "Fresh")
        model.update(CreateStoryResult(story=created))

        intents = model.update(key("ENTER"))
        self.assertEqual(intents, [LoadPages(created.id)])
        model.update(LoadPagesResult(story_id=created.id, pages=()))

        self.assertEqual(model.state.mode, MODE_STORY_VIEW)
        self.assertEqual(model.state.transcript, [])

    def test_late_create_result_does_not_replace_open_story(self):
        dragons = _story("dragons", "Dragons")
        model = self._model_in_story_list([dragons])
        model.update(char("n"))
        self._feed(model, *typed("Adv"), key("ENTER"))
        self.assertEqual(model.update(key("ENTER")), [LoadPages("dragons")])
        model.update(LoadPagesResult(story_id="dragons", pages=(_page("dragons", 1, "Start", "Once"),)))
        model.update(key("ENTER"))
        self.assertEqual(model.state.mode, MODE_CHAT)

        created = new_story(ALICE.id, "Adv")
        model.update(CreateStoryResult(story=created))

        self.assertIs(model.state.current_story, dragons)
        self.assertEqual(model.state.stories[0].id, created.id)
        self._feed(model, *typed("hi"), key("ENTER"))
        intents = model.update(SendMessageResult(text="ok"))
        self.assertEqual(intents, [SavePage("dragons", "hi", "ok")])

    def test_empty_title_is_rejected_without_dispatch(self):
        model = self._model_in_story_list()
        model.update(char("n"))
        intents = self._feed(model, char(" "), key("ENTER"))
        self.assertEqual(intents, [])
        self.assertTrue(model.state.title_entry_active)
        self.assertEqual(model.state.status_text, "Story title cannot be empty")

    def test_title_entry_treats_keys_as_text(self):
        model = self._model_in_story_list()
        model.update(char("n"))
        self._feed(model, *typed("qjkn"), key("BACKSPACE"))
        self.assertEqual(model.state.title_buffer, "qjk")
        self.assertFalse(model.state.quit_requested)

        model.update(key("ESC"))
        self.assertFalse(model.state.title_entry_active)
        self.assertEqual(model.state.title_buffer, "")
        self.assertEqual(model.state.mode, MODE_STORY_LIST)

    def test_create_story_failure_sets_status_only(self):
        model = self._model_in_story_list()
        model.update(CreateStoryResult(error=StorageFailure("insert story: locked")))
        self.assertEqual(model.state.stories, [])
        self.assertEqual(model.state.status_text, "Error creating story: insert story: locked")

    def test_chat_send_scenario(self):
        model = self._model_in_chat()
        self.assertEqual(model.state.mode, MODE_CHAT)
        self.assertEqual(model.state.transcript, [])

        intents = self._feed(model, *typed("Hello"), key("ENTER"))
        self.assertEqual(intents, [SendMessage("Hello", ())])
        self.assertTrue(model.state.is_busy)
        self.assertEqual(model.state.pending_input, "Hello")
        self.assertEqual(model.state.input_buffer, "")
        self.assertEqual(model.state.status_text, "Thinking...")

        intents = model.update(SendMessageResult(text="Hi there"))
        self.assertEqual(model.state.transcript, ["Hello", "Hi there"])
        self.assertFalse(model.state.is_busy)
        self.assertEqual(intents, [SavePage("s1", "Hello", "Hi there")])
        self.assertEqual(model.state.pending_input, "")
        self.assertEqual(model.state.streaming_preview, "")
        self.assertEqual(model.state.status_text, "Response received")

    def test_send_carries_prior_transcript(self):
        model = self._model_in_chat(pages=(_page("s1", 1, "a", "b"),))
        intents = self._feed(model, *typed("next"), key("ENTER"))
        self.assertEqual(intents, [SendMessage("next", ("a", "b"))])

    def test_keys_are_ignored_while_busy(self):
        model = self._model_in_chat()
        self._feed(model, *typed("Hello"), key("ENTER"))
        before = model.render()

        intents = self._feed(model, *typed("more"), key("ENTER"), key("ESC"), key("BACKSPACE"), char("q"))

        self.assertEqual(intents, [])
        self.assertEqual(model.render(), before)

    def test_send_failure_keeps_transcript_and_restores_input(self):
        model = self._model_in_chat(pages=(_page("s1", 1, "a", "b"),))
        self._feed(model, *typed("Hello"), key("ENTER"))

        intents = model.update(SendMessageResult(error=UpstreamFailure(500, "boom")))

        self.assertEqual(intents, [])
        self.assertFalse(model.state.is_busy)
        self.assertEqual(model.state.transcript, ["a", "b"])
        self.assertEqual(model.state.input_buffer, "Hello")
        self.assertEqual(model.state.status_text, "AI Error: API error (status 500): boom")

    def test_success_bumps_displayed_page_count(self):
        model = self._model_in_chat()
        self._feed(model, *typed("Hello"), key("ENTER"))
        model.update(SendMessageResult(text="Hi"))
        self.assertEqual(model.state.current_story.current_page, 2)
        self.assertEqual(model.state.stories[0].current_page, 2)

    def test_stream_fragments_build_preview_only_while_busy(self):
        model = self._model_in_chat()
        model.update(StreamFragment("ignored"))
        self.assertEqual(model.state.streaming_preview, "")

        self._feed(model, *typed("Hello"), key("ENTER"))
        self._feed(model, StreamFragment("Hi"), StreamFragment(" there"))
        self.assertEqual(model.state.streaming_preview, "Hi there")

        model.update(SendMessageResult(text="Hi there"))
        self.assertEqual(model.state.streaming_preview, "")

    def test_empty_message_is_not_sent(self):
        model = self._model_in_chat()
        self.assertEqual(model.update(key("ENTER")), [])
        self.assertFalse(model.state.is_busy)

    def test_whitespace_message_is_sent_as_typed(self):
        model = self._model_in_chat()
        intents = self._feed(model, char(" "), key("ENTER"))
        self.assertEqual(intents, [SendMessage(" ", ())])
        self.assertTrue(model.state.is_busy)

    def test_chat_escape_clears_input_before_leaving(self):
        model = self._model_in_chat()
        self._feed(model, *typed("draft"))

        model.update(key("ESC"))
        self.assertEqual(model.state.mode, MODE_CHAT)
        self.assertEqual(model.state.input_buffer, "")

        model.update(key("ESC"))
        self.assertEqual(model.state.mode, MODE_STORY_VIEW)

    def test_save_page_failure_does_not_roll_back_transcript(self):
        model = self._model_in_chat()
        self._feed(model, *typed("Hello"), key("ENTER"))
        model.update(SendMessageResult(text="Hi"))

        errors = (StorageFailure("insert page: locked"), StorageFailure("increment current page: locked"))
        model.update(SavePageResult(story_id="s1", errors=errors))

        self.assertEqual(model.state.transcript, ["Hello", "Hi"])
        self.assertEqual(
            model.state.status_text,
            "Error saving page: insert page: locked; increment current page: locked",
        )

    def test_q_quits_outside_chat_only(self):
        model = self._model_in_chat()
        model.update(char("q"))
        self.assertFalse(model.state.quit_requested)
        self.assertEqual(model.state.input_buffer, "q")

        other = TuiModel()
        other.update(char("q"))
        self.assertTrue(other.state.quit_requested)

    def test_ctrl_c_quits_in_every_mode(self):
        model = self._model_in_chat()
        self._feed(model, *typed("Hello"), key("ENTER"))
        model.update(KeyEvent("CTRL_C"))
        self.assertTrue(model.state.quit_requested)

    def test_viewport_resize_is_recorded(self):
        model = TuiModel()
        model.update(ViewportResize(120, 40))
        self.assertEqual((model.state.width, model.state.height), (120, 40))

    def test_unknown_event_raises(self):
        with self.assertRaises(TypeError):
            TuiModel().update(object())

    def test_render_returns_detached_copy(self):
        model = self._model_in_chat(pages=(_page("s1", 1, "a", "b"),))
        snapshot = model.render()
        snapshot.transcript.append("x")
        snapshot.current_story.current_page = 99
        self.assertEqual(model.state.transcript, ["a", "b"])
        self.assertEqual(model.state.current_story.current_page, 1)
        self.assertIsInstance(snapshot, SessionState)


if __name__ == "__main__":
    unittest.main()
