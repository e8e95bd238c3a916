import tempfile
import unittest
from pathlib import Path

from mdfinder.credentials import StaticCredentialProvider
from mdfinder.keymap import Key, dispatch_key
from mdfinder.session import Mode, Session
from mdfinder.terminal import decode_key


class _RecordingDispatcher:
    def __init__(self):
        self.calls = []

    def submit(self, api_key, messages, out):
        self.calls.append((api_key, list(messages), out))


ENTER = Key(name="enter")
ESC = Key(name="esc")
TAB = Key(name="tab")
BACKSPACE = Key(name="backspace")


class TestDispatchKey(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        base = Path(self.tmp.name)
        self.root = base / "corpus"
        (self.root / "docs").mkdir(parents=True)
        (self.root / "a.md").write_text("# Title\n\nhello world\n", encoding="utf-8")
        self.dispatcher = _RecordingDispatcher()
        self.busy_labels = []
        self.session = Session(
            self.root,
            credentials=StaticCredentialProvider("k"),
            dispatcher=self.dispatcher,
            cache_root=base / "cache",
            on_busy=lambda s: self.busy_labels.append(s.busy),
        )

    def tearDown(self):
        self.session.close()
        self.tmp.cleanup()

    def press(self, *keys):
        for key in keys:
            dispatch_key(self.session, key, 10)

    def type_text(self, text):
        self.press(*[Key.of(ch) for ch in text])

    def test_search_keys(self):
        self.type_text("hello")
        self.assertEqual(len(self.session.state.results), 1)
        self.press(Key.of("x", ctrl=True))
        self.assertEqual(self.session.state.query, "hello")
        self.press(ENTER)
        self.assertTrue(self.session.should_quit)

    def test_ctrl_c_in_search_quits(self):
        self.press(Key.of("c", ctrl=True))
        self.assertTrue(self.session.should_quit)

    def test_ctrl_o_opens_directory_picker_and_esc_returns(self):
        self.press(Key.of("o", ctrl=True))
        self.assertEqual(self.session.mode, Mode.DIRECTORY_PICKER)
        self.assertIn("docs", self.session.state.results)
        self.press(Key.of("c", ctrl=True))
        self.assertEqual(self.session.mode, Mode.SEARCH)
        self.assertFalse(self.session.should_quit)

    def test_chat_keys_while_streaming(self):
        self.type_text("?hi")
        self.press(ENTER)
        self.assertEqual(len(self.dispatcher.calls), 1)
        self.assertTrue(self.session.chat.buffer.streaming)

        self.press(Key.of("x"), BACKSPACE, ESC, Key.of("o", ctrl=True))
        self.assertEqual(self.session.mode, Mode.CHAT)
        self.assertEqual(self.session.state.input, "")

        self.press(Key.of("c", ctrl=True))
        self.assertFalse(self.session.chat.buffer.streaming)
        self.assertTrue(self.session.chat.buffer.text.endswith("[cancelled]"))
        self.press(ESC)
        self.assertEqual(self.session.mode, Mode.SEARCH)

    def test_alt_c_opens_citations_after_answer(self):
        self.type_text("?hi")
        self.press(ENTER)
        out = self.dispatcher.calls[0][2]
        out.put("see [a.md:3]")
        out.finish()
        self.session.drain_streams()

        self.press(Key.of("c", alt=True))
        self.assertEqual(self.session.mode, Mode.CITATIONS)
        self.press(ENTER)
        self.assertEqual((self.session.destination.file, self.session.destination.line), ("a.md", 3))

    def test_quick_answer_keys(self):
        self.type_text("@hello")
        self.assertEqual(self.session.mode, Mode.QUICK_ANSWER)
        self.press(ENTER)
        self.assertEqual(len(self.dispatcher.calls), 1)

        self.press(Key.of("r", ctrl=True), Key.of("n", ctrl=True), Key.of("z"), BACKSPACE)
        self.assertEqual(self.session.state.query, "hello")
        self.assertEqual(self.busy_labels, [self.busy_labels[0]])

        self.press(Key.of("c", ctrl=True))
        self.press(TAB)
        self.assertTrue(self.session.state.sources_expanded)
        self.press(Key.of("r", ctrl=True))
        self.assertEqual(self.busy_labels[-1], "Rebuilding semantic index")
        self.press(Key.of("n", ctrl=True))
        self.assertEqual(self.session.state.query, "")
        self.press(BACKSPACE)
        self.assertEqual(self.session.mode, Mode.SEARCH)

    def test_keys_are_ignored_while_busy(self):
        self.session.busy = "Indexing"
        self.type_text("hello")
        self.assertEqual(self.session.state.query, "")


class TestDecodeKey(unittest.TestCase):
    def test_plain_and_control_keys(self):
        self.assertEqual(decode_key(b"a"), (Key.of("a"), 1))
        self.assertEqual(decode_key(b"\r"), (Key(name="enter"), 1))
        self.assertEqual(decode_key(b"\t"), (Key(name="tab"), 1))
        self.assertEqual(decode_key(b"\x7f"), (Key(name="backspace"), 1))
        self.assertEqual(decode_key(b"\x03"), (Key.of("c", ctrl=True), 1))
        self.assertEqual(decode_key(b"\x0f"), (Key.of("o", ctrl=True), 1))

    def test_escape_sequences(self):
        self.assertEqual(decode_key(b"\x1b"), (Key(name="esc"), 1))
        self.assertEqual(decode_key(b"\x1b[A"), (Key(name="up"), 3))
        self.assertEqual(decode_key(b"\x1bOB"), (Key(name="down"), 3))
        self.assertEqual(decode_key(b"\x1bc"), (Key.of("c", alt=True), 2))
        self.assertEqual(decode_key(b"\x1b[1;5C"), (None, 6))

    def test_mouse_reports_are_consumed_without_a_key(self):
        report = b"\x1b[<0;10;5M"
        self.assertEqual(decode_key(report), (None, len(report)))
        self.assertEqual(decode_key(report + b"x"), (None, len(report)))

    def test_multibyte_characters(self):
        self.assertEqual(decode_key("é".encode("utf-8")), (Key.of("é"), 2))
        self.assertEqual(decode_key(b"\xc3"), (None, 0))
        self.assertEqual(decode_key(b"ab"), (Key.of("a"), 1))


if __name__ == "__main__":
    unittest.main()
