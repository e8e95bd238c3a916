import tempfile
import unittest
from pathlib import Path

from mdfinder import app
from mdfinder.editor import editor_argv, open_in_editor


class TestEditor(unittest.TestCase):
    def test_editor_argv_jumps_to_line(self):
        self.assertEqual(editor_argv(Path("/tmp/a.md"), 12, "vim"), ["vim", "+12", "/tmp/a.md"])

    def test_missing_editor_is_reported_not_raised(self):
        self.assertIsNone(open_in_editor("a.md", 1, command="mdfinder-no-such-editor-binary"))


class TestCli(unittest.TestCase):
    def test_version_flag_exits_cleanly(self):
        self.assertEqual(app.main(["--version"]), 0)

    def test_missing_root_is_rejected(self):
        with tempfile.TemporaryDirectory() as tmp:
            missing = Path(tmp) / "nope"
            self.assertEqual(app.main(["--root", str(missing)]), 2)

    def test_parser_defaults_to_current_directory(self):
        args = app.build_parser().parse_args([])
        self.assertEqual(args.root, ".")
        self.assertFalse(args.version)


if __name__ == "__main__":
    unittest.main()
