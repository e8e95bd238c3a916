import unittest

from mdfinder.fuzzy import AtomKind, FuzzyPattern


class TestFuzzyPattern(unittest.TestCase):
    def test_rejects_missing_subsequence(self):
        self.assertIsNone(FuzzyPattern.parse("xyz").score("hello world"))
        self.assertEqual(FuzzyPattern.parse("xyz").indices("hello world"), [])

    def test_matching_ignores_case(self):
        pattern = FuzzyPattern.parse("HELLO")
        self.assertIsNotNone(pattern.score("say hello"))
        self.assertEqual(pattern.indices("Hello"), [0, 1, 2, 3, 4])

    def test_ascii_atoms_fold_diacritics_in_haystack(self):
        self.assertIsNotNone(FuzzyPattern.parse("cafe").score("un café noir"))
        self.assertIsNone(FuzzyPattern.parse("café").score("un cafe noir"))
        self.assertIsNotNone(FuzzyPattern.parse("café").score("un café noir"))

    def test_word_boundaries_score_higher(self):
        pattern = FuzzyPattern.parse("fb")
        self.assertGreater(pattern.score("foo bar"), pattern.score("afxbx"))

    def test_consecutive_run_beats_scattered_match(self):
        pattern = FuzzyPattern.parse("abc")
        self.assertGreater(pattern.score("xx abc"), pattern.score("a x b x c"))

    def test_indices_follow_best_alignment(self):
        self.assertEqual(FuzzyPattern.parse("hw").indices("hello world"), [0, 6])

    def test_prefix_suffix_and_exact_atoms(self):
        self.assertIsNotNone(FuzzyPattern.parse("^foo").score("foobar"))
        self.assertIsNone(FuzzyPattern.parse("^foo").score("barfoo"))
        self.assertIsNotNone(FuzzyPattern.parse("bar$").score("foobar"))
        self.assertIsNone(FuzzyPattern.parse("bar$").score("barfoo"))
        self.assertIsNotNone(FuzzyPattern.parse("^foo$").score("FOO"))
        self.assertIsNone(FuzzyPattern.parse("^foo$").score("foobar"))

    def test_substring_atom_requires_contiguous_text(self):
        self.assertIsNotNone(FuzzyPattern.parse("'oba").score("foobar"))
        self.assertIsNone(FuzzyPattern.parse("'fbr").score("foobar"))
        self.assertIsNotNone(FuzzyPattern.parse("fbr").score("foobar"))

    def test_negated_atom_rejects_and_adds_no_score(self):
        self.assertIsNone(FuzzyPattern.parse("foo !bar").score("foobar"))
        with_negation = FuzzyPattern.parse("foo !baz").score("foobar")
        without = FuzzyPattern.parse("foo").score("foobar")
        self.assertEqual(with_negation, without)

    def test_every_atom_must_match(self):
        self.assertIsNotNone(FuzzyPattern.parse("foo bar").score("bar then foo"))
        self.assertIsNone(FuzzyPattern.parse("foo qux").score("bar then foo"))

    def test_parse_atom_kinds_and_escapes(self):
        kinds = [atom.kind for atom in FuzzyPattern.parse("plain 'sub ^pre suf$ ^ex$").atoms]
        self.assertEqual(
            kinds,
            [AtomKind.FUZZY, AtomKind.SUBSTRING, AtomKind.PREFIX, AtomKind.SUFFIX, AtomKind.EXACT],
        )
        escaped = FuzzyPattern.parse("\\^caret").atoms[0]
        self.assertEqual((escaped.text, escaped.kind, escaped.negated), ("^caret", AtomKind.FUZZY, False))
        negated = FuzzyPattern.parse("!skip").atoms[0]
        self.assertTrue(negated.negated)
        self.assertEqual(negated.kind, AtomKind.SUBSTRING)

    def test_whitespace_only_query_has_no_atoms(self):
        self.assertTrue(FuzzyPattern.parse("   ").is_empty)
        self.assertEqual(FuzzyPattern.parse("").score("anything"), 0)


if __name__ == "__main__":
    unittest.main()
