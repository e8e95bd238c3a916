import unittest

from mdfinder.corpus import Document
from mdfinder.fuzzy import FuzzyPattern
from mdfinder.line_index import LineIndex, SearchEntry, score_paths


def _sample_index() -> LineIndex:
    return LineIndex.from_documents(
        [
            Document(name="a.md", content="# Title\n\nhello world\n"),
            Document(name="b.md", content="foo bar\n"),
        ]
    )


class TestLineIndex(unittest.TestCase):
    def test_builds_entries_from_non_blank_lines_only(self):
        index = LineIndex.from_documents(
            [Document(name="notes.md", content="  first  \n\n   \n\tthird\r\n")]
        )
        self.assertEqual(index.entry_count, 2)
        self.assertEqual(
            index.entries,
            [
                SearchEntry(file="notes.md", line=1, content="first"),
                SearchEntry(file="notes.md", line=4, content="third"),
            ],
        )

    def test_empty_query_returns_nothing(self):
        index = _sample_index()
        self.assertEqual(index.search(""), [])
        self.assertEqual(index.search("   "), [])

    def test_search_reports_file_and_original_line_number(self):
        index = _sample_index()
        results = index.search("hello")
        self.assertEqual(len(results), 1)
        self.assertEqual((results[0].file, results[0].line), ("a.md", 3))

        results = index.search("bar")
        self.assertEqual(len(results), 1)
        self.assertEqual((results[0].file, results[0].line), ("b.md", 1))

        self.assertEqual(index.search("zzz"), [])

    def test_file_name_takes_part_in_ranking(self):
        index = _sample_index()
        results = index.search("b.md")
        self.assertEqual([entry.file for entry in results], ["b.md"])

    def test_results_are_ordered_by_non_increasing_score(self):
        docs = [
            Document(name="one.md", content="render loop\nrefresh the lazy outline\nreal-time loop\n"),
            Document(name="two.md", content="rl\nRender Loop\nsomething else\n"),
        ]
        index = LineIndex.from_documents(docs)
        results = index.search("rl")
        self.assertGreater(len(results), 1)
        pattern = FuzzyPattern.parse("rl")
        scores = [pattern.score(f"{entry.file} {entry.content}") for entry in results]
        self.assertEqual(scores, sorted(scores, reverse=True))

    def test_results_are_capped(self):
        content = "".join(f"match line {idx}\n" for idx in range(250))
        index = LineIndex.from_documents([Document(name="big.md", content=content)])
        self.assertEqual(len(index.search("match")), 100)
        self.assertEqual(len(index.search("match", limit=7)), 7)

    def test_highlight_pass_uses_content_only(self):
        index = _sample_index()
        results = index.search("a hello")
        self.assertEqual(len(results), 1)
        self.assertEqual(results[0].file, "a.md")
        # "a" only matched the file name, so the content-only pass rejects the line.
        self.assertEqual(results[0].match_indices, ())

        results = index.search("hello")
        self.assertEqual(results[0].match_indices, (0, 1, 2, 3, 4))


class TestScorePaths(unittest.TestCase):
    def test_filters_and_orders_paths(self):
        paths = ["src", "docs", "docs/api", "../docs-old"]
        ranked = score_paths("docs", paths)
        self.assertNotIn("src", ranked)
        self.assertEqual(ranked[:2], ["docs", "docs/api"])


if __name__ == "__main__":
    unittest.main()
