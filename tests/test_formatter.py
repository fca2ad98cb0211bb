import unittest

from modules.formatter import (
    BulletList,
    Heading,
    Paragraph,
    Score,
    format_analysis,
    parse_score,
    score_label,
)

SAMPLE = """**Futterquellen:**
* Mischwald mit Ahorn und Linde
* Rapsfelder im Norden

**Risiken:**
- Maismonokultur im Osten

**Fazit:**
Guter Standort für Frühtracht.
**Bewertung:** 8/10"""


class TestFormatAnalysis(unittest.TestCase):
    def test_sample_answer(self):
        result = format_analysis(SAMPLE)
        self.assertFalse(result.fallback)
        self.assertEqual(
            result.sources, ["Mischwald mit Ahorn und Linde", "Rapsfelder im Norden"],
        )
        self.assertEqual(result.risks, ["Maismonokultur im Osten"])
        self.assertEqual(result.summary, "Guter Standort für Frühtracht.")
        self.assertEqual(result.score, Score(value=8, maximum=10, label="excellent"))

        kinds = [b.kind for b in result.blocks]
        self.assertEqual(
            kinds,
            ["heading", "list", "heading", "list", "heading", "paragraph", "score"],
        )
        self.assertEqual(result.blocks[0], Heading("Futterquellen"))

    def test_score_line_is_not_a_heading(self):
        result = format_analysis("**Bewertung:**")
        self.assertEqual(len(result.blocks), 1)
        self.assertIsInstance(result.blocks[0], Score)
        self.assertIsNone(result.score.value)
        self.assertEqual(result.score.display, "?")
        self.assertEqual(result.score.label, "neutral")

    def test_non_numeric_score_is_neutral(self):
        result = format_analysis("**Bewertung:** n/a")
        self.assertEqual(result.score.display, "?")
        self.assertEqual(result.score.label, "neutral")

    def test_empty_text(self):
        result = format_analysis("")
        self.assertTrue(result.is_empty)
        self.assertEqual(result.blocks, [])
        self.assertFalse(result.fallback)

    def test_unmatched_bold_is_a_paragraph(self):
        result = format_analysis("**Futterquellen:")
        self.assertEqual(result.blocks, [Paragraph("**Futterquellen:")])

    def test_blank_line_ends_a_list(self):
        result = format_analysis("* eins\n\n* zwei")
        self.assertEqual(result.blocks, [BulletList(["eins"]), BulletList(["zwei"])])

    def test_list_at_end_of_text_is_flushed(self):
        result = format_analysis("**Risiken:**\n* Straße\n* Industrie")
        self.assertEqual(result.risks, ["Straße", "Industrie"])
        self.assertIsInstance(result.blocks[-1], BulletList)

    def test_paragraph_ends_a_list(self):
        result = format_analysis("* a\nText danach")
        self.assertEqual(result.blocks, [BulletList(["a"]), Paragraph("Text danach")])

    def test_text_without_markup(self):
        result = format_analysis("Nur ein Satz.")
        self.assertFalse(result.fallback)
        self.assertEqual(result.blocks, [Paragraph("Nur ein Satz.")])
        self.assertIsNone(result.score)

    def test_non_text_input_falls_back(self):
        result = format_analysis(None)
        self.assertTrue(result.fallback)
        self.assertEqual(result.blocks, [])


class TestScore(unittest.TestCase):
    def test_labels(self):
        self.assertEqual(score_label(10), "excellent")
        self.assertEqual(score_label(8), "excellent")
        self.assertEqual(score_label(7), "good")
        self.assertEqual(score_label(5), "good")
        self.assertEqual(score_label(4), "needs improvement")
        self.assertEqual(score_label(None), "neutral")

    def test_parse_score_keeps_maximum(self):
        score = parse_score("**Bewertung:** 3/5")
        self.assertEqual((score.value, score.maximum, score.label), (3, 5, "needs improvement"))

    def test_parse_score_without_maximum(self):
        score = parse_score("**Bewertung:** 6")
        self.assertEqual((score.value, score.maximum), (6, 10))


if __name__ == "__main__":
    unittest.main()
