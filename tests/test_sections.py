import unittest

from foliogram.services.sections import (
    ContactSection,
    CustomSection,
    EducationSection,
    ExperienceSection,
    PublicationSection,
    SectionError,
    SectionKind,
    parse_section,
    section_payload,
    section_to_dict,
)


class TestParseSection(unittest.TestCase):
    def test_education_drops_unknown_keys(self):
        section = parse_section(
            "Education",
            {"institution": "MIT", "degree": "BSc", "field": "Physics", "gpa": "4.0"},
        )
        self.assertIsInstance(section, EducationSection)
        self.assertEqual(section.institution, "MIT")
        self.assertEqual(section.field, "Physics")
        self.assertNotIn("gpa", section_payload(section))

    def test_experience_achievements_from_bullets(self):
        section = parse_section(
            "experience",
            {
                "company": "Acme",
                "position": "Engineer",
                "is_current": "true",
                "description": "• Built the pipeline\n• Cut costs by 20%\n\n- Mentored two juniors",
            },
        )
        self.assertIsInstance(section, ExperienceSection)
        self.assertTrue(section.is_current)
        self.assertEqual(
            section.achievements,
            ["Built the pipeline", "Cut costs by 20%", "Mentored two juniors"],
        )

    def test_experience_without_description(self):
        section = parse_section("experience", {"company": "Acme"})
        self.assertEqual(section.achievements, [])
        self.assertFalse(section.is_current)

    def test_publication_organization_prefers_journal(self):
        journal = parse_section("publication", {"journal": "Nature", "conference": "NeurIPS"})
        conference = parse_section("publication", {"conference": "NeurIPS"})
        authors_only = parse_section("publication", {"authors": "A. Lovelace"})
        self.assertIsInstance(journal, PublicationSection)
        self.assertEqual(journal.organization, "Nature")
        self.assertEqual(conference.organization, "NeurIPS")
        self.assertEqual(authors_only.organization, "A. Lovelace")

    def test_contact_full_address_skips_blanks(self):
        section = parse_section(
            "contact", {"address": "1 Main St", "city": " ", "country": "Kenya"}
        )
        self.assertIsInstance(section, ContactSection)
        self.assertEqual(section.full_address, "1 Main St, Kenya")

    def test_values_coerced_to_strings(self):
        section = parse_section("publication", {"year": 2021, "doi": None})
        self.assertEqual(section.year, "2021")
        self.assertEqual(section.doi, "")

    def test_unknown_kind_becomes_custom_with_label(self):
        section = parse_section("Awards", {"name": "Best Paper", "year": 2020, "note": None})
        self.assertIsInstance(section, CustomSection)
        self.assertEqual(section.kind, SectionKind.CUSTOM)
        self.assertEqual(section.label, "Awards")
        self.assertEqual(section.properties, {"name": "Best Paper", "year": "2020", "note": ""})

    def test_custom_kind_uses_properties_mapping(self):
        section = parse_section(
            "custom", {"label": "Hobbies", "properties": {"climbing": "weekly"}}
        )
        self.assertEqual(section.label, "Hobbies")
        self.assertEqual(section.properties, {"climbing": "weekly"})

    def test_empty_data(self):
        section = parse_section("contact", None)
        self.assertEqual(section.full_address, "")

    def test_non_mapping_data_rejected(self):
        for data in (["city", "Lagos"], "Lagos", 7):
            with self.assertRaises(SectionError):
                parse_section("contact", data)


class TestSectionDict(unittest.TestCase):
    def test_derived_fields_and_kind(self):
        data = section_to_dict(
            parse_section("experience", {"description": "Shipped v1\nShipped v2"})
        )
        self.assertEqual(data["kind"], "experience")
        self.assertEqual(data["achievements"], ["Shipped v1", "Shipped v2"])

    def test_payload_has_no_derived_fields(self):
        payload = section_payload(parse_section("contact", {"city": "Lagos"}))
        self.assertNotIn("full_address", payload)
        self.assertNotIn("kind", payload)

    def test_payload_round_trips_through_parse(self):
        original = parse_section("education", {"institution": "ETH", "grade": "5.5"})
        self.assertEqual(parse_section("education", section_payload(original)), original)


if __name__ == "__main__":
    unittest.main()
