"""
Unit tests for the heuristic suggestion passes.

Each pass is exercised on a small snapshot of courses at a fixed "now" so
day arithmetic is exact.
"""

import unittest

from courseconnect.scoring import (
    HIGH,
    LOW,
    MEDIUM,
    MULTIPLE_COURSES,
    ScoringContext,
    SuggestionScorer,
    chat_url,
    next_topic,
    templated_description,
)

from support import NOW, bot_says, chat, day, user_says


def of_type(suggestions, kind):
    return [s for s in suggestions if s.type == kind]


class ScorerTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.scorer = SuggestionScorer()

    def score(self, *chats, topic_limit=0):
        return self.scorer.score(list(chats), NOW, topic_limit=topic_limit)


class TestDeadlines(ScorerTestCase):
    def test_urgent_tie_goes_to_harder_course(self) -> None:
        easy = chat("c1", "CS 101", credits=2, assignments=[{"name": "Lab 1", "dueDate": day(2)}])
        hard = chat("c2", "CS 102", credits=5, assignments=[{"name": "Lab 2", "dueDate": day(2)}])
        urgent = of_type(self.score(easy, hard), "urgent")
        self.assertEqual(len(urgent), 1)
        self.assertEqual(urgent[0].title, "Lab 2")
        self.assertEqual(urgent[0].priority, HIGH)
        self.assertEqual(urgent[0].description, "Due in 2 days for CS 102. This might be a good place to start.")
        self.assertEqual(urgent[0].action_url, "/dashboard/chat?tab=c2&prefill=Help%20me%20with%20Lab%202")

    def test_urgent_prefers_sooner(self) -> None:
        c = chat("c1", "CS 101", instructor="Dr. Kim", assignments=[
            {"name": "Later", "dueDate": day(3)},
            {"name": "Sooner", "dueDate": day(1)},
        ])
        urgent = of_type(self.score(c), "urgent")[0]
        self.assertEqual(urgent.title, "Sooner")
        self.assertEqual(urgent.description, "Due tomorrow for Dr. Kim's CS 101. This might be a good place to start.")

    def test_completed_and_past_ignored(self) -> None:
        c = chat("c1", "CS 101", assignments=[
            {"name": "Done", "dueDate": day(1), "status": "completed"},
            {"name": "Missed", "dueDate": day(-2)},
            {"name": "Undated"},
        ])
        self.assertEqual(of_type(self.score(c), "urgent"), [])

    def test_workload_order(self) -> None:
        first = chat("c1", "CS 101", assignments=[{"name": "Essay", "dueDate": day(5)}])
        second = chat("c2", "CS 102", assignments=[
            {"name": "Quiz", "dueDate": day(1)},
            {"name": "Lab", "dueDate": day(3)},
        ])
        workload = of_type(self.score(first, second), "workload")
        self.assertEqual(len(workload), 1)
        self.assertEqual(workload[0].title, "3 assignments due this week")
        self.assertEqual(
            workload[0].description,
            "Suggested order: Quiz, Lab, Essay. Start with the earliest deadline.",
        )
        self.assertEqual(workload[0].course, MULTIPLE_COURSES)
        self.assertEqual(workload[0].action, "View Assignments")

    def test_no_workload_under_three(self) -> None:
        c = chat("c1", "CS 101", assignments=[{"name": "A", "dueDate": day(5)}, {"name": "B", "dueDate": day(6)}])
        self.assertEqual(of_type(self.score(c), "workload"), [])


class TestExams(ScorerTestCase):
    def test_exam_heavy_within_week(self) -> None:
        c = chat("c1", "CHEM 1", courseDescription="Two midterms and a final exam.",
                 exams=[{"name": "Midterm", "date": day(5)}])
        exam = of_type(self.score(c), "exam")[0]
        self.assertEqual(exam.title, "CHEM 1 Midterm")
        self.assertEqual(exam.description, "Your CHEM 1 exam is in 5 days. This course is exam-heavy - start reviewing now.")

    def test_exam_within_week(self) -> None:
        c = chat("c1", "CHEM 1", exams=[{"name": "Quiz", "date": day(0)}])
        exam = of_type(self.score(c), "exam")[0]
        self.assertIn("exam is today - here's a suggested study plan", exam.description)

    def test_exam_within_two_weeks(self) -> None:
        c = chat("c1", "CHEM 1", exams=[{"name": "Final", "date": day(10)}])
        exam = of_type(self.score(c), "exam")[0]
        self.assertEqual(exam.description, "Coming up in 10 days. Your syllabus has topics you can review to prepare.")
        self.assertEqual(exam.action_url, chat_url("c1", "Help me prepare for Final"))

    def test_far_exam_ignored(self) -> None:
        c = chat("c1", "CHEM 1", exams=[{"name": "Final", "date": day(20)}])
        self.assertEqual(of_type(self.score(c), "exam"), [])

    def test_equal_exam_dates_keep_input_order(self) -> None:
        a = chat("c1", "CHEM 1", exams=[{"name": "Midterm", "date": day(4)}])
        b = chat("c2", "BIO 1", exams=[{"name": "Midterm", "date": day(4)}])
        self.assertEqual(of_type(self.score(a, b), "exam")[0].course, "CHEM 1")


class TestTopics(ScorerTestCase):
    topics = ["Limits", "Derivatives", "Integrals"]

    def test_progression(self) -> None:
        c = chat("c1", "MATH 1", topics=self.topics, messages=[user_says("Can you explain limits?")])
        progression = of_type(self.score(c), "progression")
        self.assertEqual(len(progression), 1)
        self.assertEqual(progression[0].title, "Derivatives")
        self.assertEqual(progression[0].description, "You've covered Limits - next up is derivatives.")
        self.assertEqual(progression[0].priority, MEDIUM)

    def test_assistant_messages_count_as_discussed(self) -> None:
        c = chat("c1", "MATH 1", topics=self.topics, messages=[
            user_says("hi"),
            bot_says("Let's start with integrals."),
        ])
        progression = of_type(self.score(c), "progression")
        # last syllabus topic covered: wrap to the first one not yet seen
        self.assertEqual(progression[0].title, "Limits")
        self.assertEqual(progression[0].description, "You've covered Integrals - next up is limits.")

    def test_no_activity_no_progression(self) -> None:
        c = chat("c1", "MATH 1", topics=self.topics)
        self.assertEqual(of_type(self.score(c), "progression"), [])

    def test_next_topic(self) -> None:
        self.assertEqual(next_topic([], self.topics), "Limits")
        self.assertEqual(next_topic(["Derivatives"], self.topics), "Integrals")
        self.assertEqual(next_topic(["Integrals"], self.topics), "Limits")
        self.assertIsNone(next_topic(self.topics, self.topics))

    def test_review_needs_three_recent_questions(self) -> None:
        c = chat("c1", "MATH 1", topics=self.topics, messages=[
            user_says("derivatives again?", days_ago=1),
            user_says("more derivatives", days_ago=2),
            user_says("derivatives of sin", days_ago=3),
        ])
        review = of_type(self.score(c), "review")
        self.assertEqual(len(review), 1)
        self.assertEqual(review[0].title, "Review Derivatives")
        self.assertEqual(
            review[0].description,
            "You've asked multiple questions about derivatives. A focused review might help.",
        )

    def test_review_ignores_old_questions(self) -> None:
        c = chat("c1", "MATH 1", topics=self.topics, messages=[
            user_says("derivatives again?", days_ago=1),
            user_says("more derivatives", days_ago=2),
            user_says("derivatives of sin", days_ago=10),
            user_says("derivatives of cos", days_ago=12),
        ])
        self.assertEqual(of_type(self.score(c), "review"), [])

    def test_dependency(self) -> None:
        c = chat("c1", "MATH 1", topics=self.topics,
                 assignments=[{"name": "Problem Set 3", "dueDate": day(10)}],
                 messages=[user_says("what are limits")])
        dependency = of_type(self.score(c), "dependency")
        self.assertEqual(len(dependency), 1)
        self.assertEqual(dependency[0].title, "Problem Set 3")
        self.assertEqual(
            dependency[0].description,
            "This assignment builds on limits, which you asked about recently.",
        )

    def test_no_dependency_when_urgent(self) -> None:
        c = chat("c1", "MATH 1", topics=self.topics,
                 assignments=[{"name": "Problem Set 3", "dueDate": day(2)}],
                 messages=[user_says("what are limits")])
        self.assertEqual(of_type(self.score(c), "dependency"), [])


class TestCrossCourse(ScorerTestCase):
    def test_connection_between_science_courses(self) -> None:
        physics = chat("c1", "PHYS 101", title="Physics", topics=["Kinematics", "Thermodynamics"])
        chemistry = chat("c2", "CHEM 101", title="Chemistry", topics=["Stoichiometry", "Thermodynamics"])
        connection = of_type(self.score(physics, chemistry), "connection")
        self.assertEqual(len(connection), 1)
        self.assertEqual(connection[0].title, "PHYS 101 ↔ CHEM 101")
        self.assertEqual(
            connection[0].description,
            'The topic "Thermodynamics" appears in both courses. Understanding it in one will help with the other.',
        )
        self.assertEqual(connection[0].course, MULTIPLE_COURSES)

    def test_no_connection_across_clusters(self) -> None:
        physics = chat("c1", "PHYS 101", title="Physics", topics=["Revolutions"])
        history = chat("c2", "HIST 101", title="History", topics=["Revolutions"])
        self.assertEqual(of_type(self.score(physics, history), "connection"), [])

    def test_energy_under_heavy_workload(self) -> None:
        heavy = chat("c1", "MATH 101", title="Calculus", assignments=[
            {"name": f"PS {i}", "dueDate": day(i + 1)} for i in range(4)
        ])
        light = chat("c2", "HIST 210", title="History", topics=["Renaissance"])
        energy = of_type(self.score(heavy, light), "energy")
        self.assertEqual(len(energy), 1)
        self.assertEqual(energy[0].title, "Light review: Renaissance")
        self.assertEqual(energy[0].priority, LOW)
        self.assertEqual(energy[0].course, "HIST 210")

    def test_no_energy_under_light_workload(self) -> None:
        light = chat("c2", "HIST 210", title="History", topics=["Renaissance"],
                     assignments=[{"name": "Essay", "dueDate": day(3)}])
        self.assertEqual(of_type(self.score(light), "energy"), [])


class TestFallbacks(ScorerTestCase):
    def test_general_when_nothing_applies(self) -> None:
        suggestions = self.score(chat("c1", "CS 101"))
        self.assertEqual([s.type for s in suggestions], ["general"])
        self.assertEqual(suggestions[0].title, "Your courses")
        self.assertEqual(suggestions[0].action_url, "/dashboard/chat?tab=c1")

    def test_templated_study_topics(self) -> None:
        physics = chat("c1", "PHYS 101", title="Physics", topics=["Kinematics", "Vectors"])
        history = chat("c2", "HIST 101", title="History", topics=["Empires", "kinematics"])
        study = of_type(self.score(physics, history, topic_limit=3), "study")
        self.assertEqual([s.title for s in study], ["Kinematics", "Vectors", "Empires"])
        self.assertEqual(
            study[0].description,
            "Understanding kinematics builds the foundation for more advanced concepts in this course.",
        )
        self.assertEqual(
            study[2].description,
            "Empires is a key concept that will help you engage with the course material more deeply.",
        )

    def test_mixed_template(self) -> None:
        self.assertEqual(
            templated_description("mixed", "Reading Lists"),
            "Exploring reading lists will help you get started with this course.",
        )

    def test_failing_pass_is_isolated(self) -> None:
        def broken(ctx):
            raise KeyError("boom")

        self.scorer.passes.insert(0, ("broken", broken))
        c = chat("c1", "CS 101", assignments=[{"name": "Lab 1", "dueDate": day(1)}])
        with self.assertLogs("courseconnect.scoring", level="WARNING"):
            suggestions = self.score(c)
        self.assertEqual([s.type for s in suggestions], ["urgent"])

    def test_context_windows(self) -> None:
        c = chat("c1", "CS 101", assignments=[
            {"name": "A", "dueDate": day(8)},
            {"name": "B", "dueDate": day(7)},
            {"name": "C", "dueDate": day(0)},
        ], exams=[{"name": "Final", "date": day(14)}, {"name": "Later", "date": day(15)}])
        ctx = ScoringContext.build([c], NOW)
        self.assertEqual([a.name for _v, a, _d in ctx.this_week()], ["C", "B"])
        self.assertEqual([a.name for _v, a, _d in ctx.urgent()], ["C"])
        self.assertEqual([e.name for _v, e, _d in ctx.upcoming_exams()], ["Final"])
        self.assertEqual(ctx.deadline_counts("c1"), (1, 1))


if __name__ == "__main__":
    unittest.main()
