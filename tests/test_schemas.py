import sys
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from actionflow.models import TaskCategory
from actionflow.schemas import (
    parse_answer,
    parse_assistant_route,
    parse_create_tasks,
    parse_identified_tasks,
)


class CreateTasksSchemaTests(unittest.TestCase):
    def test_valid_payload(self) -> None:
        result, error = parse_create_tasks(
            {
                "tasks": [{"text": " Send report ", "category": "daily", "owner": "Ravi"}],
                "clarification": None,
            }
        )
        self.assertIsNone(error)
        self.assertEqual(result.tasks[0].text, "Send report")
        self.assertEqual(result.tasks[0].category, TaskCategory.DAILY)
        self.assertIsNone(result.clarification)

    def test_owner_object_rejected(self) -> None:
        result, error = parse_create_tasks(
            {
                "tasks": [{"text": "Send report", "category": "daily", "owner": {"name": "Ravi"}}],
                "clarification": None,
            }
        )
        self.assertIsNone(result)
        self.assertIn("owner", error)

    def test_template_category_rejected(self) -> None:
        _, error = parse_create_tasks(
            {"tasks": [{"text": "A", "category": "defaultDaily", "owner": "Ann"}], "clarification": None}
        )
        self.assertIn("category", error)

    def test_clarification_key_required(self) -> None:
        _, error = parse_create_tasks({"tasks": []})
        self.assertEqual(error, "clarification required")

    def test_original_task_ignored_unless_allowed(self) -> None:
        payload = {
            "tasks": [{"text": "Book venue", "category": "misc", "owner": "Ann"}],
            "originalTask": {"text": "Plan offsite", "category": "misc", "owner": "Ann"},
            "clarification": None,
        }
        result, error = parse_create_tasks(payload)
        self.assertIsNone(error)
        self.assertIsNone(result.original_task)
        self.assertEqual([t.text for t in result.tasks], ["Book venue"])
        result, error = parse_create_tasks(payload, allow_original_task=True)
        self.assertIsNone(error)
        self.assertEqual(result.original_task.text, "Plan offsite")


class IdentifiedTasksSchemaTests(unittest.TestCase):
    def test_non_array_rejected(self) -> None:
        result, error = parse_identified_tasks({"tasksToComplete": "not-an-array", "clarification": None}, "tasksToComplete")
        self.assertIsNone(result)
        self.assertEqual(error, "tasksToComplete must be list")

    def test_valid_selection_with_clarification(self) -> None:
        result, error = parse_identified_tasks(
            {"tasksToDelete": [], "clarification": "Which task are you referring to?"}, "tasksToDelete"
        )
        self.assertIsNone(error)
        self.assertEqual(result.tasks, [])
        self.assertEqual(result.clarification, "Which task are you referring to?")

    def test_entry_requires_id(self) -> None:
        _, error = parse_identified_tasks(
            {"tasksToDelete": [{"text": "x", "category": "misc"}], "clarification": None}, "tasksToDelete"
        )
        self.assertEqual(error, "tasksToDelete[0] id missing")


class RouteSchemaTests(unittest.TestCase):
    def test_create_intent_drops_answer(self) -> None:
        route, error = parse_assistant_route({"intent": "create_tasks", "answer": "Sure, adding it."})
        self.assertIsNone(error)
        self.assertIsNone(route.answer)

    def test_other_intents_need_answer(self) -> None:
        _, error = parse_assistant_route({"intent": "greeting", "answer": ""})
        self.assertIsNotNone(error)
        route, error = parse_assistant_route({"intent": "answer_question", "answer": "You have 2 tasks."})
        self.assertEqual(route.answer, "You have 2 tasks.")

    def test_unknown_intent(self) -> None:
        _, error = parse_assistant_route({"intent": "dance", "answer": "no"})
        self.assertIn("intent", error)

    def test_parse_answer(self) -> None:
        self.assertEqual(parse_answer({"answer": " Yes "}), ("Yes", None))
        self.assertEqual(parse_answer(["answer"]), (None, "payload must be object"))


if __name__ == "__main__":
    unittest.main()
