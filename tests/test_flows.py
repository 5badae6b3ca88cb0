import json
import sys
import threading
import time
import unittest
from datetime import date
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from actionflow import flows
from actionflow.errors import FlowError, TransportError
from actionflow.llm import LLMGateway, LLMResponse
from actionflow.models import TaskCategory


class _ScriptedClient:
    def __init__(self, *outputs) -> None:
        self.outputs = list(outputs)
        self.calls = []

    def generate(self, prompt, *, temperature=None, json_mode=True):
        self.calls.append({"prompt": prompt, "temperature": temperature, "json_mode": json_mode})
        output = self.outputs.pop(0)
        if isinstance(output, Exception):
            raise output
        content = output if isinstance(output, str) else json.dumps(output)
        return LLMResponse(content=content, model="fake")


OPEN_TASKS = json.dumps(
    {
        "dailyTasks": [
            {"id": "d1", "text": "Send the report", "completed": False, "owner": "Ann", "category": "daily"},
            {"id": "d2", "text": "Call Bob", "completed": False, "owner": "Ann", "category": "daily"},
        ],
        "weeklyTasks": [],
        "sprintTasks": [],
        "miscTasks": [{"id": "m1", "text": "Water plants", "completed": False, "owner": "Ann"}],
    }
)


class CreateFlowTests(unittest.TestCase):
    def test_untargeted_task_uses_default_owner(self) -> None:
        client = _ScriptedClient(
            {"tasks": [{"text": "Buy milk", "category": "misc", "owner": "Ann"}], "clarification": None}
        )
        result = flows.create_tasks_from_text(LLMGateway(client), "remind me to buy milk", "[]", "Ann")
        self.assertEqual(len(result.tasks), 1)
        self.assertEqual(result.tasks[0].category, TaskCategory.MISC)
        self.assertEqual(result.tasks[0].owner, "Ann")
        call = client.calls[0]
        self.assertIn("'Ann'", call["prompt"])
        self.assertIn("remind me to buy milk", call["prompt"])
        self.assertEqual(call["temperature"], 0.2)
        self.assertTrue(call["json_mode"])

    def test_default_owner_required(self) -> None:
        with self.assertRaises(ValueError):
            flows.create_tasks_from_text(LLMGateway(_ScriptedClient()), "add", "[]", "  ")

    def test_decompose_returns_original_task(self) -> None:
        client = _ScriptedClient(
            {
                "tasks": [
                    {"text": "Book venue", "category": "misc", "owner": "Ann"},
                    {"text": "Send invites", "category": "misc", "owner": "Ann"},
                ],
                "originalTask": {"text": "Plan the offsite", "category": "misc", "owner": "Ann"},
                "clarification": None,
            }
        )
        result = flows.create_tasks_from_text(LLMGateway(client), "plan the offsite", "[]", "Ann", decompose=True)
        self.assertEqual(result.original_task.text, "Plan the offsite")
        self.assertEqual([t.text for t in result.tasks], ["Book venue", "Send invites"])
        self.assertIn("originalTask", client.calls[0]["prompt"])

    def test_invalid_json_becomes_flow_error(self) -> None:
        client = _ScriptedClient("this is not json")
        with self.assertRaises(FlowError) as ctx:
            flows.create_tasks_from_text(LLMGateway(client), "add", "[]", "Ann")
        self.assertTrue(str(ctx.exception).startswith("Failed to process task creation request. Details:"))


class SelectionFlowTests(unittest.TestCase):
    def test_complete_matches_report_task(self) -> None:
        client = _ScriptedClient(
            {"tasksToComplete": [{"id": "d1", "text": "Send report", "category": "daily"}], "clarification": None}
        )
        result = flows.complete_tasks_from_text(LLMGateway(client), "close the report task", OPEN_TASKS)
        self.assertEqual([t.id for t in result.tasks], ["d1"])
        self.assertEqual(result.tasks[0].text, "Send the report")
        self.assertEqual(client.calls[0]["temperature"], 0.1)
        self.assertIn("tasksToComplete", client.calls[0]["prompt"])

    def test_vague_request_asks_for_clarification(self) -> None:
        client = _ScriptedClient({"tasksToComplete": [], "clarification": "Which task are you referring to?"})
        result = flows.complete_tasks_from_text(LLMGateway(client), "complete the task", OPEN_TASKS)
        self.assertEqual(result.tasks, [])
        self.assertEqual(result.clarification, "Which task are you referring to?")

    def test_category_falls_back_to_list_key(self) -> None:
        client = _ScriptedClient(
            {"tasksToDelete": [{"id": "m1", "text": "Water plants", "category": "daily"}], "clarification": None}
        )
        result = flows.delete_tasks_from_text(LLMGateway(client), "delete the plants task", OPEN_TASKS)
        self.assertEqual(result.tasks[0].category, TaskCategory.MISC)

    def test_duplicates_collapse(self) -> None:
        entry = {"id": "d2", "text": "Call Bob", "category": "daily"}
        client = _ScriptedClient({"tasksToDelete": [entry, entry], "clarification": None})
        result = flows.delete_tasks_from_text(LLMGateway(client), "delete call bob", OPEN_TASKS)
        self.assertEqual(len(result.tasks), 1)

    def test_unknown_id_is_flow_error(self) -> None:
        client = _ScriptedClient(
            {"tasksToDelete": [{"id": "zz", "text": "Ghost", "category": "misc"}], "clarification": None}
        )
        with self.assertRaises(FlowError) as ctx:
            flows.delete_tasks_from_text(LLMGateway(client), "delete ghost", OPEN_TASKS)
        self.assertIn("zz", str(ctx.exception))

    def test_wrong_shape_is_flow_error(self) -> None:
        client = _ScriptedClient({"tasksToComplete": "not-an-array", "clarification": None})
        with self.assertRaises(FlowError) as ctx:
            flows.complete_tasks_from_text(LLMGateway(client), "done", OPEN_TASKS)
        self.assertIn("tasksToComplete must be list", str(ctx.exception))

    def test_transport_failure_is_flow_error(self) -> None:
        client = _ScriptedClient(TransportError("Ollama", 500, "boom"))
        with self.assertRaises(FlowError) as ctx:
            flows.complete_tasks_from_text(LLMGateway(client), "done", OPEN_TASKS)
        self.assertEqual(
            str(ctx.exception),
            "Failed to process task completion request. Details: Ollama API error (500): boom",
        )


class RouterFlowTests(unittest.TestCase):
    def test_router_prompt_carries_dates(self) -> None:
        client = _ScriptedClient({"intent": "answer_question", "answer": "You have 3 open tasks."})
        route = flows.route_query(LLMGateway(client), "how many tasks?", OPEN_TASKS, date(2024, 5, 15))
        self.assertEqual(route.intent, "answer_question")
        self.assertEqual(route.answer, "You have 3 open tasks.")
        prompt = client.calls[0]["prompt"]
        for expected in ("2024-05-15", "2024-05-12", "2024-05-18"):
            self.assertIn(expected, prompt)

    def test_answer_question(self) -> None:
        client = _ScriptedClient({"answer": "Call Bob is still open."})
        answer = flows.answer_question(LLMGateway(client), "what about bob?", OPEN_TASKS, date(2024, 5, 15))
        self.assertEqual(answer, "Call Bob is still open.")


class _ChunkClient:
    """Answers chunk prompts out of order and echoes the combine prompt."""

    DELAYS = {"A": 0.2, "B": 0.1, "C": 0.0}

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.prompts = []

    def generate(self, prompt, *, temperature=None, json_mode=True):
        with self.lock:
            self.prompts.append(prompt)
        if prompt.startswith("The following text contains several summaries"):
            return LLMResponse(content=" combined ", model="fake")
        letter = prompt.split("---\n")[1][0]
        time.sleep(self.DELAYS[letter])
        return LLMResponse(content=f"summary {letter}\n", model="fake")


class SummarizeTests(unittest.TestCase):
    def test_split_into_chunks_overlaps(self) -> None:
        chunks = flows.split_into_chunks("abcdefghij", chunk_size=4, overlap=1)
        self.assertEqual(chunks, ["abcd", "defg", "ghij", "j"])
        with self.assertRaises(ValueError):
            flows.split_into_chunks("abc", chunk_size=2, overlap=2)

    def test_short_text_single_call(self) -> None:
        client = _ScriptedClient("  short summary ")
        self.assertEqual(flows.summarize_text(LLMGateway(client), "tiny text"), "short summary")
        self.assertFalse(client.calls[0]["json_mode"])

    def test_combine_keeps_chunk_order(self) -> None:
        text = "A" * 14000 + "B" * 14000 + "C" * 2000
        client = _ChunkClient()
        self.assertEqual(flows.summarize_text(LLMGateway(client), text), "combined")
        combine_prompt = client.prompts[-1]
        self.assertIn("summary A\n\n---\n\nsummary B\n\n---\n\nsummary C", combine_prompt)

    def test_too_long_text_rejected(self) -> None:
        with self.assertRaises(ValueError):
            flows.summarize_text(LLMGateway(_ScriptedClient()), "x" * (flows.SUMMARY_MAX_CHARS + 1))


if __name__ == "__main__":
    unittest.main()
