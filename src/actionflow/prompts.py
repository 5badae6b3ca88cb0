from __future__ import annotations

ASSISTANT_PERSONA = 'You are "Jarvis", the task assistant for the ActionFlow app.'

CATEGORY_GUIDE = [
    "Categories (choose exactly one of 'daily', 'weekly', 'sprint', 'misc'):",
    "- 'daily': tasks for today (the \"Today\" list) or with daily frequency. Keywords: \"today\", \"daily\", \"by end of day\".",
    "- 'weekly': tasks for this week (the \"This Week\" list) or with weekly frequency. Keywords: \"this week\", \"weekly\", \"by Friday\".",
    "- 'sprint': tasks for the current software development sprint. Keywords: \"sprint\", \"feature\", \"bug\", \"ticket\".",
    "- 'misc': fallback for anything without a clear deadline or category.",
]


def build_create_tasks_prompt(query: str, contacts_json: str, default_owner_name: str, decompose: bool = False) -> str:
    parts = [
        ASSISTANT_PERSONA,
        "Parse the user's request into a structured list of tasks. Return STRICT JSON ONLY.",
        "Rules:",
        "1. text: only the core action item. Strip phrases like \"add a task to\", \"remind me to\", \"can you create a task for\".",
        '   Example: "remind me to send the TPS report to Bill" -> "Send the TPS report to Bill".',
        "2. category:",
        *CATEGORY_GUIDE,
        '   For requests like "send report A daily and report B weekly", create two tasks with their own categories.',
        "3. owner: MANDATORY on every task, always a plain string with the person's name, never an object.",
        '   If a person is named (e.g. "remind Ravi to ..."), that person is the owner.',
        f"   If no person is named, the owner MUST be the default owner: '{default_owner_name}'.",
        "   Do not invent owners and never leave the owner empty.",
    ]
    if decompose:
        parts.extend(
            [
                "4. Complex goals: when the request is a multi-step goal, put the goal itself in originalTask",
                "   and list the ordered sub-tasks needed to achieve it in tasks. For a simple request set originalTask to null.",
            ]
        )
    parts.extend(
        [
            "If the request is not about creating tasks (e.g. a greeting), return an empty tasks array and a null clarification.",
            "If the request is too ambiguous to create tasks, return an empty tasks array and ask a question in clarification.",
            "JSON schema:",
            "{",
            '  "tasks": [ {"text": "...", "category": "daily|weekly|sprint|misc", "owner": "..."} ],',
        ]
    )
    if decompose:
        parts.append('  "originalTask": {"text": "...", "category": "daily|weekly|sprint|misc", "owner": "..."} or null,')
    parts.extend(
        [
            '  "clarification": "question" or null',
            "}",
            "Known contacts:",
            contacts_json,
            "User request:",
            query,
        ]
    )
    return "\n".join(parts)


def _build_selection_prompt(query: str, tasks_json: str, verb: str, list_key: str, scope: str) -> str:
    return "\n".join(
        [
            ASSISTANT_PERSONA,
            f"Identify which tasks the user wants to {verb}. Return STRICT JSON ONLY.",
            f"You are given the user's request and {scope}, grouped by category.",
            "Matching:",
            "- By text: \"the report task\" -> tasks with \"report\" in the text.",
            "- By owner: \"all tasks for Kushal\" -> every task whose owner is Kushal.",
            "- By category: \"today's tasks\" -> category 'daily' (Today list); \"this week's tasks\" -> 'weekly' (This Week list);",
            "  \"the sprint\" -> 'sprint'; \"misc tasks\" -> 'misc'.",
            "Return the original id, text and category of every matched task. Never invent tasks that are not in the list.",
            f"If nothing matches, return an empty {list_key} array and a null clarification.",
            f"If the request is too vague (e.g. \"{verb} the task\"), return an empty {list_key} array and ask",
            'which task is meant in clarification (e.g. "Which task are you referring to?").',
            "JSON schema:",
            "{",
            f'  "{list_key}": [ {{"id": "...", "text": "...", "category": "daily|weekly|sprint|misc"}} ],',
            '  "clarification": "question" or null',
            "}",
            "Tasks:",
            "```json",
            tasks_json,
            "```",
            "User request:",
            query,
        ]
    )


def build_complete_tasks_prompt(query: str, open_tasks_json: str) -> str:
    return _build_selection_prompt(
        query, open_tasks_json, "complete", "tasksToComplete", "all currently open (not completed) tasks"
    )


def build_delete_tasks_prompt(query: str, all_tasks_json: str) -> str:
    return _build_selection_prompt(query, all_tasks_json, "delete", "tasksToDelete", "all of their tasks")


def build_router_prompt(
    query: str, all_tasks_json: str, current_date: str, start_of_week: str, end_of_week: str
) -> str:
    return "\n".join(
        [
            ASSISTANT_PERSONA,
            "You make task management seamless. If asked who you are, answer in a friendly way without technical jargon.",
            "Classify the user's query into exactly ONE intent and return STRICT JSON ONLY.",
            "Intents:",
            "- create_tasks: the user wants one or more new tasks",
            '  (e.g. "remind me to follow up with accounting tomorrow", "add a task to fix the login bug"). answer MUST be null.',
            "- answer_question: a question about their tasks, about you, or general knowledge",
            '  (e.g. "what do I have to do today?", "who is working on the report?"). Answer it using the context.',
            '- greeting: small talk ("hello", "thanks"). Give a short friendly reply.',
            '- clarification: too vague to classify (e.g. "the report"). Ask a clarifying question in answer.',
            "JSON schema:",
            '{"intent": "create_tasks|answer_question|greeting|clarification", "answer": "..." or null}',
            "Context:",
            f"- Today's date: {current_date}",
            f"- Current week: {start_of_week} to {end_of_week}",
            "- All task data:",
            all_tasks_json,
            "User query:",
            query,
        ]
    )


def build_answer_prompt(
    query: str, all_tasks_json: str, current_date: str, start_of_week: str, end_of_week: str
) -> str:
    return "\n".join(
        [
            ASSISTANT_PERSONA,
            "Answer the user's question about their tasks using only the data below. Be concise.",
            "The 'daily' category is the Today list and 'weekly' is the This Week list.",
            'Return STRICT JSON ONLY: {"answer": "..."}',
            "Context:",
            f"- Today's date: {current_date}",
            f"- Current week: {start_of_week} to {end_of_week}",
            "- All task data:",
            all_tasks_json,
            "User question:",
            query,
        ]
    )


def build_chunk_summary_prompt(chunk: str) -> str:
    return "\n".join(
        [
            "Concisely summarize the following text chunk. Focus on the main points and key information.",
            "",
            "TEXT CHUNK:",
            "---",
            chunk,
            "---",
            "",
            "SUMMARY:",
        ]
    )


def build_combine_summaries_prompt(summaries: list[str]) -> str:
    return "\n".join(
        [
            "The following text contains several summaries of different parts of a larger document.",
            "Combine these summaries into a single, cohesive and accurate final summary of the entire document.",
            "Capture all critical points from the provided summaries. Do not add any new information.",
            "",
            "SUMMARIES TO COMBINE:",
            "---",
            "\n\n---\n\n".join(summaries),
            "---",
            "",
            "FINAL COMBINED SUMMARY:",
        ]
    )
