from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

import allure
import pytest

from mission_control.assistant.actions import RawAction, parse_actions
from mission_control.assistant.repository import TaskStatus
from mission_control.assistant.tier_router import ModelTier, QuickTopic, route_message
from mission_control.boards.models import BoardStatus
from mission_control.config import Settings
from mission_control.orchestrator.engine import EngineRunError
from mission_control.orchestrator.models import JobStatus
from mission_control.org.models import AgentCreate
from mission_control.services import Services, build_services

pytestmark = [
    allure.epic("Operator Assistant"),
    allure.feature("Chat and Actions"),
]


class _RecordingChat:
    def __init__(self, reply: str = "", error: EngineRunError | None = None) -> None:
        self.reply = reply
        self.error = error
        self.calls: list[tuple[str, str]] = []

    def __call__(self, prompt: str, model: str) -> str:
        self.calls.append((prompt, model))
        if self.error is not None:
            raise self.error
        return self.reply


@contextmanager
def _with_chat(settings: Settings, chat: _RecordingChat) -> Iterator[Services]:
    built = build_services(settings, chat=chat)
    try:
        yield built
    finally:
        built.close()


@pytest.mark.parametrize(
    ("message", "tier", "rule", "topic"),
    [
        ("what jobs are running?", ModelTier.QUICK_PATH, "quick_path", QuickTopic.JOBS),
        ("sitrep", ModelTier.QUICK_PATH, "quick_path", QuickTopic.SITREP),
        ("list the team", ModelTier.QUICK_PATH, "quick_path", QuickTopic.AGENTS),
        ("yes", ModelTier.FAST, "confirmation", None),
        ("Option B", ModelTier.FAST, "confirmation", None),
        ("Fix the login bug", ModelTier.DEEP, "action", None),
        ("Analyze our churn numbers", ModelTier.DEEP, "analysis", None),
        ("word " * 70, ModelTier.DEEP, "long_message", None),
        ("hello there", ModelTier.FAST, "default", None),
    ],
)
def test_route_message(message: str, tier: ModelTier, rule: str, topic) -> None:
    decision = route_message(message)

    assert decision.tier == tier
    assert decision.rule == rule
    assert decision.quick_topic == topic


def test_images_always_go_deep() -> None:
    decision = route_message("yes", has_images=True)

    assert (decision.tier, decision.rule) == (ModelTier.DEEP, "image")


def test_long_status_question_skips_quick_path() -> None:
    message = "what jobs are running " + "and also tell me everything else " * 3

    assert route_message(message).tier != ModelTier.QUICK_PATH


def test_parse_actions_strips_blocks_and_drops_invalid_ones() -> None:
    reply = (
        "Done.\n\n\n"
        '[MC_ACTION:create_task]{"title": "Sign contract"}[/MC_ACTION]\n\n\n'
        "[MC_ACTION:spawn_job]{not json}[/MC_ACTION]"
        "[MC_ACTION:check_status][1, 2][/MC_ACTION]\n"
        "Anything else?"
    )

    parsed = parse_actions(reply)

    assert parsed.clean_text == "Done.\n\nAnything else?"
    assert parsed.actions == [RawAction(type="create_task", params={"title": "Sign contract"})]


def test_executor_reports_each_action_independently(services: Services) -> None:
    executor = services.assistant.executor

    results = executor.execute_all(
        [
            RawAction("teleport", {}),
            RawAction("create_task", {"title": "Review pricing", "priority": 11}),
            RawAction("create_task", {"title": "Review pricing", "priority": 2}),
            RawAction("approve_task", {"title": "pricing"}),
            RawAction("approve_task", {"title": "pricing"}),
            RawAction("request_tools", {"agent_name": "Ghost", "tools": ["github"]}),
            RawAction("check_status", {}),
        ],
    )

    assert [result.ok for result in results] == [False, False, True, True, False, False, True]
    assert results[0].error == "Unknown action: teleport"
    assert results[1].error is not None and results[1].error.startswith("Invalid payload")
    assert results[3].task_id == results[2].task_id
    assert results[4].error == "Task not found"
    assert results[5].error == "Agent not found"
    task = services.assistant_repo.get_task(task_id=results[2].task_id or "")
    assert task is not None
    assert task.status == TaskStatus.DONE
    assert task.completed_at is not None


def test_executor_spawns_jobs_and_grants_tools(services: Services) -> None:
    agent = services.org.add_agent(AgentCreate(name="Codey", role="coder"))
    project = services.org.add_project(name="Storefront")
    executor = services.assistant.executor

    spawned, shell, granted = executor.execute_all(
        [
            RawAction(
                "spawn_job",
                {
                    "title": "Fix checkout",
                    "engine": "COBOL",
                    "agent_name": "codey",
                    "project_name": "storefront",
                },
            ),
            RawAction("spawn_job", {"title": "Disk usage", "engine": "shell", "prompt_text": "df"}),
            RawAction("request_tools", {"agent_name": "Codey", "tools": ["github", "browser"]}),
        ],
    )

    assert spawned.ok and shell.ok and granted.ok
    job = services.jobs.require_job(job_id=spawned.job_id or "")
    assert job.engine == "claude"
    assert job.prompt_text == "Fix checkout"
    assert job.priority == 3
    assert job.agent_id == agent.agent_id
    assert job.project_id == project.project_id
    assert services.jobs.require_job(job_id=shell.job_id or "").command == "df"
    assert [skill.key for skill in services.org.list_agent_skills(agent_id=agent.agent_id)] == [
        "github",
        "browser",
    ]


def test_executor_decides_boards_by_title(services: Services) -> None:
    services.org.add_agent(AgentCreate(name="Kate", role="executive"))
    executor = services.assistant.executor

    created = executor.execute(
        RawAction(
            "challenge_board",
            {"title": "Hire a designer", "options": ["Now", "Later"], "challengers": ["Kate"]},
        ),
    )
    assert created.ok and created.id is not None

    missing = executor.execute(RawAction("decide", {"title": "designer"}))
    decided = executor.execute(RawAction("decide", {"title": "designer", "option": "option b"}))
    again = executor.execute(RawAction("decide", {"board_id": created.id, "decision": "A"}))
    unknown = executor.execute(RawAction("decide", {"title": "spaceship", "decision": "A"}))

    assert missing.error == "Need decision or option"
    assert decided.ok and decided.id == created.id
    board = services.boards.summary(board_id=created.id).board
    assert board.status == BoardStatus.DECIDED
    assert board.final_decision == "B"
    assert again.error == "Board already decided"
    assert unknown.error == "Board not found"


def test_quick_path_answers_without_model_call(settings: Settings) -> None:
    chat = _RecordingChat()
    with _with_chat(settings, chat) as services:
        events = list(services.assistant.respond("what jobs are running?"))

        assert [event.type for event in events] == ["text", "done"]
        assert events[0].data == {"content": "All clear: no jobs running or queued right now."}
        assert events[1].data["tier"] == "quick-path"
        assert chat.calls == []
        stored = services.assistant_repo.list_messages()
        assert [(message.role, message.tier) for message in stored] == [
            ("user", None),
            ("assistant", "quick-path"),
        ]


def test_deep_reply_executes_actions(settings: Settings) -> None:
    chat = _RecordingChat(
        reply=(
            "On it.\n"
            '[MC_ACTION:spawn_job]{"title": "Fix login", "engine": "shell", '
            '"prompt_text": "echo fixed"}[/MC_ACTION]\n'
            '[MC_ACTION:create_task]{"title": "Approve login copy", "priority": 2}[/MC_ACTION]'
        ),
    )
    with _with_chat(settings, chat) as services:
        events = list(services.assistant.respond("Fix the login bug"))

        assert [event.type for event in events] == ["text", "action", "action", "done"]
        assert events[0].data == {"content": "On it."}
        assert events[1].data["action"]["type"] == "spawn_job"
        assert events[2].data["action"]["ok"] is True
        assert events[3].data["tier"] == "deep"
        prompt, model = chat.calls[0]
        assert model == settings.assistant.deep_model
        assert "Owner: Fix the login bug" in prompt
        assert "[MC_ACTION:<type>]" in prompt
        queued = services.jobs.list_jobs(status=JobStatus.QUEUED)
        assert [(job.title, job.command) for job in queued] == [("Fix login", "echo fixed")]
        assert [task.title for task in services.assistant_repo.list_tasks()] == [
            "Approve login copy",
        ]
        assert services.assistant_repo.list_messages()[-1].actions[0]["type"] == "spawn_job"


def test_chat_failure_is_streamed_as_error(settings: Settings) -> None:
    chat = _RecordingChat(error=EngineRunError("Chat command not found: claude", transient=False))
    with _with_chat(settings, chat) as services:
        events = list(services.assistant.respond("hello there"))

        assert [event.type for event in events] == ["error", "done"]
        assert events[0].data == {"error": "Chat command not found: claude"}
        assert chat.calls[0][1] == settings.assistant.fast_model
        assert events[0].to_sse().startswith('data: {"type": "error"')


def test_empty_message_is_rejected(services: Services) -> None:
    with pytest.raises(ValueError, match="must not be empty"):
        list(services.assistant.respond("   "))


def test_chat_history_is_included_in_prompt(settings: Settings) -> None:
    chat = _RecordingChat(reply="Hi!")
    with _with_chat(settings, chat) as services:
        list(services.assistant.respond("hello there"))
        list(services.assistant.respond("hello again"))

        second_prompt = chat.calls[1][0]
        assert "## Recent Conversation" in second_prompt
        assert "user: hello there" in second_prompt
        assert "assistant: Hi!" in second_prompt
