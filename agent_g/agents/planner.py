import json
import logging
import re
import uuid
from typing import List, Optional, Sequence
from ..models.task import AgentName, SubTaskSpec, TaskPlan, TaskType
from ..models.events import Event, EventType, EventSource
from ..store.redis_client import RedisClient

logger = logging.getLogger(__name__)

# Category order is also the sub-task priority order of a hybrid plan.
# Keywords match whole words; a trailing "*" marks a stem that matches any word it starts.
CATEGORIES = [
    (TaskType.BUSINESS, AgentName.BUSINESS_AGENT, "create_business_plan",
     ("business", "businesses", "plan", "plans", "planning", "launch", "launching", "startup", "startups",
      "strategy", "revenue", "company", "product", "products", "brand", "branding", "pitch", "investor", "investors")),
    (TaskType.SOCIAL, AgentName.SOCIAL_MEDIA, "create_content_plan",
     ("social", "instagram", "facebook", "tiktok", "linkedin", "post", "posts", "campaign", "campaigns",
      "content", "hashtag", "hashtags", "followers", "smm")),
    (TaskType.AVATAR, AgentName.AVATAR_BUILDER, "build_avatar",
     ("avatar", "avatars", "portrait", "portraits", "selfie", "selfies", "face", "photo", "photos",
      "headshot", "headshots")),
    (TaskType.VOICE, AgentName.VOICE_LAB, "generate_voiceover",
     ("voice", "voiceover", "audio", "narrat*", "podcast", "podcasts", "speech", "spoken", "tts")),
    (TaskType.MARKETPLACE, AgentName.MARKETPLACE, "find_listings",
     ("marketplace", "sell", "selling", "shop", "listing", "listings", "store", "buy", "ecommerce")),
]

_WORD = re.compile(r"\w+", re.UNICODE)
_GEORGIAN = re.compile(r"[\u10a0-\u10ff]")
_CYRILLIC = re.compile(r"[\u0400-\u04ff]")


def make_task_id() -> str:
    return str(uuid.uuid4())


def detect_language(text: str) -> str:
    if _GEORGIAN.search(text):
        return "ka"
    if _CYRILLIC.search(text):
        return "ru"
    return "en"


def _keyword_hit(token: str, keyword: str) -> bool:
    if keyword.endswith("*"):
        return token.startswith(keyword[:-1])
    return token == keyword


def classify_goal(goal: str) -> List[TaskType]:
    """Returns the matched categories in priority order."""
    tokens = {token.lower() for token in _WORD.findall(goal)}
    matched = []
    for task_type, _, _, keywords in CATEGORIES:
        if any(_keyword_hit(token, keyword) for token in tokens for keyword in keywords):
            matched.append(task_type)
    return matched


def plan_from_categories(goal: str, categories: Sequence[TaskType]) -> TaskPlan:
    wanted = set(categories) or {TaskType.BUSINESS}
    language = detect_language(goal)

    sub_tasks = [
        SubTaskSpec(agent=agent.value, action=action, input={"goal": goal, "language": language})
        for task_type, agent, action, _ in CATEGORIES
        if task_type in wanted
    ]

    if len(sub_tasks) > 1:
        task_type = TaskType.HYBRID
    else:
        task_type = next(iter(wanted))

    expected_outputs = {"text", "pdf", "zip"}
    if any(item.agent == AgentName.VOICE_LAB.value for item in sub_tasks):
        expected_outputs.add("audio")

    return TaskPlan(
        main_goal=goal,
        task_type=task_type,
        sub_tasks=sub_tasks,
        expected_outputs=expected_outputs,
    )


def build_task_plan(goal: str) -> TaskPlan:
    """
    Deterministic keyword planner.
    Goals with no recognised keyword become a single business-agent task.
    """
    return plan_from_categories(goal, classify_goal(goal))


class PlannerAgent:
    def __init__(self, redis: RedisClient, groq=None, model: str = "llama-3.3-70b-versatile"):
        self.redis = redis
        self.groq = groq
        self.model = model

    async def plan(self, task_id: str, goal: str) -> TaskPlan:
        """
        Decomposes a user goal into sub-tasks.
        Strategy:
        1. Attempt to use Groq to pick the categories when it is configured.
        2. Otherwise, or on any failure, use keyword classification.
        """
        logger.info(f"[Planner] started for task {task_id}")

        await self.redis.publish_event(task_id, Event(
            type=EventType.STATUS,
            source=EventSource.PLANNER,
            message="Analyzing task requirements..."
        ))

        categories = None
        if self.groq:
            try:
                categories = self._classify_with_groq(goal)
                logger.info(f"[Planner] Groq picked categories: {[c.value for c in categories]}")
            except Exception as e:
                logger.warning(f"[Planner] Groq planning failed: {e}. Falling back to keyword classification.")
                categories = None

        if not categories:
            categories = classify_goal(goal)

        task_plan = plan_from_categories(goal, categories)

        await self.redis.publish_event(task_id, Event(
            type=EventType.STATUS,
            source=EventSource.PLANNER,
            message=f"Task decomposed into {len(task_plan.sub_tasks)} sub-tasks ({task_plan.task_type.value}).",
            data={"plan": task_plan.model_dump(mode="json")}
        ))

        return task_plan

    def _classify_with_groq(self, goal: str) -> Optional[List[TaskType]]:
        names = [task_type.value for task_type, _, _, _ in CATEGORIES]
        options = ", ".join(names)
        chat_completion = self.groq.chat.completions.create(
            messages=[
                {
                    "role": "system",
                    "content": f"""
                    You are a precise Task Planner for a creative platform.
                    Pick which of these capabilities the user's goal needs: {options}.

                    Return ONLY valid JSON in this format:
                    {{ "categories": ["business", ...] }}
                    """
                },
                {"role": "user", "content": goal},
            ],
            model=self.model,
            temperature=0.0,
            response_format={"type": "json_object"},
        )

        content = chat_completion.choices[0].message.content
        data = json.loads(content)
        items = data.get("categories", []) if isinstance(data, dict) else data
        if not isinstance(items, list):
            raise ValueError(f"Could not parse categories from JSON: {content}")

        # Unknown names are dropped; an empty answer falls back to keywords.
        return [TaskType(item) for item in items if item in names]
