import logging
from ..models.task import AgentName, DelegationTarget, SubTaskSpec

logger = logging.getLogger(__name__)

KNOWN_AGENTS = {agent.value for agent in AgentName}


def map_subtask_to_delegate_target(spec: SubTaskSpec) -> DelegationTarget:
    """
    Maps a sub-task to the internal service call that fulfils it.
    First match wins; anything unrecognised gets the avatar listing.
    """
    goal = str(spec.input.get("goal") or "")

    if spec.agent == AgentName.BUSINESS_AGENT.value:
        return DelegationTarget(endpoint="/api/business-agent/projects", method="GET")

    if spec.agent == AgentName.SOCIAL_MEDIA.value:
        return DelegationTarget(
            endpoint="/api/chat",
            method="POST",
            body={
                "message": f"Create a social media content plan for: {goal}",
                "context": "social-media",
            },
        )

    if spec.agent == AgentName.VOICE_LAB.value:
        return DelegationTarget(
            endpoint="/api/voice-lab/generate",
            method="POST",
            body={"text": goal, "language": spec.input.get("language") or "en"},
        )

    if spec.agent == AgentName.MARKETPLACE.value:
        return DelegationTarget(endpoint="/api/marketplace/listings?limit=3", method="GET")

    if spec.agent not in KNOWN_AGENTS:
        logger.warning(f"[Router] Unknown agent '{spec.agent}', using avatar listing")

    return DelegationTarget(endpoint="/api/avatars?limit=1", method="GET")
