"""
Agent Pipeline - small multi-agent runner on top of LLMClient.

An Agent is one system prompt plus where its answer goes in the shared
state. A Network runs agents in order; the default router picks agent i on
call i and stops when the list is exhausted. Every agent sees the original
input followed by the outputs of the agents that ran before it.

    network = resume_network()
    state = network.run(input_text)
    state["extracted_data"], state["analysis_data"], state["score_data"]
"""
import json
import logging
from typing import Any, Callable, Dict, List, Optional

from niena.core.errors import AgentOutputError
from niena.services import prompts
from niena.services.llm_client import LLMClient, get_llm_client

logger = logging.getLogger(__name__)

NetworkState = Dict[str, Any]
Router = Callable[[int, NetworkState], Optional["Agent"]]


class Agent:
    """
    One LLM call with a fixed system prompt.

    Args:
        name: Agent name (used in logs and in the prompt context)
        system_prompt: System prompt sent on every call
        state_key: Key the parsed output is stored under
        output: "json" parses the answer, "text" stores it as-is
        max_tokens: Completion budget
    """

    def __init__(
        self,
        name: str,
        system_prompt: str,
        state_key: str,
        output: str = "json",
        max_tokens: int = 4000
    ):
        if output not in ("json", "text"):
            raise ValueError(f"Unknown agent output type: {output}")
        self.name = name
        self.system_prompt = system_prompt
        self.state_key = state_key
        self.output = output
        self.max_tokens = max_tokens

    def run(self, client: LLMClient, user_content: str) -> Any:
        raw = client.chat(
            self.system_prompt,
            user_content,
            max_tokens=self.max_tokens,
            json_mode=self.output == "json"
        )
        if self.output == "text":
            return raw
        return client.extract_json(raw)

    def __repr__(self):
        return f"Agent({self.name!r})"


class AgentNetwork:
    """
    Runs a fixed list of agents, routed by call count unless a router is given.
    """

    def __init__(self, name: str, agents: List[Agent], router: Router = None):
        if not agents:
            raise ValueError("A network needs at least one agent")
        self.name = name
        self.agents = agents
        self.router = router or self._route_by_call_count

    def _route_by_call_count(self, call_count: int, state: NetworkState) -> Optional[Agent]:
        if call_count < len(self.agents):
            return self.agents[call_count]
        return None

    @staticmethod
    def build_agent_input(input_text: str, history: List[tuple]) -> str:
        """Original input followed by every earlier agent's output."""
        parts = [input_text]
        for agent_name, output in history:
            if not isinstance(output, str):
                output = json.dumps(output, indent=2, ensure_ascii=False)
            parts.append(f"# Output of {agent_name}\n{output}")
        return "\n\n".join(parts)

    def run(
        self,
        input_text: str,
        state: NetworkState = None,
        client: LLMClient = None
    ) -> NetworkState:
        """
        Run the network to completion.

        Args:
            input_text: Original input given to every agent
            state: Optional initial state (copied, never mutated)
            client: LLM client, defaults to the shared singleton

        Returns:
            State dict holding each agent's output under its state_key
        """
        client = client or get_llm_client()
        state = dict(state or {})
        history: List[tuple] = []
        call_count = 0

        # Hard stop in case a custom router never returns None
        max_calls = len(self.agents) * 2

        while call_count < max_calls:
            agent = self.router(call_count, state)
            if agent is None:
                break

            logger.info("[%s] running agent %s (call %d)", self.name, agent.name, call_count)
            try:
                output = agent.run(client, self.build_agent_input(input_text, history))
            except AgentOutputError:
                logger.error("[%s] agent %s returned unusable output", self.name, agent.name)
                raise

            state[agent.state_key] = output
            history.append((agent.name, output))
            call_count += 1

        return state


# ============================================================
# FIXED NETWORKS
# ============================================================

def resume_network() -> AgentNetwork:
    return AgentNetwork("resume-network", [
        Agent("parser", prompts.EXTRACTION_PROMPT, "extracted_data"),
        Agent("analysis", prompts.ANALYSIS_PROMPT, "analysis_data"),
        Agent("score", prompts.SCORE_PROMPT, "score_data", max_tokens=2000),
    ])


def autofix_network() -> AgentNetwork:
    return AgentNetwork("autofix-network", [
        Agent("autofix", prompts.AUTOFIX_PROMPT, "autofix_data", max_tokens=6000),
    ])


def keyword_network() -> AgentNetwork:
    return AgentNetwork("keyword-network", [
        Agent("keyword-extractor", prompts.KEYWORD_EXTRACTION_PROMPT, "keywords", max_tokens=1500),
    ])


def tailoring_network(mode: str) -> AgentNetwork:
    """The input is the mode's template, already filled for the request."""
    return AgentNetwork(f"tailored-{mode}-network", [
        Agent(f"tailor-{mode}", prompts.RESUME_WRITER_SYSTEM_PROMPT, "tailored", max_tokens=6000),
    ])


def cover_letter_network() -> AgentNetwork:
    return AgentNetwork("cover-letter-network", [
        Agent("cover-letter", prompts.RESUME_WRITER_SYSTEM_PROMPT, "cover_letter", max_tokens=1500),
    ])


def job_extraction_network() -> AgentNetwork:
    return AgentNetwork("job-extraction-network", [
        Agent("job-extractor", prompts.JOB_EXTRACTION_PROMPT, "job_data", max_tokens=2000),
    ])


def interview_questions_network() -> AgentNetwork:
    return AgentNetwork("interview-questions-network", [
        Agent("question-writer", prompts.INTERVIEW_QUESTION_PROMPT, "questions", max_tokens=3000),
    ])


def interview_assessment_network(system_prompt: str) -> AgentNetwork:
    return AgentNetwork("interview-assessment-network", [
        Agent("assessor", system_prompt, "assessment", max_tokens=2000),
    ])
